"""
Pydantic schemas for external conversation threads (email, phone).
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, Any, Literal
from datetime import datetime

ThreadStatus = Literal["awaiting_reply", "replied", "closed"]
ThreadMessageRole = Literal["user", "ai", "external"]


class ExternalParty(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    type: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    website: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Thread(BaseModel):
    id: str
    chat_id: str
    external_party_id: str
    name: str
    external_system_id: Optional[str] = None
    status: str = "awaiting_reply"
    last_message_preview: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadMessage(BaseModel):
    id: str
    thread_id: str
    external_message_id: Optional[str] = None
    role: str
    subject: Optional[str] = None
    content: Any
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
