"""
Pydantic schemas for chats and messages - API validation and serialization.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


Visibility = Literal["public", "private"]
ParticipantRole = Literal["owner", "editor", "viewer"]


# =============================================================================
# Chat Schemas
# =============================================================================

class Chat(BaseModel):
    id: str
    title: str
    visibility: str = "private"
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatParticipant(BaseModel):
    chat_id: str
    user_id: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChatListResponse(BaseModel):
    chats: List[Chat]
    has_more: bool


class VisibilityUpdate(BaseModel):
    chat_id: str
    visibility: Visibility


# =============================================================================
# Message Schemas
# =============================================================================

class MessagePart(BaseModel):
    """One part of a message. Text parts carry ``text``; tool parts carry the invocation."""
    type: str = "text"
    text: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class Message(BaseModel):
    id: str
    chat_id: str
    role: str
    parts: List[Dict[str, Any]] = []
    attachments: List[Dict[str, Any]] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def text(self) -> str:
        return "\n".join(p.get("text", "") for p in self.parts if p.get("type") == "text")


class ChatMessageIn(BaseModel):
    """A message as sent by the client in a chat request."""
    id: str
    role: MessageRole
    content: Optional[str] = None
    parts: List[MessagePart] = []
    attachments: List[Dict[str, Any]] = Field(default_factory=list, alias="experimental_attachments")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)

    def parts_payload(self) -> List[Dict[str, Any]]:
        if self.parts:
            return [p.model_dump(exclude_none=True) for p in self.parts]
        return [{"type": "text", "text": self.content or ""}]

    @property
    def text(self) -> str:
        if self.parts:
            return "\n".join(p.text or "" for p in self.parts if p.type == "text")
        return self.content or ""


class ChatRequest(BaseModel):
    id: str
    messages: List[ChatMessageIn]
    selected_chat_model: Optional[str] = Field(None, alias="selectedChatModel")

    model_config = ConfigDict(populate_by_name=True)


class Vote(BaseModel):
    chat_id: str
    message_id: str
    is_upvoted: bool

    model_config = ConfigDict(from_attributes=True)


class VoteRequest(BaseModel):
    chat_id: str
    message_id: str
    type: Literal["up", "down"]


class ChatSummary(BaseModel):
    id: str
    chat_id: str
    summary: str
    last_message_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
