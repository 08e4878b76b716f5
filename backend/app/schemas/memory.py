"""
Pydantic schemas for long-term user memory.
"""
from pydantic import BaseModel, ConfigDict
from datetime import datetime


class Resource(BaseModel):
    id: str
    user_id: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RelevantContent(BaseModel):
    content: str
    similarity: float
