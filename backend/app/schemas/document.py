"""
Pydantic schemas for documents (artifacts) and suggestions.
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, Literal
from datetime import datetime

ArtifactKind = Literal["text", "code", "image", "sheet"]
ARTIFACT_KINDS = ("text", "code", "image", "sheet")


class Document(BaseModel):
    id: str
    created_at: datetime
    title: str
    content: Optional[str] = None
    summary: Optional[str] = None
    kind: str = "text"
    chat_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DocumentSave(BaseModel):
    title: str
    content: Optional[str] = None
    kind: ArtifactKind = "text"
    chat_id: Optional[str] = None


class DocumentAccess(BaseModel):
    document_id: str
    document_created_at: datetime
    user_id: str
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Suggestion(BaseModel):
    id: str
    document_id: str
    document_created_at: datetime
    original_text: str
    suggested_text: str
    description: Optional[str] = None
    is_resolved: bool = False
    user_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SuggestionDraft(BaseModel):
    """A suggestion produced by the model, before it is attached to a user."""
    id: str
    document_id: str
    original_text: str
    suggested_text: str
    description: Optional[str] = None
    is_resolved: bool = False
