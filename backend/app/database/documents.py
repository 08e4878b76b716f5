from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import func

from app.core.exceptions import ForbiddenError
from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import (
    Document as SQLDocument,
    DocumentAccess as SQLDocumentAccess,
    Suggestion as SQLSuggestion,
)
from app.schemas.document import Document, DocumentAccess, Suggestion, SuggestionDraft

logger = logging.getLogger(__name__)

EDIT_ROLES = ("owner", "editor")


class DocumentRepository:
    """Versioned documents, per-version access grants and suggestions."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    # ---------------------------
    # Documents
    # ---------------------------

    def save_document(
        self,
        document_id: str,
        title: str,
        kind: str,
        content: Optional[str],
        user_id: str,
        chat_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> Document:
        """Insert a new version of a document and grant its author ownership of it."""
        try:
            with self.db.get_session() as session:
                created_at = datetime.utcnow()
                doc = SQLDocument(
                    id=document_id,
                    created_at=created_at,
                    title=title,
                    kind=kind,
                    content=content,
                    summary=summary,
                    chat_id=chat_id,
                )
                session.add(doc)
                session.flush()
                session.add(SQLDocumentAccess(
                    document_id=document_id,
                    document_created_at=created_at,
                    user_id=user_id,
                    role="owner",
                ))
                session.flush()
                return Document.model_validate(doc)
        except Exception as e:
            logger.error(f"Failed to save document in database: {e}")
            raise

    def get_documents_by_id(self, document_id: str) -> List[Document]:
        """All versions of a document, oldest first."""
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLDocument)
                    .filter_by(id=document_id)
                    .order_by(SQLDocument.created_at.asc())
                    .all()
                )
                return [Document.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get documents by id {document_id}: {e}")
            raise

    def get_document_by_id(self, document_id: str) -> Optional[Document]:
        """Latest version of a document."""
        try:
            with self.db.get_session() as session:
                row = (
                    session.query(SQLDocument)
                    .filter_by(id=document_id)
                    .order_by(SQLDocument.created_at.desc())
                    .first()
                )
                return Document.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get document by id {document_id}: {e}")
            raise

    def delete_documents_by_id_after_timestamp(self, document_id: str, timestamp: datetime) -> List[Document]:
        """Remove versions newer than ``timestamp`` and their suggestions. Returns removed versions."""
        try:
            with self.db.get_session() as session:
                session.query(SQLSuggestion).filter(
                    SQLSuggestion.document_id == document_id,
                    SQLSuggestion.document_created_at > timestamp,
                ).delete(synchronize_session=False)
                session.query(SQLDocumentAccess).filter(
                    SQLDocumentAccess.document_id == document_id,
                    SQLDocumentAccess.document_created_at > timestamp,
                ).delete(synchronize_session=False)

                rows = (
                    session.query(SQLDocument)
                    .filter(SQLDocument.id == document_id, SQLDocument.created_at > timestamp)
                    .all()
                )
                deleted = [Document.model_validate(r) for r in rows]
                for row in rows:
                    session.delete(row)
                return deleted
        except Exception as e:
            logger.error(f"Failed to delete documents by id {document_id} after {timestamp}: {e}")
            raise

    def get_documents_by_kind(self, kind: str, user_id: str) -> List[Document]:
        """Documents of one kind the user has any access to, newest first."""
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLDocument)
                    .join(
                        SQLDocumentAccess,
                        (SQLDocumentAccess.document_id == SQLDocument.id)
                        & (SQLDocumentAccess.document_created_at == SQLDocument.created_at),
                    )
                    .filter(SQLDocument.kind == kind, SQLDocumentAccess.user_id == user_id)
                    .order_by(SQLDocument.created_at.desc())
                    .all()
                )
                return [Document.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get documents by kind {kind}: {e}")
            raise

    def get_documents_by_chat_id(self, chat_id: str, user_id: str) -> List[Document]:
        """Latest version of every document in a chat the user has access to."""
        try:
            with self.db.get_session() as session:
                latest = (
                    session.query(
                        SQLDocument.id.label("id"),
                        func.max(SQLDocument.created_at).label("created_at"),
                    )
                    .filter(SQLDocument.chat_id == chat_id)
                    .group_by(SQLDocument.id)
                    .subquery()
                )
                rows = (
                    session.query(SQLDocument)
                    .join(
                        latest,
                        (latest.c.id == SQLDocument.id) & (latest.c.created_at == SQLDocument.created_at),
                    )
                    .join(
                        SQLDocumentAccess,
                        (SQLDocumentAccess.document_id == SQLDocument.id)
                        & (SQLDocumentAccess.document_created_at == SQLDocument.created_at),
                    )
                    .filter(SQLDocumentAccess.user_id == user_id)
                    .order_by(SQLDocument.created_at.desc())
                    .all()
                )
                return [Document.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get documents by chat id {chat_id}: {e}")
            raise

    # ---------------------------
    # Access
    # ---------------------------

    def grant_document_access(
        self, document_id: str, document_created_at: datetime, user_id: str, role: str = "viewer"
    ) -> DocumentAccess:
        try:
            with self.db.get_session() as session:
                access = session.get(SQLDocumentAccess, (document_id, document_created_at, user_id))
                if access:
                    access.role = role
                else:
                    access = SQLDocumentAccess(
                        document_id=document_id,
                        document_created_at=document_created_at,
                        user_id=user_id,
                        role=role,
                    )
                    session.add(access)
                session.flush()
                session.refresh(access)
                return DocumentAccess.model_validate(access)
        except Exception as e:
            logger.error(f"Failed to grant access on document {document_id}: {e}")
            raise

    def get_document_access(self, document_id: str, document_created_at: datetime) -> List[DocumentAccess]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLDocumentAccess)
                    .filter_by(document_id=document_id, document_created_at=document_created_at)
                    .all()
                )
                return [DocumentAccess.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get access for document {document_id}: {e}")
            raise

    def get_user_document_role(self, document_id: str, user_id: str) -> Optional[str]:
        """Role the user holds on any version of the document."""
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLDocumentAccess.role)
                    .filter_by(document_id=document_id, user_id=user_id)
                    .all()
                )
                roles = {r.role for r in rows}
                for role in ("owner", "editor", "viewer"):
                    if role in roles:
                        return role
                return None
        except Exception as e:
            logger.error(f"Failed to get role on document {document_id}: {e}")
            raise

    def has_document_access(self, document_id: str, user_id: str, roles: Optional[tuple] = None) -> bool:
        role = self.get_user_document_role(document_id, user_id)
        if role is None:
            return False
        return roles is None or role in roles

    # ---------------------------
    # Suggestions
    # ---------------------------

    def save_suggestions(
        self, suggestions: List[SuggestionDraft], document_created_at: datetime, user_id: str
    ) -> List[Suggestion]:
        """Persist suggestions. The user needs owner or editor access on every document."""
        for document_id in {s.document_id for s in suggestions}:
            if not self.has_document_access(document_id, user_id, EDIT_ROLES):
                raise ForbiddenError("Unauthorized to save suggestions for this document")

        try:
            with self.db.get_session() as session:
                rows = [
                    SQLSuggestion(
                        id=s.id,
                        document_id=s.document_id,
                        document_created_at=document_created_at,
                        original_text=s.original_text,
                        suggested_text=s.suggested_text,
                        description=s.description,
                        is_resolved=s.is_resolved,
                        user_id=user_id,
                    )
                    for s in suggestions
                ]
                session.add_all(rows)
                session.flush()
                return [Suggestion.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to save suggestions in database: {e}")
            raise

    def get_suggestions_by_document_id(
        self, document_id: str, user_id: str, document_created_at: Optional[datetime] = None
    ) -> List[Suggestion]:
        if not self.has_document_access(document_id, user_id):
            raise ForbiddenError("Unauthorized to view suggestions for this document")

        try:
            with self.db.get_session() as session:
                query = session.query(SQLSuggestion).filter_by(document_id=document_id)
                if document_created_at is not None:
                    query = query.filter_by(document_created_at=document_created_at)
                rows = query.order_by(SQLSuggestion.created_at.asc()).all()
                return [Suggestion.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get suggestions by document id {document_id}: {e}")
            raise


document_repository = DocumentRepository(db_manager)
