from __future__ import annotations

import logging
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError

from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import (
    ExternalParty as SQLExternalParty,
    Thread as SQLThread,
    ThreadMessage as SQLThreadMessage,
)
from app.schemas.thread import ExternalParty, Thread, ThreadMessage

logger = logging.getLogger(__name__)


class ThreadRepository:
    """Threads with external parties and their messages."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    # ---------------------------
    # External parties
    # ---------------------------

    def save_external_party(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        type: Optional[str] = None,
        address: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        website: Optional[str] = None,
    ) -> ExternalParty:
        try:
            with self.db.get_session() as session:
                party = SQLExternalParty(
                    name=name,
                    email=email,
                    phone=phone,
                    type=type,
                    address=address,
                    latitude=latitude,
                    longitude=longitude,
                    website=website,
                )
                session.add(party)
                session.flush()
                session.refresh(party)
                return ExternalParty.model_validate(party)
        except Exception as e:
            logger.error(f"Failed to save external party: {e}")
            raise

    def get_external_party_by_email(self, email: str) -> Optional[ExternalParty]:
        try:
            with self.db.get_session() as session:
                party = session.query(SQLExternalParty).filter_by(email=email).first()
                return ExternalParty.model_validate(party) if party else None
        except Exception as e:
            logger.error(f"Failed to get external party by email: {e}")
            raise

    # ---------------------------
    # Threads
    # ---------------------------

    def save_thread(
        self,
        chat_id: str,
        external_party_id: str,
        name: str,
        external_system_id: Optional[str] = None,
        status: str = "awaiting_reply",
        last_message_preview: Optional[str] = None,
    ) -> Thread:
        try:
            with self.db.get_session() as session:
                thread = SQLThread(
                    chat_id=chat_id,
                    external_party_id=external_party_id,
                    name=name[:128],
                    external_system_id=external_system_id,
                    status=status,
                    last_message_preview=last_message_preview,
                )
                session.add(thread)
                session.flush()
                session.refresh(thread)
                return Thread.model_validate(thread)
        except Exception as e:
            logger.error(f"Failed to save thread: {e}")
            raise

    def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        try:
            with self.db.get_session() as session:
                thread = session.get(SQLThread, thread_id)
                return Thread.model_validate(thread) if thread else None
        except Exception as e:
            logger.error(f"Failed to get thread {thread_id}: {e}")
            raise

    def get_threads_by_chat_id(self, chat_id: str) -> List[Thread]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLThread)
                    .filter_by(chat_id=chat_id)
                    .order_by(SQLThread.created_at.desc())
                    .all()
                )
                return [Thread.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get threads by chat id {chat_id}: {e}")
            raise

    def get_thread_by_external_system_id(self, external_system_id: str) -> Optional[Thread]:
        try:
            with self.db.get_session() as session:
                thread = session.query(SQLThread).filter_by(external_system_id=external_system_id).first()
                return Thread.model_validate(thread) if thread else None
        except Exception as e:
            logger.error(f"Failed to get thread by external id {external_system_id}: {e}")
            raise

    def update_thread_status(
        self,
        thread_id: str,
        status: Optional[str] = None,
        last_message_preview: Optional[str] = None,
    ) -> Optional[Thread]:
        """Only non-empty values are written."""
        values = {}
        if status:
            values["status"] = status
        if last_message_preview:
            values["last_message_preview"] = last_message_preview

        try:
            with self.db.get_session() as session:
                thread = session.get(SQLThread, thread_id)
                if not thread:
                    return None
                for field, value in values.items():
                    setattr(thread, field, value)
                session.flush()
                return Thread.model_validate(thread)
        except Exception as e:
            logger.error(f"Failed to update thread {thread_id}: {e}")
            raise

    # ---------------------------
    # Thread messages
    # ---------------------------

    def save_thread_message(
        self,
        thread_id: str,
        role: str,
        content: Any,
        subject: Optional[str] = None,
        external_message_id: Optional[str] = None,
    ) -> ThreadMessage:
        try:
            with self.db.get_session() as session:
                if external_message_id is not None:
                    existing = (
                        session.query(SQLThreadMessage)
                        .filter(
                            SQLThreadMessage.thread_id == thread_id,
                            SQLThreadMessage.external_message_id == external_message_id,
                        )
                        .first()
                    )
                    if existing:
                        return ThreadMessage.model_validate(existing)
                message = SQLThreadMessage(
                    thread_id=thread_id,
                    role=role,
                    content=content,
                    subject=subject,
                    external_message_id=external_message_id,
                )
                session.add(message)
                session.flush()
                session.refresh(message)
                return ThreadMessage.model_validate(message)
        except IntegrityError:
            existing = self.get_thread_message_by_external_id(external_message_id, thread_id=thread_id)
            if existing is None:
                raise
            return existing
        except Exception as e:
            logger.error(f"Failed to save thread message: {e}")
            raise

    def get_thread_messages_by_thread_id(self, thread_id: str) -> List[ThreadMessage]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLThreadMessage)
                    .filter_by(thread_id=thread_id)
                    .order_by(SQLThreadMessage.created_at.asc())
                    .all()
                )
                return [ThreadMessage.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get thread messages for {thread_id}: {e}")
            raise

    def get_thread_message_by_external_id(
        self, external_message_id: str, thread_id: Optional[str] = None
    ) -> Optional[ThreadMessage]:
        try:
            with self.db.get_session() as session:
                query = session.query(SQLThreadMessage).filter_by(external_message_id=external_message_id)
                if thread_id is not None:
                    query = query.filter_by(thread_id=thread_id)
                row = query.first()
                return ThreadMessage.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get thread message {external_message_id}: {e}")
            raise


thread_repository = ThreadRepository(db_manager)
