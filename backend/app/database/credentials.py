from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import (
    GmailWatch as SQLGmailWatch,
    UserOAuthCredentials as SQLCredentials,
)
from app.schemas.user import GmailWatch, OAuthCredentials

logger = logging.getLogger(__name__)


class CredentialRepository:
    """Third-party OAuth tokens and Gmail push watches."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    # ---------------------------
    # OAuth credentials
    # ---------------------------

    def save_oauth_credentials(
        self,
        user_id: str,
        provider_name: str,
        access_token: str,
        refresh_token: Optional[str],
        scopes: List[str],
        expires_at: Optional[datetime],
    ) -> OAuthCredentials:
        """Insert or replace the user's credentials for a provider."""
        try:
            with self.db.get_session() as session:
                creds = (
                    session.query(SQLCredentials)
                    .filter_by(user_id=user_id, provider_name=provider_name)
                    .first()
                )
                if creds is None:
                    creds = SQLCredentials(user_id=user_id, provider_name=provider_name)
                    session.add(creds)
                creds.access_token = access_token
                creds.refresh_token = refresh_token
                creds.scopes = scopes
                creds.expires_at = expires_at
                creds.updated_at = datetime.utcnow()
                session.flush()
                session.refresh(creds)
                return OAuthCredentials.model_validate(creds)
        except Exception as e:
            logger.error(f"Failed to save OAuth credentials for {provider_name}: {e}")
            raise

    def update_oauth_credentials(
        self,
        user_id: str,
        provider_name: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Optional[OAuthCredentials]:
        try:
            with self.db.get_session() as session:
                creds = (
                    session.query(SQLCredentials)
                    .filter_by(user_id=user_id, provider_name=provider_name)
                    .first()
                )
                if creds is None:
                    return None
                if access_token:
                    creds.access_token = access_token
                if refresh_token:
                    creds.refresh_token = refresh_token
                if expires_at:
                    creds.expires_at = expires_at
                creds.updated_at = datetime.utcnow()
                session.flush()
                return OAuthCredentials.model_validate(creds)
        except Exception as e:
            logger.error(f"Failed to update OAuth credentials for {provider_name}: {e}")
            raise

    def get_oauth_credentials(self, user_id: str, provider_name: str) -> Optional[OAuthCredentials]:
        try:
            with self.db.get_session() as session:
                creds = (
                    session.query(SQLCredentials)
                    .filter_by(user_id=user_id, provider_name=provider_name)
                    .first()
                )
                return OAuthCredentials.model_validate(creds) if creds else None
        except Exception as e:
            logger.error(f"Failed to get OAuth credentials for {provider_name}: {e}")
            raise

    def delete_oauth_credentials(self, user_id: str, provider_name: str) -> bool:
        try:
            with self.db.get_session() as session:
                deleted = (
                    session.query(SQLCredentials)
                    .filter_by(user_id=user_id, provider_name=provider_name)
                    .delete()
                )
                return deleted > 0
        except Exception as e:
            logger.error(f"Failed to delete OAuth credentials for {provider_name}: {e}")
            raise

    # ---------------------------
    # Gmail watches
    # ---------------------------

    def save_gmail_watch(
        self,
        user_id: str,
        history_id: str,
        topic_name: str,
        expires_at: datetime,
        labels: Optional[List[str]] = None,
    ) -> GmailWatch:
        try:
            with self.db.get_session() as session:
                watch = SQLGmailWatch(
                    user_id=user_id,
                    history_id=str(history_id),
                    topic_name=topic_name,
                    expires_at=expires_at,
                    labels=labels,
                    active=True,
                )
                session.add(watch)
                session.flush()
                session.refresh(watch)
                return GmailWatch.model_validate(watch)
        except Exception as e:
            logger.error(f"Failed to save Gmail watch: {e}")
            raise

    def update_gmail_watch_status(
        self,
        watch_id: str,
        active: Optional[bool] = None,
        history_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Optional[GmailWatch]:
        try:
            with self.db.get_session() as session:
                watch = session.get(SQLGmailWatch, watch_id)
                if watch is None:
                    return None
                if active is not None:
                    watch.active = active
                if history_id is not None:
                    watch.history_id = str(history_id)
                if expires_at is not None:
                    watch.expires_at = expires_at
                watch.updated_at = datetime.utcnow()
                session.flush()
                return GmailWatch.model_validate(watch)
        except Exception as e:
            logger.error(f"Failed to update Gmail watch {watch_id}: {e}")
            raise

    def get_latest_gmail_watch(self, user_id: str) -> Optional[GmailWatch]:
        try:
            with self.db.get_session() as session:
                watch = (
                    session.query(SQLGmailWatch)
                    .filter_by(user_id=user_id, active=True)
                    .order_by(SQLGmailWatch.created_at.desc())
                    .first()
                )
                return GmailWatch.model_validate(watch) if watch else None
        except Exception as e:
            logger.error(f"Failed to get latest Gmail watch for {user_id}: {e}")
            raise

    def get_active_gmail_watches(self) -> List[GmailWatch]:
        try:
            with self.db.get_session() as session:
                rows = session.query(SQLGmailWatch).filter_by(active=True).all()
                return [GmailWatch.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get active Gmail watches: {e}")
            raise

    def deactivate_gmail_watches(self, user_id: str) -> int:
        try:
            with self.db.get_session() as session:
                return (
                    session.query(SQLGmailWatch)
                    .filter_by(user_id=user_id, active=True)
                    .update({"active": False, "updated_at": datetime.utcnow()})
                )
        except Exception as e:
            logger.error(f"Failed to deactivate Gmail watches for {user_id}: {e}")
            raise


credential_repository = CredentialRepository(db_manager)
