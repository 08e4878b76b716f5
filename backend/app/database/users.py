from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import User as SQLUser
from app.schemas.user import User, UserCreate, UserUpdate, OnboardingRequest

logger = logging.getLogger(__name__)


class UserRepository:
    """User records."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        try:
            with self.db.get_session() as session:
                db_user = session.get(SQLUser, user_id)
                return User.model_validate(db_user) if db_user else None
        except Exception as e:
            logger.error(f"Error getting user {user_id}: {e}")
            raise

    def get_user_by_email(self, email: str) -> Optional[User]:
        try:
            with self.db.get_session() as session:
                db_user = session.query(SQLUser).filter_by(email=email).first()
                return User.model_validate(db_user) if db_user else None
        except Exception as e:
            logger.error(f"Error getting user by email: {e}")
            raise

    def create_user(self, user_data: UserCreate) -> User:
        """Create a user, or return the existing one with the same email."""
        try:
            with self.db.get_session() as session:
                existing = session.query(SQLUser).filter_by(email=user_data.email).first()
                if existing:
                    return User.model_validate(existing)

                db_user = SQLUser(
                    email=user_data.email,
                    first_name=user_data.first_name,
                    last_name=user_data.last_name,
                )
                session.add(db_user)
                session.flush()
                session.refresh(db_user)

                logger.info(f"Created user: {user_data.email}")
                return User.model_validate(db_user)
        except Exception as e:
            logger.error(f"Error creating user: {e}")
            raise

    def update_user(self, user_data: UserUpdate) -> Optional[User]:
        """Update only the fields that were provided."""
        values = user_data.model_dump(exclude_unset=True, exclude={"id"})
        try:
            with self.db.get_session() as session:
                db_user = session.get(SQLUser, user_data.id)
                if not db_user:
                    return None
                for field, value in values.items():
                    setattr(db_user, field, value)
                session.flush()
                session.refresh(db_user)
                return User.model_validate(db_user)
        except Exception as e:
            logger.error(f"Error updating user {user_data.id}: {e}")
            raise

    def complete_onboarding(self, user_id: str, data: OnboardingRequest) -> Optional[User]:
        try:
            with self.db.get_session() as session:
                db_user = session.get(SQLUser, user_id)
                if not db_user:
                    return None
                db_user.first_name = data.first_name
                db_user.last_name = data.last_name
                db_user.usage_type = data.usage_type
                db_user.referral_source = data.referral_source
                db_user.onboarding_completed_at = datetime.utcnow()
                session.flush()
                session.refresh(db_user)
                return User.model_validate(db_user)
        except Exception as e:
            logger.error(f"Error completing onboarding for {user_id}: {e}")
            raise

    def set_gmail_connected(self, user_id: str, connected: bool) -> None:
        try:
            with self.db.get_session() as session:
                session.query(SQLUser).filter_by(id=user_id).update({"gmail_connected": connected})
        except Exception as e:
            logger.error(f"Error updating gmail status for {user_id}: {e}")
            raise

    def get_user_count(self) -> int:
        try:
            with self.db.get_session() as session:
                return session.query(func.count(SQLUser.id)).scalar() or 0
        except Exception as e:
            logger.error(f"Error counting users: {e}")
            raise


user_repository = UserRepository(db_manager)
