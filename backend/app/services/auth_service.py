from typing import Optional, Dict, Any
import logging

from app.database import user_repository
from app.schemas.user import User, UserCreate
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)


class AuthService:
    """
    Authentication and user lookup service.
    """

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        user = await run_sync(user_repository.get_user_by_id, user_id)
        if not user:
            logger.warning(f"User {user_id} not found")
        return user

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await run_sync(user_repository.get_user_by_email, email)

    async def get_or_create_oauth_user(self, user_info: Dict[str, Any]) -> User:
        """
        Find the user by the provider's email or create them.
        Encapsulates the full OAuth user creation flow.
        """
        existing_user = await self.get_user_by_email(user_info["email"])
        if existing_user:
            logger.info(f"OAuth login: {existing_user.email} (existing user {existing_user.id})")
            return existing_user

        new_user = await run_sync(
            user_repository.create_user,
            UserCreate(
                email=user_info["email"],
                first_name=user_info.get("first_name"),
                last_name=user_info.get("last_name"),
            ),
        )
        logger.info(f"OAuth login: {new_user.email} (new user {new_user.id} created)")
        return new_user


# Singleton instance
auth_service = AuthService()
