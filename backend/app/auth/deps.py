from fastapi import Depends, HTTPException, status, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.requests import Request
from typing import Optional
import logging

from app.core.security import decode_access_token
from app.database import user_repository
from app.schemas.user import User
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_request_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
    access_token: Optional[str] = None,
) -> Optional[str]:
    """
    Token from the Authorization header, the access_token cookie
    or the ``token`` query parameter, in that order.
    """
    if credentials:
        return credentials.credentials
    if access_token:
        return access_token
    return request.query_params.get("token")


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    access_token: Optional[str] = Cookie(None),
) -> Optional[User]:
    """
    Returns the current user or None when the request is not authenticated.
    """
    jwt_token = get_request_token(request, credentials, access_token)
    if not jwt_token:
        return None

    token_data = decode_access_token(jwt_token)
    if not token_data:
        return None

    return await run_sync(user_repository.get_user_by_id, token_data.sub)


async def get_current_user(
    current_user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """
    Dependency for routes that need an authenticated user.
    """
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return current_user
