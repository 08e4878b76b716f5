"""
Security utilities: JWT access tokens.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from fastapi import HTTPException, status
from jose import jwt, JWTError

from app.core.config import settings
from app.schemas.user import TokenData, User


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a JWT access token.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire, "iat": datetime.utcnow()})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user: User) -> str:
    payload = {"sub": user.id, "email": user.email, "name": user.name}
    return create_access_token(payload, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decodes JWT token and returns user data.
    Returns None in case of error (for application logic).
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if not payload.get("sub") or not payload.get("exp"):
        return None

    exp = datetime.utcfromtimestamp(payload["exp"])
    if exp < datetime.utcnow():
        return None

    return TokenData(
        sub=payload["sub"],
        exp=exp,
        name=payload.get("name", ""),
        email=payload.get("email", ""),
    )


def verify_token(token: str) -> Dict[str, Any]:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        return {"user_id": user_id, "payload": payload}
    except JWTError:
        raise credentials_exception


def get_token_expiration_timestamp() -> int:
    expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return int(expire.timestamp())
