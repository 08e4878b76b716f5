from typing import Optional
import secrets
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, Query
from fastapi.responses import RedirectResponse

from app.auth.deps import get_current_user
from app.auth.oauth import get_available_providers, get_oauth_provider
from app.core.config import settings
from app.core.security import create_user_token, decode_access_token, get_token_expiration_timestamp
from app.schemas.user import OAuthProvidersResponse, User
from app.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# Temporary cookie parameters for OAuth (state/redirect_uri)
OAUTH_TMP_COOKIE_MAX_AGE = 300  # 5 minutes


def _set_tmp_cookie(response: Response, key: str, value: str) -> None:
    """Sets a temporary httpOnly cookie for OAuth intermediate steps."""
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=OAUTH_TMP_COOKIE_MAX_AGE,
        path="/",
    )


def _del_tmp_cookie(response: Response, key: str) -> None:
    response.delete_cookie(
        key=key,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
    )


def _set_access_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.get("/login/{provider}")
async def login_oauth(provider: str, redirect_uri: Optional[str] = None):
    """Initiate OAuth login with direct redirect."""
    if provider not in settings.OAUTH_PROVIDERS:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/login?error=Unknown%20provider")

    provider_cfg = settings.OAUTH_PROVIDERS[provider]

    # CSRF protection
    state = secrets.token_urlsafe(32)

    oauth_provider = get_oauth_provider(provider)
    auth_url = oauth_provider.get_authorization_url(
        redirect_uri=provider_cfg["redirect_uri"],
        state=state,
    )

    resp = RedirectResponse(url=auth_url)
    _set_tmp_cookie(resp, "oauth_state", state)
    _set_tmp_cookie(resp, "oauth_redirect", redirect_uri or settings.FRONTEND_URL)
    return resp


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: str = Query(None),
    state: str = Query(None),
    error: str = Query(None),
):
    """OAuth callback: exchange the code, upsert the user, set the session cookie."""
    if error:
        logger.warning(f"OAuth error from {provider}: {error}")
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/login?error={error}")

    if not code or not state:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/login?error=Missing code or state parameter")

    try:
        if provider not in settings.OAUTH_PROVIDERS:
            raise HTTPException(status_code=400, detail="Unsupported provider")

        cookie_state = request.cookies.get("oauth_state")
        if not cookie_state or state != cookie_state:
            logger.error(f"OAuth state mismatch for provider {provider}")
            raise HTTPException(status_code=400, detail="Invalid state parameter")

        frontend_redirect = request.cookies.get("oauth_redirect") or settings.FRONTEND_URL
        provider_cfg = settings.OAUTH_PROVIDERS[provider]

        oauth_provider = get_oauth_provider(provider)
        access_token = await oauth_provider.exchange_code_for_token(
            code,
            redirect_uri=provider_cfg["redirect_uri"],
        )
        user_info = await oauth_provider.get_user_info(access_token)
        if not user_info.get("provider_id") or not user_info.get("email"):
            raise HTTPException(status_code=400, detail="Invalid user data from provider")

        user = await auth_service.get_or_create_oauth_user(user_info)
        jwt_token = create_user_token(user)
        logger.info(f"User {user.email} authenticated successfully")

        if not user.onboarding_completed_at:
            frontend_redirect = f"{settings.FRONTEND_URL}/onboarding"

        resp = RedirectResponse(frontend_redirect)
        _set_access_cookie(resp, jwt_token)
        _del_tmp_cookie(resp, "oauth_state")
        _del_tmp_cookie(resp, "oauth_redirect")
        return resp

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"OAuth callback failed: {e}")
        return RedirectResponse(f"{settings.FRONTEND_URL}/login?error=Authentication failed. Please try again.")


@router.get("/me", response_model=User)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(
        key="access_token",
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
    )
    return {"message": "Logged out"}


@router.post("/refresh-token")
async def refresh_token(request: Request, response: Response):
    """Issue a fresh access token for a still-valid one."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ")[1]
    else:
        token = request.cookies.get("access_token")

    if not token:
        raise HTTPException(status_code=401, detail="Token not found")

    token_data = decode_access_token(token)
    if not token_data:
        raise HTTPException(status_code=401, detail="Token is invalid or expired")

    user = await auth_service.get_user_by_id(token_data.sub)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    new_token = create_user_token(user)
    _set_access_cookie(response, new_token)

    return {
        "access_token": new_token,
        "token_type": "bearer",
        "expires_at": get_token_expiration_timestamp(),
    }


@router.get("/providers", response_model=OAuthProvidersResponse)
async def get_oauth_providers():
    return {"providers": get_available_providers()}
