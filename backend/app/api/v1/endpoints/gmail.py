from typing import Any, Dict, Optional
import base64
import binascii
import json
import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from fastapi.responses import RedirectResponse
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from app.auth.deps import get_current_user, get_current_user_optional
from app.auth.oauth import GMAIL_SCOPES, get_gmail_oauth, token_expiry
from app.core.config import settings
from app.core.exceptions import AppError
from app.database import credential_repository, user_repository
from app.schemas.user import GmailDisconnectResponse, GmailStatus, User
from app.services.gmail_client import GMAIL_PROVIDER
from app.services.gmail_service import gmail_service
from app.utils.async_utils import run_sync

router = APIRouter(prefix="/gmail", tags=["gmail"])

logger = logging.getLogger(__name__)

GMAIL_STATE_COOKIE = "gmail_oauth_state"
GMAIL_STATE_MAX_AGE = 300  # 5 minutes


def _source_from_referer(request: Request) -> str:
    referer = request.headers.get("referer") or ""
    if "settings" in referer:
        return "settings"
    if "onboarding" in referer:
        return "onboarding"
    return "home"


def _callback_redirect(source: str, message: str, success: bool) -> RedirectResponse:
    key = "success" if success else "error"
    if source == "settings":
        path = f"/settings?tab=accounts&{key}={message}"
    elif success:
        path = f"/?{key}={message}"
    else:
        path = f"/gmail-connect?{key}={message}"
    return RedirectResponse(f"{settings.FRONTEND_URL}{path}")


def verify_pubsub_token(authorization: Optional[str]) -> bool:
    """
    Check the OIDC token Pub/Sub attaches to push requests: signed by Google,
    issued to our audience and to the configured service account.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return False

    token = authorization[len("Bearer "):]
    audience = settings.GMAIL_WEBHOOK_AUDIENCE or settings.GMAIL_PUBSUB_SERVICE_ACCOUNT
    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        logger.warning(f"Invalid Pub/Sub token: {e}")
        return False

    if not claims.get("email_verified"):
        return False
    return claims.get("email") == settings.GMAIL_PUBSUB_SERVICE_ACCOUNT


def decode_pubsub_message(body: Dict[str, Any]) -> Dict[str, Any]:
    """Decode the base64 JSON payload of a Gmail push notification."""
    data = (body.get("message") or {}).get("data")
    if not data:
        raise ValueError("Push message has no data")
    try:
        notification = json.loads(base64.b64decode(data).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Malformed push message data: {e}")

    if not notification.get("emailAddress") or not notification.get("historyId"):
        raise ValueError("Push message is missing emailAddress or historyId")
    return notification


@router.get("/connect")
async def connect_gmail(request: Request, current_user: Optional[User] = Depends(get_current_user_optional)):
    """Redirect to Google's consent screen for Gmail access."""
    if not current_user:
        return RedirectResponse(f"{settings.FRONTEND_URL}/login?error=Authentication+required")

    gmail_oauth = get_gmail_oauth()
    state = f"{_source_from_referer(request)}:{secrets.token_urlsafe(16)}"
    auth_url = gmail_oauth.get_authorization_url(settings.GMAIL_CALLBACK_URL, state)

    resp = RedirectResponse(auth_url)
    resp.set_cookie(
        key=GMAIL_STATE_COOKIE,
        value=state,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=GMAIL_STATE_MAX_AGE,
        path="/",
    )
    return resp


@router.get("/callback")
async def gmail_callback(
    request: Request,
    code: str = Query(None),
    state: str = Query(None),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """Store Gmail tokens for the current user and register push notifications."""
    source = (state or "").split(":", 1)[0]

    if not code:
        return _callback_redirect(source, "No+authorization+code+provided", success=False)
    if not current_user:
        return RedirectResponse(f"{settings.FRONTEND_URL}/login")
    if not state or request.cookies.get(GMAIL_STATE_COOKIE) != state:
        logger.error(f"Gmail OAuth state mismatch for user {current_user.id}")
        return _callback_redirect(source, "Invalid+state+parameter", success=False)

    try:
        token_data = await get_gmail_oauth().exchange_code(code, settings.GMAIL_CALLBACK_URL)
        existing = await run_sync(credential_repository.get_oauth_credentials, current_user.id, GMAIL_PROVIDER)
        refresh_token = token_data.get("refresh_token") or (existing.refresh_token if existing else None)
        scopes = (token_data.get("scope") or " ".join(GMAIL_SCOPES)).split()

        await run_sync(
            credential_repository.save_oauth_credentials,
            current_user.id,
            GMAIL_PROVIDER,
            token_data["access_token"],
            refresh_token,
            scopes,
            token_expiry(token_data),
        )
        await run_sync(user_repository.set_gmail_connected, current_user.id, True)
    except Exception as e:
        logger.exception(f"Gmail OAuth callback failed for user {current_user.id}: {e}")
        return _callback_redirect(source, "Failed+to+authenticate+with+Google", success=False)

    try:
        await gmail_service.setup_gmail_watch(current_user.id)
    except AppError as e:
        # The watch can be registered again later
        logger.error(f"Failed to set up Gmail watch for user {current_user.id}: {e}")

    resp = _callback_redirect(source, "Gmail+connected", success=True)
    resp.delete_cookie(GMAIL_STATE_COOKIE, httponly=True, secure=not settings.DEBUG, samesite="lax")
    return resp


@router.delete("/disconnect", response_model=GmailDisconnectResponse)
async def disconnect_gmail(request: Request, current_user: User = Depends(get_current_user)):
    """Revoke Google tokens, stop notifications and forget stored credentials."""
    redirect_url = "/settings?tab=accounts" if _source_from_referer(request) == "settings" else "/"

    credentials = await run_sync(credential_repository.get_oauth_credentials, current_user.id, GMAIL_PROVIDER)
    if not credentials:
        raise HTTPException(status_code=404, detail="No Gmail account connected")

    try:
        watch_stopped = await gmail_service.stop_gmail_watch(current_user.id)
    except AppError as e:
        logger.warning(f"Failed to stop Gmail watch for user {current_user.id}: {e}")
        watch_stopped = False

    gmail_oauth = get_gmail_oauth()
    access_revoked = await gmail_oauth.revoke_token(credentials.access_token)
    refresh_revoked = False
    if credentials.refresh_token:
        refresh_revoked = await gmail_oauth.revoke_token(credentials.refresh_token)

    await run_sync(credential_repository.deactivate_gmail_watches, current_user.id)
    removed = await run_sync(credential_repository.delete_oauth_credentials, current_user.id, GMAIL_PROVIDER)
    await run_sync(user_repository.set_gmail_connected, current_user.id, False)
    logger.info(f"Disconnected Gmail for user {current_user.id}")

    return {
        "success": True,
        "redirect_url": redirect_url,
        "details": {
            "access_token_revoked": access_revoked,
            "refresh_token_revoked": refresh_revoked,
            "watch_stopped": watch_stopped,
            "credentials_removed": removed,
        },
    }


@router.get("/status", response_model=GmailStatus)
async def gmail_status(current_user: User = Depends(get_current_user)):
    credentials = await run_sync(credential_repository.get_oauth_credentials, current_user.id, GMAIL_PROVIDER)
    return {"connected": bool(credentials and credentials.access_token)}


@router.post("/webhook")
async def gmail_webhook(request: Request):
    """Gmail push notifications delivered by Google Cloud Pub/Sub."""
    authorized = await run_sync(verify_pubsub_token, request.headers.get("Authorization"))
    if not authorized:
        logger.error("Failed to authenticate Pub/Sub push request")
        raise HTTPException(status_code=401, detail="Unauthorized")

    body = await request.json()
    if body.get("subscription") not in settings.GMAIL_ALLOWED_SUBSCRIPTIONS:
        logger.error(f"Notification from unknown subscription: {body.get('subscription')}")
        raise HTTPException(status_code=400, detail="Invalid subscription")

    try:
        notification = decode_pubsub_message(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user = await run_sync(user_repository.get_user_by_email, notification["emailAddress"])
    if not user:
        logger.error(f"No user found for Gmail address {notification['emailAddress']}")
        raise HTTPException(status_code=404, detail="User not found")

    await gmail_service.process_history_update(user.id, str(notification["historyId"]))
    return {"status": "ok"}
