"""
Minimal Gmail REST client for one user's stored OAuth credentials.
"""
import base64
import logging
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException

from app.auth.oauth import HTTP_TIMEOUT, get_gmail_oauth, token_expiry
from app.core.exceptions import IntegrationError
from app.database import credential_repository
from app.schemas.user import OAuthCredentials
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
GMAIL_PROVIDER = "gmail"
DEFAULT_WATCH_DAYS = 7


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def encode_base64url(data: str) -> str:
    return base64.urlsafe_b64encode(data.encode("utf-8")).decode().rstrip("=")


def extract_message_content(message: Dict[str, Any]) -> Dict[str, Any]:
    """Headers and plain-text body of a Gmail API message resource."""
    payload = message.get("payload") or {}
    headers = {h.get("name"): h.get("value", "") for h in payload.get("headers", [])}

    body_parts: List[str] = []

    def _collect(part: Dict[str, Any]) -> None:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            body_parts.append(decode_base64url(data))
        for child in part.get("parts") or []:
            _collect(child)

    top_level = (payload.get("body") or {}).get("data")
    if top_level:
        body_parts.append(decode_base64url(top_level))
    else:
        for part in payload.get("parts") or []:
            _collect(part)

    date = None
    if headers.get("Date"):
        try:
            date = parsedate_to_datetime(headers["Date"])
        except (TypeError, ValueError):
            date = None

    return {
        "id": message.get("id"),
        "thread_id": message.get("threadId"),
        "subject": headers.get("Subject", ""),
        "from": headers.get("From", ""),
        "to": headers.get("To", ""),
        "date": date,
        "body": "".join(body_parts),
    }


class GmailClient:
    def __init__(self, user_id: str, credentials: OAuthCredentials):
        self.user_id = user_id
        self.credentials = credentials

    async def ensure_valid_token(self) -> None:
        """Refresh the access token when it has expired and persist the new one."""
        expires_at = self.credentials.expires_at
        if not expires_at or expires_at > datetime.utcnow() or not self.credentials.refresh_token:
            return

        try:
            token_data = await get_gmail_oauth().refresh_access_token(self.credentials.refresh_token)
        except HTTPException as e:
            raise IntegrationError("Gmail", "Failed to refresh access token", str(e.detail))

        updated = await run_sync(
            credential_repository.update_oauth_credentials,
            self.user_id,
            GMAIL_PROVIDER,
            token_data["access_token"],
            token_data.get("refresh_token") or self.credentials.refresh_token,
            token_expiry(token_data),
        )
        if updated:
            self.credentials = updated
        logger.info(f"Refreshed Gmail access token for user {self.user_id}")

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Dict[str, Any]:
        await self.ensure_valid_token()
        headers = {"Authorization": f"Bearer {self.credentials.access_token}"}
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.request(method, f"{GMAIL_API_URL}{path}", headers=headers, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Gmail request failed ({action}): {e}")
                raise IntegrationError("Gmail", f"Failed to {action}", str(e))

        if resp.status_code >= 400:
            logger.error(f"Gmail API error ({action}): {resp.status_code} {resp.text}")
            raise IntegrationError("Gmail", f"Failed to {action}", resp.text)
        return resp.json() if resp.content else {}

    async def get_message_thread(self, thread_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/threads/{thread_id}", "fetch message thread")

    async def send_message(self, to: str, subject: str, body: str, thread_id: Optional[str] = None) -> Dict[str, Any]:
        raw = "\n".join([
            "From: me",
            f"To: {to}",
            f"Subject: {subject}",
            "Content-Type: text/plain; charset=UTF-8",
            "",
            body,
        ])
        payload: Dict[str, Any] = {"raw": encode_base64url(raw)}
        if thread_id:
            payload["threadId"] = thread_id
        return await self._request("POST", "/messages/send", "send message", json=payload)

    async def check_for_new_messages(self, thread_id: str, last_known_message_id: Optional[str]) -> List[Dict[str, Any]]:
        """Messages in the Gmail thread after the last one we stored."""
        thread = await self.get_message_thread(thread_id)
        messages = thread.get("messages", [])

        known_ids = [m.get("id") for m in messages]
        if last_known_message_id and last_known_message_id in known_ids:
            messages = messages[known_ids.index(last_known_message_id) + 1:]

        return [extract_message_content(m) for m in messages]

    async def setup_watch(self, topic_name: str, label_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"topicName": topic_name}
        if label_ids:
            body["labelIds"] = label_ids
        data = await self._request("POST", "/watch", "set up Gmail watch notification", json=body)

        expiration = data.get("expiration")
        expires_at = (
            datetime.utcfromtimestamp(int(expiration) / 1000)
            if expiration else datetime.utcnow() + timedelta(days=DEFAULT_WATCH_DAYS)
        )
        return {"history_id": str(data.get("historyId", "")), "expires_at": expires_at}

    async def stop_watch(self) -> None:
        await self._request("POST", "/stop", "stop Gmail watch notification")

    async def get_history(self, start_history_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/history", "get Gmail history", params={"startHistoryId": start_history_id})
        return data.get("history", [])
