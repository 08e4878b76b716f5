"""
Outbound phone calls through Vapi and handling of its server webhooks.
"""
import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, IntegrationError
from app.database import thread_repository
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

VAPI_API_URL = "https://api.vapi.ai"
HTTP_TIMEOUT = 30.0

# Vapi transcript roles -> thread message roles
CALL_ROLE_MAP = {"assistant": "ai", "bot": "ai", "user": "external", "customer": "external"}


def verify_signature(payload: bytes, signature: Optional[str]) -> bool:
    """HMAC-SHA256 hex digest of the raw body, keyed with the server secret."""
    if not signature or not settings.VAPI_SERVER_SECRET:
        return False
    digest = hmac.new(settings.VAPI_SERVER_SECRET.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.encode(), digest.encode())


class VapiService:
    def _headers(self) -> Dict[str, str]:
        if not settings.VAPI_API_KEY:
            raise ConfigurationError("VAPI_API_KEY")
        return {"Authorization": f"Bearer {settings.VAPI_API_KEY}", "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.request(method, f"{VAPI_API_URL}{path}", headers=headers, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Vapi request failed ({action}): {e}")
                raise IntegrationError("Vapi", f"Failed to {action}", str(e))

        if resp.status_code >= 400:
            logger.error(f"Vapi API error ({action}): {resp.status_code} {resp.text}")
            raise IntegrationError("Vapi", f"Failed to {action}", resp.text)
        return resp.json() if resp.content else {}

    async def create_call(
        self,
        phone_number: str,
        first_message: str,
        system_prompt: str,
        schedule_time: Optional[str] = None,
        assistant_id: Optional[str] = None,
        phone_number_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Start (or schedule) a call with per-call assistant overrides."""
        body: Dict[str, Any] = {
            "assistantId": assistant_id or settings.VAPI_ASSISTANT_ID,
            "phoneNumberId": phone_number_id or settings.VAPI_PHONE_NUMBER_ID,
            "customer": {"number": phone_number},
            "assistant": {"firstMessage": first_message, "systemPrompt": system_prompt},
        }
        if schedule_time:
            body["schedulePlan"] = {"earliestAt": schedule_time}

        call = await self._request("POST", "/call", "initiate call", json=body)
        logger.info(f"Vapi call {call.get('id')} created for {phone_number}")
        return call

    async def get_call(self, call_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/call/{call_id}", "fetch call")

    async def save_call_messages(self, call_id: str, thread_id: str) -> int:
        """Copy a finished call's transcript into a thread. Returns the number saved."""
        call = await self.get_call(call_id)
        messages: List[Dict[str, Any]] = call.get("messages") or (call.get("artifact") or {}).get("messages") or []

        saved = 0
        position = 0
        for entry in messages:
            role = CALL_ROLE_MAP.get(entry.get("role"))
            text = entry.get("message") or entry.get("content")
            if not role or not text:
                continue
            external_message_id = f"{call_id}:{position}"
            position += 1
            # Webhook retries deliver the same transcript again
            if await run_sync(
                thread_repository.get_thread_message_by_external_id, external_message_id, thread_id=thread_id
            ):
                continue
            await run_sync(
                thread_repository.save_thread_message,
                thread_id,
                role,
                {"text": text},
                None,
                external_message_id,
            )
            saved += 1

        if saved:
            await run_sync(thread_repository.update_thread_status, thread_id, "replied", "Phone call completed")
        return saved

    async def handle_webhook_message(self, message: Dict[str, Any]) -> None:
        message_type = message.get("type")
        call_id = message.get("callId") or (message.get("call") or {}).get("id")

        if message_type in ("call.started", "call.ended"):
            logger.info(f"Vapi {message_type} for call {call_id}")
        elif message_type == "call.failed":
            logger.warning(f"Vapi call {call_id} failed: {message.get('error')}")
        elif message_type == "function":
            function = message.get("function") or {}
            thread_id = (function.get("parameters") or {}).get("threadId")
            if function.get("name") == "end_call" and thread_id and call_id:
                saved = await self.save_call_messages(call_id, thread_id)
                logger.info(f"Saved {saved} messages from call {call_id} to thread {thread_id}")
        else:
            logger.debug(f"Unhandled Vapi message type {message_type}")


vapi_service = VapiService()
