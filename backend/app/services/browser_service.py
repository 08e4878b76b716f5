"""
Browserbase remote browser sessions.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, IntegrationError

logger = logging.getLogger(__name__)

BROWSERBASE_API_URL = "https://api.browserbase.com/v1"
HTTP_TIMEOUT = 30.0
DEFAULT_REGION = "us-west-2"

EXACT_TIMEZONE_REGIONS = {
    "America/New_York": "us-east-1",
    "America/Detroit": "us-east-1",
    "America/Toronto": "us-east-1",
    "America/Montreal": "us-east-1",
    "America/Boston": "us-east-1",
    "America/Chicago": "us-east-1",
}

PREFIX_REGIONS = {
    "America": "us-west-2",
    "US": "us-west-2",
    "Canada": "us-west-2",
    "Europe": "eu-central-1",
    "Africa": "eu-central-1",
    "Asia": "ap-southeast-1",
    "Australia": "ap-southeast-1",
    "Pacific": "ap-southeast-1",
}

# (min hours, max hours, region) by UTC offset
OFFSET_REGIONS = [
    (-24, -4, "us-west-2"),
    (-3, 4, "eu-central-1"),
    (5, 24, "ap-southeast-1"),
]


def get_closest_region(timezone: Optional[str] = None) -> str:
    """Pick the Browserbase region nearest to an IANA timezone name."""
    if not timezone:
        return DEFAULT_REGION

    if timezone in EXACT_TIMEZONE_REGIONS:
        return EXACT_TIMEZONE_REGIONS[timezone]

    prefix = timezone.split("/")[0]
    if prefix in PREFIX_REGIONS:
        return PREFIX_REGIONS[prefix]

    try:
        offset = datetime.now(ZoneInfo(timezone)).utcoffset()
    except (ZoneInfoNotFoundError, ValueError):
        return DEFAULT_REGION
    if offset is None:
        return DEFAULT_REGION

    hours = offset.total_seconds() / 3600
    for low, high, region in OFFSET_REGIONS:
        if low <= hours <= high:
            return region
    return DEFAULT_REGION


class BrowserService:
    def _headers(self) -> Dict[str, str]:
        if not settings.BROWSERBASE_API_KEY:
            raise ConfigurationError("BROWSERBASE_API_KEY")
        if not settings.BROWSERBASE_PROJECT_ID:
            raise ConfigurationError("BROWSERBASE_PROJECT_ID")
        return {"X-BB-API-Key": settings.BROWSERBASE_API_KEY, "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Any:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.request(method, f"{BROWSERBASE_API_URL}{path}", headers=headers, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Browserbase request failed ({action}): {e}")
                raise IntegrationError("Browserbase", f"Failed to {action}", str(e))

        if resp.status_code >= 400:
            logger.error(f"Browserbase API error ({action}): {resp.status_code} {resp.text}")
            raise IntegrationError("Browserbase", f"Failed to {action}", resp.text)
        return resp.json() if resp.content else {}

    async def create_session(self, timezone: Optional[str] = None, context_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a kept-alive session in the closest region.
        A new persistent context is created unless one is passed in.
        """
        project_id = settings.BROWSERBASE_PROJECT_ID
        if not context_id:
            context = await self._request("POST", "/contexts", "create context", json={"projectId": project_id})
            context_id = context["id"]

        session = await self._request(
            "POST",
            "/sessions",
            "create session",
            json={
                "projectId": project_id,
                "browserSettings": {"context": {"id": context_id, "persist": True}},
                "keepAlive": True,
                "region": get_closest_region(timezone),
            },
        )
        debug_info = await self._request("GET", f"/sessions/{session['id']}/debug", "get session debug info")
        logger.info(f"Browserbase session {session['id']} started")

        return {
            "session_id": session["id"],
            "session_url": debug_info.get("debuggerFullscreenUrl"),
            "context_id": context_id,
        }

    async def end_session(self, session_id: str) -> None:
        await self._request(
            "POST",
            f"/sessions/{session_id}",
            "end session",
            json={"projectId": settings.BROWSERBASE_PROJECT_ID, "status": "REQUEST_RELEASE"},
        )
        logger.info(f"Browserbase session {session_id} released")

    async def get_recording_events(self, session_id: str) -> List[Dict[str, Any]]:
        events = await self._request("GET", f"/sessions/{session_id}/recording", "fetch recording")
        if not isinstance(events, list):
            raise IntegrationError("Browserbase", "Invalid recording events format")
        return events


browser_service = BrowserService()
