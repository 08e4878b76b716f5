from __future__ import annotations

from typing import Dict, Any, Optional, List
import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException

from app.core.config import settings

logger = logging.getLogger(__name__)

# Shared timeout for OAuth provider requests
HTTP_TIMEOUT = 15.0

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class OAuthProvider:
    """Base class for OAuth providers."""

    def __init__(self, provider_config: Dict[str, Any]):
        self.config = provider_config
        self.client_id = provider_config.get("client_id")
        self.client_secret = provider_config.get("client_secret")
        self.name = "generic"

    def get_authorization_url(
        self,
        redirect_uri: str,
        state: str,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Build the provider authorization URL.
        extra_params carries access_type=offline, prompt=consent and similar.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.config.get("scope"),
            "response_type": "code",
            "state": state,
        }
        if extra_params:
            params.update(extra_params)

        return f"{self.config['authorize_url']}?{urlencode(params)}"

    async def _post_token_endpoint(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.post(self.config["token_url"], data=data, headers=headers)
            except httpx.RequestError as e:
                logger.error(f"Request to {self.name} failed during {action}: {e}")
                raise HTTPException(status_code=502, detail=f"Failed to connect to {self.name}")

        if resp.status_code != 200:
            logger.error(f"{self.name} {action} failed: {resp.status_code} {resp.text}")
            raise HTTPException(status_code=400, detail=f"Failed to {action}: {resp.text}")

        token_data = resp.json()
        if not token_data.get("access_token"):
            raise HTTPException(status_code=400, detail="No access token received")
        return token_data

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Exchange an authorization code for the full token response."""
        logger.info(f"Exchanging code for token with {self.name}")
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        return await self._post_token_endpoint(data, "exchange code for token")

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> str:
        token_data = await self.exchange_code(code, redirect_uri)
        return token_data["access_token"]

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        raise NotImplementedError


class GoogleOAuth(OAuthProvider):
    """Google OAuth provider."""

    def __init__(self, provider_config: Dict[str, Any]):
        super().__init__(provider_config)
        self.name = "google"

    def get_authorization_url(
        self,
        redirect_uri: str,
        state: str,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> str:
        google_params = {
            "access_type": "offline",
            "prompt": "select_account",
            "include_granted_scopes": "true",
        }
        if extra_params:
            google_params.update(extra_params)

        return super().get_authorization_url(redirect_uri, state, google_params)

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Profile from the OIDC v3 userinfo endpoint."""
        headers = {"Authorization": f"Bearer {access_token}"}
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.get(self.config["userinfo_url"], headers=headers)
            except httpx.RequestError as e:
                logger.error("Request to Google failed: %s", e)
                raise HTTPException(status_code=502, detail="Failed to connect to Google")

        if resp.status_code != 200:
            logger.error("Failed to get user info from Google: %s %s", resp.status_code, resp.text)
            raise HTTPException(status_code=400, detail="Failed to get user info from Google")

        user_data = resp.json()
        return {
            "provider_id": str(user_data.get("sub")),
            "email": user_data.get("email"),
            "first_name": user_data.get("given_name"),
            "last_name": user_data.get("family_name"),
            "provider": "google",
        }


class GmailOAuth(GoogleOAuth):
    """Google OAuth with Gmail scopes, offline access and token lifecycle calls."""

    def __init__(self, provider_config: Dict[str, Any]):
        super().__init__({**provider_config, "scope": " ".join(GMAIL_SCOPES)})
        self.name = "gmail"

    def get_authorization_url(
        self,
        redirect_uri: str,
        state: str,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> str:
        params = {"access_type": "offline", "prompt": "consent"}
        if extra_params:
            params.update(extra_params)
        return super().get_authorization_url(redirect_uri, state, params)

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        return await self._post_token_endpoint(data, "refresh access token")

    async def revoke_token(self, token: str) -> bool:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            try:
                resp = await client.post(
                    self.config["revoke_url"],
                    data={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.RequestError as e:
                logger.error(f"Token revocation request failed: {e}")
                return False

        if resp.status_code != 200:
            logger.warning(f"Token revocation returned {resp.status_code}: {resp.text}")
            return False
        return True


def token_expiry(token_data: Dict[str, Any]) -> Optional[datetime]:
    expires_in = token_data.get("expires_in")
    if not expires_in:
        return None
    return datetime.utcnow() + timedelta(seconds=int(expires_in))


# ---- Provider registry ----

def get_available_providers() -> List[Dict[str, str]]:
    """Login providers with client_id and client_secret configured."""
    providers: List[Dict[str, str]] = []
    for name, cfg in settings.OAUTH_PROVIDERS.items():
        if cfg.get("client_id") and cfg.get("client_secret"):
            providers.append({"name": name, "display_name": name.capitalize()})
    return providers


def get_oauth_provider(provider_name: str) -> OAuthProvider:
    if provider_name not in settings.OAUTH_PROVIDERS:
        raise HTTPException(status_code=400, detail=f"Unsupported OAuth provider: {provider_name}")

    provider_config = settings.OAUTH_PROVIDERS[provider_name]
    if provider_name == "google":
        return GoogleOAuth(provider_config)

    raise HTTPException(status_code=400, detail=f"Provider {provider_name} not implemented")


def get_gmail_oauth() -> GmailOAuth:
    if "google" not in settings.OAUTH_PROVIDERS:
        raise HTTPException(status_code=500, detail="Google OAuth is not configured")
    return GmailOAuth(settings.OAUTH_PROVIDERS["google"])
