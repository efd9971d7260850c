"""Google OAuth 2.0 authorization-code flow and profile lookup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from gmail_batch.core.config import GoogleSettings
from gmail_batch.core.interfaces import ConfigurationMissingError
from gmail_batch.core.models import AuthSession

logger = logging.getLogger(__name__)


class OAuthError(RuntimeError):
    """Raised when the OAuth provider rejects a request or cannot be reached."""


class GoogleOAuthClient:
    """Client for the Google OAuth 2.0 endpoints used at sign-in."""

    OAUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    SCOPES = [
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]

    def __init__(
        self,
        settings: GoogleSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
    ):
        """Initialize the OAuth client with settings.

        Raises:
            ConfigurationMissingError: If the client registration is incomplete
        """
        missing = settings.missing_fields()
        if missing:
            raise ConfigurationMissingError([f"google.{name}" for name in missing])
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    def get_authorization_url(self, state: str | None = None) -> str:
        """Generate the OAuth 2.0 consent URL."""
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Force consent to get refresh token
        }
        if state:
            params["state"] = state
        return f"{self.OAUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for access and refresh tokens."""
        async with self._client() as client:
            try:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self._settings.client_id,
                        "client_secret": self._settings.client_secret,
                        "redirect_uri": self._settings.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
            except httpx.HTTPError as exc:
                raise OAuthError(f"Token endpoint unreachable: {exc}") from exc

            if response.status_code != 200:
                logger.error("Code exchange failed: %s", response.status_code)
                logger.debug("Response: %s", response.text)
                raise OAuthError(
                    f"Code exchange failed with status {response.status_code}"
                )

            tokens = response.json()
            if not tokens.get("access_token"):
                raise OAuthError("Token response did not include an access token")
            logger.info("Successfully exchanged authorization code for tokens")
            return tokens

    async def fetch_user_profile(self, access_token: str) -> dict[str, Any]:
        """Return the ``id``, ``name``, ``email`` and ``picture`` of the user."""
        async with self._client() as client:
            try:
                response = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            except httpx.HTTPError as exc:
                raise OAuthError(f"Userinfo endpoint unreachable: {exc}") from exc

            if response.status_code != 200:
                logger.error("Failed to fetch user profile: %s", response.status_code)
                raise OAuthError(
                    f"Profile lookup failed with status {response.status_code}"
                )

            data = response.json()
            if not data.get("email"):
                raise OAuthError("Profile response did not include an email address")
            return {
                "id": data.get("id"),
                "name": data.get("name"),
                "email": data.get("email"),
                "picture": data.get("picture"),
            }

    @staticmethod
    def build_session(
        tokens: dict[str, Any], profile: dict[str, Any], now: datetime
    ) -> AuthSession:
        """Combine a token response and profile into an ``AuthSession``."""
        expiry = None
        expires_in = tokens.get("expires_in")
        if expires_in is not None:
            expiry = now + timedelta(seconds=int(expires_in))
        return AuthSession(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expiry=expiry,
            token_type=tokens.get("token_type", "Bearer"),
            scope=tokens.get("scope"),
            account_email=profile["email"],
            account_id=profile.get("id"),
            account_name=profile.get("name"),
            account_picture_url=profile.get("picture"),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)


__all__ = ["GoogleOAuthClient", "OAuthError"]
