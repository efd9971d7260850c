"""Signed cookie storage for the OAuth token bundle and account profile."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import Request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from starlette.responses import Response

from gmail_batch.core.models import AuthSession

LOGGER = logging.getLogger(__name__)

TOKEN_COOKIE_NAME = "gmail_batch_token"
USER_COOKIE_NAME = "gmail_batch_user"
_SALT = "gmail-batch-session"


class SignedSessionStore:
    """Keep the session in two signed, http-only cookies.

    The token bundle and the profile are stored independently and share the
    same lifetime. Cookies with a bad or expired signature read as signed out.
    """

    def __init__(self, secret_key: str, *, max_age_days: int = 7) -> None:
        self._serializer = URLSafeTimedSerializer(secret_key, salt=_SALT)
        self.max_age = max_age_days * 24 * 60 * 60

    def write(self, response: Response, session: AuthSession, *, secure: bool) -> None:
        """Store the session on ``response``."""
        token_payload = {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expiry": session.expiry.isoformat() if session.expiry else None,
            "token_type": session.token_type,
            "scope": session.scope,
        }
        profile_payload = {
            "id": session.account_id,
            "name": session.account_name,
            "email": session.account_email,
            "image": session.account_picture_url,
        }
        for name, payload in (
            (TOKEN_COOKIE_NAME, token_payload),
            (USER_COOKIE_NAME, profile_payload),
        ):
            response.set_cookie(
                key=name,
                value=self._serializer.dumps(payload),
                max_age=self.max_age,
                httponly=True,
                samesite="lax",
                secure=secure,
                path="/",
            )

    def read(self, request: Request) -> AuthSession | None:
        """Return the stored session, or ``None`` when either cookie is unusable."""
        tokens = self._load(request.cookies.get(TOKEN_COOKIE_NAME))
        profile = self.read_profile(request)
        if not tokens or not profile or not tokens.get("access_token"):
            return None

        expiry = None
        raw_expiry = tokens.get("expiry")
        if raw_expiry:
            try:
                expiry = datetime.fromisoformat(raw_expiry)
            except (TypeError, ValueError):
                LOGGER.warning("Discarding session with malformed expiry")
                return None

        return AuthSession(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expiry=expiry,
            token_type=tokens.get("token_type"),
            scope=tokens.get("scope"),
            account_email=profile["email"],
            account_id=profile.get("id"),
            account_name=profile.get("name"),
            account_picture_url=profile.get("image"),
        )

    def read_profile(self, request: Request) -> dict[str, Any] | None:
        """Return the public profile stored at sign-in."""
        profile = self._load(request.cookies.get(USER_COOKIE_NAME))
        if not profile or not profile.get("email"):
            return None
        return profile

    def clear(self, response: Response) -> None:
        """Remove both session cookies."""
        response.delete_cookie(TOKEN_COOKIE_NAME, path="/")
        response.delete_cookie(USER_COOKIE_NAME, path="/")

    def bind(self, request: Request) -> RequestSession:
        """Return a session source reading from ``request``."""
        return RequestSession(self, request)

    def _load(self, value: str | None) -> dict[str, Any] | None:
        if not value:
            return None
        try:
            payload = self._serializer.loads(value, max_age=self.max_age)
        except BadSignature:
            LOGGER.info("Ignoring session cookie with invalid or expired signature")
            return None
        return payload if isinstance(payload, dict) else None


@dataclass(slots=True)
class RequestSession:
    """Session source bound to one incoming request."""

    store: SignedSessionStore
    request: Request

    def load_session(self) -> AuthSession | None:
        return self.store.read(self.request)


__all__ = [
    "RequestSession",
    "SignedSessionStore",
    "TOKEN_COOKIE_NAME",
    "USER_COOKIE_NAME",
]
