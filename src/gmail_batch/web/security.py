"""Double-submit CSRF tokens for state-changing requests."""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from starlette.responses import Response

CSRF_COOKIE_NAME = "gmail_batch_csrf"
CSRF_FIELD_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"


@dataclass(slots=True)
class CsrfGuard:
    """Issue a token in a cookie and require it back on writes.

    JSON endpoints echo the token in the ``X-CSRF-Token`` header; the config
    form posts it as a ``csrf_token`` field.
    """

    cookie_name: str = CSRF_COOKIE_NAME
    header_name: str = CSRF_HEADER_NAME
    field_name: str = CSRF_FIELD_NAME
    max_age: int = 60 * 60

    def issue(self, response: Response, *, secure: bool) -> str:
        """Store a fresh token on ``response`` and return it."""
        token = secrets.token_urlsafe(32)
        response.set_cookie(
            key=self.cookie_name,
            value=token,
            max_age=self.max_age,
            httponly=True,
            samesite="lax",
            secure=secure,
        )
        return token

    def check(self, request: Request, submitted: str | None = None) -> None:
        """Raise 403 unless the submitted token matches the cookie.

        ``submitted`` defaults to the value of the CSRF header.
        """
        if submitted is None:
            submitted = request.headers.get(self.header_name)
        expected = request.cookies.get(self.cookie_name)
        if not expected or not submitted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Missing CSRF token."
            )
        if not secrets.compare_digest(expected, submitted):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token."
            )


__all__ = ["CSRF_COOKIE_NAME", "CSRF_FIELD_NAME", "CSRF_HEADER_NAME", "CsrfGuard"]
