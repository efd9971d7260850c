"""Resolve the signed-in user's session into an authorized Gmail client."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from google.oauth2.credentials import Credentials

from gmail_batch.core.config import GoogleSettings
from gmail_batch.core.interfaces import ConfigurationMissingError, SessionSource
from gmail_batch.core.models import AuthSession
from gmail_batch.transport.gmail_client import GmailBatchClient

from .google_oauth import GoogleOAuthClient

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials, AuthSession, GoogleSettings], GmailBatchClient]


def build_credentials(session: AuthSession, settings: GoogleSettings) -> Credentials:
    """Create Google OAuth credentials from a stored token bundle."""
    expiry = session.expiry_utc
    if expiry is not None:
        # google-auth compares against naive UTC timestamps
        expiry = expiry.replace(tzinfo=None)
    scopes = session.scope.split() if session.scope else None
    return Credentials(
        token=session.access_token,
        refresh_token=session.refresh_token,
        token_uri=GoogleOAuthClient.TOKEN_URL,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        scopes=scopes,
        expiry=expiry,
    )


def _default_client_factory(
    credentials: Credentials, session: AuthSession, settings: GoogleSettings
) -> GmailBatchClient:
    return GmailBatchClient(
        credentials,
        session.account_email,
        max_batch_size=settings.max_batch_size,
    )


class SessionGate:
    """Turn a stored session into a ready-to-use mail client.

    ``resolve`` returns ``None`` when nobody is signed in or the stored token
    has expired; the caller is expected to start the sign-in flow. Tokens are
    never refreshed here.
    """

    def __init__(
        self,
        settings: GoogleSettings,
        *,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory or _default_client_factory
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def resolve(self, source: SessionSource) -> GmailBatchClient | None:
        """Return an authorized client, or ``None`` when there is no session.

        Raises:
            ConfigurationMissingError: If OAuth client values are not set
        """
        session = source.load_session()
        if session is None:
            LOGGER.debug("No stored session")
            return None

        if session.is_expired(self._clock()):
            LOGGER.info("Stored token for %s has expired", session.account_email)
            return None

        missing = self._settings.missing_fields()
        if missing:
            raise ConfigurationMissingError([f"google.{name}" for name in missing])

        credentials = build_credentials(session, self._settings)
        LOGGER.debug("Resolved Gmail client for %s", session.account_email)
        return self._client_factory(credentials, session, self._settings)


__all__ = ["ClientFactory", "SessionGate", "build_credentials"]
