"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class Attachment:
    """File carried alongside an outgoing email."""

    filename: str
    data: bytes
    content_type: str = DEFAULT_ATTACHMENT_TYPE


@dataclass(frozen=True, slots=True)
class EmailRequest:
    """One email the caller wants delivered as part of a batch."""

    recipient: str
    subject: str
    body_html: str = ""
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    attachments: tuple[Attachment, ...] = ()


@dataclass(slots=True)
class FailureEntry:
    """A request that could not be delivered.

    ``index`` is ``None`` only for the failure of the batch call as a whole.
    """

    index: int | None
    error: str
    request: EmailRequest | None = None


@dataclass(slots=True)
class SuccessEntry:
    """Provider identifiers for a delivered request."""

    index: int
    message_id: str
    thread_id: str | None


@dataclass(slots=True)
class BatchResult:
    """Aggregated outcome of a batch send."""

    success_count: int = 0
    failures: list[FailureEntry] = field(default_factory=list)
    responses: list[SuccessEntry] = field(default_factory=list)

    def item_failures(self) -> list[FailureEntry]:
        """Return failures tied to a specific request index."""
        return [entry for entry in self.failures if entry.index is not None]


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """Encoded message handed to the batch client."""

    correlation_id: str
    raw: str


@dataclass(frozen=True, slots=True)
class BatchItemResponse:
    """Provider response for a single batch item."""

    correlation_id: str
    message_id: str | None = None
    thread_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.message_id)


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class AuthSession:
    """OAuth token bundle and account profile for a signed-in user."""

    access_token: str
    account_email: str
    refresh_token: str | None = None
    expiry: datetime | None = None
    token_type: str | None = "Bearer"
    scope: str | None = None
    account_id: str | None = None
    account_name: str | None = None
    account_picture_url: str | None = None

    @property
    def expiry_utc(self) -> datetime | None:
        """Expiry as an aware UTC datetime. Naive values are read as UTC."""
        if self.expiry is None:
            return None
        if self.expiry.tzinfo is None:
            return self.expiry.replace(tzinfo=UTC)
        return self.expiry.astimezone(UTC)

    def is_expired(self, now: datetime) -> bool:
        expiry = self.expiry_utc
        return expiry is not None and expiry <= now


@dataclass(slots=True)
class HistoryEntry:
    """Record of a previously attempted send."""

    id: str
    subject: str
    recipients: tuple[str, ...]
    timestamp: datetime
    success: bool
    error: str | None = None


@dataclass(slots=True)
class EmailTemplate:
    """Reusable subject and body pair."""

    id: str | None
    name: str
    subject: str
    body: str


__all__ = [
    "Attachment",
    "AuthSession",
    "BatchItemResponse",
    "BatchResult",
    "DEFAULT_ATTACHMENT_TYPE",
    "EmailRequest",
    "EmailTemplate",
    "FailureEntry",
    "HistoryEntry",
    "OutboundMessage",
    "SuccessEntry",
]
