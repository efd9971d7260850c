"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import (
    AuthSession,
    BatchItemResponse,
    BatchResult,
    EmailRequest,
    EmailTemplate,
    HistoryEntry,
    OutboundMessage,
)


class TransportError(RuntimeError):
    """Raised when a batch call fails as a whole."""


class ConfigurationMissingError(RuntimeError):
    """Raised when OAuth client registration values are not configured."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = tuple(missing)
        super().__init__(
            "Setup required: missing configuration for " + ", ".join(self.missing)
        )


class BatchMailClient(Protocol):
    """Mail provider client able to send messages one by one or in a batch."""

    sender_address: str

    def send(self, message: OutboundMessage) -> BatchItemResponse:
        """Send a single encoded message."""
        raise NotImplementedError

    def submit_batch(
        self, messages: Sequence[OutboundMessage]
    ) -> list[BatchItemResponse]:
        """Send messages as one logical batch.

        Raises ``TransportError`` when the call fails outright.
        """
        raise NotImplementedError


class SessionSource(Protocol):
    """Caller-managed store holding the signed-in user's session."""

    def load_session(self) -> AuthSession | None:
        """Return the stored session, or ``None`` when nobody is signed in."""
        raise NotImplementedError


class HistoryRecorder(Protocol):
    """Abstraction for send history persistence."""

    def record_batch(
        self, requests: Sequence[EmailRequest], result: BatchResult
    ) -> list[HistoryEntry]:
        """Append one entry per request and return the new entries."""
        raise NotImplementedError

    def list_entries(self, limit: int | None = None) -> list[HistoryEntry]:
        """Return entries, newest first."""
        raise NotImplementedError


class TemplateRepository(Protocol):
    """Abstraction for template persistence."""

    def list_templates(self) -> list[EmailTemplate]:
        raise NotImplementedError

    def save(self, template: EmailTemplate) -> EmailTemplate:
        raise NotImplementedError

    def delete(self, template_id: str) -> bool:
        raise NotImplementedError


__all__ = [
    "BatchMailClient",
    "ConfigurationMissingError",
    "HistoryRecorder",
    "SessionSource",
    "TemplateRepository",
    "TransportError",
]
