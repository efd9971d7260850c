"""In-memory send history."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from threading import Lock

from gmail_batch.core.models import BatchResult, EmailRequest, HistoryEntry

LOGGER = logging.getLogger(__name__)


def _seed_entries(now: datetime) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            id="1",
            subject="Welcome Email",
            recipients=("user1@example.com", "user2@example.com"),
            timestamp=now,
            success=True,
        ),
        HistoryEntry(
            id="2",
            subject="Failed Email",
            recipients=("invalid@example.com",),
            timestamp=now - timedelta(days=1),
            success=False,
            error="Invalid recipient",
        ),
    ]


class InMemoryHistoryStore:
    """Bounded, thread-safe history of sent batches, newest first."""

    def __init__(
        self,
        max_entries: int = 200,
        *,
        seed: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)
        self._lock = Lock()
        if seed:
            self._entries.extend(_seed_entries(self._clock()))

    def record_batch(
        self, requests: Sequence[EmailRequest], result: BatchResult
    ) -> list[HistoryEntry]:
        """Append one entry per request describing its outcome."""
        errors = {
            entry.index: entry.error
            for entry in result.failures
            if entry.index is not None
        }
        sent = {entry.index for entry in result.responses}
        batch_error = next(
            (entry.error for entry in result.failures if entry.index is None), None
        )
        timestamp = self._clock()

        new_entries: list[HistoryEntry] = []
        for index, request in enumerate(requests):
            recipients = tuple(
                address
                for address in (request.recipient, *request.cc, *request.bcc)
                if address
            )
            success = index in sent
            error = None
            if not success:
                error = errors.get(index) or batch_error or "Not sent"
            new_entries.append(
                HistoryEntry(
                    id=uuid.uuid4().hex,
                    subject=request.subject,
                    recipients=recipients,
                    timestamp=timestamp,
                    success=success,
                    error=error,
                )
            )

        with self._lock:
            for entry in new_entries:
                self._entries.appendleft(entry)
        LOGGER.debug("Recorded %d history entries", len(new_entries))
        return new_entries

    def list_entries(self, limit: int | None = None) -> list[HistoryEntry]:
        with self._lock:
            entries = list(self._entries)
        if limit is not None:
            return entries[: max(limit, 0)]
        return entries


__all__ = ["InMemoryHistoryStore"]
