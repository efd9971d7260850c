"""Gmail API client sending encoded messages individually or in batches."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Any

import httplib2
from google.auth.credentials import Credentials
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import BatchError, HttpError

from gmail_batch.core.interfaces import TransportError
from gmail_batch.core.models import BatchItemResponse, OutboundMessage

LOGGER = logging.getLogger(__name__)

GMAIL_USER_ID = "me"

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    HttpError,
    BatchError,
    GoogleAuthError,
    httplib2.HttpLib2Error,
    OSError,
)


class BatchTransportError(TransportError):
    """Batch failure that may follow a partially delivered batch.

    ``responses`` holds the item responses collected before the failure.
    """

    def __init__(
        self, message: str, responses: Sequence[BatchItemResponse] = ()
    ) -> None:
        super().__init__(message)
        self.responses = list(responses)


class GmailBatchClient:
    """Authorized Gmail client for the signed-in account.

    Example:
        >>> client = GmailBatchClient(credentials, "me@example.com")
        >>> client.submit_batch([OutboundMessage("0", raw)])
    """

    def __init__(
        self,
        credentials: Credentials | None,
        sender_address: str,
        *,
        max_batch_size: int = 100,
        service: Any | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credentials: OAuth credentials for the account
            sender_address: Address written into the ``From`` header
            max_batch_size: Sub-requests per HTTP batch
            service: Prebuilt Gmail service resource, mainly for tests
        """
        if credentials is None and service is None:
            raise ValueError("Either credentials or a service must be provided")
        self.sender_address = sender_address
        self._credentials = credentials
        self._max_batch_size = max(1, max_batch_size)
        self._service = service

    @property
    def service(self) -> Any:
        """Lazily built Gmail v1 service resource."""
        if self._service is None:
            self._service = build(
                "gmail",
                "v1",
                credentials=self._credentials,
                cache_discovery=False,
            )
        return self._service

    def send(self, message: OutboundMessage) -> BatchItemResponse:
        """Send one message outside of a batch.

        Raises:
            TransportError: If the request cannot reach the provider
        """
        try:
            result = self._send_request(message).execute()
        except HttpError as exc:
            LOGGER.warning("Gmail rejected message %s: %s", message.correlation_id, exc)
            return BatchItemResponse(
                correlation_id=message.correlation_id, error=_describe_error(exc)
            )
        except _TRANSPORT_ERRORS as exc:
            LOGGER.error("Gmail send failed: %s", exc)
            raise TransportError(f"Gmail send failed: {exc}") from exc
        return _response_from_result(message.correlation_id, result)

    def submit_batch(
        self, messages: Sequence[OutboundMessage]
    ) -> list[BatchItemResponse]:
        """Send ``messages`` as one logical batch.

        Gmail batches are split into HTTP batches of ``max_batch_size``
        sub-requests. Responses are returned in the order they arrive.

        Raises:
            BatchTransportError: If any HTTP batch fails outright
        """
        responses: list[BatchItemResponse] = []
        if not messages:
            return responses

        for chunk_index, chunk in enumerate(_chunked(messages, self._max_batch_size)):
            batch = self.service.new_batch_http_request(
                callback=_collect_into(responses)
            )
            for message in chunk:
                batch.add(
                    self._send_request(message), request_id=message.correlation_id
                )
            LOGGER.info(
                "Executing Gmail batch %d with %d message(s)",
                chunk_index + 1,
                len(chunk),
            )
            try:
                batch.execute()
            except _TRANSPORT_ERRORS as exc:
                LOGGER.error("Gmail batch execution failed: %s", exc)
                raise BatchTransportError(str(exc), responses) from exc

        return responses

    def _send_request(self, message: OutboundMessage) -> Any:
        return (
            self.service.users()
            .messages()
            .send(userId=GMAIL_USER_ID, body={"raw": message.raw})
        )


def _collect_into(
    responses: list[BatchItemResponse],
) -> Callable[[str, Any, Exception | None], None]:
    def callback(
        request_id: str, response: Any, exception: Exception | None
    ) -> None:
        if exception is not None:
            LOGGER.warning("Gmail rejected batch item %s: %s", request_id, exception)
            responses.append(
                BatchItemResponse(
                    correlation_id=request_id, error=_describe_error(exception)
                )
            )
            return
        responses.append(_response_from_result(request_id, response))

    return callback


def _response_from_result(correlation_id: str, result: Any) -> BatchItemResponse:
    payload = result if isinstance(result, dict) else {}
    message_id = payload.get("id")
    if not message_id:
        return BatchItemResponse(
            correlation_id=correlation_id,
            error="Gmail response did not include a message id",
        )
    return BatchItemResponse(
        correlation_id=correlation_id,
        message_id=message_id,
        thread_id=payload.get("threadId"),
    )


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, HttpError):
        status = getattr(exc, "status_code", None) or getattr(exc.resp, "status", None)
        reason = getattr(exc, "reason", None) or str(exc)
        return f"HTTP {status}: {reason}" if status else reason
    return str(exc)


def _chunked(
    messages: Sequence[OutboundMessage], size: int
) -> Iterator[Sequence[OutboundMessage]]:
    for start in range(0, len(messages), size):
        yield messages[start : start + size]


__all__ = ["BatchTransportError", "GMAIL_USER_ID", "GmailBatchClient"]
