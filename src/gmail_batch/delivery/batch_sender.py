"""Batch submission of email requests through an authorized mail client."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from gmail_batch.core.interfaces import BatchMailClient, TransportError
from gmail_batch.core.models import (
    BatchItemResponse,
    BatchResult,
    EmailRequest,
    FailureEntry,
    OutboundMessage,
    SuccessEntry,
)
from gmail_batch.transport.mime import (
    MessageBuildError,
    build_message,
    missing_required_fields,
)

LOGGER = logging.getLogger(__name__)


class EmptyBatchError(ValueError):
    """Raised when a batch send is requested without any email requests."""


def send_batch(
    requests: Sequence[EmailRequest], client: BatchMailClient
) -> BatchResult:
    """Validate, build and submit ``requests`` as a single batch.

    Every request index ends up either in ``responses`` or in ``failures``.
    A failure of the batch call itself adds one entry with ``index=None``.

    Raises:
        EmptyBatchError: If ``requests`` is empty or not a list.
    """
    if not isinstance(requests, (list, tuple)) or not requests:
        raise EmptyBatchError("Invalid email data: expected a non-empty list")

    result = BatchResult()

    valid: list[tuple[int, EmailRequest]] = []
    for index, request in enumerate(requests):
        if not isinstance(request, EmailRequest):
            result.failures.append(
                FailureEntry(index, f"Email at index {index} is not an email request")
            )
            continue
        missing = missing_required_fields(request)
        if missing:
            result.failures.append(
                FailureEntry(
                    index,
                    f"Email at index {index} missing required fields: "
                    f"{', '.join(missing)}",
                    request,
                )
            )
            continue
        valid.append((index, request))

    outbound: list[OutboundMessage] = []
    submitted: dict[str, int] = {}
    for index, request in valid:
        try:
            raw = build_message(request, client.sender_address)
        except MessageBuildError as exc:
            LOGGER.warning("Could not build email at index %d: %s", index, exc)
            result.failures.append(
                FailureEntry(
                    index, f"Email at index {index} could not be built: {exc}", request
                )
            )
            continue
        correlation_id = str(index)
        outbound.append(OutboundMessage(correlation_id=correlation_id, raw=raw))
        submitted[correlation_id] = index

    if not outbound:
        LOGGER.info("No valid emails to send; skipping batch call")
        return result

    LOGGER.info("Submitting batch of %d email(s)", len(outbound))
    try:
        responses = client.submit_batch(outbound)
    except TransportError as exc:
        partial: Sequence[BatchItemResponse] = getattr(exc, "responses", ())
        _apply_responses(result, partial, submitted, requests)
        result.failures.append(FailureEntry(None, f"Batch execution failed: {exc}"))
        LOGGER.error("Batch execution failed: %s", exc)
        return result

    answered = _apply_responses(result, responses, submitted, requests)
    for correlation_id, index in submitted.items():
        if correlation_id not in answered:
            result.failures.append(
                FailureEntry(
                    index,
                    f"Email at index {index} received no response from the provider",
                    requests[index],
                )
            )

    LOGGER.info(
        "Batch finished: %d sent, %d failed",
        result.success_count,
        len(result.failures),
    )
    return result


def _apply_responses(
    result: BatchResult,
    responses: Sequence[BatchItemResponse],
    submitted: Mapping[str, int],
    requests: Sequence[EmailRequest],
) -> set[str]:
    answered: set[str] = set()
    for response in responses:
        correlation_id = response.correlation_id
        index = submitted.get(correlation_id)
        if index is None or correlation_id in answered:
            LOGGER.warning(
                "Ignoring unexpected batch response for correlation id %r",
                correlation_id,
            )
            continue
        answered.add(correlation_id)
        if response.ok:
            result.success_count += 1
            result.responses.append(
                SuccessEntry(
                    index=index,
                    message_id=response.message_id or "",
                    thread_id=response.thread_id,
                )
            )
        else:
            result.failures.append(
                FailureEntry(
                    index,
                    f"Email at index {index} was rejected: "
                    f"{response.error or 'unknown error'}",
                    requests[index],
                )
            )
    return answered


__all__ = ["EmptyBatchError", "send_batch"]
