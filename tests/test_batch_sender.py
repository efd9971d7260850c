"""Tests for the batch submission coordinator."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from gmail_batch.core.interfaces import TransportError
from gmail_batch.core.models import (
    Attachment,
    BatchItemResponse,
    EmailRequest,
    OutboundMessage,
)
from gmail_batch.delivery import EmptyBatchError, send_batch
from gmail_batch.transport import BatchTransportError, decode_message


class StubClient:
    """Batch client stub recording submissions and replying successfully."""

    sender_address = "me@example.com"

    def __init__(self, reverse: bool = False) -> None:
        self.reverse = reverse
        self.batches: list[list[OutboundMessage]] = []

    def send(self, message: OutboundMessage) -> BatchItemResponse:
        return self.submit_batch([message])[0]

    def submit_batch(
        self, messages: Sequence[OutboundMessage]
    ) -> list[BatchItemResponse]:
        self.batches.append(list(messages))
        responses = [
            BatchItemResponse(
                correlation_id=message.correlation_id,
                message_id=f"msg-{message.correlation_id}",
                thread_id=f"thread-{message.correlation_id}",
            )
            for message in messages
        ]
        return list(reversed(responses)) if self.reverse else responses


class FailingClient(StubClient):
    """Batch client stub whose batch call always fails."""

    def submit_batch(
        self, messages: Sequence[OutboundMessage]
    ) -> list[BatchItemResponse]:
        self.batches.append(list(messages))
        raise TransportError("connection reset")


class ScriptedClient(StubClient):
    """Batch client stub returning a fixed list of responses."""

    def __init__(self, responses: list[BatchItemResponse]) -> None:
        super().__init__()
        self.responses = responses

    def submit_batch(
        self, messages: Sequence[OutboundMessage]
    ) -> list[BatchItemResponse]:
        self.batches.append(list(messages))
        return self.responses


def _assert_every_index_accounted(result, total: int) -> None:
    indices = [entry.index for entry in result.responses] + [
        entry.index for entry in result.item_failures()
    ]
    assert sorted(indices) == list(range(total))
    assert result.success_count == len(result.responses)


def test_two_valid_requests_are_sent_in_one_batch() -> None:
    client = StubClient()
    requests = [
        EmailRequest(recipient="a@x.com", subject="s1"),
        EmailRequest(recipient="b@x.com", subject="s2"),
    ]

    result = send_batch(requests, client)

    assert result.success_count == 2
    assert result.failures == []
    assert [entry.index for entry in result.responses] == [0, 1]
    assert result.responses[0].message_id == "msg-0"
    assert result.responses[1].thread_id == "thread-1"
    assert len(client.batches) == 1
    assert [item.correlation_id for item in client.batches[0]] == ["0", "1"]


def test_submitted_messages_use_client_sender_address() -> None:
    client = StubClient()

    send_batch([EmailRequest(recipient="a@x.com", subject="s1")], client)

    parsed = decode_message(client.batches[0][0].raw)
    assert parsed["From"] == "me@example.com"
    assert parsed["To"] == "a@x.com"


def test_missing_recipient_fails_without_network_call() -> None:
    client = StubClient()

    result = send_batch([EmailRequest(recipient="", subject="x")], client)

    assert result.success_count == 0
    assert len(result.failures) == 1
    assert result.failures[0].index == 0
    assert "missing" in result.failures[0].error
    assert client.batches == []


@pytest.mark.parametrize("requests", [[], (), None, "not a list"])
def test_empty_or_invalid_batch_raises_before_client_use(requests) -> None:
    client = StubClient()

    with pytest.raises(EmptyBatchError):
        send_batch(requests, client)
    assert client.batches == []


def test_invalid_items_do_not_block_valid_ones() -> None:
    client = StubClient()
    requests = [
        EmailRequest(recipient="a@x.com", subject="ok"),
        EmailRequest(recipient="b@x.com", subject=""),
        EmailRequest(
            recipient="c@x.com",
            subject="bad attachment",
            attachments=(Attachment(filename="a", data=b"1", content_type="nope"),),
        ),
        EmailRequest(recipient="", subject="also invalid"),
        EmailRequest(recipient="d@x.com", subject="ok too"),
    ]

    result = send_batch(requests, client)

    assert result.success_count == 2
    assert [entry.index for entry in result.responses] == [0, 4]
    # validation failures come first, then build failures
    assert [entry.index for entry in result.failures] == [1, 3, 2]
    assert "could not be built" in result.failures[2].error
    assert result.failures[0].request is requests[1]
    assert [item.correlation_id for item in client.batches[0]] == ["0", "4"]
    _assert_every_index_accounted(result, len(requests))


def test_responses_keep_client_order() -> None:
    client = StubClient(reverse=True)
    requests = [
        EmailRequest(recipient=f"user{i}@x.com", subject=f"s{i}") for i in range(3)
    ]

    result = send_batch(requests, client)

    assert [entry.index for entry in result.responses] == [2, 1, 0]
    assert result.responses[0].message_id == "msg-2"


def test_transport_failure_adds_single_batch_level_entry() -> None:
    client = FailingClient()
    requests = [
        EmailRequest(recipient="", subject="invalid"),
        EmailRequest(recipient="b@x.com", subject="valid"),
    ]

    result = send_batch(requests, client)

    assert result.success_count == 0
    assert len(result.failures) == 2
    assert result.failures[0].index == 0
    assert result.failures[1].index is None
    assert "Batch execution failed" in result.failures[1].error
    assert "connection reset" in result.failures[1].error


def test_partial_responses_before_transport_failure_are_kept() -> None:
    class PartiallyFailingClient(StubClient):
        def submit_batch(self, messages):
            self.batches.append(list(messages))
            raise BatchTransportError(
                "second chunk failed",
                [BatchItemResponse("0", message_id="m0", thread_id="t0")],
            )

    result = send_batch(
        [
            EmailRequest(recipient="a@x.com", subject="s1"),
            EmailRequest(recipient="b@x.com", subject="s2"),
        ],
        PartiallyFailingClient(),
    )

    assert result.success_count == 1
    assert result.responses[0].index == 0
    assert [entry.index for entry in result.failures] == [None]


def test_rejected_and_missing_items_become_failures() -> None:
    client = ScriptedClient(
        [
            BatchItemResponse("1", error="HTTP 400: Invalid To header"),
            BatchItemResponse("0", message_id="m0", thread_id="t0"),
            BatchItemResponse("0", message_id="dup", thread_id="dup"),
            BatchItemResponse("99", message_id="stray", thread_id="stray"),
        ]
    )
    requests = [
        EmailRequest(recipient="a@x.com", subject="s1"),
        EmailRequest(recipient="b@x.com", subject="s2"),
        EmailRequest(recipient="c@x.com", subject="s3"),
    ]

    result = send_batch(requests, client)

    assert result.success_count == 1
    assert result.responses[0].message_id == "m0"
    assert [entry.index for entry in result.failures] == [1, 2]
    assert "Invalid To header" in result.failures[0].error
    assert "no response" in result.failures[1].error
    _assert_every_index_accounted(result, len(requests))


def test_every_index_accounted_for_mixed_batch() -> None:
    requests = [
        EmailRequest(recipient=f"user{i}@x.com" if i % 3 else "", subject=f"s{i}")
        for i in range(10)
    ]

    result = send_batch(requests, StubClient())

    _assert_every_index_accounted(result, len(requests))
    assert result.success_count == 6
