"""Transport adapters for the Gmail API."""

from .gmail_client import BatchTransportError, GmailBatchClient
from .mime import MessageBuildError, build_message, decode_message

__all__ = [
    "BatchTransportError",
    "GmailBatchClient",
    "MessageBuildError",
    "build_message",
    "decode_message",
]
