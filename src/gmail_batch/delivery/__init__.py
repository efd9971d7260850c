"""Batch delivery of outgoing email."""

from .batch_sender import EmptyBatchError, send_batch

__all__ = ["EmptyBatchError", "send_batch"]
