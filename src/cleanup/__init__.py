"""Sender cleanup: bulk delete, archive and unsubscribe."""

from .operations import (
    BulkMutationError,
    BulkMutationExecutor,
    BulkMutationResult,
    MutationType,
    SenderMutationResult,
    UnsubscribeMethod,
    UnsubscribeResult,
)

__all__ = [
    "BulkMutationError",
    "BulkMutationExecutor",
    "BulkMutationResult",
    "MutationType",
    "SenderMutationResult",
    "UnsubscribeMethod",
    "UnsubscribeResult",
]
