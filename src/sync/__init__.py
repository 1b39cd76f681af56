"""Batching, delta sync, unsubscribe extraction and sender aggregation."""

from .aggregator import (
    AggregationResult,
    SenderAggregator,
    SenderKey,
    SenderStats,
    aggregate_by_sender,
    sorted_by_count,
)
from .batch import BatchFetcher, BatchJob, BatchResult, Outcome, gather_settled
from .delta import DeltaResult, DeltaSyncManager, SyncState, SyncStateError
from .stores import CursorStore, InMemoryStore, StatsStore
from .unsubscribe import UnsubscribeInfo, extract_unsubscribe, parse_mailto

__all__ = [
    "AggregationResult",
    "BatchFetcher",
    "BatchJob",
    "BatchResult",
    "CursorStore",
    "DeltaResult",
    "DeltaSyncManager",
    "InMemoryStore",
    "Outcome",
    "SenderAggregator",
    "SenderKey",
    "SenderStats",
    "StatsStore",
    "SyncState",
    "SyncStateError",
    "UnsubscribeInfo",
    "aggregate_by_sender",
    "extract_unsubscribe",
    "gather_settled",
    "parse_mailto",
    "sorted_by_count",
]
