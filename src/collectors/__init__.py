"""Sender synchronization drivers."""

from .sender_collector import SenderCollector, SyncSummary

__all__ = ["SenderCollector", "SyncSummary"]
