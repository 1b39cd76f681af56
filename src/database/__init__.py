"""Database models and access layer."""

from .database import Database
from .repository import RepositoryStore, SyncRepository
from .schema import EmailRecord, SenderStatsRecord, SyncCursorRecord

__all__ = [
    "Database",
    "EmailRecord",
    "RepositoryStore",
    "SenderStatsRecord",
    "SyncCursorRecord",
    "SyncRepository",
]
