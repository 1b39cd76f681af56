"""Repository layer for sync state and sender statistics."""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..providers.models import Message, SyncCursor, to_utc
from ..sync.aggregator import SenderKey, SenderStats
from ..sync.stores import merge_stats
from ..utils import get_logger
from .database import Database
from .schema import EmailRecord, SenderStatsRecord, SyncCursorRecord

logger = get_logger(__name__)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC for SQLite."""
    if value is None:
        return None
    return to_utc(value).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    return to_utc(value) if value is not None else None


class SyncRepository:
    """
    Repository for cursors, sender statistics and email records.

    Attributes:
        session: SQLAlchemy session

    Example:
        >>> with db.get_session() as session:
        ...     repo = SyncRepository(session)
        ...     repo.merge_sender_stats("me@example.com", result.senders.values())
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    # Cursors

    def load_cursor(self, account_id: str) -> Optional[SyncCursor]:
        record = self.session.get(SyncCursorRecord, account_id)
        if record is None:
            return None
        return SyncCursor(token=record.token, established=record.established)

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        record = self.session.get(SyncCursorRecord, account_id)
        if record is None:
            record = SyncCursorRecord(account_id=account_id)
            self.session.add(record)
        record.token = cursor.token
        record.established = cursor.established
        self.session.flush()
        logger.debug(f"Saved cursor for {account_id}")

    def clear_cursor(self, account_id: str) -> None:
        self.session.query(SyncCursorRecord).filter_by(account_id=account_id).delete()
        self.session.flush()

    # Sender statistics

    def merge_sender_stats(self, account_id: str, stats: Iterable[SenderStats]) -> int:
        """
        Upsert sender statistics.

        Counts add for message IDs not already stored, dates widen, links
        are replaced only by strictly newer links, flags are OR-ed.

        Args:
            account_id: Owning account
            stats: SenderStats to merge

        Returns:
            Number of sender rows written
        """
        written = 0
        for incoming in stats:
            record = self.session.get(
                SenderStatsRecord, (account_id, incoming.key.storage_key())
            )
            if record is None:
                record = SenderStatsRecord(
                    account_id=account_id,
                    sender_key=incoming.key.storage_key(),
                    email=incoming.email,
                    name=incoming.name,
                    message_ids=[]
                )
                self.session.add(record)

            merged = merge_stats(self._to_stats(record), incoming)
            self._apply(record, merged)
            written += 1

        self.session.flush()
        logger.info(f"Merged {written} sender rows for {account_id}")
        return written

    def get_senders(self, account_id: str, limit: Optional[int] = None) -> List[SenderStats]:
        """Senders for an account, largest first."""
        query = (
            self.session.query(SenderStatsRecord)
            .filter_by(account_id=account_id)
            .order_by(desc(SenderStatsRecord.count), SenderStatsRecord.email)
        )
        if limit:
            query = query.limit(limit)
        return [self._to_stats(record) for record in query.all()]

    def get_sender(self, account_id: str, key: SenderKey) -> Optional[SenderStats]:
        record = self.session.get(SenderStatsRecord, (account_id, key.storage_key()))
        return self._to_stats(record) if record else None

    def find_senders_by_email(self, account_id: str, email: str) -> List[SenderStats]:
        """Every sender group using ``email``, whatever its display name."""
        records = (
            self.session.query(SenderStatsRecord)
            .filter_by(account_id=account_id, email=email.lower())
            .order_by(desc(SenderStatsRecord.count))
            .all()
        )
        return [self._to_stats(record) for record in records]

    def get_sender_message_ids(self, account_id: str, key: SenderKey) -> List[str]:
        stats = self.get_sender(account_id, key)
        return list(stats.message_ids) if stats else []

    def clear_account(self, account_id: str) -> None:
        """Delete every sender row and email row for the account."""
        senders = self.session.query(SenderStatsRecord).filter_by(account_id=account_id).delete()
        emails = self.session.query(EmailRecord).filter_by(account_id=account_id).delete()
        self.session.flush()
        logger.info(f"Cleared {senders} senders and {emails} emails for {account_id}")

    # Emails

    def save_emails(self, account_id: str, messages: Iterable[Message]) -> int:
        """Insert or update email records for messages with a sender."""
        saved = 0
        for message in messages:
            if not message.has_sender:
                continue
            record = self.session.get(EmailRecord, (account_id, message.message_id))
            if record is None:
                record = EmailRecord(account_id=account_id, message_id=message.message_id)
                self.session.add(record)

            record.sender_email = message.sender_email
            record.sender_name = message.sender_name or message.sender_email
            record.subject = message.subject
            record.snippet = message.snippet
            record.received_at = _to_db(message.received_at)
            record.is_unread = message.is_unread
            record.thread_id = message.thread_id
            record.labels = list(message.labels)
            saved += 1

        self.session.flush()
        logger.debug(f"Saved {saved} email records for {account_id}")
        return saved

    def remove_messages(self, account_id: str, message_ids: Iterable[str]) -> int:
        """
        Retract messages from the stored state.

        Email rows are deleted; every sender that referenced one of the IDs
        is recalculated from its remaining messages, and deleted when none
        remain.

        Returns:
            Number of message IDs removed from sender rows
        """
        removed = set(message_ids)
        if not removed:
            return 0

        self.session.query(EmailRecord).filter(
            EmailRecord.account_id == account_id,
            EmailRecord.message_id.in_(list(removed))
        ).delete(synchronize_session=False)

        affected = 0
        records = self.session.query(SenderStatsRecord).filter_by(account_id=account_id).all()
        for record in records:
            ids = list(record.message_ids or [])
            remaining = [mid for mid in ids if mid not in removed]
            if len(remaining) == len(ids):
                continue

            affected += len(ids) - len(remaining)
            if not remaining:
                self.session.delete(record)
                continue

            self._recalculate(record, account_id, remaining)

        self.session.flush()
        logger.info(f"Removed {affected} messages from sender stats for {account_id}")
        return affected

    def _recalculate(self, record: SenderStatsRecord, account_id: str, remaining: List[str]) -> None:
        emails = (
            self.session.query(EmailRecord)
            .filter(
                EmailRecord.account_id == account_id,
                EmailRecord.message_id.in_(remaining)
            )
            .all()
        )

        record.message_ids = remaining
        record.count = len(remaining)
        if emails:
            record.unread_count = sum(1 for e in emails if e.is_unread)
            dates = [e.received_at for e in emails if e.received_at is not None]
            if dates:
                record.first_date = min(dates)
                record.last_date = max(dates)
        else:
            record.unread_count = min(record.unread_count, record.count)

    @staticmethod
    def _to_stats(record: SenderStatsRecord) -> SenderStats:
        return SenderStats(
            key=SenderKey(name=record.name, email=record.email),
            count=record.count or 0,
            unread_count=record.unread_count or 0,
            first_date=_from_db(record.first_date),
            last_date=_from_db(record.last_date),
            message_ids=list(record.message_ids or []),
            unsubscribe_link=record.unsubscribe_link,
            mailto_link=record.mailto_link,
            one_click=bool(record.one_click),
            is_newsletter=bool(record.is_newsletter),
            is_promotional=bool(record.is_promotional),
            unsubscribe_link_date=_from_db(record.unsubscribe_link_date),
            mailto_link_date=_from_db(record.mailto_link_date),
        )

    @staticmethod
    def _apply(record: SenderStatsRecord, stats: SenderStats) -> None:
        record.count = stats.count
        record.unread_count = stats.unread_count
        record.first_date = _to_db(stats.first_date)
        record.last_date = _to_db(stats.last_date)
        record.message_ids = list(stats.message_ids)
        record.unsubscribe_link = stats.unsubscribe_link
        record.unsubscribe_link_date = _to_db(stats.unsubscribe_link_date)
        record.mailto_link = stats.mailto_link
        record.mailto_link_date = _to_db(stats.mailto_link_date)
        record.one_click = stats.one_click
        record.is_newsletter = stats.is_newsletter
        record.is_promotional = stats.is_promotional


class RepositoryStore:
    """
    CursorStore / StatsStore backed by the database.

    Each call runs in its own session, committed on return.

    Example:
        >>> store = RepositoryStore(Database(config.DATABASE_PATH))
        >>> manager = DeltaSyncManager(client, store, "me@example.com")
    """

    def __init__(self, database: Database):
        self.database = database

    def load_cursor(self, account_id: str) -> Optional[SyncCursor]:
        with self.database.get_session() as session:
            return SyncRepository(session).load_cursor(account_id)

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        with self.database.get_session() as session:
            SyncRepository(session).save_cursor(account_id, cursor)

    def clear_cursor(self, account_id: str) -> None:
        with self.database.get_session() as session:
            SyncRepository(session).clear_cursor(account_id)

    def merge_sender_stats(self, account_id: str, stats: Iterable[SenderStats]) -> None:
        with self.database.get_session() as session:
            SyncRepository(session).merge_sender_stats(account_id, stats)

    def save_emails(self, account_id: str, messages: Iterable[Message]) -> None:
        with self.database.get_session() as session:
            SyncRepository(session).save_emails(account_id, messages)

    def remove_messages(self, account_id: str, message_ids: Iterable[str]) -> int:
        with self.database.get_session() as session:
            return SyncRepository(session).remove_messages(account_id, message_ids)

    def get_senders(self, account_id: str) -> List[SenderStats]:
        with self.database.get_session() as session:
            return SyncRepository(session).get_senders(account_id)

    def clear_account(self, account_id: str) -> None:
        with self.database.get_session() as session:
            SyncRepository(session).clear_account(account_id)
