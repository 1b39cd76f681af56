"""Storage interfaces consumed by the sync engine, plus an in-memory backend."""

from typing import Dict, Iterable, List, Optional, Protocol

from ..providers.models import Message, SyncCursor
from .aggregator import SenderKey, SenderStats, is_newer_link, sorted_by_count


class CursorStore(Protocol):
    """Persists one sync cursor per account."""

    def load_cursor(self, account_id: str) -> Optional[SyncCursor]:
        ...

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        ...

    def clear_cursor(self, account_id: str) -> None:
        ...


class StatsStore(Protocol):
    """Persists sender statistics and the messages behind them."""

    def merge_sender_stats(self, account_id: str, stats: Iterable[SenderStats]) -> None:
        ...

    def save_emails(self, account_id: str, messages: Iterable[Message]) -> None:
        ...

    def remove_messages(self, account_id: str, message_ids: Iterable[str]) -> int:
        ...

    def get_senders(self, account_id: str) -> List[SenderStats]:
        ...

    def clear_account(self, account_id: str) -> None:
        """Forget every sender and email stored for the account."""
        ...


def merge_stats(existing: SenderStats, incoming: SenderStats) -> SenderStats:
    """
    Merge ``incoming`` into ``existing`` in place.

    Counts add, dates widen, message IDs union in order, links are replaced
    only by a strictly newer link, and flags stay set once set.
    """
    known = set(existing.message_ids)
    new_ids = [mid for mid in incoming.message_ids if mid not in known]
    incoming_unread = set(incoming.unread_ids)
    new_unread = [mid for mid in new_ids if mid in incoming_unread]

    # Re-merging already stored messages must not inflate the counts
    existing.count += len(new_ids)
    existing.unread_count += len(new_unread)
    existing.message_ids.extend(new_ids)
    existing.unread_ids.extend(new_unread)

    if incoming.first_date and (existing.first_date is None or incoming.first_date < existing.first_date):
        existing.first_date = incoming.first_date
    if incoming.last_date and (existing.last_date is None or incoming.last_date > existing.last_date):
        existing.last_date = incoming.last_date

    if incoming.unsubscribe_link and is_newer_link(
        incoming.unsubscribe_link_date, existing.unsubscribe_link_date, existing.unsubscribe_link
    ):
        existing.unsubscribe_link = incoming.unsubscribe_link
        existing.unsubscribe_link_date = incoming.unsubscribe_link_date
        existing.one_click = incoming.one_click

    if incoming.mailto_link and is_newer_link(
        incoming.mailto_link_date, existing.mailto_link_date, existing.mailto_link
    ):
        existing.mailto_link = incoming.mailto_link
        existing.mailto_link_date = incoming.mailto_link_date

    existing.is_newsletter = existing.is_newsletter or incoming.is_newsletter
    existing.is_promotional = existing.is_promotional or incoming.is_promotional
    return existing


class InMemoryStore:
    """
    Dict-backed CursorStore and StatsStore.

    Used by dry runs and tests. Removing messages drops their IDs from the
    owning sender and deletes senders left with no messages; counts and
    dates are recomputed from the remaining stored emails.
    """

    def __init__(self):
        self.cursors: Dict[str, SyncCursor] = {}
        self.senders: Dict[str, Dict[SenderKey, SenderStats]] = {}
        self.emails: Dict[str, Dict[str, Message]] = {}

    def load_cursor(self, account_id: str) -> Optional[SyncCursor]:
        return self.cursors.get(account_id)

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        self.cursors[account_id] = cursor

    def clear_cursor(self, account_id: str) -> None:
        self.cursors.pop(account_id, None)

    def merge_sender_stats(self, account_id: str, stats: Iterable[SenderStats]) -> None:
        senders = self.senders.setdefault(account_id, {})
        for incoming in stats:
            existing = senders.get(incoming.key)
            if existing is None:
                existing = senders[incoming.key] = SenderStats(key=incoming.key)
            merge_stats(existing, incoming)

    def save_emails(self, account_id: str, messages: Iterable[Message]) -> None:
        emails = self.emails.setdefault(account_id, {})
        for message in messages:
            emails[message.message_id] = message

    def remove_messages(self, account_id: str, message_ids: Iterable[str]) -> int:
        removed = set(message_ids)
        emails = self.emails.get(account_id, {})
        for message_id in removed:
            emails.pop(message_id, None)

        senders = self.senders.get(account_id, {})
        affected = 0
        for key in list(senders):
            stats = senders[key]
            remaining = [mid for mid in stats.message_ids if mid not in removed]
            if len(remaining) == len(stats.message_ids):
                continue

            affected += len(stats.message_ids) - len(remaining)
            if not remaining:
                del senders[key]
                continue

            stats.message_ids = remaining
            stats.unread_ids = [mid for mid in stats.unread_ids if mid not in removed]
            stats.count = len(remaining)
            stored = [emails[mid] for mid in remaining if mid in emails]
            if stored:
                stats.unread_count = sum(1 for m in stored if m.is_unread)
                dates = [m.received_at for m in stored if m.received_at is not None]
                if dates:
                    stats.first_date = min(dates)
                    stats.last_date = max(dates)
            else:
                stats.unread_count = min(stats.unread_count, stats.count)
        return affected

    def get_senders(self, account_id: str) -> List[SenderStats]:
        return sorted_by_count(self.senders.get(account_id, {}).values())

    def clear_account(self, account_id: str) -> None:
        self.senders.pop(account_id, None)
        self.emails.pop(account_id, None)
