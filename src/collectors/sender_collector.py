"""Full and incremental sender synchronization for one account."""

from dataclasses import dataclass
from typing import List, Optional

from ..providers.base import ProviderClient
from ..providers.errors import CursorExpiredError
from ..providers.models import Message
from ..sync.aggregator import aggregate_by_sender
from ..sync.batch import BatchFetcher
from ..sync.delta import DeltaSyncManager, SyncState, SyncStateError
from ..sync.stores import CursorStore, StatsStore
from ..utils import get_logger


logger = get_logger(__name__)


@dataclass
class SyncSummary:
    """
    Outcome of one sync run.

    Attributes:
        mode: "full" or "incremental"
        added: Messages aggregated into sender stats
        removed: Message IDs retracted from the store
        failed: Messages that could not be fetched
        senders: Sender groups touched
        skipped: Messages without a usable sender
    """
    mode: str
    added: int = 0
    removed: int = 0
    failed: int = 0
    senders: int = 0
    skipped: int = 0


class SenderCollector:
    """
    Collect sender statistics for one account into a store.

    A full sync pages through the inbox, fetches headers in paced chunks and
    merges the aggregated statistics page by page over an emptied store, so
    an interrupted run leaves valid partial data. Incremental syncs apply the
    provider's delta and fall back to a full sync when the cursor is missing
    or expired.

    Attributes:
        client: Provider client
        store: Object implementing CursorStore and StatsStore
        account_id: Account being synced

    Example:
        >>> collector = SenderCollector(client, RepositoryStore(db), "me@example.com")
        >>> summary = await collector.sync()
        >>> print(f"{summary.mode}: {summary.added} messages, {summary.senders} senders")
    """

    def __init__(
        self,
        client: ProviderClient,
        store,
        account_id: str,
        fetcher: Optional[BatchFetcher] = None,
        exclude_own_mail: bool = True
    ):
        """
        Initialize the collector.

        Args:
            client: Provider client
            store: CursorStore + StatsStore implementation
            account_id: Account identifier (usually the mailbox address)
            fetcher: BatchFetcher, defaults to one built from the client
            exclude_own_mail: Skip messages sent from account_id itself
        """
        self.client = client
        self.store: CursorStore | StatsStore = store
        self.account_id = account_id
        self.fetcher = fetcher or BatchFetcher(client)
        self.manager = DeltaSyncManager(client, store, account_id)
        self.exclude_email = account_id if exclude_own_mail and '@' in account_id else None

    async def sync(self, max_messages: Optional[int] = None) -> SyncSummary:
        """Run an incremental sync when a cursor is established, else a full one."""
        if self.manager.state is SyncState.ESTABLISHED:
            return await self.incremental_sync(max_messages=max_messages)
        return await self.full_sync(max_messages=max_messages)

    async def full_sync(
        self,
        max_messages: Optional[int] = None,
        query: Optional[str] = None
    ) -> SyncSummary:
        """
        Pull the whole inbox and rebuild sender statistics.

        The baseline cursor is taken before listing starts, so changes that
        land during the pull are picked up by the next incremental sync.
        Stored senders and emails for the account are dropped first; the
        rebuilt statistics reflect only what the mailbox holds now.

        Args:
            max_messages: Stop after this many messages (None for all)
            query: Provider filter passed to list_inbox

        Returns:
            SyncSummary with mode "full"
        """
        summary = SyncSummary(mode='full')
        senders = set()

        self.manager.begin_full_sync()
        baseline = await self.client.establish_baseline()
        self.store.clear_account(self.account_id)

        logger.info(
            f"Full sync for {self.account_id} "
            f"(max messages: {max_messages or 'unlimited'})"
        )

        next_page = None
        seen = 0
        while True:
            page = await self.client.list_inbox(next_page=next_page, query=query)
            ids = page.ids
            if max_messages is not None:
                ids = ids[:max(max_messages - seen, 0)]
            if not ids:
                break

            seen += len(ids)
            messages, failed = await self._enrich(ids)
            self._store_page(messages, summary, senders)
            summary.failed += failed

            logger.info(f"Full sync progress: {seen} messages listed, {summary.added} aggregated")

            next_page = page.next_page
            if not next_page or (max_messages is not None and seen >= max_messages):
                break

        await self.manager.complete_full_sync(baseline)

        summary.senders = len(senders)
        logger.info(
            f"Full sync complete: {summary.added} messages from {summary.senders} senders, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    async def incremental_sync(self, max_messages: Optional[int] = None) -> SyncSummary:
        """
        Apply changes since the stored cursor.

        Falls back to a full sync when no cursor is established or the
        provider has expired it.

        Returns:
            SyncSummary with mode "incremental" (or "full" after a fallback)
        """
        try:
            delta = await self.manager.sync()
        except (SyncStateError, CursorExpiredError) as e:
            logger.warning(f"Incremental sync unavailable ({e}); running full sync")
            return await self.full_sync(max_messages=max_messages)

        summary = SyncSummary(mode='incremental')
        senders = set()

        if delta.removed_ids:
            self.store.remove_messages(self.account_id, delta.removed_ids)
            summary.removed = len(delta.removed_ids)

        if delta.messages:
            messages, failed = await self._enrich([m.message_id for m in delta.messages])
            self._store_page(messages, summary, senders)
            summary.failed = failed

        summary.senders = len(senders)
        logger.info(
            f"Incremental sync complete: {summary.added} added, {summary.removed} removed, "
            f"{summary.failed} failed"
        )
        return summary

    async def _enrich(self, ids: List[str]):
        """Fetch headers for ``ids``; returns (messages in id order, failure count)."""
        result = await self.fetcher.fetch_messages(ids)
        messages = [result.succeeded[mid] for mid in ids if mid in result.succeeded]
        return messages, result.failure_count

    def _store_page(self, messages: List[Message], summary: SyncSummary, senders: set) -> None:
        aggregation = aggregate_by_sender(messages, exclude_email=self.exclude_email)

        self.store.save_emails(self.account_id, messages)
        self.store.merge_sender_stats(self.account_id, aggregation.senders.values())

        summary.added += sum(s.count for s in aggregation.senders.values())
        summary.skipped += aggregation.skipped
        senders.update(aggregation.senders)
