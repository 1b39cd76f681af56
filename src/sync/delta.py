"""Cursor-based incremental sync state machine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..providers.base import ProviderClient
from ..providers.errors import CursorExpiredError
from ..providers.models import Message, SyncCursor
from ..utils import get_logger
from .stores import CursorStore

logger = get_logger(__name__)


class SyncState(str, Enum):
    """Lifecycle of an account's sync cursor."""
    UNINITIALIZED = "uninitialized"
    FULL_SYNC_IN_PROGRESS = "full_sync_in_progress"
    ESTABLISHED = "established"


class SyncStateError(RuntimeError):
    """Operation not allowed in the current SyncState."""


@dataclass
class DeltaResult:
    """
    Net changes from one incremental sync.

    Attributes:
        messages: Added or changed messages, unique by ID
        removed_ids: IDs the provider reported as removed
        cursor: Cursor stored after the sync
    """

    messages: List[Message] = field(default_factory=list)
    removed_ids: List[str] = field(default_factory=list)
    cursor: Optional[SyncCursor] = None

    @property
    def is_empty(self) -> bool:
        return not self.messages and not self.removed_ids


class DeltaSyncManager:
    """
    Drive one account from no cursor to incremental delta sync.

    UNINITIALIZED -> FULL_SYNC_IN_PROGRESS -> ESTABLISHED. Once established,
    every ``sync()`` follows the provider's continuation pages and replaces
    the stored cursor with the one from the terminal page.

    Attributes:
        client: Provider client
        store: CursorStore holding the account's cursor
        account_id: Account the cursor belongs to

    Example:
        >>> manager = DeltaSyncManager(client, store, "user@example.com")
        >>> if manager.state is SyncState.UNINITIALIZED:
        ...     await manager.establish_baseline()
        >>> changes = await manager.sync()
    """

    def __init__(self, client: ProviderClient, store: CursorStore, account_id: str):
        self.client = client
        self.store = store
        self.account_id = account_id
        self._full_sync_running = False

    @property
    def cursor(self) -> Optional[SyncCursor]:
        return self.store.load_cursor(self.account_id)

    @property
    def state(self) -> SyncState:
        if self._full_sync_running:
            return SyncState.FULL_SYNC_IN_PROGRESS
        cursor = self.cursor
        if cursor is not None and cursor.established and cursor.token:
            return SyncState.ESTABLISHED
        return SyncState.UNINITIALIZED

    def begin_full_sync(self) -> None:
        """Mark a full pull as running. The old cursor, if any, is dropped."""
        self.store.clear_cursor(self.account_id)
        self._full_sync_running = True
        logger.info(f"Full sync started for {self.account_id}")

    async def complete_full_sync(self, cursor: Optional[SyncCursor] = None) -> SyncCursor:
        """
        Finish a full pull and store its cursor.

        Args:
            cursor: Cursor captured during the pull; when None a baseline is
                requested from the provider

        Raises:
            SyncStateError: No full sync is running
        """
        if not self._full_sync_running:
            raise SyncStateError("complete_full_sync() called without begin_full_sync()")

        try:
            if cursor is None:
                cursor = await self.client.establish_baseline()
            self.store.save_cursor(self.account_id, cursor)
        finally:
            self._full_sync_running = False

        logger.info(f"Full sync completed for {self.account_id}, cursor established")
        return cursor

    async def establish_baseline(self) -> SyncCursor:
        """
        Store a cursor for "now" without pulling any content.

        Moves UNINITIALIZED straight to ESTABLISHED.
        """
        cursor = await self.client.establish_baseline()
        self.store.save_cursor(self.account_id, cursor)
        logger.info(f"Baseline cursor established for {self.account_id}")
        return cursor

    async def sync(self) -> DeltaResult:
        """
        Fetch changes since the stored cursor.

        A message ID reported removed is not also returned as added. IDs are
        de-duplicated keeping first-seen order.

        Returns:
            DeltaResult with the replacement cursor

        Raises:
            SyncStateError: No established cursor
            CursorExpiredError: Provider rejected the cursor; it has been
                cleared and a full sync is needed
        """
        cursor = self.cursor
        if self.state is not SyncState.ESTABLISHED or cursor is None:
            raise SyncStateError(
                f"Incremental sync needs an established cursor (state={self.state.value})"
            )

        try:
            page = await self.client.get_delta(cursor)
        except CursorExpiredError:
            logger.warning(f"Sync cursor for {self.account_id} expired; full sync required")
            self.store.clear_cursor(self.account_id)
            raise

        removed_ids = list(dict.fromkeys(page.removed_ids))
        removed = set(removed_ids)

        messages: List[Message] = []
        seen = set()
        for message in page.messages:
            if message.message_id in removed or message.message_id in seen:
                continue
            seen.add(message.message_id)
            messages.append(message)

        next_cursor = page.next_cursor or cursor
        if next_cursor != cursor:
            self.store.save_cursor(self.account_id, next_cursor)

        logger.info(
            f"Delta sync for {self.account_id}: {len(messages)} added, "
            f"{len(removed_ids)} removed"
        )
        return DeltaResult(messages=messages, removed_ids=removed_ids, cursor=next_cursor)
