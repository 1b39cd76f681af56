"""Shared test fixtures for all test modules."""

from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy.orm import Session

from src.database import Database, SyncRepository
from src.providers.base import ProviderClient, ProviderLimits, ProviderType
from src.providers.errors import AuthenticationError, CursorExpiredError, PermanentError
from src.providers.models import DeltaPage, Message, MessagePage, SyncCursor

# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def temp_db(tmp_path: Path) -> Generator[Database, None, None]:
    """
    Create a temporary test database with schema initialized.

    Usage:
        def test_something(temp_db):
            with temp_db.get_session() as session:
                # Use session
    """
    db = Database(str(tmp_path / "test.db"))
    db.create_tables()

    yield db

    db.engine.dispose()


@pytest.fixture
def temp_db_session(temp_db: Database) -> Generator[Session, None, None]:
    """Database session committed when the test finishes."""
    with temp_db.get_session() as session:
        yield session


@pytest.fixture
def sync_repo(temp_db_session: Session) -> SyncRepository:
    """SyncRepository bound to a temporary database session."""
    return SyncRepository(temp_db_session)


# ============================================================================
# Message Fixtures
# ============================================================================

def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def make_message():
    """
    Factory for provider-neutral messages.

    Usage:
        def test_something(make_message):
            message = make_message('m1', email='news@example.com', unsubscribe='<https://x.test/u>')
    """
    def _make(
        message_id: str,
        email: str = 'news@example.com',
        name: str = 'News',
        received_at: Optional[datetime] = None,
        unsubscribe: Optional[str] = None,
        unsubscribe_post: Optional[str] = None,
        is_unread: bool = False,
        labels: Optional[List[str]] = None,
        subject: str = 'Weekly update'
    ) -> Message:
        headers = {}
        if unsubscribe is not None:
            headers['list-unsubscribe'] = unsubscribe
        if unsubscribe_post is not None:
            headers['list-unsubscribe-post'] = unsubscribe_post
        return Message(
            message_id=message_id,
            thread_id=f"t-{message_id}",
            sender_email=email,
            sender_name=name or email,
            subject=subject,
            received_at=received_at or utc(2024, 3, 1),
            is_unread=is_unread,
            labels=labels or ['INBOX'],
            headers=headers
        )

    return _make


@pytest.fixture
def sample_gmail_message():
    """Gmail API message resource in metadata format."""
    return {
        'id': 'msg123',
        'threadId': 'thread123',
        'labelIds': ['INBOX', 'UNREAD', 'CATEGORY_PROMOTIONS'],
        'snippet': 'This week in deals...',
        'internalDate': '1717200000000',
        'payload': {
            'headers': [
                {'name': 'From', 'value': 'Shop Deals <Deals@Shop.test>'},
                {'name': 'Subject', 'value': 'Weekly Deals'},
                {'name': 'Date', 'value': 'Sat, 1 Jun 2024 00:00:00 +0000'},
                {'name': 'List-Unsubscribe', 'value': '<mailto:u@shop.test>, <https://shop.test/unsub?u=1>'},
                {'name': 'List-Unsubscribe-Post', 'value': 'List-Unsubscribe=One-Click'},
            ]
        }
    }


@pytest.fixture
def sample_graph_message():
    """Microsoft Graph message resource with internet headers."""
    return {
        'id': 'AAMk-1',
        'conversationId': 'conv-1',
        'subject': 'Your receipt',
        'bodyPreview': 'Thanks for your order',
        'receivedDateTime': '2024-06-01T12:30:00Z',
        'isRead': False,
        'from': {'emailAddress': {'name': 'Store', 'address': 'Receipts@Store.test'}},
        'parentFolderId': 'inbox-folder',
        'internetMessageHeaders': [
            {'name': 'List-Unsubscribe', 'value': '<https://store.test/unsub>'},
        ],
    }


# ============================================================================
# Provider Fixtures
# ============================================================================

class FakeProviderClient(ProviderClient):
    """In-memory provider with scripted failures, for engine tests."""

    def __init__(
        self,
        messages: Optional[List[Message]] = None,
        batch_size: int = 20,
        max_concurrent: int = 4,
        batch_delay: float = 0.5,
        supports_batch_endpoint: bool = False,
        page_size: int = 100
    ):
        super().__init__(requester=None)
        self.limits = ProviderLimits(
            page_size=page_size,
            batch_size=batch_size,
            max_concurrent=max_concurrent,
            batch_delay=batch_delay,
            supports_batch_endpoint=supports_batch_endpoint
        )
        self.messages: Dict[str, Message] = {m.message_id: m for m in messages or []}
        self.fail_ids: set = set()
        self.systemic_ids: set = set()
        self.trashed: List[str] = []
        self.archived: List[str] = []
        self.sent: List[tuple] = []
        self.batch_calls: List[List[str]] = []
        self.delta_pages: Dict[str, DeltaPage] = {}
        self.expired_tokens: set = set()
        self.baseline_token = 'baseline-1'
        self.baseline_calls = 0

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GMAIL

    def _check(self, message_id: str) -> None:
        if message_id in self.systemic_ids:
            raise AuthenticationError("token rejected", status=401)
        if message_id in self.fail_ids:
            raise PermanentError(f"failed {message_id}", status=500)

    async def list_inbox(self, page_size=None, next_page=None, query=None) -> MessagePage:
        ids = list(self.messages)
        start = int(next_page or 0)
        size = page_size or self.limits.page_size
        end = start + size
        stubs = [Message.stub(mid) for mid in ids[start:end]]
        return MessagePage(messages=stubs, next_page=str(end) if end < len(ids) else None)

    async def get_message_with_headers(self, message_id: str) -> Message:
        self._check(message_id)
        if message_id not in self.messages:
            raise PermanentError(f"not found {message_id}", status=404)
        return self.messages[message_id]

    async def batch_get_messages(self, message_ids: List[str]) -> List[Message]:
        self.batch_calls.append(list(message_ids))
        results = []
        for message_id in message_ids:
            if message_id in self.systemic_ids:
                raise AuthenticationError("token rejected", status=401)
            if message_id in self.fail_ids or message_id not in self.messages:
                continue
            results.append(self.messages[message_id])
        return results

    async def move_to_trash(self, message_id: str) -> None:
        self._check(message_id)
        self.trashed.append(message_id)

    async def move_to_archive(self, message_id: str) -> None:
        self._check(message_id)
        self.archived.append(message_id)

    async def send_mail(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    async def get_delta(self, cursor: SyncCursor) -> DeltaPage:
        if cursor.token in self.expired_tokens:
            raise CursorExpiredError("expired", status=404)
        return self.delta_pages.get(
            cursor.token, DeltaPage(messages=[], removed_ids=[], next_cursor=cursor)
        )

    async def establish_baseline(self) -> SyncCursor:
        self.baseline_calls += 1
        return SyncCursor(token=self.baseline_token)


@pytest.fixture
def fake_client_factory():
    """
    Factory for FakeProviderClient.

    Usage:
        def test_something(fake_client_factory, make_message):
            client = fake_client_factory([make_message('m1')], batch_size=10)
    """
    return FakeProviderClient


@pytest.fixture
def sleeps():
    """Recorded sleep durations; pair with ``record_sleep``."""
    return []


@pytest.fixture
def record_sleep(sleeps):
    """Async sleep replacement that only records the requested delay."""
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep
