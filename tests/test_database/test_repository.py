"""Tests for the sync repository and database-backed store."""

from datetime import datetime, timezone

from src.database import Database, RepositoryStore
from src.database.schema import EmailRecord
from src.providers.models import Message, SyncCursor
from src.sync.aggregator import SenderKey, aggregate_by_sender

ACCOUNT = 'me@example.com'


def utc(month, day):
    return datetime(2024, month, day, tzinfo=timezone.utc)


class TestCursorPersistence:
    """Test cursor load/save/clear."""

    def test_missing_cursor(self, sync_repo):
        assert sync_repo.load_cursor(ACCOUNT) is None

    def test_save_and_replace(self, sync_repo):
        sync_repo.save_cursor(ACCOUNT, SyncCursor('h-1'))
        sync_repo.save_cursor(ACCOUNT, SyncCursor('h-2'))

        assert sync_repo.load_cursor(ACCOUNT) == SyncCursor('h-2')

    def test_clear(self, sync_repo):
        sync_repo.save_cursor(ACCOUNT, SyncCursor('h-1', established=False))
        sync_repo.clear_cursor(ACCOUNT)

        assert sync_repo.load_cursor(ACCOUNT) is None


class TestSenderStatsPersistence:
    """Test merging and reading sender rows."""

    def test_merge_roundtrip(self, sync_repo, make_message):
        """Test stats survive storage with aware UTC dates."""
        result = aggregate_by_sender([
            make_message('m1', received_at=utc(1, 1), unsubscribe='<https://x.test/u>',
                         unsubscribe_post='List-Unsubscribe=One-Click', is_unread=True),
            make_message('m2', received_at=utc(4, 1)),
        ])

        written = sync_repo.merge_sender_stats(ACCOUNT, result.senders.values())
        stored = sync_repo.get_senders(ACCOUNT)[0]

        assert written == 1
        assert stored.count == 2
        assert stored.unread_count == 1
        assert stored.first_date == utc(1, 1)
        assert stored.last_date == utc(4, 1)
        assert stored.unsubscribe_link == 'https://x.test/u'
        assert stored.one_click is True
        assert stored.is_newsletter is True
        assert stored.message_ids == ['m1', 'm2']

    def test_merge_accumulates_across_pages(self, sync_repo, make_message):
        """Test a second page adds to the same sender and updates the link."""
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('m1', received_at=utc(1, 1), unsubscribe='<https://x.test/old>'),
        ]).senders.values())
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('m2', received_at=utc(6, 1), unsubscribe='<https://x.test/new>'),
            make_message('m1', received_at=utc(1, 1), unsubscribe='<https://x.test/old>'),
        ]).senders.values())

        stored = sync_repo.get_sender(ACCOUNT, SenderKey(name='News', email='news@example.com'))

        assert stored.count == 2
        assert stored.unsubscribe_link == 'https://x.test/new'
        assert stored.last_date == utc(6, 1)

    def test_merge_counts_only_new_unread(self, sync_repo, make_message):
        """Test a known unread message beside a new read one adds no unread."""
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('m1', is_unread=True),
        ]).senders.values())
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('m1', is_unread=True),
            make_message('m2'),
        ]).senders.values())

        stored = sync_repo.get_senders(ACCOUNT)[0]

        assert stored.count == 2
        assert stored.unread_count == 1

    def test_lookup_by_email(self, sync_repo, make_message):
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('m1', name='Alerts'),
            make_message('m2', name='Billing'),
            make_message('m3', name='Billing'),
        ]).senders.values())

        found = sync_repo.find_senders_by_email(ACCOUNT, 'NEWS@example.com')

        assert [s.name for s in found] == ['Billing', 'Alerts']
        assert sync_repo.get_sender_message_ids(ACCOUNT, found[0].key) == ['m2', 'm3']

    def test_get_senders_limit(self, sync_repo, make_message):
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender([
            make_message('a1', email='a@x.test'),
            make_message('b1', email='b@x.test'),
            make_message('b2', email='b@x.test'),
        ]).senders.values())

        assert [s.email for s in sync_repo.get_senders(ACCOUNT, limit=1)] == ['b@x.test']


class TestEmailsAndRemoval:
    """Test email rows and message retraction."""

    def test_save_emails_skips_stubs(self, sync_repo, make_message):
        saved = sync_repo.save_emails(ACCOUNT, [make_message('m1'), Message.stub('m2')])

        assert saved == 1

    def test_remove_messages_recalculates(self, sync_repo, make_message):
        """Test removal shrinks senders and deletes emptied ones."""
        messages = [
            make_message('a1', email='a@x.test', received_at=utc(1, 1), is_unread=True),
            make_message('a2', email='a@x.test', received_at=utc(3, 1)),
            make_message('b1', email='b@x.test'),
        ]
        sync_repo.save_emails(ACCOUNT, messages)
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender(messages).senders.values())

        affected = sync_repo.remove_messages(ACCOUNT, ['a1', 'b1'])
        senders = sync_repo.get_senders(ACCOUNT)

        assert affected == 2
        assert [(s.email, s.count, s.unread_count) for s in senders] == [('a@x.test', 1, 0)]
        assert senders[0].first_date == utc(3, 1)

    def test_remove_nothing(self, sync_repo):
        assert sync_repo.remove_messages(ACCOUNT, []) == 0

    def test_clear_account(self, sync_repo, make_message):
        """Test clearing drops senders and emails but keeps the cursor."""
        messages = [make_message('m1'), make_message('m2', email='b@x.test')]
        sync_repo.save_cursor(ACCOUNT, SyncCursor('c1'))
        sync_repo.save_emails(ACCOUNT, messages)
        sync_repo.merge_sender_stats(ACCOUNT, aggregate_by_sender(messages).senders.values())
        sync_repo.save_emails('other@example.com', messages[:1])

        sync_repo.clear_account(ACCOUNT)

        assert sync_repo.get_senders(ACCOUNT) == []
        assert sync_repo.load_cursor(ACCOUNT) == SyncCursor('c1')
        emails = sync_repo.session.query(EmailRecord)
        assert emails.filter_by(account_id=ACCOUNT).count() == 0
        assert emails.filter_by(account_id='other@example.com').count() == 1


class TestRepositoryStore:
    """Test the session-per-call store."""

    def test_store_roundtrip(self, temp_db: Database, make_message):
        store = RepositoryStore(temp_db)
        messages = [make_message('m1'), make_message('m2')]

        store.save_cursor(ACCOUNT, SyncCursor('c1'))
        store.save_emails(ACCOUNT, messages)
        store.merge_sender_stats(ACCOUNT, aggregate_by_sender(messages).senders.values())
        removed = store.remove_messages(ACCOUNT, ['m2'])

        assert store.load_cursor(ACCOUNT) == SyncCursor('c1')
        assert removed == 1
        assert store.get_senders(ACCOUNT)[0].message_ids == ['m1']
        assert temp_db.get_stats() == {'sync_cursors': 1, 'sender_stats': 1, 'emails': 1}
