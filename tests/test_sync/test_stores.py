"""Tests for stats merging and the in-memory store."""

from datetime import datetime, timezone

from src.providers.models import SyncCursor
from src.sync.aggregator import aggregate_by_sender
from src.sync.stores import InMemoryStore, merge_stats

ACCOUNT = 'me@example.com'


def utc(month, day):
    return datetime(2024, month, day, tzinfo=timezone.utc)


class TestMergeStats:
    """Test merging stats from successive syncs."""

    def test_merge_adds_new_messages(self, make_message):
        existing = aggregate_by_sender([
            make_message('m1', received_at=utc(2, 1), unsubscribe='<https://x.test/old>'),
        ]).sorted_by_count()[0]
        incoming = aggregate_by_sender([
            make_message('m2', received_at=utc(5, 1), is_unread=True, unsubscribe='<https://x.test/new>'),
        ]).sorted_by_count()[0]

        merged = merge_stats(existing, incoming)

        assert merged.count == 2
        assert merged.unread_count == 1
        assert merged.first_date == utc(2, 1)
        assert merged.last_date == utc(5, 1)
        assert merged.unsubscribe_link == 'https://x.test/new'
        assert merged.message_ids == ['m1', 'm2']

    def test_older_link_does_not_replace(self, make_message):
        existing = aggregate_by_sender([
            make_message('m2', received_at=utc(5, 1), unsubscribe='<https://x.test/new>'),
        ]).sorted_by_count()[0]
        incoming = aggregate_by_sender([
            make_message('m1', received_at=utc(2, 1), unsubscribe='<https://x.test/old>'),
        ]).sorted_by_count()[0]

        assert merge_stats(existing, incoming).unsubscribe_link == 'https://x.test/new'

    def test_remerge_does_not_inflate(self, make_message):
        """Test merging already-known ids leaves counts unchanged."""
        existing = aggregate_by_sender([make_message('m1', is_unread=True)]).sorted_by_count()[0]
        again = aggregate_by_sender([make_message('m1', is_unread=True)]).sorted_by_count()[0]

        merged = merge_stats(existing, again)

        assert merged.count == 1
        assert merged.unread_count == 1

    def test_known_unread_beside_new_read(self, make_message):
        """Test only newly merged unread messages raise the unread count."""
        existing = aggregate_by_sender([make_message('m1', is_unread=True)]).sorted_by_count()[0]
        incoming = aggregate_by_sender([
            make_message('m1', is_unread=True),
            make_message('m2'),
        ]).sorted_by_count()[0]

        merged = merge_stats(existing, incoming)

        assert merged.count == 2
        assert merged.unread_count == 1
        assert merged.unread_ids == ['m1']

    def test_new_unread_beside_known_read(self, make_message):
        existing = aggregate_by_sender([make_message('m1')]).sorted_by_count()[0]
        incoming = aggregate_by_sender([
            make_message('m1'),
            make_message('m2', is_unread=True),
        ]).sorted_by_count()[0]

        merged = merge_stats(existing, incoming)

        assert merged.unread_count == 1
        assert merged.unread_ids == ['m2']


class TestInMemoryStore:
    """Test the dict-backed store."""

    def test_cursor_roundtrip(self):
        store = InMemoryStore()
        store.save_cursor(ACCOUNT, SyncCursor('c1'))

        assert store.load_cursor(ACCOUNT) == SyncCursor('c1')
        store.clear_cursor(ACCOUNT)
        assert store.load_cursor(ACCOUNT) is None

    def test_remove_messages_recomputes(self, make_message):
        """Test removal shrinks a sender and deletes emptied senders."""
        messages = [
            make_message('a1', email='a@x.test', received_at=utc(1, 1), is_unread=True),
            make_message('a2', email='a@x.test', received_at=utc(3, 1)),
            make_message('b1', email='b@x.test'),
        ]
        store = InMemoryStore()
        store.save_emails(ACCOUNT, messages)
        store.merge_sender_stats(ACCOUNT, aggregate_by_sender(messages).senders.values())

        affected = store.remove_messages(ACCOUNT, ['a1', 'b1', 'unknown'])

        senders = store.get_senders(ACCOUNT)
        assert affected == 2
        assert [s.email for s in senders] == ['a@x.test']
        assert senders[0].count == 1
        assert senders[0].unread_count == 0
        assert senders[0].first_date == utc(3, 1)
        assert 'a1' not in store.emails[ACCOUNT]

    def test_clear_account(self, make_message):
        """Test clearing one account leaves other accounts alone."""
        store = InMemoryStore()
        for account in (ACCOUNT, 'other@example.com'):
            messages = [make_message('m1')]
            store.save_emails(account, messages)
            store.merge_sender_stats(account, aggregate_by_sender(messages).senders.values())
        store.save_cursor(ACCOUNT, SyncCursor('c1'))

        store.clear_account(ACCOUNT)

        assert store.get_senders(ACCOUNT) == []
        assert ACCOUNT not in store.emails
        assert [s.count for s in store.get_senders('other@example.com')] == [1]
        assert store.load_cursor(ACCOUNT) == SyncCursor('c1')
