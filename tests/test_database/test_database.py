"""Tests for database connection and management."""

import os

from sqlalchemy import text

from src.database.database import Database
from src.database.schema import SyncCursorRecord


class TestDatabase:
    """Test Database class."""

    def test_initialization(self, tmp_path):
        """Test database initializes and creates its directory."""
        path = tmp_path / "nested" / "senders.db"
        db = Database(str(path))

        assert db.db_path == path
        assert path.parent.exists()
        assert db.SessionLocal is not None

    def test_create_tables(self, temp_db):
        with temp_db.get_session() as session:
            result = session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
            tables = {row[0] for row in result}

        assert {'sync_cursors', 'sender_stats', 'emails'} <= tables

    def test_session_rolls_back_on_error(self, temp_db):
        """Test a failing session leaves no partial writes."""
        try:
            with temp_db.get_session() as session:
                session.add(SyncCursorRecord(account_id='a', token='t'))
                session.flush()
                raise ValueError("boom")
        except ValueError:
            pass

        assert temp_db.get_stats()['sync_cursors'] == 0

    def test_get_stats(self, temp_db):
        with temp_db.get_session() as session:
            session.add(SyncCursorRecord(account_id='a', token='t'))

        assert temp_db.get_stats() == {'sync_cursors': 1, 'sender_stats': 0, 'emails': 0}

    def test_in_memory_shares_connection(self):
        """Test ':memory:' keeps one database across sessions."""
        db = Database(":memory:")
        db.create_tables()

        with db.get_session() as session:
            session.add(SyncCursorRecord(account_id='a', token='t'))

        assert db.get_stats()['sync_cursors'] == 1

    def test_vacuum(self, temp_db):
        temp_db.vacuum()

        assert os.path.getsize(temp_db.db_path) > 0

    def test_drop_tables(self, temp_db):
        temp_db.drop_tables()

        with temp_db.get_session() as session:
            tables = list(session.execute(text("SELECT name FROM sqlite_master WHERE type='table'")))

        assert tables == []
