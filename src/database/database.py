"""SQLite engine and session scope for the sync store."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils import get_logger
from .schema import Base, EmailRecord, SenderStatsRecord, SyncCursorRecord


logger = get_logger(__name__)


class Database:
    """
    SQLite engine plus a commit-or-rollback session scope.

    File databases run in WAL mode so a sync and a cleanup script can share
    the file.

    Attributes:
        db_path: Path to SQLite database file (":memory:" for tests)
        engine: SQLAlchemy engine
        SessionLocal: Session factory

    Example:
        >>> db = Database("data/senders.db")
        >>> db.create_tables()
        >>> with db.get_session() as session:
        ...     repo = SyncRepository(session)
    """

    def __init__(self, db_path: str = "data/senders.db"):
        """
        Args:
            db_path: SQLite file; parent directories are created
        """
        self.in_memory = db_path == ":memory:"
        self.db_path = Path(db_path)

        if self.in_memory:
            # One shared connection so every session sees the same database
            self.engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={
                    "check_same_thread": False,
                    "timeout": 30,
                }
            )

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not self.in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine
        )

        logger.info(f"Database initialized: {db_path}")

    def create_tables(self) -> None:
        """Create the sync_cursors, sender_stats and emails tables if missing."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    def drop_tables(self) -> None:
        """Drop every table, discarding cursors and statistics."""
        try:
            Base.metadata.drop_all(bind=self.engine)
            logger.warning("All database tables dropped")
        except Exception as e:
            logger.error(f"Failed to drop tables: {e}")
            raise

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Session scope: commit when the block exits cleanly, rollback and
        re-raise otherwise.

        Example:
            >>> with db.get_session() as session:
            ...     cursor = SyncRepository(session).load_cursor("me@example.com")
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Session error: {e}")
            raise
        finally:
            session.close()

    def vacuum(self) -> None:
        """Vacuum the database to reclaim space."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("VACUUM"))
            logger.info("Database vacuumed successfully")
        except Exception as e:
            logger.error(f"Failed to vacuum database: {e}")
            raise

    def get_stats(self) -> dict:
        """Row counts per table."""
        with self.get_session() as session:
            return {
                'sync_cursors': session.query(SyncCursorRecord).count(),
                'sender_stats': session.query(SenderStatsRecord).count(),
                'emails': session.query(EmailRecord).count(),
            }

    def __repr__(self) -> str:
        return f"<Database(path={self.db_path})>"
