"""SQLAlchemy schema for sync cursors, sender statistics and email records."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncCursorRecord(Base):
    """
    Stored delta cursor for one account.

    Attributes:
        account_id: Account the cursor belongs to (primary key)
        token: Opaque provider token (historyId or deltaLink)
        established: Whether incremental sync may use it
        updated_at: Last time the cursor was replaced
    """

    __tablename__ = 'sync_cursors'

    account_id = Column(String, primary_key=True)
    token = Column(Text, nullable=False)
    established = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SyncCursorRecord(account={self.account_id}, established={self.established})>"


class SenderStatsRecord(Base):
    """
    Aggregated statistics for one sender group of one account.

    Dates are stored as naive UTC.

    Attributes:
        account_id: Owning account
        sender_key: SenderKey.storage_key() of the group
        email: Lowercased sender address
        name: Display name
        count: Messages from the sender
        unread_count: Unread messages from the sender
        first_date: Earliest message
        last_date: Latest message
        unsubscribe_link: Preferred unsubscribe link
        unsubscribe_link_date: Date of the message that supplied it
        mailto_link: mailto: unsubscribe link
        mailto_link_date: Date of the message that supplied it
        one_click: RFC 8058 one-click support of unsubscribe_link
        is_newsletter: Sender has exposed an unsubscribe link
        is_promotional: Sender has mail in the promotions category
        message_ids: JSON array of message IDs
    """

    __tablename__ = 'sender_stats'

    account_id = Column(String, primary_key=True)
    sender_key = Column(String, primary_key=True)
    email = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    count = Column(Integer, default=0, nullable=False)
    unread_count = Column(Integer, default=0, nullable=False)
    first_date = Column(DateTime)
    last_date = Column(DateTime)
    unsubscribe_link = Column(Text)
    unsubscribe_link_date = Column(DateTime)
    mailto_link = Column(Text)
    mailto_link_date = Column(DateTime)
    one_click = Column(Boolean, default=False, nullable=False)
    is_newsletter = Column(Boolean, default=False, nullable=False)
    is_promotional = Column(Boolean, default=False, nullable=False)
    message_ids = Column(JSON, default=list)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SenderStatsRecord(email={self.email}, name='{self.name}', count={self.count})>"


class EmailRecord(Base):
    """
    One message as seen during sync.

    Attributes:
        account_id: Owning account
        message_id: Provider message ID
        sender_email: Lowercased sender address
        sender_name: Display name
        subject: Subject line
        snippet: Body preview
        received_at: Naive UTC timestamp
        is_unread: Unread when synced
        thread_id: Conversation ID
        labels: JSON array of labels / folder IDs
    """

    __tablename__ = 'emails'

    account_id = Column(String, primary_key=True)
    message_id = Column(String, primary_key=True)
    sender_email = Column(String, index=True, nullable=False)
    sender_name = Column(String)
    subject = Column(String)
    snippet = Column(Text)
    received_at = Column(DateTime, index=True)
    is_unread = Column(Boolean, default=False)
    thread_id = Column(String, index=True)
    labels = Column(JSON, default=list)
    collected_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<EmailRecord(id={self.message_id[:10]}..., "
            f"from={self.sender_email}, "
            f"subject='{(self.subject or '')[:30]}')>"
        )
