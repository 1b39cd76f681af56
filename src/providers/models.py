"""Message data models parsed from provider API responses."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.header import decode_header
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union


_EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')

HeaderSource = Union[Mapping[str, str], Iterable[Mapping[str, str]], None]


def normalize_headers(headers: HeaderSource) -> Dict[str, str]:
    """
    Normalize a header set to a dict keyed by lowercased header name.

    Accepts either a mapping or the provider list form
    ``[{'name': 'From', 'value': '...'}]``. When a header repeats, the first
    occurrence wins.

    Example:
        >>> normalize_headers([{'name': 'List-Unsubscribe', 'value': '<x>'}])
        {'list-unsubscribe': '<x>'}
    """
    normalized: Dict[str, str] = {}
    if not headers:
        return normalized

    if isinstance(headers, Mapping):
        items = headers.items()
    else:
        items = (
            (h.get('name', ''), h.get('value', ''))
            for h in headers
            if isinstance(h, Mapping)
        )

    for name, value in items:
        if not name:
            continue
        normalized.setdefault(str(name).lower(), value if value is not None else '')
    return normalized


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (as returned by Graph) into aware UTC.

    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    text = value.strip().replace('Z', '+00:00')
    # Graph can return 7 fractional digits, fromisoformat accepts at most 6
    text = re.sub(r'(\.\d{6})\d+', r'\1', text)
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


@dataclass
class Message:
    """
    Provider-neutral message metadata.

    Attributes:
        message_id: Provider message ID
        thread_id: Conversation / thread ID
        sender_email: Lowercased sender address ('' when unknown)
        sender_name: Display name, falls back to the address
        subject: Subject line
        snippet: Short body preview
        received_at: Aware UTC timestamp
        is_unread: Whether the message is unread
        labels: Label IDs (Gmail) or parent folder ID (Graph)
        headers: Raw headers keyed by lowercased name

    Example:
        >>> message = Message.from_gmail_message(gmail_resource)
        >>> print(f"{message.sender_name}: {message.subject}")
    """

    message_id: str
    thread_id: str = ''
    sender_email: str = ''
    sender_name: str = ''
    subject: str = ''
    snippet: str = ''
    received_at: Optional[datetime] = None
    is_unread: bool = False
    labels: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_gmail_message(cls, message: Dict[str, Any]) -> 'Message':
        """
        Parse a Gmail API message resource into a Message.

        Works for both ``format=metadata`` resources and the id-only stubs
        returned by ``messages.list``.

        Args:
            message: Gmail API message resource

        Returns:
            Parsed Message
        """
        headers = normalize_headers(message.get('payload', {}).get('headers', []))
        labels = list(message.get('labelIds', []) or [])

        sender_name, sender_email = cls._parse_email_address(headers.get('from', ''))

        received_at = None
        internal_date = message.get('internalDate')
        if internal_date:
            try:
                received_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
            except (TypeError, ValueError):
                received_at = None
        if received_at is None and headers.get('date'):
            received_at = cls._parse_date(headers['date'])

        return cls(
            message_id=message['id'],
            thread_id=message.get('threadId', '') or message['id'],
            sender_email=sender_email,
            sender_name=sender_name or sender_email,
            subject=headers.get('subject', '(No Subject)') if headers else '',
            snippet=message.get('snippet', ''),
            received_at=received_at,
            is_unread='UNREAD' in labels,
            labels=labels,
            headers=headers
        )

    @classmethod
    def from_graph_message(cls, message: Dict[str, Any]) -> 'Message':
        """
        Parse a Microsoft Graph message resource into a Message.

        Args:
            message: Graph message resource (from /messages or $batch)

        Returns:
            Parsed Message
        """
        from_data = (message.get('from') or {}).get('emailAddress') or {}
        sender_email = (from_data.get('address') or '').strip().lower()
        sender_name = (from_data.get('name') or '').strip()

        folder = message.get('parentFolderId')

        return cls(
            message_id=message['id'],
            thread_id=message.get('conversationId') or message['id'],
            sender_email=sender_email,
            sender_name=sender_name or sender_email,
            subject=message.get('subject') or '(No Subject)',
            snippet=message.get('bodyPreview') or '',
            received_at=parse_iso_datetime(message.get('receivedDateTime', '')),
            is_unread=not message.get('isRead', False),
            labels=[folder] if folder else [],
            headers=normalize_headers(message.get('internetMessageHeaders', []))
        )

    @classmethod
    def stub(cls, message_id: str, thread_id: str = '') -> 'Message':
        """Create an id-only message awaiting enrichment."""
        return cls(message_id=message_id, thread_id=thread_id or message_id)

    @staticmethod
    def _parse_email_address(address_header: str) -> tuple[str, str]:
        """
        Parse an address header into (name, lowercased address).

        Example:
            >>> Message._parse_email_address("John Doe <John@Example.com>")
            ('John Doe', 'john@example.com')
        """
        if not address_header or not address_header.strip():
            return '', ''

        name, address = parseaddr(address_header)

        if '@' not in address:
            # parseaddr gives up on some malformed headers
            match = _EMAIL_PATTERN.search(address_header)
            if not match:
                return '', ''
            address = match.group(0)
            name = address_header[:match.start()].strip().strip('<>"\' ')

        if name:
            try:
                name_parts = []
                for part, encoding in decode_header(name):
                    if isinstance(part, bytes):
                        name_parts.append(part.decode(encoding or 'utf-8', errors='replace'))
                    else:
                        name_parts.append(part)
                name = ''.join(name_parts)
            except (LookupError, ValueError):
                pass  # Keep original name if decode fails

        return name.strip().strip('"\''), address.strip().lower()

    @staticmethod
    def _parse_date(date_str: str) -> Optional[datetime]:
        """
        Parse an RFC 2822 Date header into aware UTC.

        Returns None if the header cannot be parsed.
        """
        try:
            return to_utc(parsedate_to_datetime(date_str))
        except (TypeError, ValueError, IndexError):
            return None

    @property
    def has_sender(self) -> bool:
        """Whether a usable sender address was parsed."""
        return '@' in self.sender_email

    @property
    def received_iso(self) -> Optional[str]:
        """Received timestamp as ISO-8601 UTC with millisecond precision."""
        if self.received_at is None:
            return None
        return self.received_at.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    @property
    def is_promotional(self) -> bool:
        """Gmail promotions category."""
        return 'CATEGORY_PROMOTIONS' in self.labels

    @property
    def is_update(self) -> bool:
        """Gmail updates category."""
        return 'CATEGORY_UPDATES' in self.labels

    def __repr__(self) -> str:
        """Return string representation of the message."""
        return (
            f"Message(id={self.message_id[:10]}..., "
            f"from={self.sender_email}, "
            f"subject='{self.subject[:50]}', "
            f"received={self.received_iso})"
        )


@dataclass(frozen=True)
class SyncCursor:
    """
    Opaque provider continuation token.

    The engine stores and hands back ``token`` without interpreting it: a
    Gmail historyId or a Graph deltaLink URL.
    """

    token: str
    established: bool = True


@dataclass
class MessagePage:
    """One page of an inbox listing."""

    messages: List[Message]
    next_page: Optional[str] = None

    @property
    def ids(self) -> List[str]:
        return [m.message_id for m in self.messages]

    @property
    def has_more(self) -> bool:
        return bool(self.next_page)


@dataclass
class DeltaPage:
    """Changes reported by a delta call, merged across continuation pages."""

    messages: List[Message]
    removed_ids: List[str]
    next_cursor: Optional[SyncCursor]
