"""Group messages into per-sender statistics."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..providers.models import Message
from ..utils import get_logger
from .unsubscribe import extract_unsubscribe

logger = get_logger(__name__)


@dataclass(frozen=True)
class SenderKey:
    """
    Identity of a sender group: display name plus lowercased address.

    Two senders sharing an address but using different display names are
    separate groups.
    """

    name: str
    email: str

    def storage_key(self) -> str:
        """Collision-free string form for database keys."""
        return json.dumps([self.name, self.email], ensure_ascii=False)

    @classmethod
    def from_storage_key(cls, value: str) -> 'SenderKey':
        name, email = json.loads(value)
        return cls(name=name, email=email)


@dataclass
class SenderStats:
    """
    Aggregated statistics for one sender group.

    Attributes:
        key: SenderKey of the group
        count: Messages seen
        unread_count: Unread messages seen
        first_date: Earliest received timestamp
        last_date: Latest received timestamp
        message_ids: Message IDs in encounter order
        unread_ids: The subset of message_ids that were unread when seen
        unsubscribe_link: Preferred link from the newest message that had one
        mailto_link: mailto: link from the newest message that had one
        one_click: One-click support of the message behind unsubscribe_link
        is_newsletter: Sticky once any message exposed an unsubscribe link
        is_promotional: Sticky once any message was in the promotions category
    """

    key: SenderKey
    count: int = 0
    unread_count: int = 0
    first_date: Optional[datetime] = None
    last_date: Optional[datetime] = None
    message_ids: List[str] = field(default_factory=list)
    unread_ids: List[str] = field(default_factory=list)
    unsubscribe_link: Optional[str] = None
    mailto_link: Optional[str] = None
    one_click: bool = False
    is_newsletter: bool = False
    is_promotional: bool = False
    unsubscribe_link_date: Optional[datetime] = None
    mailto_link_date: Optional[datetime] = None

    @property
    def email(self) -> str:
        return self.key.email

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def has_unsubscribe(self) -> bool:
        return self.unsubscribe_link is not None

    def add(self, message: Message) -> None:
        """Fold one message into the statistics."""
        self.count += 1
        if message.is_unread:
            self.unread_count += 1
            self.unread_ids.append(message.message_id)
        self.message_ids.append(message.message_id)

        when = message.received_at
        if when is not None:
            if self.first_date is None or when < self.first_date:
                self.first_date = when
            if self.last_date is None or when > self.last_date:
                self.last_date = when

        info = extract_unsubscribe(message.headers)

        if info.link and is_newer_link(when, self.unsubscribe_link_date, self.unsubscribe_link):
            self.unsubscribe_link = info.link
            self.one_click = info.one_click
            self.unsubscribe_link_date = when

        if info.mailto_link and is_newer_link(when, self.mailto_link_date, self.mailto_link):
            self.mailto_link = info.mailto_link
            self.mailto_link_date = when

        if info.has_unsubscribe:
            self.is_newsletter = True
        elif 'list-unsubscribe' in message.headers and (message.is_promotional or message.is_update):
            self.is_newsletter = True

        if message.is_promotional:
            self.is_promotional = True

    def to_dict(self) -> dict:
        """Storage-ready representation with ISO-8601 UTC dates."""
        return {
            'email': self.email,
            'name': self.name,
            'count': self.count,
            'unread_count': self.unread_count,
            'first_date': _iso(self.first_date),
            'last_date': _iso(self.last_date),
            'unsubscribe_link': self.unsubscribe_link,
            'mailto_unsubscribe_link': self.mailto_link,
            'has_unsubscribe': self.has_unsubscribe,
            'has_one_click_unsubscribe': self.one_click,
            'is_newsletter': self.is_newsletter,
            'is_promotional': self.is_promotional,
            'message_ids': list(self.message_ids),
        }


def is_newer_link(
    when: Optional[datetime],
    current_date: Optional[datetime],
    current_link: Optional[str]
) -> bool:
    """Whether a link dated ``when`` replaces the stored one."""
    if current_link is None:
        return True
    if when is None:
        return False
    if current_date is None:
        return True
    return when > current_date


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class AggregationResult:
    """Sender groups plus the number of messages without a usable sender."""

    senders: Dict[SenderKey, SenderStats]
    skipped: int = 0

    def sorted_by_count(self) -> List[SenderStats]:
        return sorted_by_count(self.senders.values())


class SenderAggregator:
    """
    Incrementally build SenderStats from messages.

    Deterministic: the same messages, in any order, produce the same counts,
    dates and links. Message ID lists follow encounter order.

    Example:
        >>> aggregator = SenderAggregator(exclude_email="me@example.com")
        >>> aggregator.extend(messages)
        >>> for stats in sorted_by_count(aggregator.results().values()):
        ...     print(stats.email, stats.count)
    """

    def __init__(self, exclude_email: Optional[str] = None):
        """
        Args:
            exclude_email: Account's own address; its messages are skipped
        """
        self.exclude_email = exclude_email.lower() if exclude_email else None
        self._senders: Dict[SenderKey, SenderStats] = {}
        self.skipped = 0

    def add(self, message: Message) -> Optional[SenderStats]:
        """
        Add one message.

        Returns:
            The updated SenderStats, or None if the message was skipped
        """
        if not message.has_sender:
            self.skipped += 1
            return None
        email = message.sender_email.lower()
        if self.exclude_email and email == self.exclude_email:
            self.skipped += 1
            return None

        key = SenderKey(name=message.sender_name or email, email=email)

        stats = self._senders.get(key)
        if stats is None:
            stats = SenderStats(key=key)
            self._senders[key] = stats

        stats.add(message)
        return stats

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.add(message)

    def results(self) -> Dict[SenderKey, SenderStats]:
        return dict(self._senders)

    def result(self) -> AggregationResult:
        return AggregationResult(senders=self.results(), skipped=self.skipped)


def aggregate_by_sender(
    messages: Iterable[Message],
    exclude_email: Optional[str] = None
) -> AggregationResult:
    """
    Aggregate messages into sender groups.

    Args:
        messages: Messages with headers (ordered or not)
        exclude_email: Account's own address to leave out

    Returns:
        AggregationResult
    """
    aggregator = SenderAggregator(exclude_email=exclude_email)
    aggregator.extend(messages)
    result = aggregator.result()

    logger.info(
        f"Aggregated {sum(s.count for s in result.senders.values())} messages into "
        f"{len(result.senders)} senders, skipped {result.skipped}"
    )
    return result


def sorted_by_count(senders: Iterable[SenderStats]) -> List[SenderStats]:
    """Senders ordered by message count, largest first."""
    return sorted(senders, key=lambda s: (-s.count, s.email, s.name))
