"""
Abstract base class for mailbox provider clients.
Defines the capability surface shared by every provider variant.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .models import DeltaPage, Message, MessagePage, SyncCursor
from .rate_limiter import RateLimitedRequester


class ProviderType(str, Enum):
    """Supported mailbox providers."""
    GMAIL = "gmail"
    OUTLOOK = "outlook"


@dataclass(frozen=True)
class ProviderLimits:
    """
    Per-provider pacing constants.

    Attributes:
        page_size: Default results per inbox page
        batch_size: Items per BatchFetcher chunk
        max_concurrent: In-flight requests within a chunk
        batch_delay: Seconds slept between chunks
        supports_batch_endpoint: Whether one HTTP call can multiplex a chunk
    """
    page_size: int
    batch_size: int
    max_concurrent: int
    batch_delay: float
    supports_batch_endpoint: bool = False


class ProviderClient(ABC):
    """
    Abstract base class for mailbox provider clients.

    Every call goes through the client's RateLimitedRequester. Continuation
    handles returned by the provider are passed back verbatim.
    """

    limits: ProviderLimits

    def __init__(self, requester: RateLimitedRequester):
        """
        Initialize the provider client.

        Args:
            requester: Retrying requester bound to this provider's base URL
        """
        self.requester = requester

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider type identifier."""

    @abstractmethod
    async def list_inbox(
        self,
        page_size: Optional[int] = None,
        next_page: Optional[str] = None,
        query: Optional[str] = None
    ) -> MessagePage:
        """
        List one page of inbox messages.

        Args:
            page_size: Results per page (capped at the provider maximum)
            next_page: Continuation handle from a previous page
            query: Provider-specific filter expression

        Returns:
            MessagePage; messages may lack headers until enriched
        """

    @abstractmethod
    async def get_message_with_headers(self, message_id: str) -> Message:
        """Fetch one message including the headers needed for aggregation."""

    @abstractmethod
    async def batch_get_messages(self, message_ids: List[str]) -> List[Message]:
        """
        Fetch up to ``limits.batch_size`` messages in one provider call.

        Only meaningful when ``limits.supports_batch_endpoint`` is set.
        Items that fail are left out of the result.
        """

    @abstractmethod
    async def move_to_trash(self, message_id: str) -> None:
        """Move a message to the provider's trash / deleted items."""

    @abstractmethod
    async def move_to_archive(self, message_id: str) -> None:
        """Remove a message from the inbox without deleting it."""

    @abstractmethod
    async def send_mail(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text message from the account."""

    @abstractmethod
    async def get_delta(self, cursor: SyncCursor) -> DeltaPage:
        """
        Fetch every change since ``cursor``, following continuation pages.

        Raises:
            CursorExpiredError: The provider no longer accepts the cursor
        """

    @abstractmethod
    async def establish_baseline(self) -> SyncCursor:
        """Obtain a cursor for "now" without pulling message content."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(provider={self.provider_type.value})>"
