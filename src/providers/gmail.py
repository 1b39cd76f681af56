"""Gmail REST client (conversation-style provider)."""

import asyncio
import base64
from email.message import EmailMessage
from typing import Any, List, Optional

from ..utils import get_logger
from .base import ProviderClient, ProviderLimits, ProviderType
from .errors import CursorExpiredError, PermanentError, ProviderError
from .models import DeltaPage, Message, MessagePage, SyncCursor

logger = get_logger(__name__)


GMAIL_API_BASE = 'https://gmail.googleapis.com/gmail/v1/users/me'

# Everything a sender could have put in the mailbox, minus our own mail
DEFAULT_QUERY = '-in:sent -in:drafts -in:trash -in:spam'

METADATA_HEADERS = ['From', 'Subject', 'Date', 'List-Unsubscribe', 'List-Unsubscribe-Post']

HISTORY_TYPES = ['messageAdded', 'messageDeleted', 'labelAdded']

MAX_PAGE_SIZE = 500


class GmailClient(ProviderClient):
    """
    Gmail API client for sender synchronization.

    Lists message IDs, fetches metadata with the unsubscribe headers, moves
    messages to trash or out of the inbox, sends mail, and reads the History
    API for incremental sync. Gmail has no multiplexing endpoint in this
    client, so chunks are fetched with a bounded fan-out.

    Attributes:
        requester: RateLimitedRequester bound to GMAIL_API_BASE

    Example:
        >>> requester = RateLimitedRequester(http, GoogleTokenProvider(auth), GMAIL_API_BASE)
        >>> client = GmailClient(requester)
        >>> page = await client.list_inbox(page_size=50)
        >>> print(f"Listed {len(page.messages)} messages")
    """

    limits = ProviderLimits(
        page_size=100,
        batch_size=10,
        max_concurrent=10,
        batch_delay=0.25,
        supports_batch_endpoint=False
    )

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GMAIL

    async def list_inbox(
        self,
        page_size: Optional[int] = None,
        next_page: Optional[str] = None,
        query: Optional[str] = None
    ) -> MessagePage:
        """
        List message IDs matching the inbox query.

        Args:
            page_size: Maximum messages to return (up to 500)
            next_page: pageToken from the previous page, passed through as-is
            query: Gmail search query (defaults to DEFAULT_QUERY)

        Returns:
            MessagePage of id-only messages

        Example:
            >>> page = await client.list_inbox(query="from:news@example.com")
            >>> while page.has_more:
            ...     page = await client.list_inbox(next_page=page.next_page)
        """
        params: dict[str, Any] = {
            'maxResults': min(page_size or self.limits.page_size, MAX_PAGE_SIZE),
            'q': query if query is not None else DEFAULT_QUERY,
        }
        if next_page:
            params['pageToken'] = next_page

        logger.debug(f"Listing messages: query='{params['q']}', max={params['maxResults']}")

        response = await self.requester.request('GET', '/messages', params=params) or {}

        messages = [
            Message.stub(ref['id'], ref.get('threadId', ''))
            for ref in response.get('messages', [])
        ]
        next_page_token = response.get('nextPageToken')

        logger.info(
            f"Listed {len(messages)} messages "
            f"(has_more={next_page_token is not None})"
        )
        return MessagePage(messages=messages, next_page=next_page_token)

    async def get_message_with_headers(self, message_id: str) -> Message:
        """
        Fetch one message in metadata format with the aggregation headers.

        Args:
            message_id: Gmail message ID

        Returns:
            Parsed Message
        """
        params = [('format', 'metadata')]
        params.extend(('metadataHeaders', header) for header in METADATA_HEADERS)

        response = await self.requester.request('GET', f'/messages/{message_id}', params=params)
        if not response or 'id' not in response:
            raise PermanentError(f"Empty message resource for {message_id}")

        return Message.from_gmail_message(response)

    async def batch_get_messages(self, message_ids: List[str]) -> List[Message]:
        """
        Fetch several messages concurrently, dropping the ones that fail.

        Systemic failures (rejected credentials) propagate.
        """
        results = await asyncio.gather(
            *(self.get_message_with_headers(mid) for mid in message_ids),
            return_exceptions=True
        )

        messages = []
        for message_id, result in zip(message_ids, results):
            if isinstance(result, ProviderError):
                if result.systemic:
                    raise result
                logger.debug(f"Failed to fetch message {message_id[:10]}...: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                messages.append(result)
        return messages

    async def move_to_trash(self, message_id: str) -> None:
        await self.requester.request('POST', f'/messages/{message_id}/trash')

    async def move_to_archive(self, message_id: str) -> None:
        await self.requester.request(
            'POST',
            f'/messages/{message_id}/modify',
            json={'removeLabelIds': ['INBOX']}
        )

    async def send_mail(self, to: str, subject: str, body: str) -> None:
        """
        Send a plain-text message via messages.send.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain-text body
        """
        mime = EmailMessage()
        mime['To'] = to
        mime['Subject'] = subject
        mime.set_content(body)

        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode('ascii')
        await self.requester.request('POST', '/messages/send', json={'raw': raw})
        logger.info(f"Sent message to {to}")

    async def get_delta(self, cursor: SyncCursor) -> DeltaPage:
        """
        Read History API changes since the cursor's historyId.

        New messages are returned as id-only stubs. Permanently deleted
        messages and messages that gained the TRASH label are reported as
        removed.

        Raises:
            CursorExpiredError: History no longer covers the stored historyId
        """
        messages: List[Message] = []
        removed_ids: List[str] = []
        page_token: Optional[str] = None
        history_id = cursor.token

        while True:
            params: List[tuple[str, Any]] = [
                ('startHistoryId', cursor.token),
                ('maxResults', self.limits.page_size),
            ]
            params.extend(('historyTypes', kind) for kind in HISTORY_TYPES)
            if page_token:
                params.append(('pageToken', page_token))

            try:
                response = await self.requester.request('GET', '/history', params=params) or {}
            except PermanentError as e:
                if e.status == 404 or (e.status == 400 and 'istoryId' in e.body):
                    raise CursorExpiredError(
                        f"Gmail history expired for historyId {cursor.token}",
                        status=e.status,
                        body=e.body
                    ) from e
                raise

            history_id = response.get('historyId', history_id)

            for record in response.get('history', []):
                for added in record.get('messagesAdded', []):
                    ref = added.get('message', {})
                    labels = ref.get('labelIds', [])
                    if 'SPAM' in labels or 'DRAFT' in labels or 'SENT' in labels:
                        continue
                    messages.append(Message.stub(ref['id'], ref.get('threadId', '')))
                for deleted in record.get('messagesDeleted', []):
                    removed_ids.append(deleted['message']['id'])
                for change in record.get('labelsAdded', []):
                    if 'TRASH' in change.get('labelIds', []):
                        removed_ids.append(change['message']['id'])

            page_token = response.get('nextPageToken')
            if not page_token:
                break

        logger.info(
            f"History since {cursor.token}: {len(messages)} added, "
            f"{len(removed_ids)} removed, new historyId {history_id}"
        )
        return DeltaPage(
            messages=messages,
            removed_ids=removed_ids,
            next_cursor=SyncCursor(token=str(history_id), established=True)
        )

    async def establish_baseline(self) -> SyncCursor:
        """Read the mailbox's current historyId from the profile."""
        profile = await self.requester.request('GET', '/profile') or {}
        history_id = profile.get('historyId')
        if not history_id:
            raise PermanentError("Gmail profile did not include a historyId")
        return SyncCursor(token=str(history_id), established=True)
