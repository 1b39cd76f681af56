"""Microsoft Graph mail client (Graph-style provider)."""

from typing import Any, Dict, List, Optional

from ..utils import get_logger
from .base import ProviderClient, ProviderLimits, ProviderType
from .errors import CursorExpiredError, MalformedResponseError, PermanentError
from .models import DeltaPage, Message, MessagePage, SyncCursor
from .rate_limiter import RateLimitedRequester

logger = get_logger(__name__)


GRAPH_API_BASE = 'https://graph.microsoft.com/v1.0'

LIST_SELECT = 'id,conversationId,subject,bodyPreview,receivedDateTime,isRead,from,parentFolderId'
HEADER_SELECT = LIST_SELECT + ',internetMessageHeaders'

# Graph rejects $batch payloads with more than 20 sub-requests
MAX_BATCH_REQUESTS = 20

MAX_PAGE_SIZE = 1000


class OutlookClient(ProviderClient):
    """
    Microsoft Graph client for sender synchronization.

    Continuation handles (``@odata.nextLink`` and ``@odata.deltaLink``) are
    absolute URLs and are requested verbatim. Message fetches are multiplexed
    through ``$batch``.

    Attributes:
        requester: RateLimitedRequester bound to GRAPH_API_BASE
        user_id: Mailbox owner for app-only tokens; None means ``/me``

    Example:
        >>> client = OutlookClient(requester, user_id="user@contoso.com")
        >>> page = await client.list_inbox()
        >>> messages = await client.batch_get_messages(page.ids[:20])
    """

    limits = ProviderLimits(
        page_size=100,
        batch_size=MAX_BATCH_REQUESTS,
        max_concurrent=4,
        batch_delay=0.5,
        supports_batch_endpoint=True
    )

    def __init__(self, requester: RateLimitedRequester, user_id: Optional[str] = None):
        super().__init__(requester)
        self.user_id = user_id

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OUTLOOK

    @property
    def mailbox_path(self) -> str:
        """Path prefix for the mailbox owner."""
        return f"/users/{self.user_id}" if self.user_id else '/me'

    @property
    def inbox_path(self) -> str:
        return f"{self.mailbox_path}/mailFolders('Inbox')/messages"

    async def list_inbox(
        self,
        page_size: Optional[int] = None,
        next_page: Optional[str] = None,
        query: Optional[str] = None,
        order_by: Optional[str] = None,
        skip: Optional[int] = None
    ) -> MessagePage:
        """
        List one page of Inbox messages.

        Listing already includes the sender, so messages come back parsed;
        they still lack internet headers until fetched individually.

        Args:
            page_size: $top value (up to 1000)
            next_page: @odata.nextLink from the previous page
            query: OData $filter expression
            order_by: OData $orderby expression
            skip: $skip offset

        Returns:
            MessagePage with nextLink as the continuation handle
        """
        if next_page:
            response = await self.requester.request('GET', next_page)
        else:
            params: Dict[str, Any] = {
                '$top': min(page_size or self.limits.page_size, MAX_PAGE_SIZE),
                '$select': LIST_SELECT,
            }
            if query:
                params['$filter'] = query
            if order_by:
                params['$orderby'] = order_by
            if skip:
                params['$skip'] = skip
            response = await self.requester.request('GET', self.inbox_path, params=params)

        response = response or {}
        messages = [Message.from_graph_message(item) for item in response.get('value', [])]
        next_link = response.get('@odata.nextLink')

        logger.info(f"Listed {len(messages)} messages (has_more={next_link is not None})")
        return MessagePage(messages=messages, next_page=next_link)

    async def get_message_with_headers(self, message_id: str) -> Message:
        response = await self.requester.request(
            'GET',
            f"{self.mailbox_path}/messages/{message_id}",
            params={'$select': HEADER_SELECT}
        )
        if not response or 'id' not in response:
            raise PermanentError(f"Empty message resource for {message_id}")
        return Message.from_graph_message(response)

    async def batch_get_messages(self, message_ids: List[str]) -> List[Message]:
        """
        Fetch up to 20 messages with one ``$batch`` call.

        Each sub-response resolves independently: non-200 entries are left
        out of the result and counted in the log.

        Raises:
            ValueError: More than MAX_BATCH_REQUESTS ids
            MalformedResponseError: The batch envelope has no responses
        """
        if len(message_ids) > MAX_BATCH_REQUESTS:
            raise ValueError(
                f"$batch accepts at most {MAX_BATCH_REQUESTS} requests, got {len(message_ids)}"
            )
        if not message_ids:
            return []

        payload = {
            'requests': [
                {
                    'id': str(index),
                    'method': 'GET',
                    'url': f"{self.mailbox_path}/messages/{message_id}?$select={HEADER_SELECT}",
                }
                for index, message_id in enumerate(message_ids)
            ]
        }

        response = await self.requester.request('POST', '/$batch', json=payload)
        if not response or 'responses' not in response:
            raise MalformedResponseError("$batch response missing 'responses'")

        # Sub-responses can arrive in any order
        by_id = {str(item.get('id')): item for item in response['responses']}

        messages = []
        failed = 0
        for index in range(len(message_ids)):
            item = by_id.get(str(index))
            if item and item.get('status') == 200 and item.get('body'):
                messages.append(Message.from_graph_message(item['body']))
            else:
                failed += 1

        if failed:
            logger.warning(f"$batch: {failed}/{len(message_ids)} sub-requests failed")
        return messages

    async def _move(self, message_id: str, destination: str) -> None:
        await self.requester.request(
            'POST',
            f"{self.mailbox_path}/messages/{message_id}/move",
            json={'destinationId': destination}
        )

    async def move_to_trash(self, message_id: str) -> None:
        await self._move(message_id, 'deleteditems')

    async def move_to_archive(self, message_id: str) -> None:
        await self._move(message_id, 'archive')

    async def send_mail(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text message without keeping a copy in Sent Items."""
        payload = {
            'message': {
                'subject': subject,
                'body': {'contentType': 'Text', 'content': body},
                'toRecipients': [{'emailAddress': {'address': to}}],
            },
            'saveToSentItems': False,
        }
        await self.requester.request('POST', f"{self.mailbox_path}/sendMail", json=payload)
        logger.info(f"Sent message to {to}")

    async def get_delta(self, cursor: SyncCursor) -> DeltaPage:
        """
        Follow a deltaLink to the end of the change feed.

        Items flagged ``@removed`` become removed ids; everything else is a
        new or changed message. The terminal page's deltaLink is the next
        cursor. A feed that ends without one keeps the current cursor.

        Raises:
            CursorExpiredError: Graph no longer recognizes the delta token
        """
        messages: List[Message] = []
        removed_ids: List[str] = []
        url: Optional[str] = cursor.token
        delta_link: Optional[str] = None

        while url:
            try:
                response = await self.requester.request('GET', url) or {}
            except PermanentError as e:
                if e.status in (404, 410) or 'syncStateNotFound' in e.body:
                    raise CursorExpiredError(
                        "Graph delta token is no longer valid",
                        status=e.status,
                        body=e.body
                    ) from e
                raise

            for item in response.get('value', []):
                if '@removed' in item:
                    removed_ids.append(item['id'])
                else:
                    messages.append(Message.from_graph_message(item))

            url = response.get('@odata.nextLink')
            if not url:
                delta_link = response.get('@odata.deltaLink')

        logger.info(f"Delta: {len(messages)} changed, {len(removed_ids)} removed")

        next_cursor = SyncCursor(token=delta_link, established=True) if delta_link else cursor
        return DeltaPage(messages=messages, removed_ids=removed_ids, next_cursor=next_cursor)

    async def establish_baseline(self) -> SyncCursor:
        """Request ``$deltatoken=latest`` to get a deltaLink for "now"."""
        response = await self.requester.request(
            'GET',
            f"{self.inbox_path}/delta",
            params={'$select': 'id', '$deltatoken': 'latest'}
        ) or {}

        delta_link = response.get('@odata.deltaLink')
        if not delta_link:
            raise MalformedResponseError("Graph baseline response had no deltaLink")
        return SyncCursor(token=delta_link, established=True)
