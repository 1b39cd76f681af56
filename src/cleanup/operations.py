"""Bulk delete / archive by sender, and unsubscribe."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..providers.base import ProviderClient
from ..providers.errors import ProviderError
from ..sync.aggregator import SenderKey, SenderStats
from ..sync.batch import BatchFetcher
from ..sync.unsubscribe import parse_mailto
from ..utils import get_logger


logger = get_logger(__name__)


class MutationType(str, Enum):
    """Supported bulk mutations."""
    DELETE = "delete"
    ARCHIVE = "archive"


@dataclass
class SenderMutationResult:
    """
    Outcome of a mutation for one sender.

    Attributes:
        sender: SenderKey the IDs belong to
        succeeded: IDs the provider accepted
        failed: IDs that failed after retries
        errors: ID -> error text for failed IDs
    """
    sender: SenderKey
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class BulkMutationResult:
    """
    Result of a bulk mutation.

    Attributes:
        mutation: MutationType applied
        per_sender: One SenderMutationResult per target sender
        dry_run: True when nothing was sent to the provider
        message: Human-readable summary

    Example:
        >>> result = await executor.delete_sender(stats)
        >>> print(f"Deleted {result.total_affected}, {result.total_failed} failed")
    """
    mutation: MutationType
    per_sender: List[SenderMutationResult] = field(default_factory=list)
    dry_run: bool = False
    message: str = ''

    @property
    def total_affected(self) -> int:
        return sum(len(r.succeeded) for r in self.per_sender)

    @property
    def total_failed(self) -> int:
        return sum(len(r.failed) for r in self.per_sender)

    @property
    def success(self) -> bool:
        """False only when there was work and every item failed."""
        return self.total_affected > 0 or self.total_failed == 0

    @property
    def affected_ids(self) -> List[str]:
        return [mid for r in self.per_sender for mid in r.succeeded]


class BulkMutationError(ProviderError):
    """Every targeted message failed; ``result`` holds the per-sender errors."""

    def __init__(self, message: str, result: BulkMutationResult):
        super().__init__(message)
        self.result = result


class UnsubscribeMethod(str, Enum):
    """How an unsubscribe was (or must be) carried out."""
    ONE_CLICK = "one_click"
    HTTP_LINK = "http_link"
    MAILTO = "mailto"
    MANUAL = "manual"


@dataclass
class UnsubscribeResult:
    """
    Result of an unsubscribe attempt.

    Attributes:
        method: Method used or recommended
        success: The unsubscribe request was delivered
        requires_action: A person must finish the unsubscribe
        link: Link to open when requires_action is set
        link_expired: The sender's one-click endpoint answered 404/410
        error: Error text, if an attempt failed
    """
    method: UnsubscribeMethod
    success: bool = False
    requires_action: bool = False
    link: Optional[str] = None
    link_expired: bool = False
    error: Optional[str] = None


class BulkMutationExecutor:
    """
    Apply delete or archive to every message of one or more senders.

    Calls go through BatchFetcher, so they share the provider's chunk size,
    concurrency ceiling and pacing. Partial failures are reported per sender;
    systemic errors and mutations where every message failed raise.

    Attributes:
        client: Provider client
        fetcher: BatchFetcher bound to the same client
        http_client: Client for RFC 8058 one-click POSTs

    Example:
        >>> executor = BulkMutationExecutor(client, http_client=http)
        >>> result = await executor.execute(MutationType.ARCHIVE, {stats.key: stats.message_ids})
        >>> print(result.message)
    """

    def __init__(
        self,
        client: ProviderClient,
        fetcher: Optional[BatchFetcher] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.client = client
        self.fetcher = fetcher or BatchFetcher(client)
        self.http_client = http_client

    def _operation(self, mutation: MutationType):
        if mutation is MutationType.DELETE:
            return self.client.move_to_trash
        return self.client.move_to_archive

    async def execute(
        self,
        mutation: MutationType,
        targets: Mapping[SenderKey, List[str]],
        dry_run: bool = False
    ) -> BulkMutationResult:
        """
        Apply a mutation to each sender's message IDs.

        Args:
            mutation: DELETE (move to trash) or ARCHIVE
            targets: SenderKey -> message IDs
            dry_run: If True, don't call the provider

        Returns:
            BulkMutationResult with per-sender outcomes

        Raises:
            ProviderError: Systemic failure (rejected credential)
            BulkMutationError: Every targeted message failed
        """
        mutation = MutationType(mutation)
        total = sum(len(ids) for ids in targets.values())

        if dry_run:
            message = f"DRY RUN: Would {mutation.value} {total} messages from {len(targets)} senders"
            logger.info(message)
            return BulkMutationResult(
                mutation=mutation,
                per_sender=[
                    SenderMutationResult(sender=key, succeeded=list(ids))
                    for key, ids in targets.items()
                ],
                dry_run=True,
                message=message
            )

        operation = self._operation(mutation)
        result = BulkMutationResult(mutation=mutation)

        for key, ids in targets.items():
            batch = await self.fetcher.mutate(
                list(ids), operation, description=f"{mutation.value} {key.email}"
            )
            sender_result = SenderMutationResult(sender=key)
            for mid in ids:
                if mid in batch.failed:
                    sender_result.failed.append(mid)
                    sender_result.errors[mid] = str(batch.failed[mid])
                elif mid in batch.succeeded:
                    sender_result.succeeded.append(mid)
            result.per_sender.append(sender_result)

        result.message = (
            f"{mutation.value.capitalize()}d {result.total_affected}/{total} messages "
            f"from {len(targets)} senders"
        )
        if not result.success:
            logger.error(f"{result.message}, all {result.total_failed} failed")
            raise BulkMutationError(f"{mutation.value} failed for all {total} messages", result)
        if result.total_failed:
            logger.warning(f"{result.message}, {result.total_failed} failed")
        else:
            logger.info(result.message)
        return result

    async def delete_sender(self, stats: SenderStats, dry_run: bool = False) -> BulkMutationResult:
        """Move every message of one sender to trash."""
        return await self.execute(MutationType.DELETE, {stats.key: stats.message_ids}, dry_run)

    async def archive_sender(self, stats: SenderStats, dry_run: bool = False) -> BulkMutationResult:
        """Remove every message of one sender from the inbox."""
        return await self.execute(MutationType.ARCHIVE, {stats.key: stats.message_ids}, dry_run)

    async def unsubscribe(self, stats: SenderStats, dry_run: bool = False) -> UnsubscribeResult:
        """
        Unsubscribe from one sender.

        The HTTP link comes first: with one-click support it is POSTed
        directly, otherwise it is handed back for a person to open. A sender
        offering only a mailto link gets an unsubscribe email through the
        provider. No link at all means manual action; this never raises for
        a missing link.

        Args:
            stats: Sender to unsubscribe from
            dry_run: If True, report the method without contacting anyone

        Returns:
            UnsubscribeResult

        Raises:
            ProviderError: Systemic failure while sending the mailto email
        """
        link = stats.unsubscribe_link
        http_link = link if link and not link.lower().startswith('mailto:') else None
        mailto_link = stats.mailto_link or (link if link and link.lower().startswith('mailto:') else None)

        if http_link:
            if not stats.one_click:
                return UnsubscribeResult(
                    method=UnsubscribeMethod.HTTP_LINK,
                    requires_action=True,
                    link=http_link
                )
            if dry_run:
                logger.info(f"DRY RUN: Would POST one-click unsubscribe for {stats.email}")
                return UnsubscribeResult(method=UnsubscribeMethod.ONE_CLICK, link=http_link)

            result = await self._one_click(http_link)
            if result.link_expired and mailto_link:
                logger.info(f"One-click link for {stats.email} expired, trying mailto")
                return await self._send_mailto(mailto_link, dry_run)
            return result

        if mailto_link:
            return await self._send_mailto(mailto_link, dry_run)

        logger.info(f"No unsubscribe link for {stats.email}; manual action required")
        return UnsubscribeResult(method=UnsubscribeMethod.MANUAL, requires_action=True)

    async def _one_click(self, url: str) -> UnsubscribeResult:
        """RFC 8058 POST to the sender's unsubscribe endpoint."""
        if self.http_client is None:
            return UnsubscribeResult(
                method=UnsubscribeMethod.HTTP_LINK,
                requires_action=True,
                link=url,
                error="No HTTP client configured for one-click unsubscribe"
            )

        try:
            response = await self.http_client.post(
                url,
                content=b'List-Unsubscribe=One-Click',
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                follow_redirects=True
            )
        except httpx.HTTPError as e:
            logger.warning(f"One-click unsubscribe request failed: {e}")
            return UnsubscribeResult(
                method=UnsubscribeMethod.ONE_CLICK,
                requires_action=True,
                link=url,
                error=str(e)
            )

        if response.is_success:
            logger.info(f"One-click unsubscribe accepted ({response.status_code})")
            return UnsubscribeResult(method=UnsubscribeMethod.ONE_CLICK, success=True, link=url)

        if response.status_code in (404, 410):
            return UnsubscribeResult(
                method=UnsubscribeMethod.ONE_CLICK,
                requires_action=True,
                link=url,
                link_expired=True,
                error="Unsubscribe link has expired"
            )

        return UnsubscribeResult(
            method=UnsubscribeMethod.ONE_CLICK,
            requires_action=True,
            link=url,
            error=f"Unsubscribe request failed with status {response.status_code}"
        )

    async def _send_mailto(self, link: str, dry_run: bool) -> UnsubscribeResult:
        try:
            address, subject, body = parse_mailto(link)
        except ValueError as e:
            return UnsubscribeResult(
                method=UnsubscribeMethod.MANUAL,
                requires_action=True,
                link=link,
                error=str(e)
            )

        if dry_run:
            logger.info(f"DRY RUN: Would email {address} to unsubscribe")
            return UnsubscribeResult(method=UnsubscribeMethod.MAILTO, link=link)

        try:
            await self.client.send_mail(address, subject, body)
        except ProviderError as e:
            if e.systemic:
                raise
            logger.warning(f"Unsubscribe email to {address} failed: {e}")
            return UnsubscribeResult(
                method=UnsubscribeMethod.MAILTO,
                requires_action=True,
                link=link,
                error=str(e)
            )

        logger.info(f"Sent unsubscribe email to {address}")
        return UnsubscribeResult(method=UnsubscribeMethod.MAILTO, success=True, link=link)

    def summarize(self, result: BulkMutationResult) -> Dict[str, Any]:
        """Flat summary for logs and script output."""
        return {
            'mutation': result.mutation.value,
            'dry_run': result.dry_run,
            'affected': result.total_affected,
            'failed': result.total_failed,
            'senders': len(result.per_sender),
        }
