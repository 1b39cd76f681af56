"""Chunked, paced execution of per-message provider calls."""

import asyncio
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from ..providers.base import ProviderClient
from ..providers.errors import ProviderError
from ..providers.models import Message
from ..utils import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass
class Outcome(Generic[T]):
    """Result of one task in a settled group: a value or an error."""

    item: Any
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(
    items: Iterable[Any],
    operation: Callable[[Any], Awaitable[T]],
    limit: int
) -> List[Outcome[T]]:
    """
    Run ``operation`` for every item with at most ``limit`` in flight.

    Every item settles to an Outcome; one failure never cancels the others.
    Systemic provider errors are still collected here; callers decide
    whether to abort.

    Args:
        items: Inputs, one task each
        operation: Coroutine function applied to each item
        limit: Concurrency ceiling

    Returns:
        Outcomes in input order
    """
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def run(item: Any) -> Outcome[T]:
        async with semaphore:
            try:
                return Outcome(item=item, value=await operation(item))
            except Exception as e:
                return Outcome(item=item, error=e)

    return list(await asyncio.gather(*(run(item) for item in items)))


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class BatchResult(Generic[T]):
    """
    Settled outcome of a batched run.

    Attributes:
        succeeded: Item -> value for every item that succeeded
        failed: Item -> error for every item that failed
        chunks: Number of chunks issued
    """

    succeeded: Dict[str, T] = field(default_factory=dict)
    failed: Dict[str, BaseException] = field(default_factory=dict)
    chunks: int = 0

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def values(self) -> List[T]:
        return list(self.succeeded.values())


@dataclass
class BatchJob(Generic[T]):
    """
    A batched operation over message IDs.

    Attributes:
        ids: Message IDs to process
        operation: Per-id coroutine function (fan-out mode)
        batch_operation: Per-chunk coroutine function returning id -> value
            (batch endpoint mode); takes precedence over ``operation``
        description: Label for progress logs
    """

    ids: List[str]
    operation: Optional[Callable[[str], Awaitable[T]]] = None
    batch_operation: Optional[Callable[[List[str]], Awaitable[Dict[str, T]]]] = None
    description: str = 'batch'


class BatchFetcher:
    """
    Run per-message provider calls in paced chunks.

    Chunks run one after another; the provider's pacing delay is slept
    between chunks, never after the last. Inside a chunk, calls fan out with
    the provider's concurrency ceiling, or go out as one multiplexed request
    when the provider has a batch endpoint. Individual failures are counted;
    a systemic error aborts the remaining chunks.

    Example:
        >>> fetcher = BatchFetcher(client)
        >>> result = await fetcher.fetch_messages(page.ids)
        >>> print(f"{result.success_count} fetched, {result.failure_count} failed")
    """

    def __init__(
        self,
        client: ProviderClient,
        batch_size: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize the fetcher. Unset limits come from ``client.limits``.

        Args:
            client: Provider client
            batch_size: Items per chunk
            max_concurrent: In-flight calls within a chunk
            batch_delay: Seconds between chunks
            sleep: Awaitable sleep, replaceable in tests
        """
        limits = client.limits
        self.client = client
        self.batch_size = batch_size or limits.batch_size
        self.max_concurrent = max_concurrent or limits.max_concurrent
        self.batch_delay = limits.batch_delay if batch_delay is None else batch_delay
        self._sleep = sleep

    async def run(self, job: BatchJob[T]) -> BatchResult[T]:
        """
        Execute a job chunk by chunk.

        Raises:
            ProviderError: A systemic failure (e.g. rejected credential)
            ValueError: The job has neither operation nor batch_operation
        """
        if job.operation is None and job.batch_operation is None:
            raise ValueError("BatchJob needs an operation or a batch_operation")

        result: BatchResult[T] = BatchResult()
        chunks = chunked(job.ids, self.batch_size)

        for index, chunk in enumerate(chunks, start=1):
            if job.batch_operation is not None:
                await self._run_batch_chunk(job.batch_operation, list(chunk), result)
            else:
                await self._run_fanout_chunk(job.operation, list(chunk), result)

            result.chunks += 1
            logger.info(
                f"{job.description}: chunk {index}/{len(chunks)} done "
                f"({result.success_count} ok, {result.failure_count} failed)"
            )

            if index < len(chunks) and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        if result.failed:
            logger.warning(
                f"{job.description}: {result.failure_count}/{len(job.ids)} items failed"
            )
        return result

    async def _run_fanout_chunk(self, operation, chunk: List[str], result: BatchResult) -> None:
        outcomes = await gather_settled(chunk, operation, self.max_concurrent)

        for outcome in outcomes:
            if outcome.ok:
                result.succeeded[outcome.item] = outcome.value
            else:
                result.failed[outcome.item] = outcome.error

        self._raise_systemic(outcomes)

    async def _run_batch_chunk(self, batch_operation, chunk: List[str], result: BatchResult) -> None:
        try:
            values = await batch_operation(chunk)
        except ProviderError as e:
            if e.systemic:
                raise
            logger.error(f"Batch request for {len(chunk)} items failed: {e}")
            for item in chunk:
                result.failed[item] = e
            return

        for item in chunk:
            if item in values:
                result.succeeded[item] = values[item]
            else:
                result.failed[item] = ProviderError(f"No result for {item} in batch response")

    @staticmethod
    def _raise_systemic(outcomes: List[Outcome]) -> None:
        for outcome in outcomes:
            if isinstance(outcome.error, ProviderError) and outcome.error.systemic:
                raise outcome.error

    async def fetch_messages(self, message_ids: List[str]) -> BatchResult[Message]:
        """
        Fetch messages with headers, using the batch endpoint when available.

        Args:
            message_ids: IDs to fetch

        Returns:
            BatchResult mapping id -> Message
        """
        if self.client.limits.supports_batch_endpoint:
            async def fetch_chunk(ids: List[str]) -> Dict[str, Message]:
                messages = await self.client.batch_get_messages(ids)
                return {m.message_id: m for m in messages}

            job = BatchJob(ids=message_ids, batch_operation=fetch_chunk, description='fetch')
        else:
            job = BatchJob(
                ids=message_ids,
                operation=self.client.get_message_with_headers,
                description='fetch'
            )
        return await self.run(job)

    async def mutate(
        self,
        message_ids: List[str],
        operation: Callable[[str], Awaitable[Any]],
        description: str = 'mutate'
    ) -> BatchResult[Any]:
        """Fan out a per-message mutation (trash, archive) in paced chunks."""
        return await self.run(
            BatchJob(ids=message_ids, operation=operation, description=description)
        )
