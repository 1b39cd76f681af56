"""Retrying HTTP requester for provider API calls."""

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..utils import get_logger
from .auth import TokenProvider
from .errors import (
    AuthenticationError,
    MalformedResponseError,
    PermanentError,
    TransientError,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry and backoff settings for one provider.

    Attributes:
        max_retries: Retries after the first attempt
        initial_backoff: Delay before the first retry, in seconds
        max_backoff: Cap on the computed (pre-jitter) delay
        jitter_ratio: Upper bound of the extra random delay, as a fraction
        retry_statuses: HTTP statuses that are retried
    """
    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 32.0
    jitter_ratio: float = 0.5
    retry_statuses: tuple[int, ...] = (429, 503)

    def backoff(self, attempt: int) -> float:
        """
        Pre-jitter delay for a zero-based retry attempt.

        Non-decreasing in ``attempt`` and never above ``max_backoff``.
        """
        return min(self.initial_backoff * (2 ** attempt), self.max_backoff)

    def delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Backoff inflated by up to ``jitter_ratio`` of itself."""
        base = self.backoff(attempt)
        uniform = (rng or random).uniform(0, self.jitter_ratio)
        return base + base * uniform


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds or an HTTP date. Returns None when absent or
    unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class RateLimitedRequester:
    """
    Issue one provider request, retrying rate-limit and unavailable responses.

    Retry state lives in the call chain of a single ``request()``; concurrent
    requests do not share a backoff counter.

    Attributes:
        http_client: Shared httpx.AsyncClient
        token_provider: Supplies the bearer token for every attempt
        base_url: Prefix for relative request paths
        policy: RetryPolicy in effect

    Example:
        >>> requester = RateLimitedRequester(http, tokens, GMAIL_API_BASE)
        >>> profile = await requester.request('GET', '/profile')
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: TokenProvider,
        base_url: str = '',
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        name: str = 'provider'
    ):
        self.http_client = http_client
        self.token_provider = token_provider
        self.base_url = base_url.rstrip('/')
        self.policy = policy or RetryPolicy()
        self.name = name
        self._sleep = sleep
        self._rng = rng

        self.total_retries = 0
        self.total_waited = 0.0

    def resolve_url(self, url: str) -> str:
        """Absolute URLs (continuation handles) are used verbatim."""
        if url.startswith('http://') or url.startswith('https://'):
            return url
        return f"{self.base_url}{url}"

    async def request(
        self,
        method: str,
        url: str,
        params: Any = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[dict[str, str]] = None
    ) -> Any:
        """
        Execute a request and return the parsed JSON body.

        Args:
            method: HTTP method
            url: Path relative to base_url, or an absolute URL
            params: Query parameters
            json: JSON body
            content: Raw body (used instead of json)
            headers: Extra headers

        Returns:
            Parsed JSON body, or None for an empty response

        Raises:
            AuthenticationError: Credential rejected (401, or Graph 403 InvalidAuthenticationToken)
            TransientError: 429/503 or network failure after all retries
            PermanentError: Any other non-2xx response
            MalformedResponseError: 2xx with an unparseable body
        """
        full_url = self.resolve_url(url)
        max_retries = self.policy.max_retries

        for attempt in range(max_retries + 1):
            token = await self.token_provider.get_token()
            request_headers = {'Authorization': f'Bearer {token}'}
            if headers:
                request_headers.update(headers)

            try:
                response = await self.http_client.request(
                    method,
                    full_url,
                    params=params,
                    json=json,
                    content=content,
                    headers=request_headers
                )
            except httpx.TransportError as e:
                if attempt < max_retries:
                    await self._wait(
                        self.policy.delay(attempt, self._rng),
                        f"network error ({e.__class__.__name__})",
                        attempt
                    )
                    continue
                raise TransientError(
                    f"{self.name} {method} {url} failed after {max_retries} retries: {e}"
                ) from e

            if response.is_success:
                return self._parse_body(response, method, url)

            status = response.status_code
            body = response.text[:500]

            if status == 401 or (status == 403 and 'InvalidAuthenticationToken' in body):
                raise AuthenticationError(
                    f"{self.name} rejected the access token", status=status, body=body
                )

            if status in self.policy.retry_statuses:
                retry_after = parse_retry_after(response.headers.get('Retry-After'))
                if attempt < max_retries:
                    delay = (
                        retry_after if retry_after is not None
                        else self.policy.delay(attempt, self._rng)
                    )
                    await self._wait(delay, f"status {status}", attempt)
                    continue
                raise TransientError(
                    f"{self.name} {method} {url} still returning {status} "
                    f"after {max_retries} retries",
                    status=status,
                    body=body,
                    retry_after=retry_after
                )

            logger.error(f"{self.name} API error {status} for {method} {url}: {body[:200]}")
            raise PermanentError(
                f"{self.name} API error: {status}", status=status, body=body
            )

        # Loop always returns or raises
        raise TransientError(f"{self.name} {method} {url}: retries exhausted")

    async def _wait(self, delay: float, reason: str, attempt: int) -> None:
        logger.warning(
            f"{self.name} {reason}, retrying in {delay:.2f}s "
            f"(attempt {attempt + 1}/{self.policy.max_retries})"
        )
        self.total_retries += 1
        self.total_waited += delay
        await self._sleep(delay)

    @staticmethod
    def _parse_body(response: httpx.Response, method: str, url: str) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Unparseable response body for {method} {url}",
                status=response.status_code,
                body=response.text[:500]
            ) from e

    def get_stats(self) -> dict:
        """Retry statistics for logging."""
        return {
            'total_retries': self.total_retries,
            'total_waited': self.total_waited,
            'max_retries': self.policy.max_retries,
        }
