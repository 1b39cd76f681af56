"""Tests for retrying provider requests."""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from src.providers.auth import StaticTokenProvider
from src.providers.errors import (
    AuthenticationError,
    MalformedResponseError,
    PermanentError,
    TransientError,
)
from src.providers.rate_limiter import RateLimitedRequester, RetryPolicy, parse_retry_after


def run_request(handler, sleep, policy=None, method='GET', url='/items', **kwargs):
    """Issue one request through a requester backed by ``handler``."""
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            requester = RateLimitedRequester(
                http,
                StaticTokenProvider('test-token'),
                base_url='https://api.test/v1',
                policy=policy,
                sleep=sleep,
                rng=random.Random(7),
                name='test'
            )
            body = await requester.request(method, url, **kwargs)
            return body, requester

    return asyncio.run(go())


class TestRetryPolicy:
    """Test backoff computation."""

    def test_defaults(self):
        """Test default retry settings."""
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.initial_backoff == 1.0
        assert policy.max_backoff == 32.0
        assert policy.retry_statuses == (429, 503)

    def test_backoff_doubles(self):
        """Test backoff doubles per attempt."""
        policy = RetryPolicy()
        assert [policy.backoff(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_non_decreasing_and_capped(self):
        """Test pre-jitter backoff never decreases and never exceeds the cap."""
        policy = RetryPolicy(initial_backoff=0.5, max_backoff=10.0)
        delays = [policy.backoff(a) for a in range(20)]

        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert max(delays) == 10.0

    def test_jitter_bounds(self):
        """Test jitter adds between 0 and 50% of the base delay."""
        policy = RetryPolicy()
        rng = random.Random(1)
        for attempt in range(6):
            base = policy.backoff(attempt)
            delay = policy.delay(attempt, rng)
            assert base <= delay <= base * 1.5


class TestParseRetryAfter:
    """Test Retry-After parsing."""

    def test_seconds(self):
        assert parse_retry_after('7') == 7.0

    def test_missing(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after('') is None

    def test_garbage(self):
        assert parse_retry_after('soon') is None

    def test_http_date(self):
        """Test an HTTP date in the future gives a positive delay."""
        when = datetime.now(timezone.utc) + timedelta(seconds=120)
        seconds = parse_retry_after(format_datetime(when, usegmt=True))
        assert 100 < seconds <= 120

    def test_past_http_date_is_zero(self):
        when = datetime.now(timezone.utc) - timedelta(hours=1)
        assert parse_retry_after(format_datetime(when, usegmt=True)) == 0.0


class TestRateLimitedRequester:
    """Test request execution and retry behavior."""

    def test_success_returns_json(self, record_sleep, sleeps):
        """Test 2xx JSON body is returned and the bearer token is sent."""
        seen = {}

        def handler(request):
            seen['auth'] = request.headers['Authorization']
            seen['url'] = str(request.url)
            return httpx.Response(200, json={'ok': True})

        body, _ = run_request(handler, record_sleep)

        assert body == {'ok': True}
        assert seen['auth'] == 'Bearer test-token'
        assert seen['url'] == 'https://api.test/v1/items'
        assert sleeps == []

    def test_absolute_url_used_verbatim(self, record_sleep):
        """Test continuation links are requested as given."""
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={})

        run_request(handler, record_sleep, url='https://other.test/next?page=2')
        assert seen == ['https://other.test/next?page=2']

    def test_empty_body_returns_none(self, record_sleep):
        body, _ = run_request(lambda request: httpx.Response(204), record_sleep, method='POST')
        assert body is None

    def test_retries_429_then_succeeds(self, record_sleep, sleeps):
        """Test 429 is retried with backoff and the later success returned."""
        responses = iter([
            httpx.Response(429),
            httpx.Response(503),
            httpx.Response(200, json={'value': 1}),
        ])

        body, requester = run_request(lambda request: next(responses), record_sleep)

        assert body == {'value': 1}
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.5
        assert 2.0 <= sleeps[1] <= 3.0
        assert requester.get_stats()['total_retries'] == 2

    def test_retry_after_header_honored(self, record_sleep, sleeps):
        """Test Retry-After seconds replace the computed backoff."""
        responses = iter([
            httpx.Response(429, headers={'Retry-After': '5'}),
            httpx.Response(200, json={}),
        ])

        run_request(lambda request: next(responses), record_sleep)
        assert sleeps == [5.0]

    def test_retries_exhausted_raises_transient(self, record_sleep, sleeps):
        """Test persistent 429 surfaces as TransientError after max retries."""
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(429)

        with pytest.raises(TransientError) as exc_info:
            run_request(handler, record_sleep, policy=RetryPolicy(max_retries=2))

        assert exc_info.value.status == 429
        assert len(calls) == 3
        assert len(sleeps) == 2

    def test_permanent_error_not_retried(self, record_sleep, sleeps):
        """Test other non-2xx statuses fail immediately."""
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(400, text='bad request')

        with pytest.raises(PermanentError) as exc_info:
            run_request(handler, record_sleep)

        assert exc_info.value.status == 400
        assert 'bad request' in exc_info.value.body
        assert len(calls) == 1
        assert sleeps == []

    def test_401_is_systemic(self, record_sleep):
        """Test rejected credentials raise a systemic AuthenticationError."""
        with pytest.raises(AuthenticationError) as exc_info:
            run_request(lambda request: httpx.Response(401), record_sleep)

        assert exc_info.value.systemic is True

    def test_graph_invalid_token_403_is_systemic(self, record_sleep):
        def handler(request):
            return httpx.Response(403, json={'error': {'code': 'InvalidAuthenticationToken'}})

        with pytest.raises(AuthenticationError):
            run_request(handler, record_sleep)

    def test_other_403_is_permanent(self, record_sleep):
        def handler(request):
            return httpx.Response(403, json={'error': {'code': 'ErrorAccessDenied'}})

        with pytest.raises(PermanentError) as exc_info:
            run_request(handler, record_sleep)

        assert not isinstance(exc_info.value, AuthenticationError)

    def test_malformed_body(self, record_sleep):
        """Test unparseable 2xx body raises MalformedResponseError."""
        def handler(request):
            return httpx.Response(200, content=b'<html>not json</html>')

        with pytest.raises(MalformedResponseError):
            run_request(handler, record_sleep)

    def test_malformed_is_permanent(self):
        assert issubclass(MalformedResponseError, PermanentError)

    def test_network_error_retried(self, record_sleep, sleeps):
        """Test transport errors are retried, then raised as TransientError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientError):
            run_request(handler, record_sleep, policy=RetryPolicy(max_retries=1))

        assert len(sleeps) == 1
