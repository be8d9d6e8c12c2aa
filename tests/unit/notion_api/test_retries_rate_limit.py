"""Unit tests for retries.py and rate_limit.py.

Targets:
  - retries.py:    parse_retry_after, RetryPolicy
  - rate_limit.py: AsyncTokenBucket
"""
from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import pytest

from notionsync.config import SyncConfig
from notionsync.notion_api.rate_limit import AsyncTokenBucket
from notionsync.notion_api.retries import RetryPolicy, parse_retry_after


def _response(headers: dict | None = None) -> httpx.Response:
    return httpx.Response(429, headers=headers or {})


# ---------------------------------------------------------------------------
# parse_retry_after
# ---------------------------------------------------------------------------

class TestParseRetryAfter:
    def test_numeric(self):
        assert parse_retry_after(_response({"retry-after": "5"})) == 5.0

    def test_fractional(self):
        assert parse_retry_after(_response({"retry-after": "0.5"})) == pytest.approx(0.5)

    def test_missing(self):
        assert parse_retry_after(_response()) is None

    def test_http_date_not_supported(self):
        assert parse_retry_after(_response({"retry-after": "Wed, 21 Oct 2015 07:28:00 GMT"})) is None

    def test_negative_ignored(self):
        assert parse_retry_after(_response({"retry-after": "-1"})) is None


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------

class TestShouldRetry:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=60.0, jitter=False)

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert self.policy.should_retry(0, status_code=status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
    def test_client_errors_not_retried(self, status):
        assert not self.policy.should_retry(0, status_code=status)

    def test_last_attempt_not_retried(self):
        assert not self.policy.should_retry(2, status_code=503)

    def test_network_errors_retried(self):
        assert self.policy.should_retry(0, exception=httpx.ConnectError("refused"))
        assert self.policy.should_retry(0, exception=httpx.ReadTimeout("slow"))

    def test_other_exceptions_not_retried(self):
        assert not self.policy.should_retry(0, exception=ValueError("bad"))


class TestDelay:
    def test_exponential_without_jitter(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=60.0, jitter=False)
        assert [policy.delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=False)
        assert policy.delay(10) == 5.0

    def test_retry_after_replaces_backoff(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=60.0, jitter=False)
        assert policy.delay(3, retry_after=2.0) == 2.0

    def test_retry_after_capped(self):
        policy = RetryPolicy(max_delay=10.0, jitter=False)
        assert policy.delay(0, retry_after=120.0) == 10.0

    def test_jitter_scales_between_half_and_full(self):
        policy = RetryPolicy(base_delay=4.0, max_delay=60.0, jitter=True)
        with patch("notionsync.notion_api.retries.random.random", return_value=0.0):
            assert policy.delay(0) == 2.0
        for _ in range(50):
            assert 2.0 <= policy.delay(0) <= 4.0

    def test_from_config(self):
        config = SyncConfig(retry_max_attempts=7, retry_base_delay=0.5, retry_max_delay=9.0, retry_jitter=False)
        assert RetryPolicy.from_config(config) == RetryPolicy(7, 0.5, 9.0, False)


# ---------------------------------------------------------------------------
# AsyncTokenBucket
# ---------------------------------------------------------------------------

class TestAsyncTokenBucket:
    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            AsyncTokenBucket(rate_rps=0)
        with pytest.raises(ValueError):
            AsyncTokenBucket(rate_rps=1, burst=0)

    async def test_burst_is_free(self):
        bucket = AsyncTokenBucket(rate_rps=1.0, burst=3)
        waits = [await bucket.acquire() for _ in range(3)]
        assert waits == [0.0, 0.0, 0.0]

    async def test_empty_bucket_waits_for_deficit(self):
        bucket = AsyncTokenBucket(rate_rps=100.0, burst=1)
        assert await bucket.acquire() == 0.0
        waited = await bucket.acquire()
        assert waited == pytest.approx(0.01, abs=0.005)

    async def test_concurrent_callers_are_spaced(self):
        bucket = AsyncTokenBucket(rate_rps=100.0, burst=1)
        waits = sorted(await asyncio.gather(*(bucket.acquire() for _ in range(3))))
        assert waits[0] == 0.0
        assert waits[1] == pytest.approx(0.01, abs=0.005)
        assert waits[2] == pytest.approx(0.02, abs=0.005)

    def test_refill_capped_at_burst(self):
        bucket = AsyncTokenBucket(rate_rps=10.0, burst=2)
        bucket.tokens = 0.0
        bucket._refill(bucket.last_refill + 100.0)
        assert bucket.tokens == 2.0
