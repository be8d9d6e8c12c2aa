"""Client-side request pacing.

Notion allows an average of three requests per second per integration.
:class:`AsyncTokenBucket` keeps the transport under that rate: tokens refill
continuously at ``rate_rps`` up to ``burst``, and a caller that finds the
bucket empty sleeps for exactly the deficit.
"""

from __future__ import annotations

import asyncio
import time


class AsyncTokenBucket:
    """Token bucket shared by every coroutine using one transport.

    Parameters
    ----------
    rate_rps:
        Refill rate in tokens per second.
    burst:
        Bucket capacity.
    """

    __slots__ = ("_lock", "burst", "last_refill", "rate", "tokens")

    def __init__(self, rate_rps: float, burst: int = 10) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")
        self.rate = rate_rps
        self.burst = burst
        self.tokens = float(burst)
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        self.tokens = min(float(self.burst), self.tokens + (now - self.last_refill) * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: int = 1) -> float:
        """Take *tokens*, sleeping if the bucket is short.

        Returns the seconds spent waiting.
        """
        async with self._lock:
            self._refill(time.monotonic())
            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0
            wait = (tokens - self.tokens) / self.rate
            # Reserve the refill up to the end of the wait for this caller.
            self.tokens = 0.0
            self.last_refill = time.monotonic() + wait
        await asyncio.sleep(wait)
        return wait
