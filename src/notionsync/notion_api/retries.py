"""Retry policy for the HTTP transport.

Only the transport retries, and only for failures that say nothing about
the request itself: ``429``, ``5xx`` and network errors.  The sync executor
never retries an operation; a request that exhausts its attempts surfaces
as a per-operation error.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

import httpx

from notionsync.config import SyncConfig

RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)


def parse_retry_after(response: httpx.Response) -> float | None:
    """Return the ``Retry-After`` header in seconds, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


@dataclass(frozen=True)
class RetryPolicy:
    """When and how long to wait before re-sending a request.

    Attributes
    ----------
    max_attempts:
        Total attempts including the first one.
    base_delay:
        Delay of the first backoff step, in seconds.
    max_delay:
        Cap on any single delay, ``Retry-After`` included.
    jitter:
        Scale each delay randomly to 50-100% of its value.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: SyncConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )

    def should_retry(
        self,
        attempt: int,
        *,
        status_code: int | None = None,
        exception: Exception | None = None,
    ) -> bool:
        """Whether attempt number *attempt* (0-indexed) may be followed by another."""
        if attempt + 1 >= self.max_attempts:
            return False
        if exception is not None:
            return isinstance(exception, RETRYABLE_EXCEPTIONS)
        return status_code in RETRYABLE_STATUSES

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after attempt number *attempt* failed.

        A server-provided *retry_after* replaces the exponential step.
        """
        if retry_after is not None:
            delay = min(retry_after, self.max_delay)
        else:
            delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay
