"""Metrics hook protocol and no-op default implementation.

notionsync emits counters and timings around API requests, sync
operations, and cache writes.  A :class:`NoopMetricsHook` is used unless the
caller supplies an object satisfying :class:`MetricsHook` through
``SyncConfig(metrics=...)``.

Emitted metric names:

* ``notionsync.requests_total``        -- counter
* ``notionsync.retries_total``         -- counter
* ``notionsync.rate_limited_total``    -- counter
* ``notionsync.request_duration_ms``   -- timing
* ``notionsync.rate_limit_wait_ms``    -- timing
* ``notionsync.sync_ops_total``        -- counter (tags: op_type, status)
* ``notionsync.sync_duration_ms``      -- timing
* ``notionsync.cache_writes_total``    -- counter (tags: table, status)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Default metrics implementation that discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
