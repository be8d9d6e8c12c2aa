"""Configuration for notionsync.

:class:`SyncConfig` is a plain dataclass that captures every tuneable knob
of the sync engine.  One instance is shared by the transport, the cache,
the executor, and :class:`~notionsync.async_client.AsyncSyncClient`.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlparse

DEFAULT_CACHE_PATH: str = os.path.join(
    os.path.expanduser("~"), ".cache", "notionsync", "cache.db",
)
"""Location of the SQLite cache when ``cache_path`` is not set."""

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")

# (field, minimum, minimum allowed)
_LOWER_BOUNDS: tuple[tuple[str, float, bool], ...] = (
    ("retry_max_attempts", 1, True),
    ("retry_base_delay", 0, True),
    ("retry_max_delay", 0, True),
    ("rate_limit_rps", 0, False),
    ("timeout_seconds", 0, False),
    ("cache_max_pages", 1, True),
)

_CHOICES: dict[str, tuple[str, ...]] = {
    "confirm_sync": ("always", "on_ambiguity", "never"),
    "concurrent_sync": ("reject", "queue"),
}


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class SyncConfig:
    """Complete configuration for a notionsync client.

    Only ``token`` has to be given; every other knob has a working default.

    Parameters
    ----------
    token:
        Notion integration token.  Masked in ``repr`` and debug dumps.
    notion_version:
        ``Notion-Version`` header value.
    base_url:
        Root of the Notion API.  Plain ``http`` is only accepted for localhost.
    retry_max_attempts:
        Maximum number of attempts per HTTP request for retryable errors
        (429, 5xx, network).  This is transport pacing only; the sync
        executor itself never retries a failed operation.
    retry_base_delay:
        First backoff step in seconds; each retry doubles it.
    retry_max_delay:
        Longest single wait in seconds, ``Retry-After`` included.
    retry_jitter:
        Add random jitter to backoff intervals.
    rate_limit_rps:
        Sustained request rate allowed by the client-side token bucket.
    timeout_seconds:
        Per-request timeout in seconds.
    http_proxy:
        Proxy URL for every request.
    cache_enabled:
        Open the local SQLite cache when the client starts.
    cache_path:
        Database file.  ``":memory:"`` keeps the cache in memory.  Defaults
        to :data:`DEFAULT_CACHE_PATH`.
    cache_max_pages:
        Number of pages kept by :meth:`PageCache.evict`.  The least recently
        opened pages beyond this count are removed.
    confirm_sync:
        When a push asks the caller for confirmation.

        * ``"always"``: every non-empty plan.
        * ``"on_ambiguity"``: only plans with deletes or unmatched regions.
        * ``"never"``: apply without asking.
    concurrent_sync:
        What happens when a push is requested for a page that is already
        being synced.

        * ``"reject"``: the second push fails immediately.
        * ``"queue"``: the second push waits for the first to finish.
    metrics:
        A :class:`~notionsync.observability.MetricsHook` implementation.
    debug_dump_payload:
        Print each request and response body, redacted, to *stderr*.
    debug_dump_plan:
        Log the sync plan summary before it is executed.
    log_level:
        Level applied to every notionsync logger when the client starts
        (e.g. ``"info"``).  ``None`` leaves the current level alone.
    log_path:
        Append the structured log to this file as well as *stderr*.
    """

    # ── Core ────────────────────────────────────────────────────────────
    token: str = ""

    notion_version: str = "2022-06-28"

    base_url: str = "https://api.notion.com/v1"

    # ── Retry & rate ────────────────────────────────────────────────────
    retry_max_attempts: int = 5

    retry_base_delay: float = 1.0

    retry_max_delay: float = 60.0

    retry_jitter: bool = True

    rate_limit_rps: float = 3.0

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Cache ───────────────────────────────────────────────────────────
    cache_enabled: bool = True

    cache_path: str | None = None

    cache_max_pages: int = 500

    # ── Sync ────────────────────────────────────────────────────────────
    confirm_sync: Literal["always", "on_ambiguity", "never"] = "on_ambiguity"

    concurrent_sync: Literal["reject", "queue"] = "reject"

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    debug_dump_plan: bool = False

    # ── Logging ─────────────────────────────────────────────────────────
    log_level: str | None = None

    log_path: str | None = None

    def __post_init__(self) -> None:
        """Reject values the transport, cache or executor cannot work with."""
        url = urlparse(self.base_url)
        if url.scheme == "http" and url.hostname not in _LOCAL_HOSTS:
            raise ValueError(
                f"base_url {self.base_url!r} uses insecure HTTP and would send the token in clear; "
                "use HTTPS, or a localhost URL for testing."
            )

        for name, minimum, inclusive in _LOWER_BOUNDS:
            value = getattr(self, name)
            if value < minimum or (not inclusive and value == minimum):
                op = ">=" if inclusive else ">"
                raise ValueError(f"{name} must be {op} {minimum}, got {value}")

        for name, allowed in _CHOICES.items():
            if getattr(self, name) not in allowed:
                raise ValueError(f"{name} must be one of {'/'.join(allowed)}, got {getattr(self, name)!r}")

        if self.log_level is not None and not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"log_level must be a logging level name, got {self.log_level!r}")

    @property
    def resolved_cache_path(self) -> str:
        """The cache database location, with the default applied."""
        return self.cache_path or DEFAULT_CACHE_PATH

    def __repr__(self) -> str:
        """Show every field except the token, of which only the tail is kept."""
        fields = []
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "token":
                fields.append("token='" + (f"...{value[-4:]}" if len(value) >= 4 else "****") + "'")
            else:
                fields.append(f"{f.name}={value!r}")
        return "SyncConfig(" + ", ".join(fields) + ")"
