"""The cache facade used by the client and the executor.

The cache is an optimisation, never a requirement.  Every method of
:class:`PageCache`:

* is a no-op returning a neutral value (``False``, ``None``, ``0``, ``[]``)
  while the cache is not initialized;
* turns a database failure into a logged :class:`NotionsyncCacheError` and
  the same neutral value, instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from notionsync.config import SyncConfig
from notionsync.errors import NotionsyncCacheError
from notionsync.models import CacheStats, PageMeta, SyncStateRow
from notionsync.observability import NoopMetricsHook, get_logger

from .db import CacheDatabase
from .pages import PageStore, block_hash
from .sync_state import SyncStateStore

log = get_logger("notionsync.cache")

T = TypeVar("T")


class PageCache:
    """Local SQLite cache of page metadata, content and sync state.

    Parameters
    ----------
    config:
        Client configuration (cache path, eviction limit, metrics).
    """

    def __init__(self, config: SyncConfig | None = None) -> None:
        self._config = config if config is not None else SyncConfig()
        self._metrics = (
            self._config.metrics if self._config.metrics is not None else NoopMetricsHook()
        )
        self._db: CacheDatabase | None = None
        self._pages: PageStore | None = None
        self._sync: SyncStateStore | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self, path: str | None = None) -> bool:
        """Open (and create if needed) the cache database.

        Returns ``True`` on success.  Calling it on an open cache is a no-op.
        """
        if self._db is not None:
            return True
        path = path or self._config.resolved_cache_path
        try:
            db = CacheDatabase(path)
        except (SQLAlchemyError, OSError) as exc:
            err = NotionsyncCacheError(
                message=f"Cannot open cache at {path}: {exc}",
                context={"path": path},
                cause=exc,
            )
            log.warning(err.message, extra={"extra_fields": {"op": "cache_init", "path": path}})
            return False
        self._db = db
        self._pages = PageStore(db)
        self._sync = SyncStateStore(db)
        log.debug("Cache opened", extra={"extra_fields": {"op": "cache_init", "path": path}})
        return True

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
        self._db = None
        self._pages = None
        self._sync = None

    def is_initialized(self) -> bool:
        return self._db is not None

    @property
    def path(self) -> str | None:
        return self._db.path if self._db is not None else None

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _run(self, op: str, default: T, fn: Callable[[], T], *, table: str | None = None) -> T:
        if self._db is None:
            return default
        try:
            result = fn()
        except SQLAlchemyError as exc:
            err = NotionsyncCacheError(
                message=f"Cache operation {op} failed: {exc}",
                context={"op": op},
                cause=exc,
            )
            log.warning(err.message, extra={"extra_fields": {"op": op}})
            if table is not None:
                self._metrics.increment(
                    "notionsync.cache_writes_total", tags={"table": table, "status": "error"},
                )
            return default
        if table is not None:
            self._metrics.increment(
                "notionsync.cache_writes_total", tags={"table": table, "status": "ok"},
            )
        return result

    def _write(self, op: str, table: str, fn: Callable[[], Any]) -> bool:
        def call() -> bool:
            result = fn()
            return True if result is None else bool(result)
        return self._run(op, False, call, table=table)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def save_page(self, meta: PageMeta) -> bool:
        """Insert or refresh page metadata.

        Open statistics are preserved and a soft-deleted page is revived.
        Content, block hashes and sync state are untouched.
        """
        return self._write("save_page", "pages", lambda: self._pages.save_page(meta))

    def save_pages_batch(self, metas: list[PageMeta]) -> int:
        if not metas:
            return 0
        return self._run(
            "save_pages_batch", 0, lambda: self._pages.save_pages_batch(metas), table="pages",
        )

    def get_page(self, page_id: str) -> PageMeta | None:
        return self._run("get_page", None, lambda: self._pages.get_page(page_id))

    def has_page(self, page_id: str) -> bool:
        return self._run("has_page", False, lambda: self._pages.has_page(page_id))

    def update_open_stats(self, page_id: str) -> bool:
        return self._write("update_open_stats", "pages", lambda: self._pages.update_open_stats(page_id))

    def delete_page(self, page_id: str) -> bool:
        """Soft delete: the page disappears from lookups but keeps its rows."""
        return self._write("delete_page", "pages", lambda: self._pages.delete_page(page_id))

    def purge_page(self, page_id: str) -> bool:
        """Hard delete: the page row and everything cascading from it."""
        return self._write("purge_page", "pages", lambda: self._pages.purge_page(page_id))

    def get_recent(self, limit: int = 20) -> list[PageMeta]:
        return self._run("get_recent", [], lambda: self._pages.get_recent(limit))

    def search(self, query: str, limit: int = 50) -> list[PageMeta]:
        """Pages whose title contains *query*, best frecency first."""
        return self._run("search", [], lambda: self._pages.search(query, limit))

    def evict(self, max_pages: int | None = None) -> int:
        limit = max_pages if max_pages is not None else self._config.cache_max_pages
        evicted = self._run("evict", 0, lambda: self._pages.evict(limit), table="pages")
        if evicted:
            log.info(
                "Evicted low-frecency pages",
                extra={"extra_fields": {"op": "evict", "count": evicted}},
            )
        return evicted

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def save_content(self, page_id: str, blocks: list[dict[str, Any]]) -> bool:
        return self._run(
            "save_content", False, lambda: self._pages.save_content(page_id, blocks),
            table="page_content",
        )

    def get_content(self, page_id: str) -> tuple[list[dict[str, Any]] | None, str | None]:
        return self._run("get_content", (None, None), lambda: self._pages.get_content(page_id))

    def has_content(self, page_id: str) -> bool:
        return self._run("has_content", False, lambda: self._pages.has_content(page_id))

    def get_cache_age(self, page_id: str) -> int | None:
        """Seconds since the content of *page_id* was last stored."""
        return self._run("get_cache_age", None, lambda: self._pages.get_cache_age(page_id))

    def get_block_hashes(self, page_id: str) -> dict[str, str]:
        return self._run("get_block_hashes", {}, lambda: self._pages.get_block_hashes(page_id))

    def changed_block_ids(self, page_id: str, blocks: list[dict[str, Any]]) -> list[str]:
        """Ids of *blocks* that are new or differ from their cached hash."""
        if self._db is None:
            return []
        known = self.get_block_hashes(page_id)
        return [
            block["id"]
            for block in blocks
            if block.get("id") and known.get(block["id"]) != block_hash(block)
        ]

    def clear_content(self, page_id: str | None = None) -> bool:
        return self._run(
            "clear_content", False, lambda: self._pages.clear_content(page_id) >= 0,
            table="page_content",
        )

    def clear_all(self) -> bool:
        return self._write("clear_all", "pages", lambda: self._pages.clear_all())

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    def record_pull(self, page_id: str, content_hash: str) -> bool:
        return self._write("record_pull", "sync_state", lambda: self._sync.record_pull(page_id, content_hash))

    def record_push(self, page_id: str, content_hash: str) -> bool:
        return self._write("record_push", "sync_state", lambda: self._sync.record_push(page_id, content_hash))

    def mark_modified(self, page_id: str, local_hash: str | None = None) -> bool:
        return self._write(
            "mark_modified", "sync_state", lambda: self._sync.mark_modified(page_id, local_hash),
        )

    def get_sync_state(self, page_id: str) -> SyncStateRow | None:
        return self._run("get_sync_state", None, lambda: self._sync.get(page_id))

    def has_changed(self, page_id: str, content_hash: str) -> bool:
        """Whether *content_hash* is new for *page_id*.  ``True`` when unknown."""
        return self._run("has_changed", True, lambda: self._sync.has_changed(page_id, content_hash))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        return self._run("stats", CacheStats(), lambda: self._db.stats())

    def vacuum(self) -> bool:
        return self._write("vacuum", "all", lambda: self._db.vacuum())
