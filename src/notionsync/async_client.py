"""Asynchronous sync client.

:class:`AsyncSyncClient` ties the pieces together: it opens pages into
buffer sessions (from the cache first, then from Notion), plans and pushes
buffer edits, and keeps the cache up to date.

Usage::

    import asyncio
    from notionsync import AsyncSyncClient

    async def main():
        async with AsyncSyncClient(token="secret_xxx") as client:
            session = await client.open_page("<page_id>")
            session.insert_lines(len(session.lines), ["New paragraph"])
            outcome = await client.push(session)
            print(outcome.ok, outcome.errors)

    asyncio.run(main())
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from notionsync.blocks.formatter import Formatter, LineFormatter
from notionsync.blocks.model import Block, block_from_api
from notionsync.buffer.protection import restore_readonly
from notionsync.buffer.session import Session, SessionContext, SessionRegistry
from notionsync.cache import PageCache
from notionsync.config import SyncConfig
from notionsync.diff.confirm import format_plan, needs_confirmation
from notionsync.diff.executor import SyncExecutor
from notionsync.diff.planner import SyncPlanner
from notionsync.errors import NotionsyncError
from notionsync.models import PageMeta, SessionStatus, SyncOutcome, SyncPlan
from notionsync.notion_api.pages import normalize_page_id, page_meta
from notionsync.notion_api.store import NotionRemoteStore
from notionsync.observability import add_file_handler, get_logger, set_level
from notionsync.utils.hashing import hash_blocks

log = get_logger("notionsync.client")

ConfirmCallback = Callable[[SyncPlan], "bool | Awaitable[bool]"]


class AsyncSyncClient:
    """Edit Notion pages as line buffers and sync them back.

    Parameters
    ----------
    token:
        Notion integration token.
    store:
        Remote store to use instead of the Notion API (tests pass a mock).
    formatter:
        Text formatter; defaults to :class:`LineFormatter`.
    cache:
        Cache instance to use instead of one built from the config.
    **kwargs:
        Forwarded to :class:`SyncConfig`.
    """

    def __init__(
        self,
        token: str = "",
        *,
        store: Any | None = None,
        formatter: Formatter | None = None,
        cache: PageCache | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = SyncConfig(token=token, **kwargs)
        if self._config.log_level is not None:
            set_level(self._config.log_level)
        if self._config.log_path is not None:
            add_file_handler(self._config.log_path)
        self._owns_store = store is None
        self._store = store if store is not None else NotionRemoteStore.from_config(self._config)
        self._formatter = formatter if formatter is not None else LineFormatter()
        self._cache = cache if cache is not None else PageCache(self._config)
        if cache is None and self._config.cache_enabled:
            self._cache.init()
        self._registry = SessionRegistry()
        self._planner = SyncPlanner(self._config)
        self._executor = SyncExecutor(
            self._store, self._registry, cache=self._cache, config=self._config,
        )

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def cache(self) -> PageCache:
        return self._cache

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def executor(self) -> SyncExecutor:
        return self._executor

    # ------------------------------------------------------------------
    # Opening and pulling
    # ------------------------------------------------------------------

    async def open_page(self, page_id: str) -> Session:
        """Open *page_id* in a new session.

        Cached content is shown first (``from_cache=True``) and then
        refreshed from Notion; a failed refresh keeps the cached content.
        Without cached content the page is fetched before returning.
        Reopening a page invalidates its previous session.
        """
        page_id = normalize_page_id(page_id)
        session = self._registry.open(page_id)
        cached_meta = self._cache.get_page(page_id)
        blocks, content_hash = self._cache.get_content(page_id)

        if blocks is None:
            await self.pull(session)
        else:
            session.page = cached_meta
            session.load(
                [block_from_api(raw) for raw in blocks],
                self._formatter,
                content_hash=content_hash,
            )
            session.from_cache = True
            log.debug(
                "Page loaded from cache",
                extra={"extra_fields": {"op": "open_page", "page_id": page_id, "blocks": len(blocks)}},
            )
            try:
                await self._refresh(session, session.context)
            except NotionsyncError as exc:
                log.warning(
                    "Remote refresh failed; showing cached content",
                    extra={"extra_fields": {"op": "refresh", "page_id": page_id, "error": exc.message}},
                )

        self._cache.update_open_stats(page_id)
        self._cache.evict()
        return session

    async def _fetch(self, page_id: str) -> tuple[PageMeta, list[Block]]:
        page = await self._store.fetch_page(page_id)
        children = await self._store.fetch_children(page_id)
        meta = page_meta(page)
        meta.id = page_id
        return meta, [block_from_api(raw) for raw in children]

    def _store_pulled(self, meta: PageMeta, blocks: list[Block], content_hash: str) -> None:
        self._cache.save_page(meta)
        self._cache.save_content(meta.id, [block.serialize() for block in blocks])
        self._cache.record_pull(meta.id, content_hash)

    async def _refresh(self, session: Session, context: SessionContext) -> bool:
        """Reload *session* from Notion if the remote content changed.

        Returns ``True`` if the buffer was reloaded.  A session with local
        edits is never overwritten.
        """
        if session.page_id is None:
            return False
        meta, blocks = await self._fetch(session.page_id)
        if not self._registry.is_current(context):
            return False
        remote_hash = hash_blocks([block.serialize() for block in blocks])
        session.page = meta
        self._cache.save_page(meta)

        if remote_hash == session.content_hash:
            self._cache.record_pull(meta.id, remote_hash)
            return False
        if session.modified:
            log.warning(
                "Remote page changed while the buffer has local edits; not reloading",
                extra={"extra_fields": {"op": "refresh", "page_id": session.page_id}},
            )
            return False

        session.load(blocks, self._formatter, content_hash=remote_hash)
        session.from_cache = False
        self._store_pulled(meta, blocks, remote_hash)
        return True

    async def pull(self, session: Session) -> bool:
        """Replace *session*'s buffer with the current remote content.

        Local edits are discarded.  Returns ``False`` if the session was
        closed or reopened while fetching.

        Raises
        ------
        NotionsyncError
            If the page cannot be fetched.
        """
        if session.page_id is None:
            return False
        context = session.context
        session.status = SessionStatus.LOADING
        try:
            meta, blocks = await self._fetch(session.page_id)
        except NotionsyncError:
            if self._registry.is_current(context):
                session.status = SessionStatus.ERROR
            raise
        if not self._registry.is_current(context):
            log.debug(
                "Discarding pull for a closed session",
                extra={"extra_fields": {"op": "pull", "page_id": session.page_id}},
            )
            return False

        content_hash = hash_blocks([block.serialize() for block in blocks])
        session.page = meta
        session.load(blocks, self._formatter, content_hash=content_hash)
        session.from_cache = False
        self._store_pulled(meta, blocks, content_hash)
        log.info(
            "Page pulled",
            extra={"extra_fields": {"op": "pull", "page_id": session.page_id, "blocks": len(blocks)}},
        )
        return True

    # ------------------------------------------------------------------
    # Planning and pushing
    # ------------------------------------------------------------------

    def plan(self, session: Session) -> SyncPlan:
        """Restore read-only blocks and plan the buffer's changes."""
        restore_readonly(session)
        return self._planner.plan_session(session, self._formatter)

    async def push(
        self,
        session: Session,
        confirm: ConfirmCallback | None = None,
    ) -> SyncOutcome:
        """Plan and execute *session*'s changes.

        Parameters
        ----------
        session:
            The session to push.
        confirm:
            Called with the plan when the ``confirm_sync`` policy asks for
            approval; may be a coroutine function.  Without it, a plan that
            needs approval is not executed.
        """
        plan = self.plan(session)
        if plan.is_empty():
            return SyncOutcome(ok=True)

        if needs_confirmation(plan, self._config.confirm_sync):
            approved = False
            if confirm is not None:
                answer = confirm(plan)
                approved = bool(await answer) if inspect.isawaitable(answer) else bool(answer)
            if not approved:
                log.info(
                    "Sync not confirmed",
                    extra={"extra_fields": {"op": "push", "page_id": session.page_id}},
                )
                return SyncOutcome(ok=False, errors=[f"Sync not confirmed:\n{format_plan(plan)}"])

        outcome = await self._executor.execute(session, plan)
        if not outcome.ok and not outcome.stale and session.page_id is not None:
            self._cache.mark_modified(session.page_id, hash_blocks(session.serialize_blocks()))
        return outcome

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_pages(self, query: str = "", *, remote: bool = False, limit: int = 50) -> list[PageMeta]:
        """Find pages by title.

        Uses the cache's frecency ranking unless *remote* is set or the
        cache is unavailable; remote results are written to the cache.
        """
        if not remote and self._cache.is_initialized():
            return self._cache.search(query, limit)
        pages = await self._store.search_pages(query or None, limit=limit)
        metas = [page_meta(page) for page in pages]
        self._cache.save_pages_batch(metas)
        return metas

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close_session(self, session: Session) -> bool:
        return self._registry.close(session.handle)

    async def close(self) -> None:
        """Wait for submitted syncs, close every session and release resources."""
        await self._executor.wait_idle()
        self._registry.close_all()
        self._cache.close()
        if self._owns_store:
            await self._store.close()

    async def __aenter__(self) -> AsyncSyncClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
