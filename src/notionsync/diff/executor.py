"""Sync executor: apply a :class:`SyncPlan` to the remote store.

Updates and deletes are independent and fan out concurrently.  Creates and
type changes form one ordered chain because each insert may be anchored on
a block created earlier in the same run.

Every remote call is awaited with the session's :class:`SessionContext` in
hand; results are committed to the session only while that context is
still current.  Remote failures never escape :meth:`SyncExecutor.execute`:
each one becomes a message on the returned :class:`SyncOutcome`, and the
operations that did succeed stay committed.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from notionsync.blocks.model import Block, is_temp_id
from notionsync.buffer.session import Session, SessionContext, SessionRegistry
from notionsync.config import SyncConfig
from notionsync.errors import (
    NotionsyncError,
    NotionsyncPreconditionError,
    NotionsyncSyncInProgressError,
)
from notionsync.models import (
    PlanCreate,
    PlanDelete,
    PlanRelink,
    PlanTypeChange,
    PlanUpdate,
    SessionStatus,
    SyncOutcome,
    SyncPlan,
)
from notionsync.observability import NoopMetricsHook, get_logger
from notionsync.utils.hashing import hash_blocks

log = get_logger("notionsync.executor")

SyncCallback = Callable[[bool, list[str]], Any]

_UNRESOLVED = object()


class _RunState:
    """Mutable state shared by the operations of one execution."""

    __slots__ = ("context", "errors", "operations", "orphaned", "page_id", "resolved", "stale")

    def __init__(self, page_id: str, context: SessionContext) -> None:
        self.page_id = page_id
        self.context = context
        self.errors: list[str] = []
        self.orphaned: list[str] = []
        self.operations = 0
        self.stale = False
        # temp_id or replaced id -> id the remote store now knows.
        self.resolved: dict[str, str | None] = {}


def _create_payload(block: Block) -> dict[str, Any]:
    data = block.serialize()
    data.pop("id", None)
    return data


class SyncExecutor:
    """Executes sync plans against a remote store.

    Parameters
    ----------
    store:
        A :class:`~notionsync.notion_api.store.RemoteStore`.
    registry:
        The session arena used to check that a session is still current
        after each await.
    cache:
        Optional :class:`~notionsync.cache.PageCache`.  Written only after a
        fully successful run, and only when initialized.
    config:
        Client configuration (``concurrent_sync`` policy and metrics).
    """

    def __init__(
        self,
        store: Any,
        registry: SessionRegistry,
        *,
        cache: Any | None = None,
        config: SyncConfig | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._cache = cache
        self._config = config if config is not None else SyncConfig()
        self._metrics = (
            self._config.metrics if self._config.metrics is not None else NoopMetricsHook()
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._tasks: set[asyncio.Task[SyncOutcome]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, session: Session, plan: SyncPlan) -> SyncOutcome:
        """Apply *plan* to the page behind *session*.

        Parameters
        ----------
        session:
            The session the plan was computed from.
        plan:
            Output of :class:`~notionsync.diff.planner.SyncPlanner`.

        Returns
        -------
        SyncOutcome
            ``ok`` is ``True`` only if every operation succeeded.
        """
        try:
            page_id = self._check_preconditions(session)
        except NotionsyncPreconditionError as exc:
            log.warning(
                "Sync rejected",
                extra={"extra_fields": {"op": "sync", "reason": exc.message}},
            )
            return SyncOutcome(ok=False, errors=[exc.message])

        lock = self._locks.setdefault(page_id, asyncio.Lock())
        waited = lock.locked()
        if waited and self._config.concurrent_sync == "reject":
            err = NotionsyncSyncInProgressError(
                message=f"Sync already in progress for page {page_id}",
                context={"page_id": page_id},
            )
            log.warning(err.message, extra={"extra_fields": {"op": "sync", "page_id": page_id}})
            return SyncOutcome(ok=False, errors=[err.message])

        self._lock_users[page_id] = self._lock_users.get(page_id, 0) + 1
        try:
            async with lock:
                if waited:
                    queued = self._after_wait(session, plan)
                    if queued is None:
                        return SyncOutcome(
                            ok=False,
                            errors=[f"Session for page {page_id} was closed before its queued sync ran"],
                            stale=True,
                        )
                    plan = queued
                start = time.monotonic()
                outcome = await self._run(session, page_id, plan)
                elapsed_ms = (time.monotonic() - start) * 1000
        finally:
            self._release_lock(page_id)
        status = "stale" if outcome.stale else ("ok" if outcome.ok else "error")
        self._metrics.timing("notionsync.sync_duration_ms", elapsed_ms, tags={"status": status})
        log.info(
            "Sync finished",
            extra={
                "extra_fields": {
                    "op": "sync",
                    "page_id": page_id,
                    "status": status,
                    "operations": outcome.operations,
                    "errors": len(outcome.errors),
                    "elapsed_ms": round(elapsed_ms, 1),
                }
            },
        )
        return outcome

    def submit(
        self,
        session: Session,
        plan: SyncPlan,
        callback: SyncCallback,
    ) -> asyncio.Task[SyncOutcome]:
        """Schedule :meth:`execute` and report through *callback*.

        ``callback(ok, errors)`` is invoked exactly once, including when the
        execution raises unexpectedly (the exception is then re-raised from
        the task).
        """

        async def runner() -> SyncOutcome:
            try:
                outcome = await self.execute(session, plan)
            except Exception as exc:
                log.error(
                    "Sync crashed",
                    exc_info=True,
                    extra={"extra_fields": {"op": "sync", "page_id": session.page_id}},
                )
                callback(False, [f"Sync failed: {exc}"])
                raise
            callback(outcome.ok, list(outcome.errors))
            return outcome

        task = asyncio.get_running_loop().create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every task started by :meth:`submit` to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _check_preconditions(self, session: Session) -> str:
        if not session.page_id:
            raise NotionsyncPreconditionError(
                message="Cannot execute sync plan: page_id is unknown",
                context={"handle": session.handle},
            )
        if session.closed or not self._registry.is_current(session.context):
            raise NotionsyncPreconditionError(
                message=f"Cannot execute sync plan: session for page {session.page_id} is closed",
                context={"handle": session.handle, "page_id": session.page_id},
            )
        return session.page_id

    def _release_lock(self, page_id: str) -> None:
        users = self._lock_users[page_id] - 1
        if users:
            self._lock_users[page_id] = users
        else:
            del self._lock_users[page_id]
            del self._locks[page_id]

    def _after_wait(self, session: Session, plan: SyncPlan) -> SyncPlan | None:
        """Re-check a queued plan once the previous sync has finished.

        Returns ``None`` if the session was closed or reopened meanwhile.
        Otherwise returns the operations the previous sync did not already
        apply: creates whose block still has no remote id, and updates,
        deletes and type changes whose block is still in the snapshot.
        """
        if session.closed or not self._registry.is_current(session.context):
            log.warning(
                "Queued sync dropped; session closed while waiting",
                extra={"extra_fields": {"op": "sync", "page_id": session.page_id}},
            )
            return None
        synced = {old.id for old in session.snapshot if old.id is not None}
        remaining = SyncPlan(
            creates=[op for op in plan.creates if op.block.is_new],
            updates=[op for op in plan.updates if op.id in synced],
            deletes=[op for op in plan.deletes if op.id in synced],
            type_changes=[op for op in plan.type_changes if op.id in synced],
            relinks=[op for op in plan.relinks if op.block.id != op.id],
            unmatched=list(plan.unmatched),
        )
        dropped = plan.operation_count() - remaining.operation_count()
        if dropped:
            log.info(
                "Queued sync skips operations already applied",
                extra={"extra_fields": {"op": "sync", "page_id": session.page_id, "skipped": dropped}},
            )
        return remaining

    async def _run(self, session: Session, page_id: str, plan: SyncPlan) -> SyncOutcome:
        state = _RunState(page_id, session.context)
        session.status = SessionStatus.SYNCING

        for relink in plan.relinks:
            self._apply_relink(session, relink)

        try:
            await asyncio.gather(
                *(self._update(session, op, state) for op in plan.updates),
                *(self._delete(session, op, state) for op in plan.deletes),
                self._insert_chain(session, plan, state),
            )
        except Exception:
            if self._registry.is_current(state.context):
                session.status = SessionStatus.ERROR
            raise

        if state.stale or not self._registry.is_current(state.context):
            log.warning(
                "Session changed during sync; results discarded",
                extra={"extra_fields": {"op": "sync", "page_id": page_id}},
            )
            return SyncOutcome(
                ok=False,
                errors=state.errors + [f"Session for page {page_id} was closed during sync"],
                orphaned=state.orphaned,
                stale=True,
                operations=state.operations,
            )

        ok = not state.errors
        if not ok:
            session.status = SessionStatus.ERROR
        elif plan.unmatched:
            # Unmatched regions stay pending; the snapshot keeps their candidates.
            session.status = SessionStatus.READY
        else:
            session.mark_all_clean()
            session.status = SessionStatus.READY
            self._write_cache(session, page_id)

        return SyncOutcome(
            ok=ok,
            errors=state.errors,
            orphaned=state.orphaned,
            operations=state.operations,
        )

    def _write_cache(self, session: Session, page_id: str) -> None:
        if self._cache is None or not self._cache.is_initialized():
            return
        # Snapshot order is the order the remote store holds.
        blocks = [old.serialize() for old in session.snapshot]
        content_hash = hash_blocks(blocks)
        if not self._cache.save_content(page_id, blocks):
            log.warning(
                "Cache content write failed after sync",
                extra={"extra_fields": {"op": "cache_write", "page_id": page_id}},
            )
        if not self._cache.record_push(page_id, content_hash):
            log.warning(
                "Cache sync state write failed after sync",
                extra={"extra_fields": {"op": "cache_write", "page_id": page_id}},
            )
        session.content_hash = content_hash

    def _record(self, state: _RunState, op_type: str, ok: bool, message: str | None = None) -> None:
        self._metrics.increment(
            "notionsync.sync_ops_total",
            tags={"op_type": op_type, "status": "ok" if ok else "error"},
        )
        if ok:
            state.operations += 1
        elif message is not None:
            state.errors.append(message)
            log.warning(
                message,
                extra={"extra_fields": {"op": op_type, "page_id": state.page_id}},
            )

    def _still_current(self, state: _RunState) -> bool:
        if not self._registry.is_current(state.context):
            state.stale = True
            return False
        return True

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _apply_relink(self, session: Session, relink: PlanRelink) -> None:
        block = relink.block
        old = next((b for b in session.snapshot if b.id == relink.id), None)
        block.resolve_identity(relink.id)
        if old is not None and old.text == block.text:
            # Same text: keep the remote annotations and color.
            block.content = list(old.content)
            block.color = old.color
        session.commit_synced(block)
        self._metrics.increment(
            "notionsync.sync_ops_total", tags={"op_type": "relink", "status": "ok"},
        )

    async def _update(self, session: Session, op: PlanUpdate, state: _RunState) -> None:
        try:
            await self._store.update(op.id, op.new_content)
        except NotionsyncError as exc:
            self._record(state, "update", False, f"Update failed for block {op.id[:8]}: {exc.message}")
            return
        self._record(state, "update", True)
        if self._still_current(state):
            session.commit_synced(op.block)

    async def _delete(self, session: Session, op: PlanDelete, state: _RunState) -> None:
        try:
            await self._store.delete(op.id)
        except NotionsyncError as exc:
            self._record(state, "delete", False, f"Delete failed for block {op.id[:8]}: {exc.message}")
            return
        self._record(state, "delete", True)
        if self._still_current(state):
            session.commit_deleted(op.id)

    @staticmethod
    def _order_inserts(plan: SyncPlan) -> list[PlanCreate | PlanTypeChange]:
        """Order creates and type changes so every anchor precedes its users."""
        pending: list[PlanCreate | PlanTypeChange] = sorted(
            [*plan.creates, *plan.type_changes], key=lambda op: op.position,
        )
        keys = {_insert_key(op) for op in pending}
        ordered: list[PlanCreate | PlanTypeChange] = []
        emitted: set[str] = set()
        while pending:
            ready = [
                op for op in pending
                if op.anchor is None or op.anchor not in keys or op.anchor in emitted
            ]
            if not ready:
                # Anchor cycle: these fail on their unresolved anchors.
                ordered.extend(pending)
                break
            for op in ready:
                ordered.append(op)
                emitted.add(_insert_key(op))
            ready_ids = {id(op) for op in ready}
            pending = [op for op in pending if id(op) not in ready_ids]
        return ordered

    async def _insert_chain(self, session: Session, plan: SyncPlan, state: _RunState) -> None:
        for op in self._order_inserts(plan):
            if state.stale:
                return
            if isinstance(op, PlanTypeChange):
                await self._type_change(session, op, state)
            else:
                await self._create(session, op, state)

    @staticmethod
    def _resolve_anchor(anchor: str | None, state: _RunState) -> Any:
        if anchor is None:
            return None
        if anchor in state.resolved:
            return state.resolved[anchor]
        if is_temp_id(anchor):
            return _UNRESOLVED
        return anchor

    async def _create(self, session: Session, op: PlanCreate, state: _RunState) -> None:
        anchor = self._resolve_anchor(op.anchor, state)
        if anchor is _UNRESOLVED:
            self._record(
                state, "create", False,
                f"Create failed: anchor {op.anchor} was not created",
            )
            return
        temp_id = op.block.temp_id
        try:
            new_ids = await self._store.create(state.page_id, [op.desired_content], anchor)
        except NotionsyncError as exc:
            self._record(state, "create", False, f"Create failed: {exc.message}")
            return
        if not new_ids:
            self._record(state, "create", False, "Create failed: remote store returned no block id")
            return
        self._record(state, "create", True)
        if not self._still_current(state):
            return
        op.block.resolve_identity(new_ids[0])
        if temp_id is not None:
            state.resolved[temp_id] = new_ids[0]
        session.commit_created(op.block, anchor)

    async def _type_change(self, session: Session, op: PlanTypeChange, state: _RunState) -> None:
        id8 = op.id[:8]
        anchor = self._resolve_anchor(op.anchor, state)
        if anchor is _UNRESOLVED:
            self._record(
                state, "type_change", False,
                f"Type change skipped for block {id8}: anchor {op.anchor} was not created",
            )
            return

        try:
            await self._store.delete(op.id)
        except NotionsyncError as exc:
            self._record(state, "type_change", False, f"Delete failed for type change {id8}: {exc.message}")
            return
        state.operations += 1
        if not self._still_current(state):
            return
        session.commit_deleted(op.id)

        failure: str | None = None
        new_ids: list[str] = []
        try:
            new_ids = await self._store.create(state.page_id, [_create_payload(op.block)], anchor)
        except NotionsyncError as exc:
            failure = exc.message
        else:
            if not new_ids:
                failure = "remote store returned no block id"

        if failure is not None:
            state.orphaned.append(op.id)
            # Later inserts anchored on the removed block go where it was.
            state.resolved[op.id] = anchor
            self._record(
                state, "type_change", False,
                f"Create failed for type change {id8}: {failure} "
                "(remote block deleted; block will be re-created on next push)",
            )
            if self._still_current(state):
                op.block.detach_identity()
            return

        self._record(state, "type_change", True)
        if not self._still_current(state):
            return
        op.block.resolve_identity(new_ids[0])
        state.resolved[op.id] = new_ids[0]
        session.commit_created(op.block, anchor)


def _insert_key(op: PlanCreate | PlanTypeChange) -> str:
    if isinstance(op, PlanTypeChange):
        return op.id
    return op.block.key
