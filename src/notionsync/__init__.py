"""notionsync: edit Notion pages as line buffers and sync them back.

Public re-exports
-----------------

* **Client:** :class:`AsyncSyncClient`
* **Configuration:** :class:`SyncConfig`
* **Sync engine:** :class:`SyncPlanner`, :class:`SyncExecutor`,
  :class:`Session`, :class:`SessionRegistry`
* **Errors:** Every :class:`NotionsyncError` subclass and :class:`ErrorCode`
* **Models:** Blocks, plans, outcomes and cache rows

Usage::

    from notionsync import AsyncSyncClient

    async with AsyncSyncClient(token="secret_xxx") as client:
        session = await client.open_page("<page_id>")
        session.insert_lines(0, ["# Title"])
        outcome = await client.push(session, confirm=lambda plan: True)
"""

from __future__ import annotations

# ── Client ──────────────────────────────────────────────────────────────
from notionsync.async_client import AsyncSyncClient

# ── Blocks ──────────────────────────────────────────────────────────────
from notionsync.blocks import (
    Block,
    BlockType,
    Formatter,
    LineFormatter,
    TextRun,
    block_from_api,
)

# ── Sessions ────────────────────────────────────────────────────────────
from notionsync.buffer import Session, SessionContext, SessionRegistry

# ── Cache ───────────────────────────────────────────────────────────────
from notionsync.cache import PageCache

# ── Configuration ───────────────────────────────────────────────────────
from notionsync.config import DEFAULT_CACHE_PATH, SyncConfig

# ── Sync engine ─────────────────────────────────────────────────────────
from notionsync.diff import SyncExecutor, SyncPlanner, format_plan, needs_confirmation

# ── Errors ──────────────────────────────────────────────────────────────
from notionsync.errors import (
    ErrorCode,
    NotionsyncAuthError,
    NotionsyncCacheError,
    NotionsyncConflictError,
    NotionsyncError,
    NotionsyncNetworkError,
    NotionsyncNotFoundError,
    NotionsyncPermissionError,
    NotionsyncPreconditionError,
    NotionsyncRateLimitError,
    NotionsyncRetryExhaustedError,
    NotionsyncStaleSessionError,
    NotionsyncSyncInProgressError,
    NotionsyncValidationError,
)

# ── Models ──────────────────────────────────────────────────────────────
from notionsync.models import (
    BlockSignature,
    CacheStats,
    PageMeta,
    PlanCreate,
    PlanDelete,
    PlanRelink,
    PlanTypeChange,
    PlanUnmatched,
    PlanUpdate,
    SessionStatus,
    SyncOutcome,
    SyncPlan,
    SyncStateRow,
    SyncStatus,
)

# ── Remote store ────────────────────────────────────────────────────────
from notionsync.notion_api import NotionRemoteStore, RemoteStore

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Client
    "AsyncSyncClient",
    # Configuration
    "SyncConfig",
    "DEFAULT_CACHE_PATH",
    # Blocks
    "Block",
    "BlockType",
    "TextRun",
    "Formatter",
    "LineFormatter",
    "block_from_api",
    # Sessions
    "Session",
    "SessionContext",
    "SessionRegistry",
    # Sync engine
    "SyncPlanner",
    "SyncExecutor",
    "needs_confirmation",
    "format_plan",
    # Cache
    "PageCache",
    # Remote store
    "RemoteStore",
    "NotionRemoteStore",
    # Error base + code enum
    "NotionsyncError",
    "ErrorCode",
    # API / transport errors
    "NotionsyncValidationError",
    "NotionsyncAuthError",
    "NotionsyncPermissionError",
    "NotionsyncNotFoundError",
    "NotionsyncConflictError",
    "NotionsyncRateLimitError",
    "NotionsyncRetryExhaustedError",
    "NotionsyncNetworkError",
    # Sync errors
    "NotionsyncPreconditionError",
    "NotionsyncSyncInProgressError",
    "NotionsyncStaleSessionError",
    "NotionsyncCacheError",
    # Models: plan
    "SyncPlan",
    "PlanCreate",
    "PlanUpdate",
    "PlanDelete",
    "PlanTypeChange",
    "PlanRelink",
    "PlanUnmatched",
    "BlockSignature",
    "SyncOutcome",
    # Models: state
    "SessionStatus",
    "SyncStatus",
    "PageMeta",
    "CacheStats",
    "SyncStateRow",
]
