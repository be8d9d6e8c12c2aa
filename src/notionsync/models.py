"""Data models shared by the planner, executor, cache, and client.

The central artifact is :class:`SyncPlan`, the only value passed from the
planner to the executor.  :class:`SyncOutcome` is what the executor reports
back.  Page metadata and cache rows are plain dataclasses as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from notionsync.blocks.model import Block, BlockType


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SessionStatus(str, Enum):
    """Lifecycle of an open page session."""

    LOADING = "loading"
    """Content is being fetched; the buffer is not yet editable."""

    READY = "ready"
    """Content is loaded and editable."""

    SYNCING = "syncing"
    """A push is in flight."""

    ERROR = "error"
    """The last load or push failed."""


class SyncStatus(str, Enum):
    """Value of ``sync_state.sync_status`` in the cache."""

    UNKNOWN = "unknown"
    SYNCED = "synced"
    MODIFIED = "modified"


# ---------------------------------------------------------------------------
# Diff matching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockSignature:
    """Line-local content fingerprint used for content-based matching.

    Attributes
    ----------
    block_type:
        The Notion type name.
    text_hash:
        MD5 of the block's plain text.
    attrs_hash:
        MD5 of type-specific attributes (language, checked, toggle flag).
    """

    block_type: str
    text_hash: str
    attrs_hash: str


# ---------------------------------------------------------------------------
# Sync plan
# ---------------------------------------------------------------------------

@dataclass
class PlanCreate:
    """A block that does not exist remotely yet.

    Attributes
    ----------
    block:
        The new block (carries a ``temp_id``).
    desired_content:
        Serialized block to send to the remote store.
    block_type:
        The block's variant.
    anchor:
        Id or temp_id of the block to insert after; ``None`` leaves the
        position to the remote store.
    position:
        Index of the block in the buffer sequence.
    """

    block: Block
    desired_content: dict[str, Any]
    block_type: BlockType
    anchor: str | None = None
    position: int = 0


@dataclass
class PlanUpdate:
    """An existing block whose content changed."""

    block: Block
    id: str
    new_content: dict[str, Any]


@dataclass
class PlanDelete:
    """An existing block no longer present in the buffer."""

    id: str
    original_content: str = ""
    block_type: str = ""


@dataclass
class PlanTypeChange:
    """An existing block whose variant changed; applied as delete + create."""

    id: str
    old_type: BlockType
    new_type: BlockType
    block: Block
    anchor: str | None = None
    position: int = 0


@dataclass
class PlanRelink:
    """A new buffer block identified as a moved existing block by content."""

    block: Block
    id: str


@dataclass
class PlanUnmatched:
    """A buffer region that could not be mapped with confidence.

    Attributes
    ----------
    content:
        The region's text.
    line_range:
        Half-open buffer line span.
    possible_matches:
        Ids of the existing blocks it might correspond to.
    block:
        The parsed buffer block.
    """

    content: str
    line_range: tuple[int, int] | None
    possible_matches: list[str] = field(default_factory=list)
    block: Block | None = None


@dataclass
class SyncPlan:
    """The operations needed to reconcile a buffer with the remote page."""

    creates: list[PlanCreate] = field(default_factory=list)
    updates: list[PlanUpdate] = field(default_factory=list)
    deletes: list[PlanDelete] = field(default_factory=list)
    type_changes: list[PlanTypeChange] = field(default_factory=list)
    unmatched: list[PlanUnmatched] = field(default_factory=list)
    relinks: list[PlanRelink] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.creates or self.updates or self.deletes or self.type_changes)

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.unmatched or self.deletes)

    def is_empty(self) -> bool:
        return not self.has_changes and not self.unmatched

    def operation_count(self) -> int:
        """Number of remote calls; a type change costs a delete and a create."""
        return (
            len(self.updates)
            + len(self.creates)
            + len(self.deletes)
            + len(self.type_changes) * 2
        )

    def summary(self) -> list[str]:
        lines: list[str] = []
        if self.updates:
            lines.append(f"Updates: {len(self.updates)} block(s)")
        if self.type_changes:
            lines.append(f"Type changes: {len(self.type_changes)} block(s) (delete+create)")
        if self.creates:
            lines.append(f"Creates: {len(self.creates)} block(s)")
        if self.deletes:
            lines.append(f"Deletes: {len(self.deletes)} block(s)")
        if self.unmatched:
            lines.append(f"Unmatched: {len(self.unmatched)} region(s) - needs review")
        if not lines:
            lines.append("No changes to sync")
        return lines


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

@dataclass
class SyncOutcome:
    """Result of executing a :class:`SyncPlan`.

    Attributes
    ----------
    ok:
        ``True`` only if every operation succeeded.
    errors:
        One human-readable message per failed operation.
    orphaned:
        Ids of blocks a type change deleted remotely without managing to
        re-create them.  Those blocks are new again in the buffer.
    stale:
        The session was closed or reopened while the plan ran; results
        were discarded.
    operations:
        Number of remote calls that succeeded.
    """

    ok: bool
    errors: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    stale: bool = False
    operations: int = 0


# ---------------------------------------------------------------------------
# Pages and cache rows
# ---------------------------------------------------------------------------

@dataclass
class PageMeta:
    """Page metadata as stored in the ``pages`` table.

    Attributes
    ----------
    id:
        Remote page id.
    title:
        Plain-text title.
    icon:
        Emoji or icon URL.
    icon_type:
        ``"emoji"``, ``"external"`` or ``"file"``.
    parent_type:
        ``"workspace"``, ``"page_id"``, ``"database_id"`` or ``"block_id"``.
    parent_id:
        Id of the parent, ``None`` for workspace pages.
    last_edited_time, created_time:
        Remote ISO-8601 timestamps.
    open_count, last_opened_at:
        Local usage statistics (read-only here; maintained by the cache).
    """

    id: str
    title: str = "Untitled"
    icon: str | None = None
    icon_type: str | None = None
    parent_type: str | None = None
    parent_id: str | None = None
    last_edited_time: str | None = None
    created_time: str | None = None
    open_count: int = 0
    last_opened_at: int | None = None


@dataclass
class CacheStats:
    """Row counts reported by :meth:`PageCache.stats`."""

    pages: int = 0
    deleted_pages: int = 0
    contents: int = 0
    block_hashes: int = 0
    sync_states: int = 0
    path: str = ""


@dataclass
class SyncStateRow:
    """One ``sync_state`` row."""

    page_id: str
    local_hash: str | None = None
    remote_hash: str | None = None
    last_pushed_hash: str | None = None
    last_push_time: int | None = None
    last_pull_time: int | None = None
    sync_status: SyncStatus = SyncStatus.UNKNOWN
