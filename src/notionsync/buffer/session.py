"""Page sessions and the session arena.

A :class:`Session` is the in-memory buffer of one open page: its lines, the
blocks shown in them (each tracked by a marker), and the snapshot of the
blocks as they were last synced.  Sessions live in a
:class:`SessionRegistry` under integer handles and are removed explicitly
with :meth:`SessionRegistry.close`.

Async work captures :attr:`Session.context` before awaiting and checks it
with :meth:`SessionRegistry.is_current` before touching the session again.
Closing a session, or reopening its page, invalidates every context taken
earlier.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from notionsync.blocks.formatter import Formatter
from notionsync.blocks.model import Block, BlockType
from notionsync.errors import NotionsyncStaleSessionError, NotionsyncValidationError
from notionsync.models import PageMeta, SessionStatus

from .markers import MarkerTable


@dataclass(frozen=True)
class SessionContext:
    """Identifies the session state an async operation started from."""

    handle: int
    generation: int


class Session:
    """Buffer state of one open page.

    Parameters
    ----------
    handle:
        Arena slot assigned by the registry.
    page_id:
        Remote page id, or ``None`` for a buffer not linked to a page yet.
    """

    def __init__(self, handle: int, page_id: str | None, generation: int = 0) -> None:
        self.handle = handle
        self.page_id = page_id
        self.generation = generation
        self.page: PageMeta | None = None
        self.lines: list[str] = []
        self.blocks: list[Block] = []
        self.snapshot: list[Block] = []
        self.markers = MarkerTable()
        self.status = SessionStatus.LOADING
        self.modified = False
        self.from_cache = False
        self.content_hash: str | None = None
        self.last_sync: float | None = None
        self.closed = False

    @property
    def context(self) -> SessionContext:
        return SessionContext(self.handle, self.generation)

    @property
    def title(self) -> str:
        return self.page.title if self.page else ""

    # -- loading ------------------------------------------------------------

    def load(
        self,
        blocks: list[Block],
        formatter: Formatter,
        *,
        content_hash: str | None = None,
    ) -> None:
        """Replace the buffer with *blocks* rendered by *formatter*.

        Every block is taken as synced.
        """
        self.markers.clear()
        self.lines = []
        self.blocks = []
        number = 0
        for block in blocks:
            number = number + 1 if block.block_type is BlockType.NUMBERED_LIST_ITEM else 0
            lines = formatter.format(block, number=max(number, 1))
            start = len(self.lines)
            self.lines.extend(lines)
            block.marker = self.markers.add(start, len(self.lines))
            block.line_range = (start, len(self.lines))
            block.synced_lines = list(lines)
            block.mark_synced()
            self.blocks.append(block)
        self.snapshot = [block.snapshot() for block in self.blocks]
        self.content_hash = content_hash
        self.modified = False
        self.status = SessionStatus.READY

    # -- editing ------------------------------------------------------------

    def edit(self, start: int, end: int, replacement: list[str]) -> None:
        """Replace lines ``[start, end)`` with *replacement*."""
        if start < 0 or end < start or end > len(self.lines):
            raise NotionsyncValidationError(
                message=f"Edit range [{start}, {end}) outside buffer of {len(self.lines)} lines",
                context={"start": start, "end": end, "line_count": len(self.lines)},
            )
        self.lines[start:end] = list(replacement)
        self.markers.apply_edit(start, end, len(replacement))
        self.modified = True

    def insert_lines(self, at: int, lines: list[str]) -> None:
        self.edit(at, at, lines)

    def delete_lines(self, start: int, end: int) -> None:
        self.edit(start, end, [])

    def set_lines(self, lines: list[str]) -> None:
        self.edit(0, len(self.lines), lines)

    # -- block mapping ------------------------------------------------------

    def refresh_line_ranges(self) -> list[Block]:
        """Re-read block line ranges from markers.

        Blocks whose marker collapsed are dropped from the buffer and
        returned.
        """
        removed: list[Block] = []
        live: list[Block] = []
        for block in self.blocks:
            span = self.markers.get(block.marker)
            if span is None or span[0] >= span[1]:
                block.line_range = None
                self.markers.remove(block.marker)
                block.marker = None
                removed.append(block)
            else:
                block.line_range = span
                live.append(block)
        live.sort(key=lambda b: b.line_range or (0, 0))
        self.blocks = live
        return removed

    def block_lines(self, block: Block) -> list[str]:
        if block.line_range is None:
            return []
        start, end = block.line_range
        return self.lines[start:end]

    def sync_from_buffer(self, formatter: Formatter) -> list[Block]:
        """Bring the block list in line with the buffer text.

        Tracked blocks are re-parsed from their lines.  Lines not covered by
        any block become new blocks with fresh temp ids.  Returns the new
        blocks.
        """
        self.refresh_line_ranges()
        covered = [False] * len(self.lines)
        for block in self.blocks:
            start, end = block.line_range  # type: ignore[misc]
            for i in range(start, min(end, len(self.lines))):
                covered[i] = True
            if block.editable:
                block.apply_fields(formatter.parse(self.block_lines(block)))

        created: list[Block] = []
        i = 0
        while i < len(self.lines):
            if covered[i]:
                i += 1
                continue
            gap_start = i
            while i < len(self.lines) and not covered[i]:
                i += 1
            gap = self.lines[gap_start:i]
            for rel_start, rel_end in formatter.split(gap):
                start, end = gap_start + rel_start, gap_start + rel_end
                lines = self.lines[start:end]
                block = Block.from_fields(formatter.parse(lines))
                block.marker = self.markers.add(start, end)
                block.line_range = (start, end)
                block.synced_lines = list(lines)
                created.append(block)

        if created:
            self.blocks.extend(created)
            self.blocks.sort(key=lambda b: b.line_range or (0, 0))
        return created

    def find_block(self, key: str) -> Block | None:
        for block in self.blocks:
            if block.key == key:
                return block
        return None

    def serialize_blocks(self) -> list[dict]:
        return [block.serialize() for block in self.blocks]

    # -- commits (called by the executor) -----------------------------------

    def _snapshot_index(self, block_id: str | None) -> int | None:
        if block_id is None:
            return None
        for i, old in enumerate(self.snapshot):
            if old.id == block_id:
                return i
        return None

    def commit_synced(self, block: Block) -> None:
        """Record *block*'s current state as synced, in place."""
        block.mark_synced()
        block.synced_lines = list(self.block_lines(block))
        idx = self._snapshot_index(block.id)
        if idx is not None:
            self.snapshot[idx] = block.snapshot()

    def commit_created(self, block: Block, after_id: str | None) -> None:
        """Add a block that now exists remotely to the snapshot."""
        block.mark_synced()
        block.synced_lines = list(self.block_lines(block))
        idx = self._snapshot_index(after_id)
        position = len(self.snapshot) if idx is None else idx + 1
        self.snapshot.insert(position, block.snapshot())

    def commit_deleted(self, block_id: str) -> None:
        """Forget a block that no longer exists remotely."""
        self.snapshot = [old for old in self.snapshot if old.id != block_id]

    def mark_all_clean(self) -> None:
        """Mark every block synced.

        The snapshot keeps the order the commits gave it, which is the
        remote order.  It can differ from the buffer order when a block was
        appended because it had no anchor.
        """
        by_id: dict[str, Block] = {}
        for block in self.blocks:
            block.mark_synced()
            block.synced_lines = list(self.block_lines(block))
            if block.id is not None:
                by_id[block.id] = block
        known = {old.id for old in self.snapshot}
        self.snapshot = [
            by_id[old.id].snapshot() if old.id in by_id else old for old in self.snapshot
        ]
        self.snapshot.extend(
            block.snapshot() for block in self.blocks if block.id is not None and block.id not in known
        )
        self.modified = False
        self.last_sync = time.time()

    def teardown(self) -> None:
        self.markers.clear()
        self.lines = []
        self.blocks = []
        self.snapshot = []
        self.closed = True


class SessionRegistry:
    """Arena of open sessions addressed by integer handles."""

    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}
        self._by_page: dict[str, int] = {}
        self._next_handle = 1

    def open(self, page_id: str | None) -> Session:
        """Open a session for *page_id*.

        Reopening a page that already has a session reuses its handle but
        bumps its generation and clears its buffer, so results addressed to
        the earlier state are ignored.
        """
        if page_id is not None and page_id in self._by_page:
            old = self._sessions[self._by_page[page_id]]
            old.teardown()
            session = Session(old.handle, page_id, generation=old.generation + 1)
            self._sessions[old.handle] = session
            return session
        handle = self._next_handle
        self._next_handle += 1
        session = Session(handle, page_id)
        self._sessions[handle] = session
        if page_id is not None:
            self._by_page[page_id] = handle
        return session

    def get(self, handle: int) -> Session | None:
        return self._sessions.get(handle)

    def find(self, page_id: str) -> Session | None:
        handle = self._by_page.get(page_id)
        return self._sessions.get(handle) if handle is not None else None

    def close(self, handle: int) -> bool:
        session = self._sessions.pop(handle, None)
        if session is None:
            return False
        if session.page_id is not None and self._by_page.get(session.page_id) == handle:
            del self._by_page[session.page_id]
        session.teardown()
        return True

    def close_all(self) -> None:
        for handle in list(self._sessions):
            self.close(handle)

    def is_current(self, context: SessionContext) -> bool:
        session = self._sessions.get(context.handle)
        return session is not None and session.generation == context.generation

    def require_current(self, context: SessionContext) -> Session:
        if not self.is_current(context):
            raise NotionsyncStaleSessionError(
                message=f"Session {context.handle} is no longer active",
                context={"handle": context.handle, "generation": context.generation},
            )
        return self._sessions[context.handle]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, handle: object) -> bool:
        return handle in self._sessions
