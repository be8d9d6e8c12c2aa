"""Block entities: one unit of document content.

A :class:`Block` has an identity (remote ``id`` or local ``temp_id``, never
both), a variant from the closed :class:`BlockType` set, rich-text content,
and the snapshot of its last-synced state used for dirty tracking.

Per-variant behaviour is driven by the :data:`VARIANTS` table, which has an
entry for every :class:`BlockType` member.  Serialization substitutes
documented defaults for missing sub-fields and never fails.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .rich_text import (
    DEFAULT_COLOR,
    TextRun,
    plain_text,
    runs_equal,
    runs_from_api,
    runs_to_api,
)

TEMP_ID_PREFIX = "temp_"

DEFAULT_CODE_LANGUAGE = "plain text"


class BlockType(str, Enum):
    """The closed set of block variants the engine understands."""

    PARAGRAPH = "paragraph"
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    QUOTE = "quote"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TO_DO = "to_do"
    CODE = "code"
    DIVIDER = "divider"
    TOGGLE = "toggle"
    UNSUPPORTED = "unsupported"
    """Any other Notion block type.  Rendered read-only."""

    @classmethod
    def from_api(cls, type_name: str | None) -> BlockType:
        """Map a Notion ``type`` string to a variant."""
        try:
            return cls(type_name)
        except ValueError:
            return cls.UNSUPPORTED

    @property
    def heading_level(self) -> int | None:
        return _HEADING_LEVELS.get(self)


_HEADING_LEVELS: dict[BlockType, int] = {
    BlockType.HEADING_1: 1,
    BlockType.HEADING_2: 2,
    BlockType.HEADING_3: 3,
}


@dataclass(frozen=True)
class Variant:
    """Static traits of a block variant.

    Attributes
    ----------
    editable:
        Whether the user may change the block's text in place.
    has_text:
        Whether the payload carries ``rich_text``.
    has_color:
        Whether the payload carries ``color``.
    """

    editable: bool
    has_text: bool
    has_color: bool


VARIANTS: dict[BlockType, Variant] = {
    BlockType.PARAGRAPH: Variant(editable=True, has_text=True, has_color=True),
    BlockType.HEADING_1: Variant(editable=True, has_text=True, has_color=True),
    BlockType.HEADING_2: Variant(editable=True, has_text=True, has_color=True),
    BlockType.HEADING_3: Variant(editable=True, has_text=True, has_color=True),
    BlockType.QUOTE: Variant(editable=True, has_text=True, has_color=True),
    BlockType.BULLETED_LIST_ITEM: Variant(editable=True, has_text=True, has_color=True),
    BlockType.NUMBERED_LIST_ITEM: Variant(editable=True, has_text=True, has_color=True),
    BlockType.TO_DO: Variant(editable=True, has_text=True, has_color=True),
    BlockType.CODE: Variant(editable=True, has_text=True, has_color=False),
    BlockType.DIVIDER: Variant(editable=False, has_text=False, has_color=False),
    BlockType.TOGGLE: Variant(editable=True, has_text=True, has_color=True),
    BlockType.UNSUPPORTED: Variant(editable=False, has_text=False, has_color=False),
}


def new_temp_id() -> str:
    """Return a fresh local-only identity."""
    return f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def is_temp_id(value: str | None) -> bool:
    return value is not None and value.startswith(TEMP_ID_PREFIX)


# ---------------------------------------------------------------------------
# Parsed fields and snapshots
# ---------------------------------------------------------------------------

@dataclass
class BlockFields:
    """Block content as produced by a formatter from buffer lines.

    ``None`` sub-fields mean "not expressed by the text"; the block keeps
    its current value for them.
    """

    block_type: BlockType
    content: list[TextRun] = field(default_factory=list)
    language: str | None = None
    checked: bool | None = None
    is_toggleable: bool | None = None

    @property
    def text(self) -> str:
        return plain_text(self.content)


@dataclass(frozen=True)
class BlockState:
    """Immutable copy of the content-bearing fields of a block."""

    block_type: BlockType
    content: tuple[TextRun, ...]
    language: str | None
    checked: bool | None
    is_toggleable: bool | None
    color: str

    def semantic_type(self) -> tuple[BlockType, bool]:
        toggle = bool(self.is_toggleable) if self.block_type.heading_level else False
        return (self.block_type, toggle)

    def same_content(self, other: BlockState) -> bool:
        return (
            runs_equal(list(self.content), list(other.content))
            and (self.language or None) == (other.language or None)
            and bool(self.checked) == bool(other.checked)
            and self.color == other.color
        )


# ---------------------------------------------------------------------------
# Block
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Block:
    """One unit of document content.

    Attributes
    ----------
    block_type:
        The variant.
    content:
        Rich-text runs (empty for dividers and unsupported blocks).
    id:
        Remote identity; ``None`` until the remote store assigns one.
    temp_id:
        Local identity of a block the remote store has not seen yet.
    language, checked, is_toggleable, color:
        Variant sub-fields.  ``None`` means "use the default".
    raw_type:
        The Notion type name; differs from ``block_type`` only for
        unsupported blocks.
    raw:
        The type payload the block was loaded with.
    has_children:
        Whether the remote block has nested children (not edited here).
    anchor:
        Identity of the preceding sibling, set by the planner on creates.
    line_range:
        Half-open ``(start, end)`` buffer line span, refreshed from markers.
    synced_lines:
        Buffer lines last rendered for this block.
    marker:
        Handle of the position-tracking marker in the owning session.
    dirty:
        Whether the content differs from the last-synced snapshot.
    synced:
        Last-synced snapshot, ``None`` for a block never synced.
    """

    block_type: BlockType
    content: list[TextRun] = field(default_factory=list)
    id: str | None = None
    temp_id: str | None = None
    language: str | None = None
    checked: bool | None = None
    is_toggleable: bool | None = None
    color: str = DEFAULT_COLOR
    raw_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)
    has_children: bool = False
    anchor: str | None = None
    line_range: tuple[int, int] | None = None
    synced_lines: list[str] = field(default_factory=list, repr=False)
    marker: int | None = field(default=None, repr=False)
    dirty: bool = False
    synced: BlockState | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.id and self.temp_id:
            raise ValueError("a block cannot carry both an id and a temp_id")
        if not self.id:
            self.id = None
            if not self.temp_id:
                self.temp_id = new_temp_id()
        self.content = list(self.content)

    # -- identity -----------------------------------------------------------

    @property
    def key(self) -> str:
        """The block's current identity: ``id`` if known, else ``temp_id``."""
        return self.id or self.temp_id or ""

    @property
    def is_new(self) -> bool:
        return self.id is None

    def resolve_identity(self, remote_id: str) -> None:
        """Record the id assigned by the remote store."""
        if not remote_id:
            raise ValueError("remote_id must be a non-empty string")
        self.id = remote_id
        self.temp_id = None

    def detach_identity(self) -> None:
        """Forget the remote id after the remote block was removed.

        The block becomes new again with a fresh ``temp_id`` so that the next
        plan creates it.
        """
        self.id = None
        self.temp_id = new_temp_id()
        self.synced = None
        self.dirty = True

    # -- variant traits -----------------------------------------------------

    @property
    def variant(self) -> Variant:
        return VARIANTS[self.block_type]

    @property
    def editable(self) -> bool:
        return self.variant.editable

    @property
    def type_name(self) -> str:
        if self.block_type is BlockType.UNSUPPORTED:
            return self.raw_type or BlockType.UNSUPPORTED.value
        return self.block_type.value

    @property
    def text(self) -> str:
        return plain_text(self.content)

    # -- dirty tracking -----------------------------------------------------

    def state(self) -> BlockState:
        return BlockState(
            block_type=self.block_type,
            content=tuple(self.content),
            language=self.language,
            checked=self.checked,
            is_toggleable=self.is_toggleable,
            color=self.color,
        )

    def is_dirty(self) -> bool:
        return self.dirty

    def set_dirty(self, dirty: bool = True) -> None:
        self.dirty = dirty

    def mark_synced(self) -> None:
        """Take the current state as the last-synced snapshot."""
        self.synced = self.state()
        self.dirty = False

    def type_changed(self) -> bool:
        """Whether the semantic type differs from the synced snapshot.

        Heading level and the heading toggle flag are semantic.  Colors,
        annotations, and text are not.
        """
        if self.synced is None:
            return False
        return self.state().semantic_type() != self.synced.semantic_type()

    def content_changed(self) -> bool:
        if self.synced is None:
            return True
        return not self.state().same_content(self.synced)

    def has_changes(self) -> bool:
        return self.synced is None or self.type_changed() or self.content_changed()

    def matches_content(self, lines: list[str]) -> bool:
        """Whether *lines* still equal the last rendered representation."""
        current = [line.rstrip() for line in lines]
        expected = [line.rstrip() for line in self.synced_lines]
        return current == expected

    def apply_fields(self, fields: BlockFields) -> bool:
        """Update the block from parsed buffer fields.

        Unchanged plain text keeps the existing runs so that annotations
        survive a round trip through the buffer.  Returns the new dirty flag.
        Non-editable blocks are never changed.
        """
        if not self.editable:
            return self.dirty
        if fields.text != self.text:
            self.content = list(fields.content)
        if fields.block_type is not self.block_type:
            self.block_type = fields.block_type
            self.raw_type = fields.block_type.value
            if not self.block_type.heading_level:
                self.is_toggleable = None
        if fields.language is not None:
            self.language = fields.language
        if fields.checked is not None:
            self.checked = fields.checked
        if fields.is_toggleable is not None and self.block_type.heading_level:
            self.is_toggleable = fields.is_toggleable
        self.dirty = self.has_changes()
        return self.dirty

    # -- serialization ------------------------------------------------------

    def payload(self) -> dict[str, Any]:
        """The type-specific payload, with defaults for missing sub-fields."""
        if self.block_type is BlockType.UNSUPPORTED:
            return dict(self.raw)
        variant = self.variant
        data: dict[str, Any] = {}
        if variant.has_text:
            data["rich_text"] = runs_to_api(self.content)
        if variant.has_color:
            data["color"] = self.color or DEFAULT_COLOR
        if self.block_type is BlockType.CODE:
            data["language"] = self.language or DEFAULT_CODE_LANGUAGE
        elif self.block_type is BlockType.TO_DO:
            data["checked"] = bool(self.checked)
        elif self.block_type.heading_level:
            data["is_toggleable"] = bool(self.is_toggleable)
        return data

    def serialize(self) -> dict[str, Any]:
        """Return the Notion wire shape of the block.

        ``id`` is omitted for new blocks.
        """
        type_name = self.type_name
        data: dict[str, Any] = {"object": "block", "type": type_name, type_name: self.payload()}
        if self.id is not None:
            data["id"] = self.id
        return data

    def update_payload(self) -> dict[str, Any]:
        """Body of a ``PATCH /blocks/{id}`` request."""
        return {self.type_name: self.payload()}

    def snapshot(self) -> Block:
        """Detached copy used as the session's last-synced view."""
        return replace(
            self,
            content=list(self.content),
            raw=dict(self.raw),
            synced_lines=list(self.synced_lines),
            marker=None,
        )

    @classmethod
    def from_fields(cls, fields: BlockFields) -> Block:
        """A new block built from parsed buffer fields."""
        return cls(
            block_type=fields.block_type,
            content=list(fields.content),
            language=fields.language,
            checked=fields.checked,
            is_toggleable=fields.is_toggleable if fields.block_type.heading_level else None,
            raw_type=fields.block_type.value,
            dirty=True,
        )


def block_from_api(raw: dict[str, Any]) -> Block:
    """Build a clean, synced block from a Notion block object."""
    type_name = raw.get("type") or BlockType.UNSUPPORTED.value
    block_type = BlockType.from_api(type_name)
    data = raw.get(type_name) or {}
    variant = VARIANTS[block_type]
    block = Block(
        block_type=block_type,
        content=runs_from_api(data.get("rich_text")) if variant.has_text else [],
        id=raw.get("id"),
        language=data.get("language") if block_type is BlockType.CODE else None,
        checked=data.get("checked") if block_type is BlockType.TO_DO else None,
        is_toggleable=data.get("is_toggleable") if block_type.heading_level else None,
        color=data.get("color") or DEFAULT_COLOR,
        raw_type=type_name,
        raw=dict(data),
        has_children=bool(raw.get("has_children", False)),
    )
    block.mark_synced()
    return block
