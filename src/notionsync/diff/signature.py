"""Content signatures for content-based block matching.

When a block loses its marker (for example after a cut and paste), the
planner falls back to matching it by content.  Two blocks match when their
:class:`BlockSignature` values are equal: same type, same plain text, same
type-specific attributes.  Annotations and colors are deliberately left out
so that a block is recognised by what it says.
"""

from __future__ import annotations

from typing import Any

from notionsync.blocks.model import DEFAULT_CODE_LANGUAGE, Block, BlockType
from notionsync.models import BlockSignature
from notionsync.utils.hashing import hash_dict, md5_hash


def _type_attrs(block: Block) -> dict[str, Any]:
    if block.block_type is BlockType.CODE:
        return {"language": block.language or DEFAULT_CODE_LANGUAGE}
    if block.block_type is BlockType.TO_DO:
        return {"checked": bool(block.checked)}
    if block.block_type.heading_level:
        return {"is_toggleable": bool(block.is_toggleable)}
    if block.block_type is BlockType.UNSUPPORTED:
        return {"raw": block.raw}
    return {}


def compute_signature(block: Block) -> BlockSignature:
    """Compute the content signature of *block*."""
    attrs = _type_attrs(block)
    return BlockSignature(
        block_type=block.type_name,
        text_hash=md5_hash(block.text),
        attrs_hash=hash_dict(attrs) if attrs else md5_hash(""),
    )
