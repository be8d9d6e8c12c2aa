"""Read-only block protection.

Dividers and unsupported blocks cannot be edited in place.  Before a push,
:func:`restore_readonly` finds such blocks whose lines no longer match what
was rendered and puts the rendered lines back.  Deleting a read-only block
entirely is allowed and becomes a regular delete.
"""

from __future__ import annotations

from notionsync.blocks.model import Block
from notionsync.observability import get_logger

from .session import Session

log = get_logger("notionsync.protection")


def find_readonly_violations(session: Session) -> list[Block]:
    """Return the non-editable blocks whose buffer lines were modified."""
    session.refresh_line_ranges()
    return [
        block
        for block in session.blocks
        if not block.editable and not block.matches_content(session.block_lines(block))
    ]


def restore_readonly(session: Session) -> list[Block]:
    """Revert edits made inside non-editable blocks.

    Returns the blocks that were restored.
    """
    violations = find_readonly_violations(session)
    # Bottom-up so earlier ranges are untouched by later restores.
    for block in sorted(violations, key=lambda b: b.line_range or (0, 0), reverse=True):
        start, end = block.line_range  # type: ignore[misc]
        session.edit(start, end, block.synced_lines)
        log.warning(
            "Restored read-only block",
            extra={
                "extra_fields": {
                    "op": "restore_readonly",
                    "page_id": session.page_id,
                    "block_id": block.key,
                    "block_type": block.type_name,
                }
            },
        )
    if violations:
        session.refresh_line_ranges()
    return violations
