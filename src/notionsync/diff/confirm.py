"""Confirmation policy and plan previews.

Before a push, the client asks :func:`needs_confirmation` whether the
caller must approve the plan, and shows :func:`format_plan` to whoever
approves it.
"""

from __future__ import annotations

from notionsync.errors import NotionsyncValidationError
from notionsync.models import SyncPlan

CONFIRM_POLICIES = ("always", "on_ambiguity", "never")

_PREVIEW_CHARS = 60


def needs_confirmation(plan: SyncPlan, policy: str = "on_ambiguity") -> bool:
    """Return ``True`` if *plan* must be approved before it is executed.

    Parameters
    ----------
    plan:
        The plan about to be executed.
    policy:
        ``"always"`` asks for every plan that does something,
        ``"on_ambiguity"`` only for plans with deletes or unmatched regions,
        ``"never"`` never asks.

    Raises
    ------
    NotionsyncValidationError
        If *policy* is not one of :data:`CONFIRM_POLICIES`.
    """
    if policy == "never":
        return False
    if policy == "always":
        return not plan.is_empty()
    if policy == "on_ambiguity":
        return plan.needs_confirmation
    raise NotionsyncValidationError(
        message=f"Unknown confirmation policy {policy!r}",
        context={"policy": policy, "allowed": list(CONFIRM_POLICIES)},
    )


def _preview(text: str) -> str:
    text = text.replace("\n", " ")
    if len(text) > _PREVIEW_CHARS:
        text = text[: _PREVIEW_CHARS - 3] + "..."
    return repr(text)


def format_plan(plan: SyncPlan) -> str:
    """Render *plan* as a human-readable, line-per-operation preview."""
    lines = list(plan.summary())
    if plan.is_empty():
        return "\n".join(lines)

    lines.append("")
    for update in plan.updates:
        lines.append(f"  ~ {update.block.type_name} {update.id[:8]}: {_preview(update.block.text)}")
    for change in plan.type_changes:
        lines.append(
            f"  ! {change.id[:8]}: {change.old_type.value} -> {change.new_type.value}"
        )
    for create in plan.creates:
        lines.append(f"  + {create.block.type_name}: {_preview(create.block.text)}")
    for delete in plan.deletes:
        kind = delete.block_type or "block"
        lines.append(f"  - {kind} {delete.id[:8]}: {_preview(delete.original_content)}")
    for region in plan.unmatched:
        where = ""
        if region.line_range is not None:
            start, end = region.line_range
            where = f" lines {start + 1}-{end}"
        candidates = ", ".join(c[:8] for c in region.possible_matches) or "none"
        lines.append(
            f"  ?{where}: {_preview(region.content)} (possible matches: {candidates})"
        )
    return "\n".join(lines)
