"""Sync planner: compute the minimal operations between buffer and remote.

Given the blocks parsed from a session's buffer and the session's
last-synced snapshot, the planner produces a :class:`SyncPlan` that
transforms the remote page to match the buffer with as few API calls as
possible.

Blocks are matched by id first.  Blocks that lost their id (for example
after a cut and paste) are matched by content signature against the
snapshot blocks nobody claimed; those pairings are only accepted when they
are unambiguous.
"""

from __future__ import annotations

from collections import defaultdict

from notionsync.blocks.formatter import Formatter
from notionsync.blocks.model import Block
from notionsync.buffer.session import Session
from notionsync.config import SyncConfig
from notionsync.models import (
    BlockSignature,
    PlanCreate,
    PlanDelete,
    PlanRelink,
    PlanTypeChange,
    PlanUnmatched,
    PlanUpdate,
    SyncPlan,
)
from notionsync.observability import get_logger
from notionsync.utils.redact import redact

from .lcs_matcher import lcs_match
from .signature import compute_signature

log = get_logger("notionsync.planner")


class SyncPlanner:
    """Plans sync operations for a page.

    Parameters
    ----------
    config:
        Client configuration (used for the ``debug_dump_plan`` flag).
    """

    def __init__(self, config: SyncConfig | None = None) -> None:
        self._config = config

    def plan_session(self, session: Session, formatter: Formatter) -> SyncPlan:
        """Re-parse *session*'s buffer and plan against its snapshot."""
        session.sync_from_buffer(formatter)
        plan = self.plan(session.blocks, session.snapshot)
        log.debug(
            "Planned sync",
            extra={
                "extra_fields": {
                    "op": "plan",
                    "page_id": session.page_id,
                    "creates": len(plan.creates),
                    "updates": len(plan.updates),
                    "deletes": len(plan.deletes),
                    "type_changes": len(plan.type_changes),
                    "relinks": len(plan.relinks),
                    "unmatched": len(plan.unmatched),
                }
            },
        )
        if self._config is not None and self._config.debug_dump_plan:
            log.info(
                "Sync plan",
                extra={
                    "extra_fields": {
                        "page_id": session.page_id,
                        "summary": plan.summary(),
                        "creates": [redact(c.desired_content) for c in plan.creates],
                    }
                },
            )
        return plan

    def plan(self, current: list[Block], previous: list[Block]) -> SyncPlan:
        """Compute the operations that turn *previous* into *current*.

        Operation types:

        - **update**: same block, same semantic type, different content.
        - **type_change**: same block, different semantic type.  Executed
          as a delete followed by a create at the same anchor.
        - **create**: a block the remote store has not seen.
        - **delete**: a synced block no longer in the buffer.
        - **relink**: an id-less buffer block identified by content as a
          synced block.  Local only, no remote call.
        - **unmatched**: an id-less buffer block whose content matches
          several candidates with no clear pairing.  Its candidates are
          kept; nothing is created or deleted for the group.

        Parameters
        ----------
        current:
            Blocks in buffer order, as produced by
            :meth:`Session.sync_from_buffer`.
        previous:
            The last-synced snapshot, in remote order.

        Returns
        -------
        SyncPlan
        """
        plan = SyncPlan()
        previous_by_id = {old.id: old for old in previous if old.id is not None}
        current_ids = {block.id for block in current if block.id is not None}

        relinked, ambiguous_new, ambiguous_old = self._match_by_content(
            [block for block in current if block.is_new],
            [old for old in previous if old.id is not None and old.id not in current_ids],
            plan,
        )

        # Key of the nearest preceding block that will exist remotely.
        anchor: str | None = None
        for position, block in enumerate(current):
            if block.id is not None:
                old = previous_by_id.get(block.id)
                if old is not None:
                    self._plan_existing(block, block.id, old, anchor, position, plan)
                anchor = block.id
            elif block.temp_id in relinked:
                anchor = relinked[block.temp_id]
            elif block.temp_id in ambiguous_new:
                continue
            else:
                block.anchor = anchor
                plan.creates.append(
                    PlanCreate(
                        block=block,
                        desired_content=block.serialize(),
                        block_type=block.block_type,
                        anchor=anchor,
                        position=position,
                    )
                )
                anchor = block.temp_id

        claimed = current_ids | set(relinked.values()) | ambiguous_old
        for old in previous:
            if old.id is None or old.id in claimed:
                continue
            plan.deletes.append(
                PlanDelete(id=old.id, original_content=old.text, block_type=old.type_name)
            )
        return plan

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _plan_existing(
        block: Block,
        block_id: str,
        old: Block,
        anchor: str | None,
        position: int,
        plan: SyncPlan,
    ) -> None:
        new_state = block.state()
        old_state = old.state()
        if new_state.semantic_type() != old_state.semantic_type():
            plan.type_changes.append(
                PlanTypeChange(
                    id=block_id,
                    old_type=old.block_type,
                    new_type=block.block_type,
                    block=block,
                    anchor=anchor,
                    position=position,
                )
            )
        elif block.editable and not new_state.same_content(old_state):
            plan.updates.append(
                PlanUpdate(block=block, id=block_id, new_content=block.update_payload())
            )

    @staticmethod
    def _match_by_content(
        new_blocks: list[Block],
        old_blocks: list[Block],
        plan: SyncPlan,
    ) -> tuple[dict[str, str], set[str], set[str]]:
        """Pair id-less blocks with unclaimed snapshot blocks by signature.

        Returns ``(relinked, ambiguous_new, ambiguous_old)``: temp_id to old
        id for accepted pairs, and the temp ids and old ids of ambiguous
        groups.
        """
        if not new_blocks or not old_blocks:
            return {}, set(), set()

        new_sigs = [compute_signature(block) for block in new_blocks]
        old_sigs = [compute_signature(old) for old in old_blocks]
        pairs = lcs_match(old_sigs, new_sigs)
        matched_new = {new_idx: old_idx for old_idx, new_idx in pairs}
        matched_old = set(matched_new.values())

        old_groups: dict[BlockSignature, list[int]] = defaultdict(list)
        for idx, sig in enumerate(old_sigs):
            old_groups[sig].append(idx)
        new_groups: dict[BlockSignature, list[int]] = defaultdict(list)
        for idx, sig in enumerate(new_sigs):
            new_groups[sig].append(idx)

        ambiguous: set[BlockSignature] = set()
        for sig, new_idxs in new_groups.items():
            old_idxs = old_groups.get(sig, [])
            if not old_idxs:
                continue
            leftover = any(i not in matched_new for i in new_idxs) or any(
                i not in matched_old for i in old_idxs
            )
            if leftover:
                ambiguous.add(sig)

        relinked: dict[str, str] = {}
        ambiguous_new: set[str] = set()
        ambiguous_old: set[str] = set()
        for new_idx, block in enumerate(new_blocks):
            # New blocks are keyed by their temp id.
            temp_id = block.key
            sig = new_sigs[new_idx]
            if sig in ambiguous:
                candidates = [old_blocks[i].id for i in old_groups[sig]]
                plan.unmatched.append(
                    PlanUnmatched(
                        content=block.text,
                        line_range=block.line_range,
                        possible_matches=[c for c in candidates if c is not None],
                        block=block,
                    )
                )
                ambiguous_new.add(temp_id)
                ambiguous_old.update(c for c in candidates if c is not None)
            elif new_idx in matched_new:
                old_id = old_blocks[matched_new[new_idx]].id
                if old_id is None:
                    continue
                plan.relinks.append(PlanRelink(block=block, id=old_id))
                relinked[temp_id] = old_id
        return relinked, ambiguous_new, ambiguous_old
