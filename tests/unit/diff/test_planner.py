"""Tests for SyncPlanner.

Each test loads a session from Notion-shaped blocks, edits the buffer the
way a user would, and checks the plan computed against the snapshot.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from notionsync.blocks.model import BlockType, block_from_api
from notionsync.config import SyncConfig
from notionsync.diff.planner import SyncPlanner

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _api(block_id: str, text: str = "", block_type: str = "paragraph") -> dict:
    body: dict = {}
    if block_type != "divider":
        body["rich_text"] = [{"type": "text", "text": {"content": text}, "plain_text": text}]
    return {"object": "block", "id": block_id, "type": block_type, block_type: body}


@pytest.fixture
def planner() -> SyncPlanner:
    return SyncPlanner()


@pytest.fixture
def make_session(registry, formatter):
    def _make(*raw_blocks, page_id="page1"):
        session = registry.open(page_id)
        session.load([block_from_api(raw) for raw in raw_blocks], formatter)
        return session
    return _make


# ---------------------------------------------------------------------------
# Id-matched blocks
# ---------------------------------------------------------------------------

class TestExistingBlocks:
    def test_unchanged_buffer_gives_empty_plan(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"), _api("b2", "b"))
        plan = planner.plan_session(session, formatter)
        assert plan.is_empty()
        assert plan.summary() == ["No changes to sync"]

    def test_text_edit_is_update(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"), _api("b2", "b"))
        session.edit(1, 2, ["b changed"])
        plan = planner.plan_session(session, formatter)
        assert [u.id for u in plan.updates] == ["b2"]
        assert plan.updates[0].new_content["paragraph"]["rich_text"][0]["text"]["content"] == "b changed"
        assert not plan.creates and not plan.deletes

    def test_variant_change_is_type_change_anchored_on_previous(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"), _api("b2", "b"))
        session.edit(1, 2, ["# b"])
        plan = planner.plan_session(session, formatter)
        assert not plan.updates
        (change,) = plan.type_changes
        assert change.id == "b2"
        assert change.old_type is BlockType.PARAGRAPH
        assert change.new_type is BlockType.HEADING_1
        assert change.anchor == "b1"

    def test_type_change_of_first_block_has_no_anchor(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"))
        session.edit(0, 1, ["- a"])
        plan = planner.plan_session(session, formatter)
        assert plan.type_changes[0].anchor is None

    def test_read_only_block_never_updated(self, planner, make_session, formatter):
        session = make_session(_api("d1", block_type="divider"), _api("b1", "a"))
        plan = planner.plan_session(session, formatter)
        assert plan.is_empty()

    def test_removed_lines_are_deletes(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"), _api("b2", "gone"))
        session.delete_lines(1, 2)
        plan = planner.plan_session(session, formatter)
        (delete,) = plan.deletes
        assert delete.id == "b2"
        assert delete.original_content == "gone"
        assert delete.block_type == "paragraph"
        assert plan.needs_confirmation


# ---------------------------------------------------------------------------
# New blocks
# ---------------------------------------------------------------------------

class TestCreates:
    def test_appended_blocks_chain_anchors(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"))
        session.insert_lines(1, ["first", "second"])
        plan = planner.plan_session(session, formatter)
        first, second = plan.creates
        assert first.anchor == "b1"
        assert second.anchor == first.block.temp_id
        assert first.block.anchor == "b1"
        assert first.position < second.position
        assert "id" not in first.desired_content

    def test_insert_at_top_has_no_anchor(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"))
        session.insert_lines(0, ["top"])
        plan = planner.plan_session(session, formatter)
        assert plan.creates[0].anchor is None
        assert plan.creates[0].block_type is BlockType.PARAGRAPH

    def test_empty_page(self, planner, make_session, formatter):
        session = make_session()
        session.set_lines(["New paragraph"])
        plan = planner.plan_session(session, formatter)
        (create,) = plan.creates
        assert create.anchor is None
        assert create.block.text == "New paragraph"
        assert not plan.needs_confirmation

    def test_insert_between_blocks(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"), _api("b2", "c"))
        session.insert_lines(1, ["b"])
        plan = planner.plan_session(session, formatter)
        assert plan.creates[0].anchor == "b1"
        assert not plan.deletes


# ---------------------------------------------------------------------------
# Content matching
# ---------------------------------------------------------------------------

class TestContentMatching:
    def test_moved_block_is_relinked(self, planner, make_session, formatter):
        session = make_session(_api("b1", "x"), _api("b2", "y"), _api("b3", "z"))
        session.delete_lines(0, 1)
        session.insert_lines(2, ["x"])
        plan = planner.plan_session(session, formatter)
        (relink,) = plan.relinks
        assert relink.id == "b1"
        assert relink.block.text == "x"
        assert not plan.creates
        assert not plan.deletes

    def test_create_after_relinked_block_anchors_on_its_id(self, planner, make_session, formatter):
        session = make_session(_api("b1", "x"), _api("b2", "y"))
        session.delete_lines(0, 1)
        session.insert_lines(1, ["x", "after x"])
        plan = planner.plan_session(session, formatter)
        assert [r.id for r in plan.relinks] == ["b1"]
        assert plan.creates[0].anchor == "b1"

    def test_duplicate_content_is_unmatched(self, planner, make_session, formatter):
        session = make_session(_api("b1", "dup"), _api("b2", "dup"), _api("b3", "other"))
        session.delete_lines(0, 2)
        session.insert_lines(1, ["dup"])
        plan = planner.plan_session(session, formatter)
        (region,) = plan.unmatched
        assert region.content == "dup"
        assert sorted(region.possible_matches) == ["b1", "b2"]
        assert region.line_range == (1, 2)
        # Candidates are kept and nothing is created for the region.
        assert not plan.deletes
        assert not plan.creates
        assert not plan.relinks
        assert plan.needs_confirmation
        assert not plan.is_empty()

    def test_changed_text_is_not_relinked(self, planner, make_session, formatter):
        session = make_session(_api("b1", "x"), _api("b2", "y"))
        session.delete_lines(0, 1)
        session.insert_lines(1, ["x edited"])
        plan = planner.plan_session(session, formatter)
        assert not plan.relinks
        assert len(plan.creates) == 1
        assert [d.id for d in plan.deletes] == ["b1"]

    def test_plan_with_explicit_block_lists(self, planner):
        old = block_from_api(_api("b1", "same"))
        new = block_from_api(_api("b1", "same"))
        new.id = None
        new.temp_id = "temp_1"
        plan = planner.plan([new], [old.snapshot()])
        assert [r.id for r in plan.relinks] == ["b1"]


# ---------------------------------------------------------------------------
# Debug dump
# ---------------------------------------------------------------------------

class TestPlanDump:
    def test_debug_dump_plan_logs_summary(self, make_session, formatter):
        planner = SyncPlanner(SyncConfig(debug_dump_plan=True))
        session = make_session(_api("b1", "a"))
        session.insert_lines(1, ["new"])
        with patch("notionsync.diff.planner.log") as log:
            planner.plan_session(session, formatter)
        messages = [c.args[0] for c in log.info.call_args_list]
        assert "Sync plan" in messages

    def test_no_dump_by_default(self, planner, make_session, formatter):
        session = make_session(_api("b1", "a"))
        with patch("notionsync.diff.planner.log") as log:
            planner.plan_session(session, formatter)
        log.info.assert_not_called()
