"""Tests for the PageCache facade over an in-memory SQLite database."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from notionsync.cache import PageCache
from notionsync.config import SyncConfig
from notionsync.models import CacheStats, PageMeta, SyncStatus
from notionsync.utils.hashing import hash_blocks

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _meta(page_id: str = "p1", title: str = "Page one", **kwargs) -> PageMeta:
    return PageMeta(id=page_id, title=title, parent_type="workspace", **kwargs)


def _blocks(*texts: str) -> list[dict]:
    return [
        {
            "object": "block",
            "id": f"blk-{i}",
            "type": "paragraph",
            "paragraph": {"rich_text": [{"type": "text", "text": {"content": text}}]},
        }
        for i, text in enumerate(texts)
    ]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_init_in_memory(self, cache):
        assert cache.is_initialized()
        assert cache.path == ":memory:"

    def test_init_is_idempotent(self, cache):
        assert cache.init()

    def test_close(self, config):
        page_cache = PageCache(config)
        page_cache.init()
        page_cache.close()
        assert not page_cache.is_initialized()
        assert page_cache.path is None

    def test_init_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        page_cache = PageCache(SyncConfig(cache_path=str(blocker / "cache.db")))
        assert not page_cache.init()
        assert not page_cache.is_initialized()

    def test_file_cache_persists_across_reopen(self, tmp_path):
        path = str(tmp_path / "nested" / "cache.db")
        first = PageCache(SyncConfig(cache_path=path))
        assert first.init()
        first.save_page(_meta())
        first.close()

        second = PageCache(SyncConfig(cache_path=path))
        assert second.init()
        assert second.get_page("p1").title == "Page one"
        assert second.vacuum()
        second.close()


class TestUninitialized:
    """Every operation is a no-op with a neutral result."""

    @pytest.fixture
    def idle(self) -> PageCache:
        return PageCache(SyncConfig(cache_path=":memory:"))

    def test_writes_return_false(self, idle):
        assert idle.save_page(_meta()) is False
        assert idle.save_content("p1", _blocks("a")) is False
        assert idle.record_pull("p1", "h") is False
        assert idle.record_push("p1", "h") is False
        assert idle.mark_modified("p1") is False
        assert idle.update_open_stats("p1") is False
        assert idle.delete_page("p1") is False
        assert idle.clear_all() is False

    def test_reads_return_neutral_values(self, idle):
        assert idle.get_page("p1") is None
        assert idle.get_content("p1") == (None, None)
        assert idle.has_content("p1") is False
        assert idle.search("x") == []
        assert idle.get_recent() == []
        assert idle.get_cache_age("p1") is None
        assert idle.get_sync_state("p1") is None
        assert idle.changed_block_ids("p1", _blocks("a")) == []
        assert idle.evict() == 0
        assert idle.save_pages_batch([_meta()]) == 0
        assert idle.stats() == CacheStats()


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

class TestPages:
    def test_save_and_get(self, cache):
        assert cache.save_page(_meta(icon="📄", icon_type="emoji", last_edited_time="2024-01-02T00:00:00.000Z"))
        meta = cache.get_page("p1")
        assert meta.title == "Page one"
        assert meta.icon == "📄"
        assert meta.last_edited_time == "2024-01-02T00:00:00.000Z"
        assert meta.open_count == 0
        assert cache.has_page("p1")

    def test_empty_title_stored_as_untitled(self, cache):
        cache.save_page(_meta(title=""))
        assert cache.get_page("p1").title == "Untitled"

    def test_save_preserves_open_stats(self, cache):
        cache.save_page(_meta())
        cache.update_open_stats("p1")
        cache.update_open_stats("p1")
        cache.save_page(_meta(title="Renamed"))
        meta = cache.get_page("p1")
        assert meta.title == "Renamed"
        assert meta.open_count == 2
        assert meta.last_opened_at is not None

    def test_resave_preserves_content_and_sync_state(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a", "b"))
        cache.record_pull("p1", "remote-hash")
        cache.save_page(_meta(title="Renamed"))

        blocks, _ = cache.get_content("p1")
        assert [b["id"] for b in blocks] == ["blk-0", "blk-1"]
        assert set(cache.get_block_hashes("p1")) == {"blk-0", "blk-1"}
        assert cache.get_sync_state("p1").remote_hash == "remote-hash"

    def test_update_open_stats_unknown_page(self, cache):
        assert cache.update_open_stats("missing") is False

    def test_save_pages_batch(self, cache):
        assert cache.save_pages_batch([_meta("a", "A"), _meta("b", "B")]) == 2
        assert cache.stats().pages == 2
        assert cache.save_pages_batch([]) == 0

    def test_soft_delete_hides_page_and_content(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a"))
        assert cache.delete_page("p1")
        assert not cache.has_page("p1")
        assert cache.get_content("p1") == (None, None)
        assert cache.search("Page") == []
        assert cache.stats().deleted_pages == 1

    def test_save_revives_soft_deleted_page(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a"))
        cache.delete_page("p1")
        cache.save_page(_meta())
        assert cache.has_page("p1")
        assert cache.has_content("p1")

    def test_purge_cascades(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a"))
        cache.record_pull("p1", "h")
        assert cache.purge_page("p1")
        stats = cache.stats()
        assert (stats.pages, stats.contents, stats.block_hashes, stats.sync_states) == (0, 0, 0, 0)


# ---------------------------------------------------------------------------
# Search, recency, eviction
# ---------------------------------------------------------------------------

class TestSearchAndEviction:
    def test_search_orders_by_frecency(self, cache):
        cache.save_page(_meta("a", "Alpha plan"))
        cache.save_page(_meta("b", "Alpha notes"))
        cache.save_page(_meta("c", "Beta"))
        for _ in range(3):
            cache.update_open_stats("b")
        results = cache.search("Alpha")
        assert [m.id for m in results] == ["b", "a"]

    def test_search_escapes_wildcards(self, cache):
        cache.save_page(_meta("a", "100% done"))
        cache.save_page(_meta("b", "Other"))
        assert [m.id for m in cache.search("%")] == ["a"]

    def test_search_limit(self, cache):
        cache.save_pages_batch([_meta(f"p{i}", f"Doc {i}") for i in range(5)])
        assert len(cache.search("Doc", limit=2)) == 2

    def test_get_recent_puts_never_opened_last(self, cache):
        cache.save_page(_meta("a", "A"))
        cache.save_page(_meta("b", "B"))
        cache.update_open_stats("b")
        assert [m.id for m in cache.get_recent()][0] == "b"

    def test_evict_soft_deletes_lowest_frecency(self, cache):
        cache.save_pages_batch([_meta("a", "A"), _meta("b", "B"), _meta("c", "C")])
        cache.update_open_stats("a")
        cache.update_open_stats("b")
        assert cache.evict(max_pages=2) == 1
        assert not cache.has_page("c")
        assert cache.has_page("a") and cache.has_page("b")
        assert cache.get_page("c") is not None

    def test_evict_under_limit_is_noop(self, cache):
        cache.save_page(_meta())
        assert cache.evict(max_pages=5) == 0


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class TestContent:
    def test_save_content_requires_page(self, cache):
        assert cache.save_content("missing", _blocks("a")) is False

    def test_round_trip(self, cache):
        cache.save_page(_meta())
        blocks = _blocks("héllo", "wörld")
        assert cache.save_content("p1", blocks)
        stored, content_hash = cache.get_content("p1")
        assert stored == blocks
        assert content_hash == hash_blocks(blocks)
        assert cache.has_content("p1")
        assert cache.get_cache_age("p1") >= 0

    def test_unchanged_content_keeps_hash_rows(self, cache):
        cache.save_page(_meta())
        blocks = _blocks("a")
        cache.save_content("p1", blocks)
        before = cache.get_block_hashes("p1")
        assert cache.save_content("p1", blocks)
        assert cache.get_block_hashes("p1") == before

    def test_removed_blocks_pruned_from_hashes(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a", "b", "c"))
        cache.save_content("p1", _blocks("a"))
        assert set(cache.get_block_hashes("p1")) == {"blk-0"}

    def test_changed_block_ids(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a", "b"))
        edited = _blocks("a", "B")
        edited.append({"object": "block", "id": "blk-new", "type": "divider", "divider": {}})
        assert cache.changed_block_ids("p1", edited) == ["blk-1", "blk-new"]

    def test_clear_content_keeps_metadata(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a"))
        assert cache.clear_content("p1")
        assert not cache.has_content("p1")
        assert cache.get_block_hashes("p1") == {}
        assert cache.has_page("p1")

    def test_clear_all(self, cache):
        cache.save_page(_meta())
        cache.save_content("p1", _blocks("a"))
        assert cache.clear_all()
        assert cache.stats().pages == 0
        assert cache.stats().contents == 0


# ---------------------------------------------------------------------------
# Sync state
# ---------------------------------------------------------------------------

class TestSyncState:
    def test_pull_then_modify_then_push(self, cache):
        cache.save_page(_meta())
        assert cache.record_pull("p1", "r1")
        state = cache.get_sync_state("p1")
        assert state.remote_hash == "r1"
        assert state.sync_status is SyncStatus.SYNCED
        assert state.last_pull_time is not None

        assert cache.mark_modified("p1", "l1")
        state = cache.get_sync_state("p1")
        assert state.sync_status is SyncStatus.MODIFIED
        assert state.local_hash == "l1"
        assert state.remote_hash == "r1"

        assert cache.record_push("p1", "p2")
        state = cache.get_sync_state("p1")
        assert (state.local_hash, state.remote_hash, state.last_pushed_hash) == ("p2", "p2", "p2")
        assert state.sync_status is SyncStatus.SYNCED

    def test_mark_modified_unknown_page(self, cache):
        assert cache.mark_modified("missing") is False

    def test_has_changed(self, cache):
        cache.save_page(_meta())
        assert cache.has_changed("p1", "anything")
        cache.record_pull("p1", "r1")
        assert not cache.has_changed("p1", "r1")
        assert cache.has_changed("p1", "r2")

    def test_record_pull_for_unknown_page_fails_softly(self, cache):
        # The foreign key rejects a sync_state row without its page.
        assert cache.record_pull("missing", "h") is False
        assert cache.get_sync_state("missing") is None


# ---------------------------------------------------------------------------
# Error handling and metrics
# ---------------------------------------------------------------------------

class TestErrors:
    def test_database_error_returns_default_and_logs(self, cache):
        cache.save_page(_meta())
        boom = OperationalError("SELECT", {}, Exception("disk I/O error"))
        with patch.object(cache._pages, "get_page", side_effect=boom), \
                patch("notionsync.cache.page_cache.log") as log:
            assert cache.get_page("p1") is None
        log.warning.assert_called_once()
        assert "get_page" in log.warning.call_args.args[0]

    def test_write_metrics_tagged_by_table(self):
        metrics = MagicMock()
        page_cache = PageCache(SyncConfig(cache_path=":memory:", metrics=metrics))
        page_cache.init()
        page_cache.save_page(_meta())
        page_cache.record_pull("missing", "h")
        metrics.increment.assert_any_call(
            "notionsync.cache_writes_total", tags={"table": "pages", "status": "ok"},
        )
        metrics.increment.assert_any_call(
            "notionsync.cache_writes_total", tags={"table": "sync_state", "status": "error"},
        )
        page_cache.close()
