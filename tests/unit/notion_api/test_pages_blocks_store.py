"""Unit tests for the page/block endpoint wrappers and NotionRemoteStore.

Covers:
- page helpers (normalize_page_id, page_title, page_parent, page_icon, page_meta)
- AsyncPageAPI (retrieve, search with limit)
- AsyncBlockAPI (update, delete, get_children, append_children) and
  extract_block_ids
- NotionRemoteStore delegation
"""

from __future__ import annotations

import json

import httpx
import pytest

from notionsync.config import SyncConfig
from notionsync.notion_api.blocks import AsyncBlockAPI, extract_block_ids
from notionsync.notion_api.pages import (
    AsyncPageAPI,
    normalize_page_id,
    page_icon,
    page_meta,
    page_parent,
    page_title,
)
from notionsync.notion_api.store import NotionRemoteStore, RemoteStore
from notionsync.notion_api.transport import AsyncNotionTransport

PAGE_UUID = "12345678-90ab-cdef-1234-567890abcdef"
PAGE_ID = "1234567890abcdef1234567890abcdef"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: dict) -> None:
        self.requests: list[httpx.Request] = []
        self._responses = list(responses) or [{}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        return httpx.Response(200, json=body)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_transport(recorder: Recorder) -> AsyncNotionTransport:
    config = SyncConfig(token="tok-xyz", retry_jitter=False, rate_limit_rps=10_000.0)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder), base_url=config.base_url)
    return AsyncNotionTransport(config, client=client)


def make_page(**overrides) -> dict:
    page = {
        "object": "page",
        "id": PAGE_UUID,
        "created_time": "2024-01-01T00:00:00.000Z",
        "last_edited_time": "2024-02-01T00:00:00.000Z",
        "parent": {"type": "page_id", "page_id": "parent-1"},
        "icon": {"type": "emoji", "emoji": "📘"},
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": "Project "}, {"plain_text": "Notes"}]},
        },
    }
    page.update(overrides)
    return page


# ---------------------------------------------------------------------------
# Page helpers
# ---------------------------------------------------------------------------

class TestPageHelpers:
    def test_normalize_page_id(self):
        assert normalize_page_id(PAGE_UUID) == PAGE_ID
        assert normalize_page_id(PAGE_ID) == PAGE_ID

    def test_title_joins_parts(self):
        assert page_title(make_page()) == "Project Notes"

    def test_title_fallbacks(self):
        assert page_title(None) == "Untitled"
        assert page_title(make_page(properties={})) == "Untitled"
        assert page_title(make_page(properties={"Name": {"type": "title", "title": []}})) == "Untitled"

    def test_title_ignores_other_properties(self):
        props = {
            "Tags": {"type": "multi_select", "multi_select": []},
            "Title": {"type": "title", "title": [{"plain_text": "Real"}]},
        }
        assert page_title(make_page(properties=props)) == "Real"

    @pytest.mark.parametrize(
        "parent, expected",
        [
            ({"type": "workspace", "workspace": True}, ("workspace", None)),
            ({"type": "page_id", "page_id": "p"}, ("page_id", "p")),
            ({"type": "database_id", "database_id": "d"}, ("database_id", "d")),
            ({"type": "block_id", "block_id": "b"}, ("block_id", "b")),
            ({}, ("unknown", None)),
        ],
    )
    def test_parent(self, parent, expected):
        assert page_parent(make_page(parent=parent)) == expected

    def test_icon_variants(self):
        assert page_icon(make_page()) == ("📘", "emoji")
        external = {"type": "external", "external": {"url": "https://x/icon.png"}}
        assert page_icon(make_page(icon=external)) == ("https://x/icon.png", "external")
        assert page_icon(make_page(icon=None)) == (None, None)

    def test_page_meta(self):
        meta = page_meta(make_page())
        assert meta.id == PAGE_ID
        assert meta.title == "Project Notes"
        assert (meta.icon, meta.icon_type) == ("📘", "emoji")
        assert (meta.parent_type, meta.parent_id) == ("page_id", "parent-1")
        assert meta.last_edited_time == "2024-02-01T00:00:00.000Z"
        assert meta.created_time == "2024-01-01T00:00:00.000Z"


# ---------------------------------------------------------------------------
# AsyncPageAPI
# ---------------------------------------------------------------------------

class TestAsyncPageAPI:
    async def test_retrieve_normalizes_id(self):
        recorder = Recorder(make_page())
        api = AsyncPageAPI(make_transport(recorder))
        page = await api.retrieve(PAGE_UUID)
        assert page["id"] == PAGE_UUID
        assert recorder.requests[0].url.path == f"/v1/pages/{PAGE_ID}"

    async def test_search_filters_pages_and_sends_query(self):
        recorder = Recorder({"results": [make_page()], "has_more": False})
        api = AsyncPageAPI(make_transport(recorder))
        results = await api.search("notes")
        assert len(results) == 1
        body = recorder.body(0)
        assert body["query"] == "notes"
        assert body["filter"] == {"property": "object", "value": "page"}

    async def test_search_without_query(self):
        recorder = Recorder({"results": [], "has_more": False})
        api = AsyncPageAPI(make_transport(recorder))
        assert await api.search() == []
        assert "query" not in recorder.body(0)

    async def test_search_stops_at_limit(self):
        recorder = Recorder(
            {"results": [{"id": "a"}, {"id": "b"}], "has_more": True, "next_cursor": "c"},
            {"results": [{"id": "c"}], "has_more": False},
        )
        api = AsyncPageAPI(make_transport(recorder))
        results = await api.search(limit=2)
        assert [r["id"] for r in results] == ["a", "b"]
        assert len(recorder.requests) == 1


# ---------------------------------------------------------------------------
# AsyncBlockAPI
# ---------------------------------------------------------------------------

class TestAsyncBlockAPI:
    def test_extract_block_ids(self):
        response = {"results": [{"id": "x"}, {"object": "block"}, {"id": "y"}]}
        assert extract_block_ids(response) == ["x", "y"]
        assert extract_block_ids({}) == []

    async def test_update_patches_block(self):
        recorder = Recorder({"id": "b1"})
        api = AsyncBlockAPI(make_transport(recorder))
        payload = {"paragraph": {"rich_text": []}}
        await api.update("b1", payload)
        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/v1/blocks/b1"
        assert recorder.body() == payload

    async def test_delete(self):
        recorder = Recorder({"id": "b1", "archived": True})
        api = AsyncBlockAPI(make_transport(recorder))
        await api.delete("b1")
        assert recorder.requests[0].method == "DELETE"

    async def test_get_children_follows_cursor(self):
        recorder = Recorder(
            {"results": [{"id": "a"}], "has_more": True, "next_cursor": "c2"},
            {"results": [{"id": "b"}], "has_more": False},
        )
        api = AsyncBlockAPI(make_transport(recorder))
        children = await api.get_children("p1")
        assert [c["id"] for c in children] == ["a", "b"]
        assert recorder.requests[1].url.params["start_cursor"] == "c2"

    async def test_append_children_with_after(self):
        recorder = Recorder({"results": [{"id": "n1"}]})
        api = AsyncBlockAPI(make_transport(recorder))
        children = [{"type": "paragraph", "paragraph": {"rich_text": []}}]
        await api.append_children("p1", children, after="b1")
        assert recorder.requests[0].url.path == "/v1/blocks/p1/children"
        assert recorder.body() == {"children": children, "after": "b1"}

    async def test_append_children_without_after_omits_key(self):
        recorder = Recorder({"results": []})
        api = AsyncBlockAPI(make_transport(recorder))
        await api.append_children("p1", [])
        assert "after" not in recorder.body()


# ---------------------------------------------------------------------------
# NotionRemoteStore
# ---------------------------------------------------------------------------

class TestNotionRemoteStore:
    def test_satisfies_protocol(self):
        store = NotionRemoteStore(make_transport(Recorder()))
        assert isinstance(store, RemoteStore)

    def test_from_config(self):
        store = NotionRemoteStore.from_config(SyncConfig(token="tok-xyz"))
        assert isinstance(store.blocks, AsyncBlockAPI)
        assert isinstance(store.pages, AsyncPageAPI)

    async def test_create_returns_new_ids_in_order(self):
        recorder = Recorder({"results": [{"id": "n1"}, {"id": "n2"}]})
        store = NotionRemoteStore(make_transport(recorder))
        children = [{"type": "divider", "divider": {}}] * 2
        assert await store.create("p1", children, "anchor-1") == ["n1", "n2"]
        assert recorder.body()["after"] == "anchor-1"

    async def test_create_without_anchor(self):
        recorder = Recorder({"results": [{"id": "n1"}]})
        store = NotionRemoteStore(make_transport(recorder))
        await store.create("p1", [{"type": "divider", "divider": {}}], None)
        assert "after" not in recorder.body()

    async def test_update_and_delete(self):
        recorder = Recorder({})
        store = NotionRemoteStore(make_transport(recorder))
        assert await store.update("b1", {"paragraph": {}}) is None
        assert await store.delete("b2") is None
        assert [r.method for r in recorder.requests] == ["PATCH", "DELETE"]

    async def test_fetch_page_and_children(self):
        recorder = Recorder(make_page(), {"results": [{"id": "a"}], "has_more": False})
        store = NotionRemoteStore(make_transport(recorder))
        page = await store.fetch_page(PAGE_ID)
        children = await store.fetch_children(PAGE_ID)
        assert page_title(page) == "Project Notes"
        assert children == [{"id": "a"}]

    async def test_search_pages(self):
        recorder = Recorder({"results": [make_page()], "has_more": False})
        store = NotionRemoteStore(make_transport(recorder))
        pages = await store.search_pages("proj", limit=5)
        assert len(pages) == 1
        assert recorder.body()["query"] == "proj"

    async def test_close_closes_transport_client(self):
        recorder = Recorder()
        config = SyncConfig(token="tok-xyz")
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        store = NotionRemoteStore(AsyncNotionTransport(config, client=client))
        await store.close()
        assert client.is_closed
