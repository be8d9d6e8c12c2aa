"""Shared test fixtures for the notionsync test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from notionsync.blocks import LineFormatter
from notionsync.buffer import SessionRegistry
from notionsync.cache import PageCache
from notionsync.config import SyncConfig


@pytest.fixture
def config() -> SyncConfig:
    """Test configuration: dummy token, in-memory cache, no backoff."""
    return SyncConfig(
        token="test_token_1234",
        cache_path=":memory:",
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
        rate_limit_rps=10_000.0,
    )


@pytest.fixture
def formatter() -> LineFormatter:
    return LineFormatter()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def cache(config: SyncConfig):
    """An initialized in-memory cache."""
    page_cache = PageCache(config)
    assert page_cache.init()
    yield page_cache
    page_cache.close()


@pytest.fixture
def store() -> AsyncMock:
    """A remote store whose creates return sequential ids ``new-1``, ``new-2``..."""
    remote = AsyncMock()
    counter = {"n": 0}

    async def create(parent_id, children, anchor):
        ids = []
        for _ in children:
            counter["n"] += 1
            ids.append(f"new-{counter['n']}")
        return ids

    remote.create = AsyncMock(side_effect=create)
    remote.update = AsyncMock(return_value=None)
    remote.delete = AsyncMock(return_value=None)
    remote.fetch_page = AsyncMock(return_value={})
    remote.fetch_children = AsyncMock(return_value=[])
    remote.search_pages = AsyncMock(return_value=[])
    remote.close = AsyncMock(return_value=None)
    return remote
