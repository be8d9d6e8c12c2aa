"""Local SQLite cache of pages, page content and sync state.

:class:`PageCache` is the entry point; the other modules are its storage
layers.
"""

from __future__ import annotations

from .db import CacheDatabase, create_cache_engine, upsert
from .page_cache import PageCache
from .pages import RECENCY_WINDOW, PageStore
from .schema import SCHEMA_VERSION
from .sync_state import SyncStateStore

__all__ = [
    "RECENCY_WINDOW",
    "SCHEMA_VERSION",
    "CacheDatabase",
    "PageCache",
    "PageStore",
    "SyncStateStore",
    "create_cache_engine",
    "upsert",
]
