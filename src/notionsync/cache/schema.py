"""SQLite schema of the page cache.

``page_content``, ``block_hashes`` and ``sync_state`` rows belong to a
``pages`` row and go away with it (``ON DELETE CASCADE``).  Because of that
cascade, a ``pages`` row must never be rewritten with ``INSERT OR REPLACE``
(which deletes the old row first); every write goes through
:func:`notionsync.cache.db.upsert`.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

SCHEMA_VERSION = 1

# Statements that upgrade a database from version ``n - 1`` to ``n``.
MIGRATIONS: dict[int, list[str]] = {}

metadata = MetaData()

schema_version = Table(
    "schema_version",
    metadata,
    Column("version", Integer, primary_key=True),
    Column("applied_at", Integer, nullable=False),
)

pages = Table(
    "pages",
    metadata,
    Column("id", String, primary_key=True),
    Column("title", Text, nullable=False),
    Column("icon", Text),
    Column("icon_type", String),
    Column("parent_type", String),
    Column("parent_id", String),
    Column("last_edited_time", String),
    Column("created_time", String),
    Column("cached_at", Integer, nullable=False),
    Column("last_opened_at", Integer),
    Column("open_count", Integer, nullable=False, server_default="0"),
    Column("is_deleted", Integer, nullable=False, server_default="0"),
    Index("idx_pages_title", "title"),
    Index("idx_pages_parent", "parent_id"),
    Index("idx_pages_last_opened", "last_opened_at"),
    Index("idx_pages_deleted", "is_deleted"),
)

page_content = Table(
    "page_content",
    metadata,
    Column("page_id", String, ForeignKey("pages.id", ondelete="CASCADE"), primary_key=True),
    Column("blocks_json", Text, nullable=False),
    Column("content_hash", String, nullable=False),
    Column("block_count", Integer, nullable=False),
    Column("fetched_at", Integer, nullable=False),
)

block_hashes = Table(
    "block_hashes",
    metadata,
    Column("block_id", String, primary_key=True),
    Column("page_id", String, ForeignKey("pages.id", ondelete="CASCADE"), nullable=False),
    Column("content_hash", String, nullable=False),
    Column("block_type", String, nullable=False),
    Index("idx_block_hashes_page_id", "page_id"),
)

sync_state = Table(
    "sync_state",
    metadata,
    Column("page_id", String, ForeignKey("pages.id", ondelete="CASCADE"), primary_key=True),
    Column("local_hash", String),
    Column("remote_hash", String),
    Column("last_pushed_hash", String),
    Column("last_push_time", Integer),
    Column("last_pull_time", Integer),
    Column("sync_status", String, nullable=False, server_default="unknown"),
)
