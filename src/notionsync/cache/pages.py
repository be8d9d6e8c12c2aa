"""Page metadata and page content tables.

:class:`PageStore` runs the queries and lets ``SQLAlchemyError`` propagate;
:class:`~notionsync.cache.page_cache.PageCache` decides what a failure
means to its caller.
"""

from __future__ import annotations

import json
import time
from typing import Any

from sqlalchemy import Float, Integer, case, cast, delete, func, literal, select, update
from sqlalchemy.engine import Connection, RowMapping

from notionsync.models import PageMeta
from notionsync.observability import get_logger
from notionsync.utils.hashing import canonical_json, hash_blocks, md5_hash

from .db import CacheDatabase, upsert
from .schema import block_hashes, page_content, pages

log = get_logger("notionsync.cache")

# Recency bonus decays to zero over this many seconds (30 days).
RECENCY_WINDOW = 2_592_000

_PAGE_UPDATE_COLUMNS = (
    "title",
    "icon",
    "icon_type",
    "parent_type",
    "parent_id",
    "last_edited_time",
    "created_time",
    "cached_at",
)


def frecency(now: int) -> Any:
    """SQL expression: ``open_count * 10`` plus up to 100 recency points."""
    age = literal(now, Integer) - pages.c.last_opened_at
    recency = case(
        (pages.c.last_opened_at.is_(None), 0.0),
        (age >= RECENCY_WINDOW, 0.0),
        else_=(1.0 - cast(age, Float) / float(RECENCY_WINDOW)) * 100.0,
    )
    return func.coalesce(pages.c.open_count, 0) * 10 + recency


def block_hash(block: dict[str, Any]) -> str:
    return md5_hash(canonical_json(block))


def _row_to_meta(row: RowMapping) -> PageMeta:
    return PageMeta(
        id=row["id"],
        title=row["title"],
        icon=row["icon"],
        icon_type=row["icon_type"],
        parent_type=row["parent_type"],
        parent_id=row["parent_id"],
        last_edited_time=row["last_edited_time"],
        created_time=row["created_time"],
        open_count=row["open_count"] or 0,
        last_opened_at=row["last_opened_at"],
    )


class PageStore:
    """Queries over ``pages``, ``page_content`` and ``block_hashes``."""

    def __init__(self, db: CacheDatabase) -> None:
        self._db = db

    # -- metadata -------------------------------------------------------

    @staticmethod
    def _upsert_page(conn: Connection, meta: PageMeta, now: int) -> None:
        # open_count and last_opened_at belong to update_open_stats.
        upsert(
            conn,
            pages,
            {
                "id": meta.id,
                "title": meta.title or "Untitled",
                "icon": meta.icon,
                "icon_type": meta.icon_type,
                "parent_type": meta.parent_type,
                "parent_id": meta.parent_id,
                "last_edited_time": meta.last_edited_time,
                "created_time": meta.created_time,
                "cached_at": now,
                "open_count": 0,
                "last_opened_at": None,
                "is_deleted": 0,
            },
            key=["id"],
            update=_PAGE_UPDATE_COLUMNS,
            update_values={"is_deleted": 0},
        )

    def save_page(self, meta: PageMeta) -> None:
        with self._db.begin() as conn:
            self._upsert_page(conn, meta, int(time.time()))

    def save_pages_batch(self, metas: list[PageMeta]) -> int:
        now = int(time.time())
        with self._db.begin() as conn:
            for meta in metas:
                self._upsert_page(conn, meta, now)
        return len(metas)

    def get_page(self, page_id: str) -> PageMeta | None:
        with self._db.connect() as conn:
            row = conn.execute(select(pages).where(pages.c.id == page_id)).mappings().first()
        return _row_to_meta(row) if row else None

    def has_page(self, page_id: str) -> bool:
        with self._db.connect() as conn:
            row = conn.execute(
                select(pages.c.id).where(pages.c.id == page_id, pages.c.is_deleted == 0)
            ).first()
        return row is not None

    def update_open_stats(self, page_id: str) -> bool:
        with self._db.begin() as conn:
            result = conn.execute(
                update(pages)
                .where(pages.c.id == page_id)
                .values(open_count=pages.c.open_count + 1, last_opened_at=int(time.time()))
            )
        return result.rowcount > 0

    def delete_page(self, page_id: str) -> bool:
        with self._db.begin() as conn:
            result = conn.execute(update(pages).where(pages.c.id == page_id).values(is_deleted=1))
        return result.rowcount > 0

    def purge_page(self, page_id: str) -> bool:
        with self._db.begin() as conn:
            result = conn.execute(delete(pages).where(pages.c.id == page_id))
        return result.rowcount > 0

    def get_recent(self, limit: int = 20) -> list[PageMeta]:
        query = (
            select(pages)
            .where(pages.c.is_deleted == 0)
            .order_by(pages.c.last_opened_at.desc().nulls_last())
            .limit(limit)
        )
        with self._db.connect() as conn:
            return [_row_to_meta(row) for row in conn.execute(query).mappings()]

    def search(self, query: str, limit: int = 50) -> list[PageMeta]:
        score = frecency(int(time.time())).label("frecency_score")
        stmt = (
            select(pages, score)
            .where(pages.c.is_deleted == 0, pages.c.title.contains(query, autoescape=True))
            .order_by(score.desc(), pages.c.title)
            .limit(limit)
        )
        with self._db.connect() as conn:
            return [_row_to_meta(row) for row in conn.execute(stmt).mappings()]

    def evict(self, max_pages: int) -> int:
        """Soft-delete the lowest-frecency pages beyond *max_pages*."""
        with self._db.begin() as conn:
            live = conn.execute(
                select(func.count()).select_from(pages).where(pages.c.is_deleted == 0)
            ).scalar() or 0
            excess = live - max_pages
            if excess <= 0:
                return 0
            victims = (
                select(pages.c.id)
                .where(pages.c.is_deleted == 0)
                .order_by(frecency(int(time.time())).asc(), pages.c.cached_at.asc())
                .limit(excess)
            )
            result = conn.execute(
                update(pages).where(pages.c.id.in_(victims.scalar_subquery())).values(is_deleted=1)
            )
        return result.rowcount

    # -- content --------------------------------------------------------

    def save_content(self, page_id: str, blocks: list[dict[str, Any]]) -> bool:
        """Store *blocks* for *page_id*.

        Returns ``False`` when the page row does not exist.  An unchanged
        content hash only refreshes ``fetched_at``.
        """
        content_hash = hash_blocks(blocks)
        now = int(time.time())
        with self._db.begin() as conn:
            exists = conn.execute(select(pages.c.id).where(pages.c.id == page_id)).first()
            if exists is None:
                log.warning(
                    "Cannot cache content: page not in cache",
                    extra={"extra_fields": {"op": "save_content", "page_id": page_id}},
                )
                return False

            current = conn.execute(
                select(page_content.c.content_hash).where(page_content.c.page_id == page_id)
            ).scalar()
            if current == content_hash:
                conn.execute(
                    update(page_content)
                    .where(page_content.c.page_id == page_id)
                    .values(fetched_at=now)
                )
                return True

            upsert(
                conn,
                page_content,
                {
                    "page_id": page_id,
                    "blocks_json": json.dumps(blocks, ensure_ascii=False),
                    "content_hash": content_hash,
                    "block_count": len(blocks),
                    "fetched_at": now,
                },
                key=["page_id"],
            )

            block_ids: list[str] = []
            for block in blocks:
                block_id = block.get("id")
                if not block_id:
                    continue
                block_ids.append(block_id)
                upsert(
                    conn,
                    block_hashes,
                    {
                        "block_id": block_id,
                        "page_id": page_id,
                        "content_hash": block_hash(block),
                        "block_type": block.get("type") or "unsupported",
                    },
                    key=["block_id"],
                )
            conn.execute(
                delete(block_hashes).where(
                    block_hashes.c.page_id == page_id,
                    block_hashes.c.block_id.not_in(block_ids),
                )
            )
        log.info(
            "Page content cached",
            extra={"extra_fields": {"op": "save_content", "page_id": page_id, "block_count": len(blocks)}},
        )
        return True

    def get_content(self, page_id: str) -> tuple[list[dict[str, Any]] | None, str | None]:
        query = (
            select(page_content.c.blocks_json, page_content.c.content_hash)
            .join(pages, pages.c.id == page_content.c.page_id)
            .where(page_content.c.page_id == page_id, pages.c.is_deleted == 0)
        )
        with self._db.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None, None
        return json.loads(row.blocks_json), row.content_hash

    def has_content(self, page_id: str) -> bool:
        return self.get_content(page_id)[0] is not None

    def get_cache_age(self, page_id: str) -> int | None:
        with self._db.connect() as conn:
            fetched_at = conn.execute(
                select(page_content.c.fetched_at).where(page_content.c.page_id == page_id)
            ).scalar()
        if fetched_at is None:
            return None
        return int(time.time()) - fetched_at

    def get_block_hashes(self, page_id: str) -> dict[str, str]:
        query = select(block_hashes.c.block_id, block_hashes.c.content_hash).where(
            block_hashes.c.page_id == page_id
        )
        with self._db.connect() as conn:
            return {row.block_id: row.content_hash for row in conn.execute(query)}

    def clear_content(self, page_id: str | None = None) -> int:
        """Drop cached content (of one page, or of every page).  Metadata stays."""
        with self._db.begin() as conn:
            content_stmt = delete(page_content)
            hashes_stmt = delete(block_hashes)
            if page_id is not None:
                content_stmt = content_stmt.where(page_content.c.page_id == page_id)
                hashes_stmt = hashes_stmt.where(block_hashes.c.page_id == page_id)
            result = conn.execute(content_stmt)
            conn.execute(hashes_stmt)
        return result.rowcount

    def clear_all(self) -> None:
        # Content, hashes and sync state cascade from pages.
        with self._db.begin() as conn:
            conn.execute(delete(pages))
