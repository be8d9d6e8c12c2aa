"""Per-page sync bookkeeping: which content hash was pulled, pushed, or
edited locally, and when.
"""

from __future__ import annotations

import time

from sqlalchemy import select

from notionsync.models import SyncStateRow, SyncStatus

from .db import CacheDatabase, upsert
from .schema import pages, sync_state


class SyncStateStore:
    """Queries over ``sync_state``.  Errors propagate to the facade."""

    def __init__(self, db: CacheDatabase) -> None:
        self._db = db

    def record_pull(self, page_id: str, content_hash: str) -> None:
        with self._db.begin() as conn:
            upsert(
                conn,
                sync_state,
                {
                    "page_id": page_id,
                    "remote_hash": content_hash,
                    "last_pull_time": int(time.time()),
                    "sync_status": SyncStatus.SYNCED.value,
                },
                key=["page_id"],
            )

    def record_push(self, page_id: str, content_hash: str) -> None:
        # After a push the local and remote content are the same.
        with self._db.begin() as conn:
            upsert(
                conn,
                sync_state,
                {
                    "page_id": page_id,
                    "local_hash": content_hash,
                    "remote_hash": content_hash,
                    "last_pushed_hash": content_hash,
                    "last_push_time": int(time.time()),
                    "sync_status": SyncStatus.SYNCED.value,
                },
                key=["page_id"],
            )

    def mark_modified(self, page_id: str, local_hash: str | None = None) -> bool:
        """Flag local edits.  Returns ``False`` if the page is not cached."""
        with self._db.begin() as conn:
            if conn.execute(select(pages.c.id).where(pages.c.id == page_id)).first() is None:
                return False
            values = {"page_id": page_id, "sync_status": SyncStatus.MODIFIED.value}
            if local_hash is not None:
                values["local_hash"] = local_hash
            upsert(conn, sync_state, values, key=["page_id"])
        return True

    def get(self, page_id: str) -> SyncStateRow | None:
        with self._db.connect() as conn:
            row = conn.execute(
                select(sync_state).where(sync_state.c.page_id == page_id)
            ).mappings().first()
        if row is None:
            return None
        try:
            status = SyncStatus(row["sync_status"])
        except ValueError:
            status = SyncStatus.UNKNOWN
        return SyncStateRow(
            page_id=row["page_id"],
            local_hash=row["local_hash"],
            remote_hash=row["remote_hash"],
            last_pushed_hash=row["last_pushed_hash"],
            last_push_time=row["last_push_time"],
            last_pull_time=row["last_pull_time"],
            sync_status=status,
        )

    def has_changed(self, page_id: str, content_hash: str) -> bool:
        """Whether *content_hash* differs from both recorded hashes.

        A page without sync state counts as changed.
        """
        state = self.get(page_id)
        if state is None:
            return True
        return content_hash not in (state.remote_hash, state.local_hash)
