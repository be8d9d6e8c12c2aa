"""SQLite engine, schema setup and the upsert primitive.

Every connection runs ``PRAGMA foreign_keys=ON`` so the ``ON DELETE
CASCADE`` clauses of the schema are enforced.
"""

from __future__ import annotations

import os
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Table, create_engine, event, func, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from notionsync.models import CacheStats
from notionsync.observability import get_logger

from . import schema

log = get_logger("notionsync.cache")

MEMORY_PATH = ":memory:"


def create_cache_engine(path: str) -> Engine:
    """Create the engine for *path* (``":memory:"`` for an in-memory cache)."""
    if path == MEMORY_PATH:
        # One shared connection, or each checkout would see an empty database.
        engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        engine = create_engine(f"sqlite:///{path}")

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def upsert(
    conn: Connection,
    table: Table,
    values: dict[str, Any],
    *,
    key: Sequence[str],
    update: Sequence[str] | None = None,
    update_values: dict[str, Any] | None = None,
) -> None:
    """``INSERT ... ON CONFLICT(key) DO UPDATE``.

    The existing row is updated in place, so rows referencing it through a
    cascading foreign key survive.

    Parameters
    ----------
    conn:
        Connection inside an open transaction.
    table:
        Target table.
    values:
        Column values for the insert.
    key:
        Conflict target columns.
    update:
        Columns copied from *values* on conflict.  Defaults to every column
        of *values* that is not part of *key*.
    update_values:
        Extra ``SET`` clauses applied on conflict (literal values or SQL
        expressions); these override *update*.
    """
    stmt = sqlite_insert(table).values(**values)
    columns = update if update is not None else [c for c in values if c not in key]
    set_: dict[str, Any] = {c: stmt.excluded[c] for c in columns}
    if update_values:
        set_.update(update_values)
    if set_:
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=set_)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(key))
    conn.execute(stmt)


class CacheDatabase:
    """Owns the engine and the schema of one cache file.

    Parameters
    ----------
    path:
        Database file, or ``":memory:"``.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._engine: Engine | None = create_cache_engine(path)
        self._init_schema()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("cache database is closed")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """A connection inside a transaction, committed on success."""
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            yield conn

    def _init_schema(self) -> None:
        schema.metadata.create_all(self.engine)
        with self.begin() as conn:
            current = conn.execute(select(func.max(schema.schema_version.c.version))).scalar()
            if current is None:
                conn.execute(
                    schema.schema_version.insert().values(
                        version=schema.SCHEMA_VERSION, applied_at=int(time.time()),
                    )
                )
                return
            for version in range(current + 1, schema.SCHEMA_VERSION + 1):
                for statement in schema.MIGRATIONS.get(version, []):
                    conn.execute(text(statement))
                conn.execute(
                    schema.schema_version.insert().values(
                        version=version, applied_at=int(time.time()),
                    )
                )
                log.info(
                    "Cache schema migrated",
                    extra={"extra_fields": {"op": "migrate", "version": version}},
                )

    def schema_version(self) -> int:
        with self.connect() as conn:
            return conn.execute(select(func.max(schema.schema_version.c.version))).scalar() or 0

    def stats(self) -> CacheStats:
        def count(conn: Connection, table: Table, *where: Any) -> int:
            return conn.execute(select(func.count()).select_from(table).where(*where)).scalar() or 0

        with self.connect() as conn:
            return CacheStats(
                pages=count(conn, schema.pages, schema.pages.c.is_deleted == 0),
                deleted_pages=count(conn, schema.pages, schema.pages.c.is_deleted == 1),
                contents=count(conn, schema.page_content),
                block_hashes=count(conn, schema.block_hashes),
                sync_states=count(conn, schema.sync_state),
                path=self.path,
            )

    def vacuum(self) -> None:
        # VACUUM cannot run inside a transaction.
        with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.execute(text("VACUUM"))

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
