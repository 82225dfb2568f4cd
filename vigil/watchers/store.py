"""Watcher persistence.

``WatcherStore`` is the contract the supervisor depends on; any backend
that honours it (atomic per watcher ID, safe for concurrent callers) can be
injected.  ``SqliteWatcherStore`` is the bundled implementation:

    - Single aiosqlite connection per store instance
    - An asyncio.Lock around every statement + commit
    - JSON serialisation for the kind union
    - No ORM dependency

Schema
------
One table: ``watchers``
    id           TEXT PRIMARY KEY
    kind_type    TEXT   (kind discriminant, for filtering)
    definition   TEXT   (full JSON serialisation of the Watcher)
    active       INTEGER (0/1, authoritative over the JSON copy)
    created_at   REAL
    updated_at   REAL

Index on (active, created_at) for the startup query.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from types import TracebackType
from typing import Any

import aiosqlite
from pydantic import ValidationError

from vigil.exceptions import ConfigError, PersistenceError
from vigil.logging import get_logger
from vigil.watchers.models import Watcher

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS watchers (
    id          TEXT PRIMARY KEY,
    kind_type   TEXT NOT NULL,
    definition  TEXT NOT NULL,
    active      INTEGER NOT NULL DEFAULT 1,
    created_at  REAL NOT NULL,
    updated_at  REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_watchers_active ON watchers(active, created_at);
"""

_DB_ERRORS = (sqlite3.Error, OSError, ValueError)


class WatcherStore(ABC):
    """Durable CRUD for watcher records.  No scheduling knowledge.

    Implementations must be safe for concurrent use by the supervisor and
    by API callers, and must raise ``PersistenceError`` on I/O failure.
    """

    @abstractmethod
    async def init_schema(self) -> None:
        """Create the backing structure if absent.  Safe to call repeatedly."""

    @abstractmethod
    async def close(self) -> None:
        """Release the backing resources."""

    @abstractmethod
    async def save(self, watcher: Watcher) -> None:
        """Upsert by ``watcher.id``.  Idempotent."""

    @abstractmethod
    async def get_by_id(self, watcher_id: str) -> Watcher | None:
        """Return the watcher, or None if absent."""

    @abstractmethod
    async def get_active(self) -> list[Watcher]:
        """Return active watchers, oldest ``created_at`` first."""

    @abstractmethod
    async def list_all(self) -> list[Watcher]:
        """Return every watcher, oldest ``created_at`` first."""

    @abstractmethod
    async def deactivate(self, watcher_id: str) -> None:
        """Set ``active=false``.  No-op if already inactive or absent."""

    @abstractmethod
    async def delete(self, watcher_id: str) -> bool:
        """Remove the row.  Returns True if it existed; never raises for absent IDs."""

    async def __aenter__(self) -> "WatcherStore":
        await self.init_schema()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _from_row(definition: str, active: int) -> Watcher:
    watcher = Watcher.from_dict(json.loads(definition))
    # The active column is authoritative (deactivate only touches the column)
    watcher.active = bool(active)
    return watcher


# ---------------------------------------------------------------------------
# SqliteWatcherStore
# ---------------------------------------------------------------------------


class SqliteWatcherStore(WatcherStore):
    """Async SQLite store for Watcher objects.

    Usage::

        async with SqliteWatcherStore(Path("~/.vigil/watchers.db")) as store:
            await store.save(watcher)
            watcher = await store.get_by_id(watcher.id)
            active = await store.get_active()
            await store.deactivate(watcher.id)
            await store.delete(watcher.id)
    """

    def __init__(self, db_path: Path) -> None:
        self._path = db_path.expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    async def init_schema(self) -> None:
        """Open the database (once) and create tables if needed."""
        async with self._lock:
            try:
                if self._conn is None:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    self._conn = await aiosqlite.connect(str(self._path))
                await self._conn.executescript(_SCHEMA)
                await self._conn.commit()
            except _DB_ERRORS as exc:
                raise PersistenceError("init_schema", str(exc)) from exc
        log.info("watcher_store_initialized", path=str(self._path))

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self._conn is None:
            raise PersistenceError(operation, "store is not initialised; call init_schema() first")
        return self._conn

    # ---------------------------------------------------------------------------
    # CRUD
    # ---------------------------------------------------------------------------

    async def save(self, watcher: Watcher) -> None:
        definition_json = json.dumps(watcher.to_dict(), default=str)
        now = time.time()
        async with self._lock:
            conn = self._require_conn("save")
            try:
                await conn.execute(
                    """
                    INSERT INTO watchers
                        (id, kind_type, definition, active, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        kind_type  = excluded.kind_type,
                        definition = excluded.definition,
                        active     = excluded.active,
                        updated_at = excluded.updated_at
                    """,
                    (
                        watcher.id,
                        watcher.kind.type,
                        definition_json,
                        int(watcher.active),
                        watcher.created_at,
                        now,
                    ),
                )
                await conn.commit()
            except _DB_ERRORS as exc:
                raise PersistenceError("save", str(exc), watcher.id) from exc

    async def get_by_id(self, watcher_id: str) -> Watcher | None:
        rows = await self._fetch(
            "get_by_id",
            "SELECT definition, active FROM watchers WHERE id = ?",
            (watcher_id,),
        )
        if not rows:
            return None
        return self._decode("get_by_id", rows)[0]

    async def get_active(self) -> list[Watcher]:
        rows = await self._fetch(
            "get_active",
            "SELECT definition, active FROM watchers WHERE active = 1 "
            "ORDER BY created_at ASC, rowid ASC",
        )
        return self._decode("get_active", rows)

    async def list_all(self) -> list[Watcher]:
        rows = await self._fetch(
            "list_all",
            "SELECT definition, active FROM watchers ORDER BY created_at ASC, rowid ASC",
        )
        return self._decode("list_all", rows)

    async def deactivate(self, watcher_id: str) -> None:
        await self._write(
            "deactivate",
            watcher_id,
            "UPDATE watchers SET active = 0, updated_at = ? WHERE id = ? AND active = 1",
            (time.time(), watcher_id),
        )

    async def delete(self, watcher_id: str) -> bool:
        rowcount = await self._write(
            "delete",
            watcher_id,
            "DELETE FROM watchers WHERE id = ?",
            (watcher_id,),
        )
        return rowcount > 0

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    async def _fetch(
        self, operation: str, sql: str, params: tuple[Any, ...] = ()
    ) -> list[tuple[Any, ...]]:
        async with self._lock:
            conn = self._require_conn(operation)
            try:
                async with conn.execute(sql, params) as cursor:
                    return list(await cursor.fetchall())
            except _DB_ERRORS as exc:
                raise PersistenceError(operation, str(exc)) from exc

    async def _write(
        self, operation: str, watcher_id: str, sql: str, params: tuple[Any, ...]
    ) -> int:
        async with self._lock:
            conn = self._require_conn(operation)
            try:
                cursor = await conn.execute(sql, params)
                await conn.commit()
                return cursor.rowcount
            except _DB_ERRORS as exc:
                raise PersistenceError(operation, str(exc), watcher_id) from exc

    @staticmethod
    def _decode(operation: str, rows: list[tuple[Any, ...]]) -> list[Watcher]:
        try:
            return [_from_row(definition, active) for definition, active in rows]
        except (ValueError, KeyError, ConfigError, ValidationError) as exc:
            raise PersistenceError(operation, f"corrupt watcher row: {exc}") from exc
