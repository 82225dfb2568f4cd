"""Unit tests — watchers/store.py (SqliteWatcherStore)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

import pytest

from vigil.exceptions import PersistenceError
from vigil.watchers.models import EmailWatch, ScheduledWatch, Watcher
from vigil.watchers.store import SqliteWatcherStore


@pytest.mark.unit
class TestSqliteWatcherStore:
    async def test_save_and_get(self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]) -> None:
        w = watcher_factory(action="ping", reply_channel="c1")
        await store.save(w)
        loaded = await store.get_by_id(w.id)
        assert loaded is not None
        assert loaded == w

    async def test_get_nonexistent_returns_none(self, store: SqliteWatcherStore) -> None:
        assert await store.get_by_id("missing") is None

    async def test_kind_round_trips_exactly(self, store: SqliteWatcherStore) -> None:
        w = Watcher(
            kind=ScheduledWatch(cron_expr="0 9 * * 1-5", task="standup", interval_secs=30),
            action="post standup",
            reply_channel="slack:#team",
        )
        await store.save(w)
        loaded = await store.get_by_id(w.id)
        assert loaded is not None
        assert loaded.kind == w.kind
        assert loaded.kind.to_dict() == w.kind.to_dict()

    async def test_save_is_upsert(self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]) -> None:
        w = watcher_factory(action="original")
        await store.save(w)
        w.action = "updated"
        await store.save(w)
        all_watchers = await store.list_all()
        assert len(all_watchers) == 1
        assert all_watchers[0].action == "updated"

    async def test_get_active_ordered_oldest_first(
        self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]
    ) -> None:
        newer = watcher_factory(created_at=2000.0)
        older = watcher_factory(created_at=1000.0)
        inactive = watcher_factory(created_at=500.0, active=False)
        for w in (newer, older, inactive):
            await store.save(w)
        active = await store.get_active()
        assert [w.id for w in active] == [older.id, newer.id]

    async def test_list_all_includes_inactive(
        self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]
    ) -> None:
        await store.save(watcher_factory())
        await store.save(watcher_factory(active=False))
        assert len(await store.list_all()) == 2

    async def test_deactivate(self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]) -> None:
        w = watcher_factory()
        await store.save(w)
        await store.deactivate(w.id)
        loaded = await store.get_by_id(w.id)
        assert loaded is not None
        assert loaded.active is False
        assert await store.get_active() == []

    async def test_deactivate_is_idempotent(
        self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]
    ) -> None:
        w = watcher_factory()
        await store.save(w)
        await store.deactivate(w.id)
        await store.deactivate(w.id)
        await store.deactivate("never-existed")

    async def test_delete(self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]) -> None:
        w = watcher_factory()
        await store.save(w)
        assert await store.delete(w.id) is True
        assert await store.get_by_id(w.id) is None

    async def test_delete_is_idempotent(self, store: SqliteWatcherStore) -> None:
        assert await store.delete("nope") is False
        assert await store.delete("nope") is False

    async def test_concurrent_saves(self, store: SqliteWatcherStore, watcher_factory: Callable[..., Watcher]) -> None:
        watchers = [watcher_factory(action=f"a{i}") for i in range(20)]
        await asyncio.gather(*(store.save(w) for w in watchers))
        assert len(await store.list_all()) == 20

    async def test_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        w = Watcher(kind=EmailWatch(sender="a@b.c"), action="triage", reply_channel="c1")
        async with SqliteWatcherStore(path) as s1:
            await s1.save(w)
        async with SqliteWatcherStore(path) as s2:
            loaded = await s2.get_by_id(w.id)
        assert loaded == w

    async def test_init_schema_repeatable(self, store: SqliteWatcherStore) -> None:
        await store.init_schema()
        await store.init_schema()

    async def test_uninitialised_store_raises(self, tmp_path: Path) -> None:
        s = SqliteWatcherStore(tmp_path / "never_opened.db")
        with pytest.raises(PersistenceError) as exc_info:
            await s.get_active()
        assert exc_info.value.operation == "get_active"

    async def test_corrupt_row_raises_persistence_error(self, store: SqliteWatcherStore) -> None:
        conn: Any = store._conn
        await conn.execute(
            "INSERT INTO watchers (id, kind_type, definition, active, created_at, updated_at) "
            "VALUES ('bad', 'interval', '{not json', 1, 0, 0)"
        )
        await conn.commit()
        with pytest.raises(PersistenceError):
            await store.get_active()

    async def test_unknown_kind_row_raises_persistence_error(self, store: SqliteWatcherStore) -> None:
        conn: Any = store._conn
        await conn.execute(
            "INSERT INTO watchers (id, kind_type, definition, active, created_at, updated_at) "
            "VALUES ('odd', 'telepathy', ?, 1, 0, 0)",
            ('{"id": "odd", "kind": {"type": "telepathy"}, "action": "a", "reply_channel": "c"}',),
        )
        await conn.commit()
        with pytest.raises(PersistenceError):
            await store.list_all()
