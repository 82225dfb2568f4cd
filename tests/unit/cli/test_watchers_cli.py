"""Unit tests — CLI watcher commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from vigil.cli.main import app
from vigil.watchers.models import Watcher
from vigil.watchers.store import SqliteWatcherStore

runner = CliRunner()


def _stored(db: Path) -> list[Watcher]:
    async def _load() -> list[Watcher]:
        async with SqliteWatcherStore(db) as store:
            return await store.list_all()

    return asyncio.run(_load())


def _add(db: Path, kind: str = '{"type": "interval", "interval_secs": 60}') -> str:
    result = runner.invoke(
        app,
        ["watchers", "add", kind, "--action", "ping", "--reply-channel", "c1", "--db", str(db)],
    )
    assert result.exit_code == 0, result.output
    return _stored(db)[-1].id


@pytest.mark.unit
class TestWatchersAdd:
    def test_add_persists(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db)
        stored = _stored(db)
        assert [w.id for w in stored] == [watcher_id]
        assert stored[0].action == "ping"
        assert stored[0].reply_channel == "c1"
        assert stored[0].active is True

    def test_zero_interval_rejected(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        result = runner.invoke(
            app,
            [
                "watchers", "add", '{"type": "interval", "interval_secs": 0}',
                "--action", "ping", "--reply-channel", "c1", "--db", str(db),
            ],
        )
        assert result.exit_code == 1
        assert "interval_secs" in result.output
        assert not db.exists()

    def test_invalid_json_rejected(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["watchers", "add", "{nope", "--action", "a", "--reply-channel", "c", "--db", str(tmp_path / "w.db")],
        )
        assert result.exit_code == 1
        assert "Invalid kind JSON" in result.output

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            ["watchers", "add", "[1, 2]", "--action", "a", "--reply-channel", "c", "--db", str(tmp_path / "w.db")],
        )
        assert result.exit_code == 1

    def test_unknown_kind_rejected(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            [
                "watchers", "add", '{"type": "telepathy"}',
                "--action", "a", "--reply-channel", "c", "--db", str(tmp_path / "w.db"),
            ],
        )
        assert result.exit_code == 1
        assert "telepathy" in result.output


@pytest.mark.unit
class TestWatchersManage:
    def test_list(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db)
        result = runner.invoke(app, ["watchers", "list", "--db", str(db)])
        assert result.exit_code == 0
        assert watcher_id[:6] in result.output

    def test_show_json(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db, '{"type": "github", "repo": "octo/hello", "github_token": "s3cret"}')
        result = runner.invoke(app, ["watchers", "show", watcher_id, "--json", "--db", str(db)])
        assert result.exit_code == 0
        assert "octo/hello" in result.output

    def test_show_masks_token(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db, '{"type": "github", "repo": "octo/hello", "github_token": "s3cret"}')
        result = runner.invoke(app, ["watchers", "show", watcher_id, "--db", str(db)])
        assert result.exit_code == 0
        assert "s3cret" not in result.output

    def test_show_unknown(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["watchers", "show", "ghost", "--db", str(tmp_path / "w.db")])
        assert result.exit_code == 1

    def test_pause_and_resume(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db)

        result = runner.invoke(app, ["watchers", "pause", watcher_id, "--db", str(db)])
        assert result.exit_code == 0
        assert _stored(db)[0].active is False

        result = runner.invoke(app, ["watchers", "resume", watcher_id, "--db", str(db)])
        assert result.exit_code == 0
        assert _stored(db)[0].active is True

    def test_pause_unknown(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["watchers", "pause", "ghost", "--db", str(tmp_path / "w.db")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_remove_twice(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db)
        first = runner.invoke(app, ["watchers", "remove", watcher_id, "--db", str(db)])
        second = runner.invoke(app, ["watchers", "remove", watcher_id, "--db", str(db)])
        assert first.exit_code == 0
        assert second.exit_code == 0
        assert "nothing to remove" in second.output
        assert _stored(db) == []

    def test_show_json_round_trips(self, tmp_path: Path) -> None:
        db = tmp_path / "w.db"
        watcher_id = _add(db)
        stored = _stored(db)[0]
        assert json.loads(json.dumps(stored.to_dict()))["id"] == watcher_id
