"""Unit tests — CLI run command and serve()."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from vigil.cli.commands.daemon import build_sink, serve
from vigil.cli.main import app
from vigil.config import Settings
from vigil.exceptions import PersistenceError
from vigil.watchers.models import IntervalWatch, Watcher
from vigil.watchers.sinks import LogEventSink, NullEventSink
from vigil.watchers.store import SqliteWatcherStore

runner = CliRunner()


@pytest.mark.unit
class TestRunCommand:
    def test_run_invokes_serve(self, test_settings: Settings) -> None:
        with patch("vigil.cli.commands.daemon.Settings.load", return_value=test_settings), \
             patch("vigil.cli.commands.daemon.configure_logging") as mock_logging, \
             patch("vigil.cli.commands.daemon.asyncio.run") as mock_run:
            result = runner.invoke(app, ["run", "--log-level", "debug"])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        mock_run.call_args[0][0].close()
        assert mock_logging.call_args.kwargs["level"] == "debug"

    def test_run_exits_on_persistence_error(self, test_settings: Settings) -> None:
        def _fail(coro: object) -> None:
            coro.close()  # type: ignore[attr-defined]
            raise PersistenceError("get_active", "database is locked")

        with patch("vigil.cli.commands.daemon.Settings.load", return_value=test_settings), \
             patch("vigil.cli.commands.daemon.configure_logging"), \
             patch("vigil.cli.commands.daemon.asyncio.run", side_effect=_fail):
            result = runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "database is locked" in result.output


@pytest.mark.unit
class TestBuildSink:
    def test_events_file_gives_log_sink(self, test_settings: Settings) -> None:
        assert isinstance(build_sink(test_settings), LogEventSink)

    def test_no_events_file_gives_null_sink(self) -> None:
        settings = Settings(sink={"events_file": None})
        assert isinstance(build_sink(settings), NullEventSink)


@pytest.mark.unit
class TestServe:
    async def test_serve_runs_until_stopped(self, test_settings: Settings) -> None:
        watcher = Watcher(
            kind=IntervalWatch(interval_secs=0.01),
            action="ping",
            reply_channel="c1",
        )
        async with SqliteWatcherStore(test_settings.store.db_path) as store:
            await store.save(watcher)

        stop = asyncio.Event()
        task = asyncio.create_task(serve(test_settings, stop))
        await asyncio.sleep(0.2)
        stop.set()
        await asyncio.wait_for(task, timeout=5.0)

        events_file = Path(test_settings.sink.events_file)
        lines = events_file.read_text().splitlines()
        assert lines
        assert all(watcher.id in line for line in lines)
