"""Shared pytest fixtures for the vigil test suite."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest

from vigil.config import Settings, SupervisorConfig, override_settings
from vigil.watchers.checkers.base import BaseChecker, CheckerRegistry
from vigil.watchers.models import IntervalWatch, Watcher
from vigil.watchers.sinks import QueueEventSink
from vigil.watchers.store import SqliteWatcherStore


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        store={"db_path": str(tmp_path / "watchers.db")},
        sink={"events_file": str(tmp_path / "events.ndjson")},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


@pytest.fixture
def fast_config() -> SupervisorConfig:
    """Timings small enough for loops to cycle many times within a test."""
    return SupervisorConfig(
        checker_timeout_seconds=0.5,
        sink_timeout_seconds=0.5,
        base_backoff_seconds=0.01,
        max_backoff_seconds=0.04,
        backoff_jitter=0.0,
        max_consecutive_failures=3,
        shutdown_timeout_seconds=0.5,
    )


# ---------------------------------------------------------------------------
# Store / sink
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path) -> AsyncGenerator[SqliteWatcherStore, None]:
    s = SqliteWatcherStore(tmp_path / "watchers_test.db")
    await s.init_schema()
    yield s
    await s.close()


@pytest.fixture
def sink() -> QueueEventSink:
    return QueueEventSink()


# ---------------------------------------------------------------------------
# Watchers and checkers
# ---------------------------------------------------------------------------


def make_watcher(
    interval: float = 0.05,
    one_shot: bool = False,
    action: str = "ping",
    reply_channel: str = "c1",
    **kwargs: Any,
) -> Watcher:
    return Watcher(
        kind=IntervalWatch(interval_secs=interval, one_shot=one_shot),
        action=action,
        reply_channel=reply_channel,
        **kwargs,
    )


class StubChecker(BaseChecker):
    """Scripted checker.

    Each call consumes the next entry of *outcomes*; once exhausted, *default*
    is used.  Exception instances are raised, ``HANG`` blocks forever, any
    other value is returned as the check result.
    """

    HANG: Any = object()

    def __init__(
        self,
        outcomes: list[Any] | None = None,
        default: Any = None,
        kind: str = "interval",
    ) -> None:
        self.KIND = kind
        self.calls: list[float] = []
        self.forgotten: list[str] = []
        self._outcomes = list(outcomes or [])
        self._default = default

    async def check(self, watcher: Watcher, timeout: float) -> Any:
        self.calls.append(time.monotonic())
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if outcome is StubChecker.HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def forget(self, watcher_id: str) -> None:
        self.forgotten.append(watcher_id)


@pytest.fixture
def watcher_factory() -> Callable[..., Watcher]:
    return make_watcher


@pytest.fixture
def checker_factory() -> Callable[..., StubChecker]:
    return StubChecker


@pytest.fixture
def registry_factory() -> Callable[..., CheckerRegistry]:
    def _make(*checkers: BaseChecker) -> CheckerRegistry:
        return CheckerRegistry(list(checkers))

    return _make


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds or fail after *timeout* seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually() -> Callable[..., Any]:
    return wait_until
