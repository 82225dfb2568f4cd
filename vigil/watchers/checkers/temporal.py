"""Temporal checkers — interval, cron, and one-shot.

These checkers fire based on time alone, with no external resource.

IntervalChecker   — fires on every check after the first (one interval after arming)
ScheduledChecker  — fires when a cron slot has passed since the previous check
OneShotChecker    — fires once the ``at`` timestamp has passed
"""

from __future__ import annotations

import time
from typing import Any

from croniter import croniter

from vigil.exceptions import CheckerError
from vigil.logging import get_logger
from vigil.watchers.checkers.base import BaseChecker
from vigil.watchers.models import OneShotWatch, ScheduledWatch, Watcher, task_payload

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# IntervalChecker
# ---------------------------------------------------------------------------


class IntervalChecker(BaseChecker):
    """Fires every ``interval_secs`` seconds.

    The first check only arms the watcher, so the first fire happens after
    one full interval (no immediate fire on start).
    """

    KIND = "interval"

    def __init__(self) -> None:
        self._armed: dict[str, float] = {}

    async def check(self, watcher: Watcher, timeout: float) -> Any | None:
        now = time.time()
        armed_at = self._armed.get(watcher.id)
        if armed_at is None:
            self._armed[watcher.id] = now
            log.debug("interval_checker_armed", watcher_id=watcher.id)
            return None
        return {
            "interval_secs": watcher.kind.interval_secs,
            "armed_at": armed_at,
            "fired_at": now,
        }

    def forget(self, watcher_id: str) -> None:
        self._armed.pop(watcher_id, None)


# ---------------------------------------------------------------------------
# ScheduledChecker
# ---------------------------------------------------------------------------


class ScheduledChecker(BaseChecker):
    """Fires when at least one cron slot fell between two consecutive checks.

    Missed slots (e.g. while the process was down) are not replayed: only the
    latest slot within the window is reported.
    """

    KIND = "scheduled"

    def __init__(self) -> None:
        self._last_checked: dict[str, float] = {}

    async def check(self, watcher: Watcher, timeout: float) -> Any | None:
        kind = watcher.kind
        if not isinstance(kind, ScheduledWatch):
            raise CheckerError(watcher.id, f"expected a scheduled watcher, got '{kind.type}'")
        now = time.time()
        since = self._last_checked.get(watcher.id)
        self._last_checked[watcher.id] = now
        if since is None:
            return None

        cron = croniter(kind.cron_expr, since)
        slot = cron.get_next(float)
        if slot > now:
            return None
        latest = slot
        while (slot := cron.get_next(float)) <= now:
            latest = slot
        return task_payload(
            kind.task, cron_expr=kind.cron_expr, scheduled_at=latest, fired_at=now
        )

    def forget(self, watcher_id: str) -> None:
        self._last_checked.pop(watcher_id, None)


# ---------------------------------------------------------------------------
# OneShotChecker
# ---------------------------------------------------------------------------


class OneShotChecker(BaseChecker):
    """Fires once ``at`` is in the past.  If it already is, fires on the first check."""

    KIND = "one_shot"

    async def check(self, watcher: Watcher, timeout: float) -> Any | None:
        kind = watcher.kind
        if not isinstance(kind, OneShotWatch):
            raise CheckerError(watcher.id, f"expected a one_shot watcher, got '{kind.type}'")
        now = time.time()
        if now < kind.at:
            return None
        return task_payload(kind.task, at=kind.at, fired_at=now)
