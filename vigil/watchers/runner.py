"""WatcherLoop — one cancellable scheduling loop per active watcher.

State machine::

    SCHEDULED ──timer──► CHECKING ──None──────► IDLE ──────► SCHEDULED
        │                   │──payload───► TRIGGERED ──────► SCHEDULED
        │                   │                   └─one-shot─► STOPPED
        │                   └──error─────► BACKOFF ────────► SCHEDULED
        │                                       └─exhausted► STOPPED
        └──stop requested──────────────────────────────────► STOPPED

The sleep, the checker call and a recurring watcher's sink publish race
against the loop's stop event, so ``stop()`` takes effect promptly.
Store writes are never raced: a one-shot deactivation either completes
before the stop is observed or is never started, and once it has completed
the event is published regardless of a pending stop (bounded by the sink
timeout).

Checks within one loop are strictly sequential.  Loops never talk to each
other; the only shared state is the store and the sink.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from vigil.exceptions import CheckerError, CheckerTimeoutError, PersistenceError
from vigil.logging import bind_watcher_context, clear_watcher_context, get_logger
from vigil.watchers.backoff import BackoffPolicy
from vigil.watchers.checkers.base import BaseChecker
from vigil.watchers.models import Watcher, WatcherEvent
from vigil.watchers.sinks import EventSink
from vigil.watchers.store import WatcherStore

log = get_logger(__name__)

ExitCallback = Callable[["WatcherLoop"], None]

# Returned by _race() when the stop event won.
_STOPPED: Any = object()


class LoopState(str, Enum):
    SCHEDULED = "scheduled"
    CHECKING = "checking"
    IDLE = "idle"
    TRIGGERED = "triggered"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class ExitReason(str, Enum):
    """Why a loop reached STOPPED."""

    CANCELLED = "cancelled"   # stop requested (remove / pause / shutdown / replace)
    COMPLETED = "completed"   # one-shot watcher fired
    DEGRADED = "degraded"     # too many consecutive checker failures
    CRASHED = "crashed"       # unexpected error inside the loop itself


# ---------------------------------------------------------------------------
# Runtime health
# ---------------------------------------------------------------------------


@dataclass
class WatcherHealth:
    """In-memory operational metrics for one running loop."""

    state: LoopState = LoopState.SCHEDULED
    check_count: int = 0
    trigger_count: int = 0
    fail_count: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    last_checked_at: float | None = None
    last_triggered_at: float | None = None
    started_at: float = field(default_factory=time.time)

    def record_check(self) -> None:
        self.check_count += 1
        self.last_checked_at = time.time()

    def record_trigger(self) -> None:
        self.trigger_count += 1
        self.consecutive_failures = 0
        self.last_triggered_at = time.time()

    def record_fail(self, error: str) -> None:
        self.fail_count += 1
        self.consecutive_failures += 1
        self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "check_count": self.check_count,
            "trigger_count": self.trigger_count,
            "fail_count": self.fail_count,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_checked_at": self.last_checked_at,
            "last_triggered_at": self.last_triggered_at,
            "started_at": self.started_at,
        }


# ---------------------------------------------------------------------------
# WatcherLoop
# ---------------------------------------------------------------------------


class WatcherLoop:
    """Runs one watcher until it is stopped, completes, or degrades.

    Usage::

        loop = WatcherLoop(watcher, checker, store, sink, BackoffPolicy())
        loop.start()
        ...
        await loop.stop(timeout=5.0)
    """

    def __init__(
        self,
        watcher: Watcher,
        checker: BaseChecker,
        store: WatcherStore,
        sink: EventSink,
        backoff: BackoffPolicy,
        checker_timeout: float = 30.0,
        sink_timeout: float = 10.0,
        on_exit: ExitCallback | None = None,
    ) -> None:
        self.watcher = watcher
        self.health = WatcherHealth()
        self.exit_reason: ExitReason | None = None
        self.error: str | None = None

        self._checker = checker
        self._store = store
        self._sink = sink
        self._backoff = backoff
        self._checker_timeout = checker_timeout
        self._sink_timeout = sink_timeout
        self._on_exit = on_exit
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    @property
    def watcher_id(self) -> str:
        return self.watcher.id

    @property
    def state(self) -> LoopState:
        return self.health.state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the loop task.  Must be called from a running event loop."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._guarded_run(), name=f"watcher_{self.watcher.id}")

    async def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to stop and wait up to *timeout* for it to exit.

        A loop that does not exit in time (e.g. stuck in a checker that
        ignores cancellation) is cancelled outright.
        """
        self._stop_event.set()
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("watcher_loop_stop_timeout", watcher_id=self.watcher.id, timeout=timeout)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def wait(self) -> None:
        """Wait until the loop task has exited."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ---------------------------------------------------------------------------
    # Main loop
    # ---------------------------------------------------------------------------

    async def _guarded_run(self) -> None:
        """Wrap ``_run()`` so an unexpected error ends only this loop."""
        try:
            await self._run()
        except asyncio.CancelledError:
            self._finish(ExitReason.CANCELLED)
            raise
        except Exception as exc:
            self.error = str(exc)
            self._finish(ExitReason.CRASHED)
            log.error("watcher_loop_crashed", watcher_id=self.watcher.id, error=str(exc))
        finally:
            self._checker.forget(self.watcher.id)
            clear_watcher_context()
            if self._on_exit is not None:
                self._on_exit(self)

    async def _run(self) -> None:
        bind_watcher_context(self.watcher.id)
        loop = asyncio.get_running_loop()
        interval = self.watcher.kind.effective_interval()
        delay = 0.0
        log.debug("watcher_loop_started", kind=self.watcher.kind.type, interval=interval)

        while True:
            self.health.state = LoopState.SCHEDULED
            if await self._sleep(delay):
                self._finish(ExitReason.CANCELLED)
                return

            self.health.state = LoopState.CHECKING
            started = loop.time()
            try:
                outcome = await self._race(self._check())
            except CheckerError as exc:
                backoff = await self._on_failure(exc)
                if backoff is None:
                    return
                delay = backoff
                continue

            if outcome is _STOPPED:
                self._finish(ExitReason.CANCELLED)
                return

            if outcome is None:
                self.health.state = LoopState.IDLE
                self.health.consecutive_failures = 0
            elif await self._on_trigger(outcome):
                return

            delay = max(0.0, started + interval - loop.time())

    # ---------------------------------------------------------------------------
    # State handlers
    # ---------------------------------------------------------------------------

    async def _check(self) -> Any | None:
        """Invoke the checker under the timeout; normalise every failure to CheckerError."""
        self.health.record_check()
        timeout = self._checker_timeout
        try:
            return await asyncio.wait_for(self._checker.check(self.watcher, timeout), timeout)
        except asyncio.TimeoutError as exc:
            raise CheckerTimeoutError(self.watcher.id, timeout) from exc
        except CheckerError:
            raise
        except Exception as exc:
            raise CheckerError(self.watcher.id, f"{type(exc).__name__}: {exc}") from exc

    async def _on_trigger(self, payload: Any) -> bool:
        """Handle a fired condition.  Returns True when the loop must exit."""
        self.health.state = LoopState.TRIGGERED
        self.health.record_trigger()
        event = WatcherEvent.for_watcher(self.watcher, payload)
        log.info(
            "watcher_triggered",
            watcher_id=self.watcher.id,
            kind=self.watcher.kind.type,
            one_shot=self.watcher.one_shot,
        )

        if self.watcher.one_shot:
            # Persisted before the event is handed over.  Once the row is
            # inactive the hand-off is not raced: a stop must not drop it.
            await self._deactivate("one_shot_fired")
            await self._publish(event)
            self._finish(ExitReason.COMPLETED)
            return True

        published = await self._race(self._publish(event))
        if published is _STOPPED:
            self._finish(ExitReason.CANCELLED)
            return True
        return False

    async def _on_failure(self, exc: CheckerError) -> float | None:
        """Record a failed check.  Returns the backoff delay, or None once degraded."""
        self.health.state = LoopState.BACKOFF
        self.health.record_fail(exc.reason)
        failures = self.health.consecutive_failures

        if self._backoff.exhausted(failures):
            self.error = exc.reason
            log.error(
                "watcher_degraded",
                watcher_id=self.watcher.id,
                consecutive_failures=failures,
                error=exc.reason,
            )
            await self._deactivate("degraded")
            self._finish(ExitReason.DEGRADED)
            return None

        delay = self._backoff.next_delay(failures)
        log.warning(
            "watcher_check_failed",
            watcher_id=self.watcher.id,
            consecutive_failures=failures,
            retry_in=round(delay, 3),
            error=exc.reason,
        )
        return delay

    async def _publish(self, event: WatcherEvent) -> bool:
        """Best-effort hand-off to the sink.  Failures are logged, never retried."""
        try:
            await asyncio.wait_for(self._sink.publish(event), timeout=self._sink_timeout)
        except asyncio.TimeoutError:
            log.warning(
                "watcher_publish_timeout",
                watcher_id=self.watcher.id,
                timeout=self._sink_timeout,
            )
            return False
        except Exception as exc:
            log.error("watcher_publish_failed", watcher_id=self.watcher.id, error=str(exc))
            return False
        return True

    async def _deactivate(self, reason: str) -> None:
        self.watcher.active = False
        try:
            # Shielded: an outright cancel must not interrupt the write half-way.
            await asyncio.shield(self._store.deactivate(self.watcher.id))
        except PersistenceError as exc:
            log.error(
                "watcher_deactivate_failed",
                watcher_id=self.watcher.id,
                reason=reason,
                error=str(exc),
            )
        else:
            log.info("watcher_deactivated", watcher_id=self.watcher.id, reason=reason)

    # ---------------------------------------------------------------------------
    # Suspension helpers
    # ---------------------------------------------------------------------------

    async def _sleep(self, delay: float) -> bool:
        """Sleep for *delay* seconds.  Returns True if a stop was requested."""
        if self._stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return self._stop_event.is_set()

    async def _race(self, aw: Awaitable[Any]) -> Any:
        """Await *aw* unless the stop event fires first (then return ``_STOPPED``).

        The stop event wins ties; the abandoned awaitable is cancelled and reaped.
        """
        task = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            stopper.cancel()
            raise
        stopper.cancel()
        if self._stop_event.is_set():
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return _STOPPED
        return task.result()

    def _finish(self, reason: ExitReason) -> None:
        self.health.state = LoopState.STOPPED
        if self.exit_reason is None:
            self.exit_reason = reason
            log.debug("watcher_loop_stopped", watcher_id=self.watcher.id, reason=reason.value)
