"""WatcherSupervisor — owns the live set of watcher loops.

The supervisor is the single writer of the ``watcher_id → WatcherLoop``
map.  Every request that changes the schedule (add / remove / pause /
resume / reload / shutdown) is turned into a command, queued on a bounded
asyncio.Queue, and executed one at a time by the supervisor's actor task.
Callers await the command's future, so each call returns only after the
store write has happened; the loop it spawns or stops runs on its own.

Loops report their own exit (one-shot completed, degraded, crashed) by
queueing a ``_LoopExited`` notice, so the actor also owns their removal.

Flow::

    add_watcher(kind, action, reply_channel)
        ↓  parse_kind() + checker lookup          (ConfigError, synchronous)
    _AddCommand ──► command queue ──► actor
        ↓
    stop old loop (same id) → store.save() → WatcherLoop.start()

Startup::

    supervisor = WatcherSupervisor(
        store=SqliteWatcherStore(settings.store.db_path),
        sink=LogEventSink(settings.sink.events_file),
        config=settings.supervisor,
    )
    await supervisor.start()
    ...
    await supervisor.shutdown()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping

from vigil.config import SupervisorConfig
from vigil.exceptions import (
    SupervisorNotRunningError,
    UnknownKindError,
    VigilError,
    WatcherNotFoundError,
)
from vigil.logging import get_logger
from vigil.watchers.backoff import BackoffPolicy
from vigil.watchers.checkers.base import CheckerRegistry, default_registry
from vigil.watchers.models import Watcher, WatcherKindBase, parse_kind
from vigil.watchers.runner import WatcherHealth, WatcherLoop
from vigil.watchers.sinks import EventSink, NullEventSink
from vigil.watchers.store import WatcherStore

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _new_future() -> asyncio.Future[Any]:
    return asyncio.get_running_loop().create_future()


@dataclass
class _Command:
    future: asyncio.Future[Any] = field(default_factory=_new_future, init=False, repr=False)


@dataclass
class _AddCommand(_Command):
    watcher: Watcher


@dataclass
class _RemoveCommand(_Command):
    watcher_id: str


@dataclass
class _PauseCommand(_Command):
    watcher_id: str


@dataclass
class _ResumeCommand(_Command):
    watcher_id: str


@dataclass
class _ReloadCommand(_Command):
    pass


@dataclass
class _ShutdownCommand(_Command):
    pass


@dataclass
class _LoopExited:
    """Posted by a loop that ended on its own.  Carries no future."""

    loop: WatcherLoop


# ---------------------------------------------------------------------------
# WatcherSupervisor
# ---------------------------------------------------------------------------


class WatcherSupervisor:
    """Schedules one WatcherLoop per active watcher.

    Must be started with ``await supervisor.start()`` and stopped with
    ``await supervisor.shutdown()`` (or used as ``async with supervisor:``).
    """

    def __init__(
        self,
        store: WatcherStore,
        sink: EventSink | None = None,
        checkers: CheckerRegistry | None = None,
        config: SupervisorConfig | None = None,
    ) -> None:
        self._store = store
        self._sink = sink or NullEventSink()
        self._checkers = checkers if checkers is not None else default_registry()
        self._config = config or SupervisorConfig()
        self._backoff = BackoffPolicy.from_config(self._config)

        # watcher_id → running loop.  Mutated only by the actor task
        # (and by start() before the actor exists).
        self._loops: dict[str, WatcherLoop] = {}

        self._commands: asyncio.Queue[_Command | _LoopExited] | None = None
        self._actor_task: asyncio.Task[None] | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._running = False

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def checkers(self) -> CheckerRegistry:
        return self._checkers

    async def start(self) -> None:
        """Load active watchers from the store and spawn a loop for each.

        Raises:
            PersistenceError: the store could not be read.  The supervisor
                stays stopped rather than running with an empty schedule.
        """
        if self._running:
            return

        active = await self._store.get_active()

        self._commands = asyncio.Queue(maxsize=self._config.command_queue_size)
        self._stop_event = asyncio.Event()
        self._running = True

        for watcher in active:
            self._spawn(watcher)

        self._actor_task = asyncio.create_task(
            self._run_actor(self._commands), name="watcher_supervisor"
        )
        if self._config.reload_interval_seconds > 0:
            self._reload_task = asyncio.create_task(
                self._reload_loop(), name="watcher_supervisor_reload"
            )
        log.info(
            "watcher_supervisor_started",
            active_watchers=len(active),
            scheduled=len(self._loops),
        )

    async def shutdown(self) -> None:
        """Stop every loop and wait for them to drain (bounded per loop)."""
        if not self._running:
            await self._join_actor()
            return
        try:
            await self._submit(_ShutdownCommand())
        except SupervisorNotRunningError:
            pass
        await self._join_actor()

        self._stop_event.set()
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
            try:
                await self._reload_task
            except asyncio.CancelledError:
                pass
        self._reload_task = None

    async def __aenter__(self) -> "WatcherSupervisor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ---------------------------------------------------------------------------
    # Schedule API (serialised through the actor)
    # ---------------------------------------------------------------------------

    async def add(self, watcher: Watcher) -> None:
        """Persist *watcher* and schedule it if active.

        An already-scheduled id is fully replaced: the old loop is stopped
        first and the new one starts with a fresh backoff counter.

        Raises:
            UnknownKindError: no checker is registered for the watcher's kind.
        """
        self._require_checker(watcher.kind)
        await self._submit(_AddCommand(watcher=watcher))

    async def remove(self, watcher_id: str) -> bool:
        """Stop the loop (if any) and delete the row.  Idempotent."""
        return await self._submit(_RemoveCommand(watcher_id=watcher_id))

    async def pause(self, watcher_id: str) -> None:
        """Stop the loop and mark the watcher inactive."""
        await self._submit(_PauseCommand(watcher_id=watcher_id))

    async def resume(self, watcher_id: str) -> Watcher:
        """Mark a watcher active again and schedule it.  Idempotent."""
        return await self._submit(_ResumeCommand(watcher_id=watcher_id))

    async def reload(self) -> dict[str, int]:
        """Reconcile the schedule with the store's active watchers."""
        return await self._submit(_ReloadCommand())

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def add_watcher(
        self,
        kind: Mapping[str, Any] | WatcherKindBase,
        action: str,
        reply_channel: str,
    ) -> str:
        """Validate, persist and schedule a new watcher.  Returns its id.

        Raises:
            ConfigError: the definition is invalid (nothing is persisted).
        """
        parsed = parse_kind(kind)
        self._require_checker(parsed)
        if parsed.effective_interval() != parsed.interval_secs:
            log.info(
                "watcher_interval_clamped",
                kind=parsed.type,
                requested=parsed.interval_secs,
                effective=parsed.effective_interval(),
            )
        watcher = Watcher(kind=parsed, action=action, reply_channel=reply_channel)
        await self._submit(_AddCommand(watcher=watcher))
        log.info("watcher_added", watcher_id=watcher.id, kind=parsed.type)
        return watcher.id

    async def list_watchers(self) -> list[Watcher]:
        return await self._store.list_all()

    async def get_watcher(self, watcher_id: str) -> Watcher | None:
        return await self._store.get_by_id(watcher_id)

    async def remove_watcher(self, watcher_id: str) -> bool:
        return await self.remove(watcher_id)

    async def pause_watcher(self, watcher_id: str) -> None:
        await self.pause(watcher_id)

    async def resume_watcher(self, watcher_id: str) -> Watcher:
        return await self.resume(watcher_id)

    # ---------------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------------

    def scheduled_ids(self) -> list[str]:
        """IDs of watchers whose loop is currently running."""
        return sorted(wid for wid, loop in self._loops.items() if loop.is_running)

    def health(self, watcher_id: str) -> WatcherHealth | None:
        loop = self._loops.get(watcher_id)
        return loop.health if loop is not None else None

    # ---------------------------------------------------------------------------
    # Actor
    # ---------------------------------------------------------------------------

    async def _submit(self, command: _Command) -> Any:
        if not self._running or self._commands is None or self._actor_task is None:
            raise SupervisorNotRunningError()
        actor = self._actor_task
        await self._commands.put(command)
        await asyncio.wait({command.future, actor}, return_when=asyncio.FIRST_COMPLETED)
        if not command.future.done():
            # Actor exited without answering (shutdown raced with this call).
            command.future.cancel()
            raise SupervisorNotRunningError()
        return command.future.result()

    async def _run_actor(self, commands: asyncio.Queue[_Command | _LoopExited]) -> None:
        while True:
            command = await commands.get()
            if isinstance(command, _LoopExited):
                self._on_loop_exited(command.loop)
                continue
            try:
                result = await self._dispatch(command)
            except Exception as exc:
                if not command.future.done():
                    command.future.set_exception(exc)
            else:
                if not command.future.done():
                    command.future.set_result(result)
            if isinstance(command, _ShutdownCommand):
                return

    async def _dispatch(self, command: _Command) -> Any:
        if isinstance(command, _AddCommand):
            return await self._do_add(command.watcher)
        if isinstance(command, _RemoveCommand):
            return await self._do_remove(command.watcher_id)
        if isinstance(command, _PauseCommand):
            return await self._do_pause(command.watcher_id)
        if isinstance(command, _ResumeCommand):
            return await self._do_resume(command.watcher_id)
        if isinstance(command, _ReloadCommand):
            return await self._do_reload()
        if isinstance(command, _ShutdownCommand):
            return await self._do_shutdown()
        raise TypeError(f"Unknown supervisor command: {command!r}")

    async def _join_actor(self) -> None:
        if self._actor_task is not None:
            await asyncio.gather(self._actor_task, return_exceptions=True)
            self._actor_task = None

    # ---------------------------------------------------------------------------
    # Command handlers
    # ---------------------------------------------------------------------------

    async def _do_add(self, watcher: Watcher) -> None:
        replaced = await self._stop_loop(watcher.id)
        await self._store.save(watcher)
        if watcher.active:
            self._spawn(watcher)
        if replaced:
            log.info("watcher_replaced", watcher_id=watcher.id)

    async def _do_remove(self, watcher_id: str) -> bool:
        await self._stop_loop(watcher_id)
        deleted = await self._store.delete(watcher_id)
        log.info("watcher_removed", watcher_id=watcher_id, existed=deleted)
        return deleted

    async def _do_pause(self, watcher_id: str) -> None:
        await self._stop_loop(watcher_id)
        if await self._store.get_by_id(watcher_id) is None:
            raise WatcherNotFoundError(watcher_id)
        await self._store.deactivate(watcher_id)
        log.info("watcher_paused", watcher_id=watcher_id)

    async def _do_resume(self, watcher_id: str) -> Watcher:
        watcher = await self._store.get_by_id(watcher_id)
        if watcher is None:
            raise WatcherNotFoundError(watcher_id)
        if not watcher.active:
            watcher.active = True
            await self._store.save(watcher)
        loop = self._loops.get(watcher_id)
        if loop is None or not loop.is_running:
            self._spawn(watcher)
            log.info("watcher_resumed", watcher_id=watcher_id)
        return watcher

    async def _do_reload(self) -> dict[str, int]:
        active = {w.id: w for w in await self._store.get_active()}
        stopped = started = 0

        for watcher_id, loop in list(self._loops.items()):
            wanted = active.get(watcher_id)
            if wanted is None or not loop.is_running or not _same_definition(loop.watcher, wanted):
                await self._stop_loop(watcher_id)
                stopped += 1

        for watcher_id, watcher in active.items():
            if watcher_id not in self._loops and self._spawn(watcher) is not None:
                started += 1

        log.info("watchers_reloaded", active=len(active), started=started, stopped=stopped)
        return {"active": len(active), "started": started, "stopped": stopped}

    async def _do_shutdown(self) -> None:
        self._running = False
        loops = list(self._loops.values())
        self._loops.clear()
        await asyncio.gather(
            *(loop.stop(self._config.shutdown_timeout_seconds) for loop in loops),
            return_exceptions=True,
        )
        self._fail_pending()
        log.info("watcher_supervisor_stopped", stopped_loops=len(loops))

    def _fail_pending(self) -> None:
        """Reject commands queued behind the shutdown."""
        if self._commands is None:
            return
        while not self._commands.empty():
            pending = self._commands.get_nowait()
            if isinstance(pending, _Command) and not pending.future.done():
                pending.future.set_exception(SupervisorNotRunningError())

    # ---------------------------------------------------------------------------
    # Loop management
    # ---------------------------------------------------------------------------

    def _spawn(self, watcher: Watcher) -> WatcherLoop | None:
        try:
            checker = self._checkers.get(watcher.kind.type)
        except UnknownKindError as exc:
            log.error("watcher_not_scheduled", watcher_id=watcher.id, error=str(exc))
            return None
        loop = WatcherLoop(
            watcher,
            checker,
            self._store,
            self._sink,
            self._backoff,
            checker_timeout=self._config.checker_timeout_seconds,
            sink_timeout=self._config.sink_timeout_seconds,
            on_exit=self._notify_exit,
        )
        self._loops[watcher.id] = loop
        loop.start()
        log.debug("watcher_scheduled", watcher_id=watcher.id, kind=watcher.kind.type)
        return loop

    async def _stop_loop(self, watcher_id: str) -> bool:
        loop = self._loops.pop(watcher_id, None)
        if loop is None:
            return False
        await loop.stop(self._config.shutdown_timeout_seconds)
        return True

    def _notify_exit(self, loop: WatcherLoop) -> None:
        if self._commands is None or not self._running:
            return
        try:
            self._commands.put_nowait(_LoopExited(loop))
        except asyncio.QueueFull:
            log.warning("watcher_exit_notice_dropped", watcher_id=loop.watcher_id)

    def _on_loop_exited(self, loop: WatcherLoop) -> None:
        if self._loops.get(loop.watcher_id) is not loop:
            return
        del self._loops[loop.watcher_id]
        reason = loop.exit_reason.value if loop.exit_reason else "unknown"
        log.info("watcher_unscheduled", watcher_id=loop.watcher_id, reason=reason)

    def _require_checker(self, kind: WatcherKindBase) -> None:
        if not self._checkers.has(kind.type):
            raise UnknownKindError(kind.type, reason="no checker registered for watcher kind")

    # ---------------------------------------------------------------------------
    # Periodic reload
    # ---------------------------------------------------------------------------

    async def _reload_loop(self) -> None:
        interval = self._config.reload_interval_seconds
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.reload()
            except SupervisorNotRunningError:
                return
            except VigilError as exc:
                log.warning("watcher_reload_failed", error=str(exc))


def _same_definition(a: Watcher, b: Watcher) -> bool:
    return a.kind == b.kind and a.action == b.action and a.reply_channel == b.reply_channel
