"""Vigil — watcher subsystem.

A watcher is a persisted condition to monitor plus an opaque action and
reply channel.  The supervisor keeps one cancellable loop running per
active watcher; each loop asks the kind's checker whether the condition
has fired and hands every fired event to the event sink.

Package structure
-----------------
watchers/
  models.py      — Watcher kinds (pydantic), Watcher, WatcherEvent
  store.py       — WatcherStore ABC + aiosqlite implementation
  checkers/      — One checker per watcher kind
    base.py      — BaseChecker ABC, FunctionChecker, CheckerRegistry
    temporal.py  — IntervalChecker, ScheduledChecker, OneShotChecker
  sinks.py       — EventSink ABC + null / NDJSON / queue / fan-out sinks
  backoff.py     — Exponential backoff with jitter
  runner.py      — WatcherLoop — the per-watcher state machine
  supervisor.py  — WatcherSupervisor — command queue + live schedule
"""

from vigil.watchers.backoff import BackoffPolicy
from vigil.watchers.checkers import (
    BaseChecker,
    CheckerRegistry,
    FunctionChecker,
    IntervalChecker,
    OneShotChecker,
    ScheduledChecker,
    default_registry,
)
from vigil.watchers.models import (
    CalendarWatch,
    EmailWatch,
    FileWatch,
    GitHubWatch,
    IntervalWatch,
    MessageWatch,
    OneShotWatch,
    ScheduledWatch,
    Watcher,
    WatcherEvent,
    WatcherKindBase,
    calendar_payload,
    email_payload,
    file_changed_payload,
    github_payload,
    kind_types,
    message_payload,
    parse_kind,
    register_kind,
    task_payload,
)
from vigil.watchers.runner import ExitReason, LoopState, WatcherHealth, WatcherLoop
from vigil.watchers.sinks import (
    EventSink,
    FanoutEventSink,
    LogEventSink,
    NullEventSink,
    QueueEventSink,
)
from vigil.watchers.store import SqliteWatcherStore, WatcherStore
from vigil.watchers.supervisor import WatcherSupervisor

__all__ = [
    "BackoffPolicy",
    "BaseChecker",
    "CheckerRegistry",
    "FunctionChecker",
    "IntervalChecker",
    "OneShotChecker",
    "ScheduledChecker",
    "default_registry",
    "CalendarWatch",
    "EmailWatch",
    "FileWatch",
    "GitHubWatch",
    "IntervalWatch",
    "MessageWatch",
    "OneShotWatch",
    "ScheduledWatch",
    "Watcher",
    "WatcherEvent",
    "WatcherKindBase",
    "calendar_payload",
    "email_payload",
    "file_changed_payload",
    "github_payload",
    "kind_types",
    "message_payload",
    "parse_kind",
    "register_kind",
    "task_payload",
    "ExitReason",
    "LoopState",
    "WatcherHealth",
    "WatcherLoop",
    "EventSink",
    "FanoutEventSink",
    "LogEventSink",
    "NullEventSink",
    "QueueEventSink",
    "SqliteWatcherStore",
    "WatcherStore",
    "WatcherSupervisor",
]
