"""Vigil — a persistent watcher supervisor.

Vigil keeps a durable set of *watchers* (a condition to monitor plus the
action to take when it fires) and runs one cancellable polling loop per
active watcher.  Fired conditions become WatcherEvents handed to an event
sink; the surrounding application decides what to do with them.

Architecture layers (bottom to top):
    1. Models     — pydantic watcher kinds, Watcher, WatcherEvent
    2. Store      — aiosqlite persistence, survives restarts
    3. Checkers   — one pluggable checker per watcher kind
    4. Supervisor — command queue, per-watcher loops, backoff, one-shot
    5. Surfaces   — tool handlers, typer CLI
"""

__version__ = "0.1.0"
__author__ = "Vigil Contributors"
__license__ = "Apache-2.0"

from vigil.watchers.models import Watcher, WatcherEvent
from vigil.watchers.supervisor import WatcherSupervisor

__all__ = [
    "__version__",
    "Watcher",
    "WatcherEvent",
    "WatcherSupervisor",
]
