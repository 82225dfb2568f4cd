"""Checker implementations.

Each checker evaluates one watcher kind.  Only time-based checkers ship
here; checkers for external resources (mailboxes, calendars, repositories,
files, chat messages) are registered by the embedding application.

Available checkers
------------------
BaseChecker       — abstract base class (checkers/base.py)
FunctionChecker   — wraps an async or sync callable (base.py)
CheckerRegistry   — kind discriminant → checker (base.py)
IntervalChecker   — fires every interval (temporal.py)
ScheduledChecker  — fires on cron slots (temporal.py)
OneShotChecker    — fires once at a timestamp (temporal.py)
"""

from vigil.watchers.checkers.base import (
    BaseChecker,
    CheckerRegistry,
    FunctionChecker,
    default_registry,
)
from vigil.watchers.checkers.temporal import IntervalChecker, OneShotChecker, ScheduledChecker

__all__ = [
    "BaseChecker",
    "CheckerRegistry",
    "FunctionChecker",
    "default_registry",
    "IntervalChecker",
    "OneShotChecker",
    "ScheduledChecker",
]
