"""BaseChecker — abstract base class for all watcher checkers.

A checker answers one question for one watcher: *has the condition fired
now?*  It is invoked repeatedly by that watcher's loop and must only read
the watched resource.

Contract
--------
- ``check(watcher, timeout)`` returns ``None`` when the condition is not
  met this cycle, or a payload (any JSON-serialisable value) to fire.
- Raise any exception to signal a failed check; the loop wraps it in
  ``CheckerError`` and backs off.
- The loop enforces ``timeout`` externally and cancels the call when the
  watcher is stopped; implementations must not swallow ``CancelledError``.
- ``forget(watcher_id)`` drops per-watcher state when a loop ends.

One checker instance serves every watcher of its kind, so per-watcher state
must be keyed by ``watcher.id``.
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from vigil.exceptions import UnknownKindError
from vigil.logging import get_logger
from vigil.watchers.models import Watcher

log = get_logger(__name__)

CheckFunction = Callable[[Watcher], Union[Awaitable[Any], Any]]
"""
Signature: [async] def check(watcher: Watcher) -> payload | None
"""


class BaseChecker(ABC):
    """Abstract base for all checkers."""

    KIND: str = ""

    @abstractmethod
    async def check(self, watcher: Watcher, timeout: float) -> Any | None:
        """Evaluate *watcher*.  Return a trigger payload, or None."""

    def forget(self, watcher_id: str) -> None:
        """Drop any state kept for *watcher_id*."""


class FunctionChecker(BaseChecker):
    """Adapts a plain callable into a checker for *kind*.

    Coroutine functions are awaited directly.  Plain functions run in a
    worker thread so a blocking poll cannot stall the event loop.

    Usage::

        async def poll_inbox(watcher: Watcher) -> dict | None:
            ...

        registry.register(FunctionChecker("email", poll_inbox))
    """

    def __init__(self, kind: str, fn: CheckFunction) -> None:
        self.KIND = kind
        self._fn = fn
        self._is_async = inspect.iscoroutinefunction(fn)

    async def check(self, watcher: Watcher, timeout: float) -> Any | None:
        if self._is_async:
            return await self._fn(watcher)
        result = await asyncio.to_thread(self._fn, watcher)
        if inspect.isawaitable(result):
            return await result
        return result


# ---------------------------------------------------------------------------
# CheckerRegistry
# ---------------------------------------------------------------------------


class CheckerRegistry:
    """Maps each kind discriminant to the checker that evaluates it.

    Usage::

        registry = CheckerRegistry()
        registry.register(IntervalChecker())
        checker = registry.get("interval")
    """

    def __init__(self, checkers: list[BaseChecker] | None = None) -> None:
        self._checkers: dict[str, BaseChecker] = {}
        for checker in checkers or []:
            self.register(checker)

    def register(self, checker: BaseChecker, kind: str | None = None) -> None:
        """Register *checker* for *kind* (defaults to ``checker.KIND``).

        A later registration for the same kind replaces the earlier one.
        """
        kind = kind or checker.KIND
        if not kind:
            raise ValueError(f"{type(checker).__name__} has no KIND; pass kind= explicitly")
        if kind in self._checkers:
            log.debug("checker_replaced", kind=kind)
        self._checkers[kind] = checker

    def unregister(self, kind: str) -> None:
        self._checkers.pop(kind, None)

    def get(self, kind: str) -> BaseChecker:
        checker = self._checkers.get(kind)
        if checker is None:
            raise UnknownKindError(kind, reason="no checker registered for watcher kind")
        return checker

    def has(self, kind: str) -> bool:
        return kind in self._checkers

    def kinds(self) -> list[str]:
        return sorted(self._checkers)

    def __contains__(self, kind: object) -> bool:
        return kind in self._checkers

    def __len__(self) -> int:
        return len(self._checkers)


def default_registry() -> CheckerRegistry:
    """Return a registry with the built-in time-based checkers."""
    from vigil.watchers.checkers.temporal import (
        IntervalChecker,
        OneShotChecker,
        ScheduledChecker,
    )

    return CheckerRegistry([IntervalChecker(), ScheduledChecker(), OneShotChecker()])
