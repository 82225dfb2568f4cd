"""Vigil — Exception hierarchy.

All exceptions raised by the watcher engine inherit from VigilError so that
callers can catch the full family with a single except clause when needed.

Hierarchy:
    VigilError
    ├── ConfigError
    │   └── UnknownKindError
    ├── PersistenceError
    ├── CheckerError
    │   └── CheckerTimeoutError
    ├── SinkError
    └── SupervisorError
        ├── SupervisorNotRunningError
        └── WatcherNotFoundError
"""

from __future__ import annotations

from typing import Any


class VigilError(Exception):
    """Base exception for all Vigil errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Definition errors
# ---------------------------------------------------------------------------


class ConfigError(VigilError):
    """A watcher definition is invalid and was neither persisted nor scheduled."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, context={"validation_errors": errors or []})
        self.errors = errors or []


class UnknownKindError(ConfigError):
    """No watcher kind (or no checker) is registered for the discriminant."""

    def __init__(self, kind: str, reason: str = "unknown watcher kind") -> None:
        super().__init__(f"{reason}: {kind!r}")
        self.context["kind"] = kind
        self.kind = kind


# ---------------------------------------------------------------------------
# Collaborator errors
# ---------------------------------------------------------------------------


class PersistenceError(VigilError):
    """The watcher store failed to read or write."""

    def __init__(self, operation: str, reason: str, watcher_id: str | None = None) -> None:
        super().__init__(
            f"Watcher store '{operation}' failed: {reason}",
            context={"operation": operation, "reason": reason, "watcher_id": watcher_id},
        )
        self.operation = operation
        self.watcher_id = watcher_id


class CheckerError(VigilError):
    """A checker could not evaluate its watcher this cycle."""

    def __init__(self, watcher_id: str, reason: str) -> None:
        super().__init__(
            f"Checker for watcher '{watcher_id}' failed: {reason}",
            context={"watcher_id": watcher_id, "reason": reason},
        )
        self.watcher_id = watcher_id
        self.reason = reason


class CheckerTimeoutError(CheckerError):
    """A checker exceeded its time budget."""

    def __init__(self, watcher_id: str, timeout_seconds: float) -> None:
        super().__init__(watcher_id, f"timed out after {timeout_seconds}s")
        self.context["timeout_seconds"] = timeout_seconds
        self.timeout_seconds = timeout_seconds


class SinkError(VigilError):
    """The event sink rejected or failed to accept an event."""

    def __init__(self, message: str, watcher_id: str | None = None) -> None:
        super().__init__(message, context={"watcher_id": watcher_id})
        self.watcher_id = watcher_id


# ---------------------------------------------------------------------------
# Supervisor errors
# ---------------------------------------------------------------------------


class SupervisorError(VigilError):
    """Base for supervisor control-plane errors."""


class SupervisorNotRunningError(SupervisorError):
    """A command was submitted before ``start()`` or after ``shutdown()``."""

    def __init__(self) -> None:
        super().__init__("Watcher supervisor is not running")


class WatcherNotFoundError(SupervisorError):
    """No watcher with the given ID exists in the store."""

    def __init__(self, watcher_id: str) -> None:
        super().__init__(
            f"Watcher not found: {watcher_id}",
            context={"watcher_id": watcher_id},
        )
        self.watcher_id = watcher_id
