"""WatcherTools — tool-call surface over WatcherSupervisor.

Maps ``(action, params)`` calls, as issued by an LLM tool handler or any
other JSON-speaking caller, onto the supervisor's public API.  Params are
validated with the pydantic models below before anything is touched.

Actions
-------
add_watcher     → WatcherSupervisor.add_watcher()
list_watchers   → WatcherSupervisor.list_watchers()
get_watcher     → WatcherSupervisor.get_watcher()
remove_watcher  → WatcherSupervisor.remove_watcher()
pause_watcher   → WatcherSupervisor.pause_watcher()
resume_watcher  → WatcherSupervisor.resume_watcher()

Every call returns a ToolResult; expected failures (bad params, invalid
definitions, unknown ids, store errors) become ``success=False`` results
rather than exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, ValidationError

from vigil.exceptions import VigilError
from vigil.logging import get_logger
from vigil.watchers.models import Watcher
from vigil.watchers.supervisor import WatcherSupervisor

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Param models
# ---------------------------------------------------------------------------


class AddWatcherParams(BaseModel):
    """Params for the ``add_watcher`` action."""

    kind: dict[str, Any] = Field(
        ...,
        description="Watcher kind: {'type': <kind>, ...kind fields}. See kind_types().",
    )
    action: str = Field(..., min_length=1, description="What to do when the watcher fires")
    reply_channel: str = Field(..., min_length=1, description="Where results should be sent")


class WatcherIdParams(BaseModel):
    """Params for actions addressing a single watcher."""

    watcher_id: str = Field(..., min_length=1)


class ListWatchersParams(BaseModel):
    active_only: bool = Field(default=False, description="Only return active watchers")
    kind: str | None = Field(default=None, description="Filter by kind discriminant")
    include_health: bool = Field(default=True, description="Attach runtime health when scheduled")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "data": self.data, "error": self.error}


# ---------------------------------------------------------------------------
# WatcherTools
# ---------------------------------------------------------------------------


class WatcherTools:
    """Dispatches tool actions to a WatcherSupervisor.

    Usage::

        tools = WatcherTools(supervisor)
        result = await tools.execute("add_watcher", {
            "kind": {"type": "interval", "interval_secs": 60},
            "action": "summarise inbox",
            "reply_channel": "slack:#general",
        })
    """

    ACTIONS = (
        "add_watcher",
        "list_watchers",
        "get_watcher",
        "remove_watcher",
        "pause_watcher",
        "resume_watcher",
    )

    def __init__(self, supervisor: WatcherSupervisor) -> None:
        self._supervisor = supervisor

    async def execute(self, action: str, params: dict[str, Any] | None = None) -> ToolResult:
        handler = self._get_handler(action)
        if handler is None:
            return ToolResult(success=False, error=f"Unknown action: {action}")
        try:
            data = await handler(params or {})
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            return ToolResult(success=False, error=f"Invalid params for {action}: {fields}")
        except VigilError as exc:
            log.warning("watcher_tool_failed", action=action, error=exc.message)
            return ToolResult(success=False, error=exc.message)
        return ToolResult(success=True, data=data)

    def _get_handler(
        self, action: str
    ) -> Callable[[dict[str, Any]], Awaitable[Any]] | None:
        if action not in self.ACTIONS:
            return None
        return getattr(self, f"_action_{action}")

    # ---------------------------------------------------------------------------
    # Action implementations
    # ---------------------------------------------------------------------------

    async def _action_add_watcher(self, params: dict[str, Any]) -> Any:
        p = AddWatcherParams.model_validate(params)
        watcher_id = await self._supervisor.add_watcher(p.kind, p.action, p.reply_channel)
        return {"watcher_id": watcher_id, "active": True}

    async def _action_list_watchers(self, params: dict[str, Any]) -> Any:
        p = ListWatchersParams.model_validate(params)
        watchers = await self._supervisor.list_watchers()
        results = []
        for w in watchers:
            if p.active_only and not w.active:
                continue
            if p.kind and w.kind.type != p.kind:
                continue
            results.append(self._summarise(w, include_health=p.include_health))
        return {"watchers": results, "count": len(results)}

    async def _action_get_watcher(self, params: dict[str, Any]) -> Any:
        p = WatcherIdParams.model_validate(params)
        watcher = await self._supervisor.get_watcher(p.watcher_id)
        if watcher is None:
            return None
        entry = self._summarise(watcher, include_health=True)
        entry["kind"] = watcher.kind.to_dict()
        return entry

    async def _action_remove_watcher(self, params: dict[str, Any]) -> Any:
        p = WatcherIdParams.model_validate(params)
        deleted = await self._supervisor.remove_watcher(p.watcher_id)
        return {"watcher_id": p.watcher_id, "deleted": deleted}

    async def _action_pause_watcher(self, params: dict[str, Any]) -> Any:
        p = WatcherIdParams.model_validate(params)
        await self._supervisor.pause_watcher(p.watcher_id)
        return {"watcher_id": p.watcher_id, "active": False}

    async def _action_resume_watcher(self, params: dict[str, Any]) -> Any:
        p = WatcherIdParams.model_validate(params)
        watcher = await self._supervisor.resume_watcher(p.watcher_id)
        return {"watcher_id": watcher.id, "active": watcher.active}

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    def _summarise(self, watcher: Watcher, include_health: bool) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "watcher_id": watcher.id,
            "type": watcher.kind.type,
            "description": watcher.description(),
            "action": watcher.action,
            "reply_channel": watcher.reply_channel,
            "active": watcher.active,
            "created_at": watcher.created_at,
        }
        if include_health:
            health = self._supervisor.health(watcher.id)
            entry["health"] = health.to_dict() if health is not None else None
        return entry
