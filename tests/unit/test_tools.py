"""Unit tests — tools.py (WatcherTools)."""

from __future__ import annotations

from typing import AsyncGenerator

import pytest

from vigil.tools import ToolResult, WatcherTools
from vigil.watchers.checkers.base import CheckerRegistry
from vigil.watchers.supervisor import WatcherSupervisor


@pytest.fixture
async def tools(store, fast_config, checker_factory) -> AsyncGenerator[WatcherTools, None]:
    sup = WatcherSupervisor(store, checkers=CheckerRegistry([checker_factory()]), config=fast_config)
    await sup.start()
    yield WatcherTools(sup)
    await sup.shutdown()


async def _add(tools: WatcherTools, **overrides) -> str:
    params = {
        "kind": {"type": "interval", "interval_secs": 3600},
        "action": "ping",
        "reply_channel": "c1",
        **overrides,
    }
    result = await tools.execute("add_watcher", params)
    assert result.success, result.error
    return result.data["watcher_id"]


@pytest.mark.unit
class TestWatcherTools:
    async def test_add_and_get(self, tools: WatcherTools) -> None:
        watcher_id = await _add(tools)
        result = await tools.execute("get_watcher", {"watcher_id": watcher_id})
        assert result.success
        assert result.data["action"] == "ping"
        assert result.data["kind"]["interval_secs"] == 3600
        assert result.data["health"] is not None

    async def test_get_unknown_returns_none(self, tools: WatcherTools) -> None:
        result = await tools.execute("get_watcher", {"watcher_id": "ghost"})
        assert result.success
        assert result.data is None

    async def test_add_invalid_kind(self, tools: WatcherTools) -> None:
        result = await tools.execute(
            "add_watcher",
            {"kind": {"type": "interval", "interval_secs": 0}, "action": "a", "reply_channel": "c"},
        )
        assert not result.success
        assert "interval_secs" in (result.error or "")

    async def test_add_missing_params(self, tools: WatcherTools) -> None:
        result = await tools.execute("add_watcher", {"kind": {"type": "interval", "interval_secs": 5}})
        assert not result.success
        assert "action" in (result.error or "")

    async def test_list_with_filters(self, tools: WatcherTools) -> None:
        first = await _add(tools)
        second = await _add(tools, action="other")
        await tools.execute("pause_watcher", {"watcher_id": second})

        everything = await tools.execute("list_watchers", {})
        assert everything.data["count"] == 2

        active = await tools.execute("list_watchers", {"active_only": True})
        assert [w["watcher_id"] for w in active.data["watchers"]] == [first]

        by_kind = await tools.execute("list_watchers", {"kind": "email"})
        assert by_kind.data["count"] == 0

    async def test_pause_resume_remove(self, tools: WatcherTools) -> None:
        watcher_id = await _add(tools)
        paused = await tools.execute("pause_watcher", {"watcher_id": watcher_id})
        assert paused.data == {"watcher_id": watcher_id, "active": False}

        resumed = await tools.execute("resume_watcher", {"watcher_id": watcher_id})
        assert resumed.data == {"watcher_id": watcher_id, "active": True}

        removed = await tools.execute("remove_watcher", {"watcher_id": watcher_id})
        assert removed.data == {"watcher_id": watcher_id, "deleted": True}
        again = await tools.execute("remove_watcher", {"watcher_id": watcher_id})
        assert again.success
        assert again.data["deleted"] is False

    async def test_resume_unknown_is_failure(self, tools: WatcherTools) -> None:
        result = await tools.execute("resume_watcher", {"watcher_id": "ghost"})
        assert not result.success
        assert "ghost" in (result.error or "")

    async def test_unknown_action(self, tools: WatcherTools) -> None:
        result = await tools.execute("launch_rockets", {})
        assert result == ToolResult(success=False, error="Unknown action: launch_rockets")

    def test_result_to_dict(self) -> None:
        assert ToolResult(success=True, data={"x": 1}).to_dict() == {
            "success": True,
            "data": {"x": 1},
            "error": None,
        }
