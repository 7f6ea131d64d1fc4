"""Tests for the tool result router."""

from __future__ import annotations

from agentstream.client.result_router import ToolResultRouter
from agentstream.protocol.events import ToolResultEvent


def _result(tool_name: str, *, is_error: bool = False) -> ToolResultEvent:
    return ToolResultEvent(tool_call_id="c1", tool_name=tool_name, result={"ok": True}, is_error=is_error)


def test_dispatch_reaches_registered_handler() -> None:
    router = ToolResultRouter()
    delivered: list[ToolResultEvent] = []
    router.register("web_search", delivered.append)

    assert router.dispatch(_result("web_search")) is True
    assert router.dispatch(_result("other")) is False
    assert [event.tool_name for event in delivered] == ["web_search"]


def test_error_results_are_not_delivered() -> None:
    router = ToolResultRouter()
    delivered: list[ToolResultEvent] = []
    router.register("web_search", delivered.append)

    assert router.dispatch(_result("web_search", is_error=True)) is False
    assert delivered == []


def test_failing_handler_reports_false() -> None:
    router = ToolResultRouter()

    def broken(event: ToolResultEvent) -> None:
        raise RuntimeError("target closed")

    router.register("web_search", broken)

    assert router.dispatch(_result("web_search")) is False


def test_register_replaces_and_unregister_removes() -> None:
    router = ToolResultRouter()
    first: list[ToolResultEvent] = []
    second: list[ToolResultEvent] = []
    router.register("echo", first.append)
    router.register("echo", second.append)

    router.dispatch(_result("echo"))

    assert first == [] and len(second) == 1
    assert router.unregister("echo") is True
    assert router.unregister("echo") is False
    assert not router.has_handler("echo")
