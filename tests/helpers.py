"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

from agentstream.ai.errors import ModelInvocationError
from agentstream.ai.orchestration.model_types import ModelTurn, ToolCallRequest
from agentstream.ai.orchestration.tools import ToolRegistry, ToolSpec
from agentstream.chat.message_model import Turn
from agentstream.protocol.events import StreamEvent


def call(call_id: str, name: str, **arguments: Any) -> ToolCallRequest:
    """Build a tool call request with parsed arguments."""

    return ToolCallRequest(call_id=call_id, name=name, parsed=dict(arguments))


class ScriptedModel:
    """Model capability stub that replays a fixed list of turns.

    Each entry is a :class:`ModelTurn`, or an exception instance to raise for
    that step. Every conversation it receives is recorded in ``calls``.

    Example:
        model = ScriptedModel([ModelTurn(text="Hello")])
    """

    def __init__(self, turns: Iterable[ModelTurn | BaseException], *, delay: float = 0.0) -> None:
        self._turns = list(turns)
        self._delay = delay
        self.calls: list[list[Turn]] = []
        self.tools_offered: list[list[str]] = []

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> ModelTurn:
        self.calls.append([turn.clone() for turn in turns])
        self.tools_offered.append([tool["function"]["name"] for tool in tools or ()])
        if self._delay:
            await asyncio.sleep(self._delay)
        if not self._turns:
            raise ModelInvocationError("script exhausted")
        step = self._turns.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class LoopingModel:
    """Model stub that requests the same tool forever."""

    def __init__(self, tool_name: str = "echo") -> None:
        self._tool_name = tool_name
        self.steps = 0

    async def complete(self, turns: Sequence[Turn], *, tools: Sequence[Mapping[str, Any]] | None = None) -> ModelTurn:
        self.steps += 1
        return ModelTurn(tool_calls=[call(f"call-{self.steps}", self._tool_name, text=str(self.steps))])


def echo_registry(*, delay: float = 0.0) -> ToolRegistry:
    """Registry with an ``echo`` tool and a ``fail`` tool that always raises."""

    registry = ToolRegistry()

    async def _echo(args: Mapping[str, Any]) -> dict[str, Any]:
        if delay:
            await asyncio.sleep(delay)
        return {"echo": args.get("text")}

    def _fail(args: Mapping[str, Any]) -> Any:
        raise RuntimeError("tool exploded")

    registry.register_function(
        spec=ToolSpec(
            name="echo",
            description="Echo text back",
            parameters={"type": "object", "properties": {"text": {"type": "string"}}},
            status_message="Echoing...",
        ),
        handler=_echo,
    )
    registry.register_function(spec=ToolSpec(name="fail", description="Always fails"), handler=_fail)
    return registry


class FakeTransport:
    """Stand-in for :class:`StreamTransport` that replays scripted events.

    ``script`` is a list of event lists, one per request; an exception in a
    list is raised at that point in the stream. ``gate`` makes the stream
    wait before each event until the test sets it.
    """

    def __init__(self, *scripts: Sequence[StreamEvent | BaseException], gate: asyncio.Event | None = None) -> None:
        self._scripts = [list(script) for script in scripts]
        self.gate = gate
        self.payloads: list[dict[str, Any]] = []
        self.closed = False

    async def stream(self, payload: Mapping[str, Any], *, cancellation: Any = None) -> AsyncIterator[StreamEvent]:
        self.payloads.append(dict(payload))
        script = self._scripts.pop(0) if self._scripts else []
        for item in script:
            if self.gate is not None:
                await self.gate.wait()
            if isinstance(item, BaseException):
                raise item
            yield item

    async def aclose(self) -> None:
        self.closed = True
