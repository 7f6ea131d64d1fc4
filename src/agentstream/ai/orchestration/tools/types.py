"""Tool system types for the agent loop.

A tool is a named capability that maps a structured argument object to a
structured result. Tools are offered to the model through their
:class:`ToolSpec` and invoked by the :class:`~.executor.ToolExecutor`.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
]

_EMPTY_PARAMETERS: Mapping[str, Any] = {"type": "object", "properties": {}}


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """What the model is told about a tool, plus how requests toggle it.

    Attributes:
        parameters: JSON Schema for the argument object; an empty mapping
            advertises a tool that takes no arguments.
        required_args: Arguments that must be present and non-empty before
            the tool is dispatched.
        preference_key: Key in the request's tool preferences that toggles
            the tool. Defaults to the tool name.
        enabled_by_default: Whether the tool is offered when the request
            does not mention its preference key.
        status_message: Progress text shown while the tool runs.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    required_args: tuple[str, ...] = ()
    preference_key: str | None = None
    enabled_by_default: bool = True
    status_message: str | None = None

    @property
    def preference(self) -> str:
        return self.preference_key or self.name

    def describe_progress(self) -> str:
        return self.status_message or f"Executing {self.name}..."

    def to_openai_tool(self) -> dict[str, Any]:
        """Function-calling definition in the chat completions ``tools`` format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters or _EMPTY_PARAMETERS),
            },
        }


ToolHandler = Callable[[Mapping[str, Any]], Any]
AsyncToolHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]


@runtime_checkable
class Tool(Protocol):
    """A tool capability.

    ``execute`` may be called concurrently from independent requests and
    signals failure by raising.
    """

    @property
    def name(self) -> str: ...

    @property
    def spec(self) -> ToolSpec: ...

    async def execute(self, arguments: Mapping[str, Any]) -> Any: ...


@dataclass(slots=True)
class SimpleTool:
    """Adapts a plain sync or async callable to :class:`Tool`."""

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        result = self.handler(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result
