"""Tool registry shared by every request the server handles.

Registrations happen once at startup; requests only read from the
registry, so it needs no locking. Per-request filtering is done with
tool preferences rather than by toggling registrations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .types import AsyncToolHandler, SimpleTool, Tool, ToolHandler, ToolSpec

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


class DuplicateToolError(Exception):
    """Raised when a second tool claims a name that is already registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    """Raised when a call names a tool that is missing or disabled."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


@dataclass(slots=True)
class ToolRegistration:
    tool: Tool
    enabled: bool = True

    @property
    def spec(self) -> ToolSpec:
        return self.tool.spec


class ToolRegistry:
    """Name-keyed tool capabilities, kept in registration order.

    Example:
        registry = ToolRegistry()
        registry.register(WebSearchTool())
        registry.register_function(
            spec=ToolSpec(name="greet", description="Greet"),
            handler=lambda args: f"Hello, {args['name']}!",
        )
        definitions = registry.get_openai_tools(filter_names=["greet"])
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}

    def register(self, tool: Tool, *, enabled: bool = True) -> ToolRegistration:
        """Add ``tool`` under its own name.

        Raises:
            DuplicateToolError: If the name is already taken.
        """
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        registration = ToolRegistration(tool=tool, enabled=enabled)
        self._tools[tool.name] = registration
        LOGGER.debug("Registered tool %s (enabled=%s)", tool.name, enabled)
        return registration

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        enabled: bool = True,
    ) -> ToolRegistration:
        """Register a sync or async callable as a tool."""
        return self.register(SimpleTool(spec=spec, handler=handler), enabled=enabled)

    def disable(self, name: str) -> bool:
        """Hide a tool from every request; returns whether it was registered."""
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = False
        LOGGER.info("Tool %s disabled", name)
        return True

    def get(self, name: str) -> Tool | None:
        """Return the tool if it is registered and enabled."""
        registration = self._tools.get(name)
        if registration is None or not registration.enabled:
            return None
        return registration.tool

    def get_spec(self, name: str) -> ToolSpec | None:
        registration = self._tools.get(name)
        return registration.spec if registration is not None else None

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def list_tools(self, *, include_disabled: bool = False) -> list[ToolSpec]:
        return [
            registration.spec
            for registration in self._tools.values()
            if registration.enabled or include_disabled
        ]

    def list_names(self, *, include_disabled: bool = False) -> list[str]:
        return [spec.name for spec in self.list_tools(include_disabled=include_disabled)]

    def get_openai_tools(self, *, filter_names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Function-calling definitions for enabled tools, optionally limited to ``filter_names``."""
        allowed = set(filter_names) if filter_names is not None else None
        return [
            spec.to_openai_tool()
            for spec in self.list_tools()
            if allowed is None or spec.name in allowed
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._tools
