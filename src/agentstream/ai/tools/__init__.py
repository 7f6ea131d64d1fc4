"""Built-in tool capabilities."""

from __future__ import annotations

import httpx

from ..orchestration.tools.registry import ToolRegistry
from .datetime_tool import DATETIME_SPEC, CurrentDateTimeTool
from .web_search import WEB_SEARCH_SPEC, WebSearchTool


def build_default_registry(*, http_client: httpx.AsyncClient | None = None) -> ToolRegistry:
    """Return a registry holding every built-in tool."""

    registry = ToolRegistry()
    registry.register(WebSearchTool(client=http_client))
    registry.register(CurrentDateTimeTool())
    return registry


__all__ = [
    "CurrentDateTimeTool",
    "DATETIME_SPEC",
    "WEB_SEARCH_SPEC",
    "WebSearchTool",
    "build_default_registry",
]
