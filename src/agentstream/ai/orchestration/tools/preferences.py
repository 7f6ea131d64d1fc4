"""Per-request tool preferences."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .registry import ToolRegistry

__all__ = ["normalize_tool_preferences", "enabled_tool_names"]

LOGGER = logging.getLogger(__name__)


def normalize_tool_preferences(
    registry: ToolRegistry,
    preferences: Mapping[str, Any] | None = None,
    *,
    defaults: Mapping[str, bool] | None = None,
) -> dict[str, bool]:
    """Resolve a boolean per preference key for every registered tool.

    Request values win over configured ``defaults``, which win over each
    tool's own default. Keys that match no registered tool are ignored.
    """

    resolved: dict[str, bool] = {}
    requested = dict(preferences or {})
    configured = dict(defaults or {})
    for spec in registry.list_tools():
        key = spec.preference
        if key in resolved:
            continue
        value: Any = requested.get(key, configured.get(key, spec.enabled_by_default))
        resolved[key] = value if isinstance(value, bool) else bool(value)

    unknown = sorted(set(requested) - set(resolved))
    if unknown:
        LOGGER.debug("Ignoring unknown tool preference keys: %s", unknown)
    return resolved


def enabled_tool_names(registry: ToolRegistry, preferences: Mapping[str, bool]) -> list[str]:
    """Names of registered tools whose preference key is switched on."""

    return [
        spec.name
        for spec in registry.list_tools()
        if preferences.get(spec.preference, spec.enabled_by_default)
    ]
