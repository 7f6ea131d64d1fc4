"""Explicit per-session routing of tool results to their consumers."""

from __future__ import annotations

import logging
from typing import Callable, Dict

from ..protocol.events import ToolResultEvent

LOGGER = logging.getLogger(__name__)

ResultHandler = Callable[[ToolResultEvent], None]


class ToolResultRouter:
    """Map tool names to the handler that applies their results.

    Handlers are registered by whoever owns the target (an open document, a
    sheet, a canvas) and unregistered when that target goes away; the
    router never searches for targets on its own.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, ResultHandler] = {}

    def register(self, tool_name: str, handler: ResultHandler) -> None:
        if tool_name in self._handlers:
            LOGGER.debug("Replacing result handler for %s", tool_name)
        self._handlers[tool_name] = handler

    def unregister(self, tool_name: str) -> bool:
        return self._handlers.pop(tool_name, None) is not None

    def has_handler(self, tool_name: str) -> bool:
        return tool_name in self._handlers

    def dispatch(self, event: ToolResultEvent) -> bool:
        """Deliver ``event`` to its handler; returns whether one was registered.

        Error results are not delivered since there is nothing to apply.
        """

        handler = self._handlers.get(event.tool_name)
        if handler is None or event.is_error:
            return False
        try:
            handler(event)
        except Exception:
            LOGGER.exception("Result handler for %s failed", event.tool_name)
            return False
        return True

    def clear(self) -> None:
        self._handlers.clear()


__all__ = ["ResultHandler", "ToolResultRouter"]
