"""Tool executor used by the agent loop.

Runs registered tools with argument validation, a timeout and logging, and
turns failures into error-marker results the model can read.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .registry import ToolNotFoundError, ToolRegistry
from .validation import MissingToolArgumentsError, ensure_tool_arguments

__all__ = [
    "ToolExecutor",
    "ExecutorConfig",
    "ToolExecutionError",
    "ToolOutcome",
]

LOGGER = logging.getLogger(__name__)


class ToolExecutionError(Exception):
    """A tool could not produce a result.

    ``code`` is a short machine-readable reason (``tool_error``,
    ``timeout``, ``missing_arguments``).
    """

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        cause: BaseException | None = None,
        *,
        code: str = "tool_error",
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.cause = cause
        self.code = code

    def as_result(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    # ``None`` or a non-positive value disables the timeout.
    default_timeout: float | None = 35.0
    # Arguments and results can hold user data; off unless debugging a tool.
    log_payloads: bool = False


@dataclass(slots=True)
class ToolOutcome:
    """Result of one dispatched call; failures carry an error marker."""

    result: Any
    is_error: bool = False


class ToolExecutor:
    """Dispatches tool calls against a :class:`ToolRegistry`.

    :meth:`execute` raises on failure. :meth:`run` and :meth:`run_many`
    return error-marker outcomes instead, since a failed tool still owes
    the model a result message.
    """

    def __init__(self, registry: ToolRegistry, config: ExecutorConfig | None = None) -> None:
        self.registry = registry
        self.config = config or ExecutorConfig()

    async def execute(
        self,
        name: str,
        arguments: Mapping[str, Any],
        *,
        call_id: str = "",
        timeout: float | None = None,
    ) -> Any:
        """Run one tool and return its raw result.

        Raises:
            ToolNotFoundError: If the tool is not registered or disabled.
            ToolExecutionError: If validation fails, the tool raises or times out.
        """
        tool = self.registry.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        try:
            ensure_tool_arguments(name, tool.spec.required_args, arguments)
        except MissingToolArgumentsError as exc:
            LOGGER.warning("%s", exc)
            raise ToolExecutionError(str(exc), tool_name=name, cause=exc, code="missing_arguments") from exc

        limit = self.config.default_timeout if timeout is None else timeout
        if self.config.log_payloads:
            LOGGER.debug("Tool %s [%s] called with %s", name, call_id, arguments)
        started = time.perf_counter()
        try:
            if limit is not None and limit > 0:
                result = await asyncio.wait_for(tool.execute(arguments), timeout=limit)
            else:
                result = await tool.execute(arguments)
        except asyncio.TimeoutError as exc:
            LOGGER.warning("Tool %s [%s] exceeded its %.1fs timeout", name, call_id, limit)
            raise ToolExecutionError(
                f"Tool '{name}' timed out after {limit:.1f}s", tool_name=name, cause=exc, code="timeout"
            ) from exc
        except Exception as exc:
            LOGGER.warning("Tool %s [%s] failed: %s", name, call_id, exc)
            raise ToolExecutionError(str(exc) or type(exc).__name__, tool_name=name, cause=exc) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        if self.config.log_payloads:
            LOGGER.debug("Tool %s [%s] returned in %.1fms: %s", name, call_id, elapsed_ms, result)
        else:
            LOGGER.debug("Tool %s [%s] returned in %.1fms", name, call_id, elapsed_ms)
        return result

    async def run(
        self,
        name: str,
        arguments: Mapping[str, Any],
        *,
        call_id: str = "",
        timeout: float | None = None,
    ) -> ToolOutcome:
        """Like :meth:`execute`, but failures become an error-marker outcome."""
        try:
            return ToolOutcome(await self.execute(name, arguments, call_id=call_id, timeout=timeout))
        except ToolExecutionError as exc:
            return ToolOutcome(exc.as_result(), is_error=True)

    async def run_many(
        self,
        calls: Sequence[tuple[str, Mapping[str, Any], str]],
        *,
        parallel: bool = False,
        timeout: float | None = None,
    ) -> list[ToolOutcome]:
        """Run ``(name, arguments, call_id)`` triples, returning outcomes in call order."""
        if parallel:
            return list(
                await asyncio.gather(
                    *(self.run(name, args, call_id=call_id, timeout=timeout) for name, args, call_id in calls)
                )
            )
        return [await self.run(name, args, call_id=call_id, timeout=timeout) for name, args, call_id in calls]
