"""Bounded tool-calling loop run once per user request."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Mapping, Sequence

from ...chat.conversion import find_unpaired_tool_calls
from ...chat.message_model import TextPart, Turn
from ..ai_types import AgentConfig, ModelCapability
from ..errors import ModelInvocationError, parse_error_message
from .event_log import ChatEventLogRun, NullChatEventLogRun
from .model_types import ModelTurn, ToolCallRequest
from .tools.executor import ToolExecutor, ToolOutcome
from .transitions import (
    AnswerText,
    LoopFailed,
    LoopFinished,
    StepStarted,
    ToolFinished,
    ToolRequested,
    ToolStarted,
    Transition,
)

LOGGER = logging.getLogger(__name__)


class AgentLoop:
    """Drive the model and tools until a final answer or the step budget.

    One instance may serve many requests concurrently: every call to
    :meth:`run` owns its own copy of the conversation history.
    """

    def __init__(
        self,
        model: ModelCapability,
        executor: ToolExecutor,
        *,
        config: AgentConfig | None = None,
    ) -> None:
        self._model = model
        self._executor = executor
        self._config = (config or AgentConfig()).clamp()

    @property
    def config(self) -> AgentConfig:
        return self._config

    async def run(
        self,
        history: Sequence[Turn],
        *,
        system_turns: Sequence[Turn] = (),
        max_steps: int | None = None,
        enabled_tools: Sequence[str] | None = None,
        cancel_event: asyncio.Event | None = None,
        event_log: ChatEventLogRun | NullChatEventLogRun | None = None,
    ) -> AsyncIterator[Transition]:
        """Yield loop transitions for one request.

        ``history`` is copied, never mutated. Assistant turns carrying tool
        calls are appended together with their tool-result turns, so the
        conversation handed to the model always pairs every call with a
        result. ``enabled_tools`` limits which registered tools are offered;
        requests for anything else are reported but not executed.
        """

        budget = self._resolve_budget(max_steps)
        log = event_log or NullChatEventLogRun()
        conversation: list[Turn] = [*system_turns, *history]
        unpaired = find_unpaired_tool_calls(conversation)
        if unpaired:
            LOGGER.warning("History contains %s unanswered tool call(s); they will not be sent", len(unpaired))

        registry = self._executor.registry
        offered = set(enabled_tools) if enabled_tools is not None else set(registry.list_names())
        tools = registry.get_openai_tools(filter_names=offered)
        tool_executions = 0
        tools_used: list[str] = []

        for index in range(budget):
            step = index + 1
            if _is_cancelled(cancel_event):
                LOGGER.info("Agent loop cancelled before step %s", step)
                log.log_failure(message="cancelled")
                yield LoopFinished("cancelled", index, tool_executions, tools_used)
                return

            yield StepStarted(step=step, max_steps=budget)
            LOGGER.debug("Agent step %s/%s with %s turn(s)", step, budget, len(conversation))
            try:
                turn = await self._model.complete(conversation, tools=tools or None)
            except ModelInvocationError as exc:
                log.log_failure(message=str(exc))
                yield LoopFailed(error=str(exc))
                return
            except Exception as exc:
                LOGGER.exception("Model capability raised unexpectedly")
                message = parse_error_message(exc)
                log.log_failure(message=message)
                yield LoopFailed(error=message)
                return

            log.log_assistant_message(
                turn_index=step,
                response_text=turn.text,
                tool_calls=[_describe_call(call) for call in turn.tool_calls],
            )
            if turn.text:
                yield AnswerText(turn.text)

            if turn.is_final:
                log.log_completion(response_text=turn.text, tool_call_count=tool_executions)
                yield LoopFinished("stop", step, tool_executions, tools_used)
                return

            known = [call for call in turn.tool_calls if call.name in offered and registry.has(call.name)]
            outcomes: dict[str, ToolOutcome] = {}
            async for transition in self._dispatch(turn.tool_calls, known, outcomes, cancel_event):
                yield transition

            if len(outcomes) < len(known):
                # Aborted mid-batch; nothing from this step enters history.
                LOGGER.info("Agent loop cancelled during tool dispatch at step %s", step)
                log.log_failure(message="cancelled")
                yield LoopFinished("cancelled", step, tool_executions, tools_used)
                return

            batch = self._build_batch(turn, known, outcomes)
            conversation.extend(batch)
            log.log_tool_batch(turn_index=step, records=[turn_.to_dict() for turn_ in batch])
            tool_executions += len(known)
            for call in known:
                if call.name not in tools_used:
                    tools_used.append(call.name)

        LOGGER.warning("Agent loop reached max steps (%s) without a final answer", budget)
        log.log_completion(response_text="", tool_call_count=tool_executions, warnings=["max-steps"])
        yield LoopFinished("max-steps", budget, tool_executions, tools_used)

    async def _dispatch(
        self,
        calls: Sequence[ToolCallRequest],
        known: Sequence[ToolCallRequest],
        outcomes: dict[str, ToolOutcome],
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[Transition]:
        known_ids = {call.call_id for call in known}
        timeout = self._config.tool_timeout_seconds
        registry = self._executor.registry

        if self._config.allow_parallel_tools:
            for call in calls:
                yield ToolRequested(call, known=call.call_id in known_ids)
            if _is_cancelled(cancel_event):
                return
            for call in known:
                yield ToolStarted(call, _progress_message(registry.get_spec(call.name), call.name))
            results = await self._executor.run_many(
                [(call.name, call.parsed, call.call_id) for call in known],
                parallel=True,
                timeout=timeout,
            )
            for call, outcome in zip(known, results):
                outcomes[call.call_id] = outcome
                yield ToolFinished(call, outcome)
            return

        for call in calls:
            is_known = call.call_id in known_ids
            yield ToolRequested(call, known=is_known)
            if not is_known:
                LOGGER.info("Model requested unavailable tool %s; not executing", call.name)
                continue
            if _is_cancelled(cancel_event):
                return
            yield ToolStarted(call, _progress_message(registry.get_spec(call.name), call.name))
            outcome = await self._executor.run(call.name, call.parsed, call_id=call.call_id, timeout=timeout)
            outcomes[call.call_id] = outcome
            yield ToolFinished(call, outcome)

    @staticmethod
    def _build_batch(
        turn: ModelTurn,
        known: Sequence[ToolCallRequest],
        outcomes: Mapping[str, ToolOutcome],
    ) -> list[Turn]:
        parts: list[Any] = [TextPart(turn.text)] if turn.text else []
        call_parts = [call.to_part() for call in known]
        if not parts and not call_parts:
            return []
        batch = [Turn.assistant([*parts, *call_parts])]
        for part in call_parts:
            outcome = outcomes[part.tool_call_id]
            batch.append(Turn.tool_result_for(part, outcome.result, is_error=outcome.is_error))
        return batch

    def _resolve_budget(self, max_steps: int | None) -> int:
        if max_steps is None:
            return self._config.max_steps
        return AgentConfig(max_steps=max_steps).clamp().max_steps


def _progress_message(spec: Any, name: str) -> str:
    if spec is None:
        return f"Executing {name}..."
    return spec.describe_progress()


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _describe_call(call: ToolCallRequest) -> dict[str, Any]:
    return {"id": call.call_id, "name": call.name, "index": call.index, "arguments": call.arguments}


__all__ = ["AgentLoop"]
