"""Pure reducer that rebuilds assistant turns from stream events.

``apply`` never mutates its input. A delta, tool call or tool result
yields a shallow copy of the current assistant turn in which only the
affected part is replaced; every other turn and part object is shared
with the previous :class:`AssistantSessionState`. User actions (send, abort,
clear, load, retry) are exposed as functions of the same shape so every
transition of the session goes through this module.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Sequence, Tuple

from ..chat.message_model import Part, TextPart, Turn
from ..protocol.events import (
    STOP_REASON_CANCELLED,
    CompletionSummary,
    Done,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    StepProgression,
    StreamEvent,
    TextDelta,
    Thinking,
    ToolCallEvent,
    ToolResultEvent,
    ToolStatus,
    UnknownEvent,
)
from .state import AssistantSessionState, new_thread_id

LOGGER = logging.getLogger(__name__)


def apply(state: AssistantSessionState, event: StreamEvent) -> AssistantSessionState:
    """Return the state after applying one stream event."""

    if isinstance(event, MessageStart):
        turn = Turn.assistant()
        messages = [*state.messages, turn]
        return state.evolve(
            messages=messages,
            current_turn_index=len(messages) - 1,
            is_loading=True,
            error=None,
            tools_in_progress=frozenset(),
            thinking_message=None,
            current_step=None,
            total_steps=None,
            stop_reason=None,
            completion_summary=None,
        )
    if isinstance(event, TextDelta):
        return _update_current_turn(state, event, lambda parts: _with_text(parts, event.text))
    if isinstance(event, ToolCallEvent):
        return _apply_tool_call(state, event)
    if isinstance(event, ToolResultEvent):
        return _apply_tool_result(state, event)
    if isinstance(event, Thinking):
        return state.evolve(thinking_message=event.message or None)
    if isinstance(event, ToolStatus):
        return state.evolve(thinking_message=event.message or None)
    if isinstance(event, StepProgression):
        return state.evolve(current_step=event.step, total_steps=event.total_steps)
    if isinstance(event, CompletionSummary):
        return state.evolve(
            completion_summary={
                "totalSteps": event.total_steps,
                "toolExecutions": event.tool_executions,
                "toolsUsed": list(event.tools_used),
            }
        )
    if isinstance(event, MessageEnd):
        return state.with_progress_cleared(stop_reason=event.reason)
    if isinstance(event, ErrorEvent):
        return state.with_progress_cleared(error=event.error)
    if isinstance(event, Done):
        return state
    if isinstance(event, UnknownEvent):
        LOGGER.debug("Ignoring unknown stream event %s", event.type)
        return state
    raise TypeError(f"Unsupported stream event: {type(event).__name__}")


def apply_all(state: AssistantSessionState, events: Sequence[StreamEvent]) -> AssistantSessionState:
    for event in events:
        state = apply(state, event)
    return state


def begin_send(state: AssistantSessionState, user_turn: Turn) -> AssistantSessionState:
    """Append ``user_turn`` and enter the loading state for a new request."""

    return state.evolve(
        messages=[*state.messages, user_turn],
        is_loading=True,
        error=None,
        tools_in_progress=frozenset(),
        thinking_message=None,
        current_step=None,
        total_steps=None,
        stop_reason=None,
        completion_summary=None,
        current_turn_index=None,
    )


def abort(state: AssistantSessionState) -> AssistantSessionState:
    """Stop waiting for the in-flight request.

    Partial content stays in ``messages``. Aborting an idle session leaves
    it unchanged, so calling this twice equals calling it once.
    """

    if not state.is_loading and state.current_turn_index is None:
        return state
    return state.with_progress_cleared(error=None, stop_reason=STOP_REASON_CANCELLED)


def fail_transport(state: AssistantSessionState, message: str) -> AssistantSessionState:
    """Record a connection failure exactly as if an ``error`` event had arrived."""

    return apply(state, ErrorEvent(error=message))


def reset(thread_id: str | None = None) -> AssistantSessionState:
    return AssistantSessionState(thread_id=thread_id or new_thread_id())


def load(messages: Sequence[Turn], thread_id: str | None = None) -> AssistantSessionState:
    """Build a terminal, non-loading state around saved ``messages``."""

    return AssistantSessionState(
        messages=[turn.clone() for turn in messages],
        thread_id=thread_id or new_thread_id(),
    )


def prepare_retry(state: AssistantSessionState) -> Tuple[AssistantSessionState, Turn]:
    """Drop everything after the last user turn and return that turn.

    The returned state holds the unchanged prior history; the caller sends
    the user turn again against it. Raises ``ValueError`` when there is no
    user turn to retry.
    """

    for index in range(len(state.messages) - 1, -1, -1):
        turn = state.messages[index]
        if turn.role == "user":
            trimmed = state.evolve(messages=list(state.messages[:index])).with_progress_cleared(
                error=None, stop_reason=None, completion_summary=None
            )
            return trimmed, turn
    raise ValueError("There is no user message to retry")


def _apply_tool_call(state: AssistantSessionState, event: ToolCallEvent) -> AssistantSessionState:
    current = state.current_turn
    if current is None:
        LOGGER.debug("tool-call %s arrived with no current turn; ignoring", event.tool_call_id)
        return state
    if current.find_tool_call(event.tool_call_id) is not None:
        LOGGER.debug("Duplicate tool-call %s ignored", event.tool_call_id)
        return state

    updated = _update_current_turn(state, event, lambda parts: [*parts, event.to_part()])
    return updated.evolve(tools_in_progress=updated.tools_in_progress | {event.tool_call_id})


def _apply_tool_result(state: AssistantSessionState, event: ToolResultEvent) -> AssistantSessionState:
    in_progress = state.tools_in_progress - {event.tool_call_id}
    current = state.current_turn
    part = current.find_tool_call(event.tool_call_id) if current is not None else None
    if part is None:
        LOGGER.debug("tool-result for unknown call %s; no part to update", event.tool_call_id)
        return state.evolve(tools_in_progress=in_progress)

    answered = replace(part, result=event.result, is_error=bool(event.is_error), completed=True)
    updated = _update_current_turn(
        state, event, lambda parts: [answered if existing is part else existing for existing in parts]
    )
    return updated.evolve(tools_in_progress=in_progress)


def _with_text(parts: List[Part], delta: str) -> List[Part]:
    for index, part in enumerate(parts):
        if isinstance(part, TextPart):
            return [*parts[:index], TextPart(part.text + delta), *parts[index + 1 :]]
    return [*parts, TextPart(delta)]


def _update_current_turn(
    state: AssistantSessionState,
    event: StreamEvent,
    rebuild: Callable[[List[Part]], List[Part]],
) -> AssistantSessionState:
    """Swap in a copy of the current turn whose parts come from ``rebuild``.

    ``rebuild`` returns a new list and must replace, not modify, any part it
    changes; untouched parts are shared with the previous state.
    """

    index = state.current_turn_index
    current = state.current_turn
    if index is None or current is None:
        LOGGER.debug("%s arrived with no current turn; ignoring", event.type)
        return state
    messages = list(state.messages)
    messages[index] = replace(current, parts=rebuild(current.parts))
    return state.evolve(messages=messages)


__all__ = [
    "abort",
    "apply",
    "apply_all",
    "begin_send",
    "fail_transport",
    "load",
    "prepare_retry",
    "reset",
]
