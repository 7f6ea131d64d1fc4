"""Translate agent loop transitions into stream events."""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing
from typing import AsyncIterator, List

from ...protocol.events import (
    TERMINAL_EVENT_TYPES,
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
)
from ..errors import parse_error_message
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

TEXT_SEPARATOR = "\n\n"
_WORD_PATTERN = re.compile(r"\s*\S+\s*")


def chunk_text(text: str) -> List[str]:
    """Split ``text`` into word-sized pieces whose concatenation is ``text``."""

    if not text:
        return []
    # Whitespace-only text has no words to match.
    return _WORD_PATTERN.findall(text) or [text]


class EventEmitter:
    """Serialize one request's transitions as an ordered event stream.

    An emitter instance tracks whether text has already been streamed for
    the current assistant turn, so use one instance per request.
    """

    def __init__(self, *, text_chunk_delay: float = 0.0) -> None:
        self._text_chunk_delay = max(0.0, float(text_chunk_delay or 0.0))
        self._text_emitted = False

    def translate(self, transition: Transition) -> List[StreamEvent]:
        """Return the events for ``transition`` in emission order."""

        if isinstance(transition, StepStarted):
            return [
                Thinking(message=f"Processing step {transition.step}..."),
                StepProgression(step=transition.step, total_steps=transition.max_steps),
            ]
        if isinstance(transition, AnswerText):
            events: List[StreamEvent] = []
            if not transition.text:
                return events
            if self._text_emitted:
                events.append(TextDelta(TEXT_SEPARATOR))
            events.extend(TextDelta(chunk) for chunk in chunk_text(transition.text))
            self._text_emitted = True
            return events
        if isinstance(transition, ToolRequested):
            call = transition.call
            return [
                ToolCallEvent(
                    tool_call_id=call.call_id,
                    tool_name=call.name,
                    args=dict(call.parsed),
                    args_text=call.args_text,
                )
            ]
        if isinstance(transition, ToolStarted):
            return [ToolStatus(tool_call_id=transition.call.call_id, tool=transition.call.name, message=transition.message)]
        if isinstance(transition, ToolFinished):
            return [
                ToolResultEvent(
                    tool_call_id=transition.call.call_id,
                    tool_name=transition.call.name,
                    result=transition.outcome.result,
                    is_error=transition.outcome.is_error,
                )
            ]
        if isinstance(transition, LoopFinished):
            events = []
            if transition.total_steps > 0:
                events.append(StepProgression(step=transition.total_steps, total_steps=transition.total_steps))
            events.append(
                CompletionSummary(
                    total_steps=transition.total_steps,
                    tool_executions=transition.tool_executions,
                    tools_used=list(transition.tools_used),
                )
            )
            events.append(MessageEnd(reason=transition.reason))
            return events
        if isinstance(transition, LoopFailed):
            return [ErrorEvent(error=transition.error)]
        raise TypeError(f"Unsupported transition: {type(transition).__name__}")

    async def stream(self, transitions: AsyncIterator[Transition]) -> AsyncIterator[StreamEvent]:
        """Yield ``message-start``, the translated transitions, one terminal event and ``done``.

        Events are yielded one at a time as transitions arrive; nothing is
        buffered across transitions. An unexpected exception from the loop is
        reported as an ``error`` event so the stream always closes with
        ``done``.
        """

        self._text_emitted = False
        terminated = False
        yield MessageStart()
        try:
            async with aclosing(transitions) as source:  # type: ignore[type-var]
                async for transition in source:
                    for event in self.translate(transition):
                        yield event
                        if isinstance(event, TextDelta) and self._text_chunk_delay:
                            await asyncio.sleep(self._text_chunk_delay)
                        if event.type in TERMINAL_EVENT_TYPES:
                            terminated = True
                            break
                    if terminated:
                        break
        except Exception as exc:
            LOGGER.exception("Agent loop raised while streaming")
            if not terminated:
                terminated = True
                yield ErrorEvent(error=parse_error_message(exc))

        if not terminated:
            LOGGER.warning("Agent loop ended without a terminal transition")
            yield ErrorEvent(error="The assistant stopped without finishing its reply.")
        yield Done()


__all__ = ["EventEmitter", "TEXT_SEPARATOR", "chunk_text"]
