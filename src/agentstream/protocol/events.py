"""Stream event vocabulary shared by the server emitter and the client reducer.

Every record on the wire is a JSON object with a ``type`` discriminator.
Tool results travel as their own ``tool-result`` record; a ``tool-call``
record is sent exactly once per call and never carries a result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Union

from ..chat.message_model import ToolCallPart

LOGGER = logging.getLogger(__name__)

STOP_REASON_STOP = "stop"
STOP_REASON_MAX_STEPS = "max-steps"
STOP_REASON_CANCELLED = "cancelled"


class StreamDecodeError(ValueError):
    """Raised when a wire record cannot be decoded into a stream event."""


@dataclass(slots=True)
class MessageStart:
    type: ClassVar[str] = "message-start"

    role: str = "assistant"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "role": self.role}


@dataclass(slots=True)
class TextDelta:
    type: ClassVar[str] = "text-delta"

    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(slots=True)
class ToolCallEvent:
    """A tool invocation requested by the model, without its result."""

    type: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    args_text: str | None = None

    def to_part(self) -> ToolCallPart:
        return ToolCallPart(
            tool_call_id=self.tool_call_id,
            tool_name=self.tool_name,
            args=dict(self.args),
            args_text=self.args_text,
        )

    def to_dict(self) -> Dict[str, Any]:
        part: Dict[str, Any] = {
            "type": "tool-call",
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "args": dict(self.args),
        }
        if self.args_text is not None:
            part["argsText"] = self.args_text
        return {"type": self.type, "part": part}


@dataclass(slots=True)
class ToolResultEvent:
    """The outcome of an earlier ``tool-call``, correlated by id."""

    type: ClassVar[str] = "tool-result"

    tool_call_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "part": {
                "type": "tool-result",
                "toolCallId": self.tool_call_id,
                "toolName": self.tool_name,
                "result": self.result,
                "isError": self.is_error,
            },
        }


@dataclass(slots=True)
class Thinking:
    type: ClassVar[str] = "thinking"

    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass(slots=True)
class StepProgression:
    type: ClassVar[str] = "step-progression"

    step: int
    total_steps: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "step": self.step, "totalSteps": self.total_steps}


@dataclass(slots=True)
class ToolStatus:
    """Advisory notice that a known tool has started executing."""

    type: ClassVar[str] = "tool-status"

    tool_call_id: str
    tool: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "toolCallId": self.tool_call_id,
            "tool": self.tool,
            "message": self.message,
        }


@dataclass(slots=True)
class CompletionSummary:
    type: ClassVar[str] = "completion-summary"

    total_steps: int
    tool_executions: int
    tools_used: list[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "totalSteps": self.total_steps,
            "toolExecutions": self.tool_executions,
            "toolsUsed": list(self.tools_used),
        }


@dataclass(slots=True)
class MessageEnd:
    """Successful end of the assistant turn.

    ``reason`` is ``"stop"`` for a final answer, ``"max-steps"`` when the
    step budget cut the loop short and ``"cancelled"`` when the request was
    aborted server-side before an answer.
    """

    type: ClassVar[str] = "message-end"

    reason: str = STOP_REASON_STOP

    @property
    def truncated(self) -> bool:
        return self.reason == STOP_REASON_MAX_STEPS

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "status": {"type": "complete", "reason": self.reason}}


@dataclass(slots=True)
class ErrorEvent:
    type: ClassVar[str] = "error"

    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "error": self.error}


@dataclass(slots=True)
class Done:
    type: ClassVar[str] = "done"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass(slots=True)
class UnknownEvent:
    """A well-formed record whose ``type`` this version does not understand."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.payload, "type": self.type}


StreamEvent = Union[
    MessageStart,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    Thinking,
    StepProgression,
    ToolStatus,
    CompletionSummary,
    MessageEnd,
    ErrorEvent,
    Done,
    UnknownEvent,
]

TERMINAL_EVENT_TYPES = frozenset({MessageEnd.type, ErrorEvent.type})


def encode_event(event: StreamEvent) -> Dict[str, Any]:
    return event.to_dict()


def decode_event(payload: Mapping[str, Any]) -> StreamEvent:
    """Build a stream event from one decoded wire record."""

    if not isinstance(payload, Mapping):
        raise StreamDecodeError(f"Event record must be an object, got {type(payload).__name__}")
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise StreamDecodeError("Event record is missing its type discriminator")
    decoder = _DECODERS.get(event_type)
    if decoder is None:
        LOGGER.debug("Received unknown event type %s", event_type)
        return UnknownEvent(type=event_type, payload=dict(payload))
    try:
        return decoder(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise StreamDecodeError(f"Malformed {event_type} event: {exc}") from exc


def _decode_tool_call(payload: Mapping[str, Any]) -> ToolCallEvent:
    part = payload["part"]
    args = part.get("args")
    return ToolCallEvent(
        tool_call_id=str(part["toolCallId"]),
        tool_name=str(part["toolName"]),
        args=dict(args) if isinstance(args, Mapping) else {},
        args_text=part.get("argsText"),
    )


def _decode_tool_result(payload: Mapping[str, Any]) -> ToolResultEvent:
    part = payload["part"]
    return ToolResultEvent(
        tool_call_id=str(part["toolCallId"]),
        tool_name=str(part.get("toolName") or ""),
        result=part.get("result"),
        is_error=bool(part.get("isError", False)),
    )


def _decode_message_end(payload: Mapping[str, Any]) -> MessageEnd:
    status = payload.get("status") or {}
    reason = status.get("reason") if isinstance(status, Mapping) else None
    return MessageEnd(reason=str(reason or STOP_REASON_STOP))


def _decode_completion_summary(payload: Mapping[str, Any]) -> CompletionSummary:
    return CompletionSummary(
        total_steps=int(payload.get("totalSteps") or 0),
        tool_executions=int(payload.get("toolExecutions") or 0),
        tools_used=[str(name) for name in payload.get("toolsUsed") or []],
    )


_DECODERS = {
    MessageStart.type: lambda p: MessageStart(role=str(p.get("role") or "assistant")),
    TextDelta.type: lambda p: TextDelta(text=str(p["text"])),
    ToolCallEvent.type: _decode_tool_call,
    ToolResultEvent.type: _decode_tool_result,
    Thinking.type: lambda p: Thinking(message=str(p.get("message") or "")),
    StepProgression.type: lambda p: StepProgression(
        step=int(p["step"]), total_steps=int(p["totalSteps"])
    ),
    ToolStatus.type: lambda p: ToolStatus(
        tool_call_id=str(p.get("toolCallId") or ""),
        tool=str(p.get("tool") or ""),
        message=str(p.get("message") or ""),
    ),
    CompletionSummary.type: _decode_completion_summary,
    MessageEnd.type: _decode_message_end,
    ErrorEvent.type: lambda p: ErrorEvent(error=str(p.get("error") or "unknown error")),
    Done.type: lambda p: Done(),
}


__all__ = [
    "CompletionSummary",
    "Done",
    "ErrorEvent",
    "MessageEnd",
    "MessageStart",
    "STOP_REASON_CANCELLED",
    "STOP_REASON_MAX_STEPS",
    "STOP_REASON_STOP",
    "StepProgression",
    "StreamDecodeError",
    "StreamEvent",
    "TERMINAL_EVENT_TYPES",
    "TextDelta",
    "Thinking",
    "ToolCallEvent",
    "ToolResultEvent",
    "ToolStatus",
    "UnknownEvent",
    "decode_event",
    "encode_event",
]
