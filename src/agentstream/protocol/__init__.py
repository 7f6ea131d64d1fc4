"""Wire protocol shared by the streaming server and its clients."""

from .events import (
    STOP_REASON_CANCELLED,
    STOP_REASON_MAX_STEPS,
    STOP_REASON_STOP,
    TERMINAL_EVENT_TYPES,
    CompletionSummary,
    Done,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    StepProgression,
    StreamDecodeError,
    StreamEvent,
    TextDelta,
    Thinking,
    ToolCallEvent,
    ToolResultEvent,
    ToolStatus,
    UnknownEvent,
    decode_event,
    encode_event,
)
from .framing import MEDIA_TYPE, LineDecoder, decode_line, encode_line

__all__ = [
    "CompletionSummary",
    "Done",
    "ErrorEvent",
    "LineDecoder",
    "MEDIA_TYPE",
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
    "decode_line",
    "encode_event",
    "encode_line",
]
