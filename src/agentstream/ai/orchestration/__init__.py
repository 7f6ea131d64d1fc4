"""Agent loop orchestration: model turns, tool dispatch and event emission."""

from .agent_loop import AgentLoop
from .event_emitter import EventEmitter, chunk_text
from .event_log import ChatEventLogger, ChatEventLogRun, NullChatEventLogRun
from .model_types import ModelTurn, ToolCallRequest
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

__all__ = [
    "AgentLoop",
    "AnswerText",
    "ChatEventLogRun",
    "ChatEventLogger",
    "EventEmitter",
    "LoopFailed",
    "LoopFinished",
    "ModelTurn",
    "NullChatEventLogRun",
    "StepStarted",
    "ToolCallRequest",
    "ToolFinished",
    "ToolRequested",
    "ToolStarted",
    "Transition",
    "chunk_text",
]
