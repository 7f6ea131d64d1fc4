"""Transitions produced by the agent loop and consumed by the event emitter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .model_types import ToolCallRequest
from .tools.executor import ToolOutcome


@dataclass(slots=True)
class StepStarted:
    step: int
    max_steps: int


@dataclass(slots=True)
class AnswerText:
    """Text the model produced during a step."""

    text: str


@dataclass(slots=True)
class ToolRequested:
    call: ToolCallRequest
    known: bool = True


@dataclass(slots=True)
class ToolStarted:
    call: ToolCallRequest
    message: str


@dataclass(slots=True)
class ToolFinished:
    call: ToolCallRequest
    outcome: ToolOutcome


@dataclass(slots=True)
class LoopFinished:
    """The loop ended without a model failure.

    ``reason`` is ``"stop"`` for a final answer, ``"max-steps"`` when the
    step budget ran out and ``"cancelled"`` when the caller aborted.
    """

    reason: str
    total_steps: int
    tool_executions: int = 0
    tools_used: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LoopFailed:
    error: str


Transition = Union[StepStarted, AnswerText, ToolRequested, ToolStarted, ToolFinished, LoopFinished, LoopFailed]

__all__ = [
    "AnswerText",
    "LoopFailed",
    "LoopFinished",
    "StepStarted",
    "ToolFinished",
    "ToolRequested",
    "ToolStarted",
    "Transition",
]
