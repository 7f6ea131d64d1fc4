"""Internal data classes for model turn handling."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from ...chat.message_model import ToolCallPart


@dataclass(slots=True)
class ToolCallRequest:
    """Internal representation of tool call directives emitted by the model."""

    call_id: str
    name: str
    index: int = 0
    arguments: str | None = None
    parsed: Dict[str, Any] = field(default_factory=dict)

    @property
    def args_text(self) -> str:
        """Pretty-printed arguments for display."""

        try:
            return json.dumps(self.parsed, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            return self.arguments or ""

    def to_part(self) -> ToolCallPart:
        return ToolCallPart(
            tool_call_id=self.call_id,
            tool_name=self.name,
            args=dict(self.parsed),
            args_text=self.args_text,
        )


@dataclass(slots=True)
class ModelTurn:
    """Aggregate of a single model step: final text or requested tool calls."""

    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


__all__ = ["ModelTurn", "ToolCallRequest"]
