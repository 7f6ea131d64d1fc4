"""Client-side view of one conversation."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping

from ..chat.message_model import Turn, new_id


def new_thread_id() -> str:
    return new_id("thread-")


@dataclass(slots=True, frozen=True)
class AssistantSessionState:
    """Everything the presentation layer needs to render a conversation.

    Instances are never mutated in place; the reducer returns a new state
    for every event. ``current_turn_index`` points at the in-progress
    assistant turn inside ``messages`` between ``message-start`` and the
    terminal event, and is ``None`` otherwise.
    """

    messages: List[Turn] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    thread_id: str = field(default_factory=new_thread_id)
    tools_in_progress: FrozenSet[str] = frozenset()
    thinking_message: str | None = None
    current_step: int | None = None
    total_steps: int | None = None
    stop_reason: str | None = None
    completion_summary: Dict[str, Any] | None = None
    current_turn_index: int | None = None

    @property
    def current_turn(self) -> Turn | None:
        if self.current_turn_index is None:
            return None
        if 0 <= self.current_turn_index < len(self.messages):
            return self.messages[self.current_turn_index]
        return None

    @property
    def is_idle(self) -> bool:
        return not self.is_loading

    @property
    def pending_tool_count(self) -> int:
        return len(self.tools_in_progress)

    def evolve(self, **changes: Any) -> "AssistantSessionState":
        return dataclasses.replace(self, **changes)

    def with_progress_cleared(self, **changes: Any) -> "AssistantSessionState":
        """Return a copy with loading and every progress field reset."""

        cleared: Dict[str, Any] = {
            "is_loading": False,
            "thinking_message": None,
            "current_step": None,
            "total_steps": None,
            "tools_in_progress": frozenset(),
            "current_turn_index": None,
        }
        cleared.update(changes)
        return dataclasses.replace(self, **cleared)

    def to_snapshot(self, *, metadata: Mapping[str, Any] | None = None) -> Dict[str, Any]:
        """Serialize the committed messages and opaque ``metadata``."""

        return {
            "threadId": self.thread_id,
            "messages": [turn.to_dict() for turn in self.messages],
            "metadata": dict(metadata or {}),
        }


__all__ = ["AssistantSessionState", "new_thread_id"]
