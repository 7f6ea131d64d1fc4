"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..chat.message_model import Turn
    from .orchestration.model_types import ModelTurn

DEFAULT_MAX_STEPS = 100
MAX_STEPS_CEILING = 1_000


class ModelCapability(Protocol):
    """Anything that can answer one model step for an ordered list of turns."""

    async def complete(
        self,
        turns: Sequence["Turn"],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> "ModelTurn":
        """Return final text or a set of requested tool invocations."""
        ...


@dataclass(slots=True)
class AgentConfig:
    """Tunable parameters that shape one agent loop execution."""

    max_steps: int = DEFAULT_MAX_STEPS
    allow_parallel_tools: bool = False
    tool_timeout_seconds: float | None = 35.0
    text_chunk_delay: float = 0.0

    def clamp(self) -> AgentConfig:
        """Clamp values into safe operating ranges and return ``self``."""

        self.max_steps = max(1, min(int(self.max_steps or 1), MAX_STEPS_CEILING))
        if self.tool_timeout_seconds is not None:
            self.tool_timeout_seconds = max(1.0, float(self.tool_timeout_seconds))
        self.text_chunk_delay = max(0.0, float(self.text_chunk_delay or 0.0))
        return self

    def as_metadata(self) -> dict[str, Any]:
        return asdict(self)


__all__ = ["AgentConfig", "DEFAULT_MAX_STEPS", "MAX_STEPS_CEILING", "ModelCapability"]
