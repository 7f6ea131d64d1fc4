"""Lifecycle view of the tool calls in the current assistant turn."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List

from ..protocol.events import (
    ErrorEvent,
    MessageEnd,
    MessageStart,
    StreamEvent,
    ToolCallEvent,
    ToolResultEvent,
    ToolStatus,
)

LOGGER = logging.getLogger(__name__)


class ToolCallStatus(str, Enum):
    REQUESTED = "requested"
    EXECUTING = "executing"
    RESOLVED = "resolved"
    FAILED = "failed"

    @property
    def pending(self) -> bool:
        return self in (ToolCallStatus.REQUESTED, ToolCallStatus.EXECUTING)


@dataclass(slots=True)
class ToolCallRecord:
    tool_call_id: str
    tool_name: str
    status: ToolCallStatus = ToolCallStatus.REQUESTED
    message: str | None = None


class ToolCallTracker:
    """Track requested -> executing -> resolved/failed per correlation id.

    The tracker is derived from the same events the reducer consumes and is
    reset by every ``message-start``. A call still pending when the turn
    ends was never answered (for example, the model asked for a tool the
    server does not offer); :meth:`unresolved` lists those so they render as
    "no result" rather than as failures.
    """

    def __init__(self) -> None:
        self._records: Dict[str, ToolCallRecord] = {}
        self._finished = False

    @classmethod
    def from_events(cls, events: Iterable[StreamEvent]) -> "ToolCallTracker":
        tracker = cls()
        for event in events:
            tracker.apply(event)
        return tracker

    @property
    def finished(self) -> bool:
        return self._finished

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, MessageStart):
            self._records.clear()
            self._finished = False
        elif isinstance(event, ToolCallEvent):
            self._records.setdefault(
                event.tool_call_id,
                ToolCallRecord(tool_call_id=event.tool_call_id, tool_name=event.tool_name),
            )
        elif isinstance(event, ToolStatus):
            record = self._records.get(event.tool_call_id)
            if record is None:
                LOGGER.debug("tool-status for unknown call %s", event.tool_call_id)
            elif record.status.pending:
                record.status = ToolCallStatus.EXECUTING
                record.message = event.message
        elif isinstance(event, ToolResultEvent):
            record = self._records.get(event.tool_call_id)
            if record is None:
                LOGGER.debug("tool-result for untracked call %s", event.tool_call_id)
                record = ToolCallRecord(tool_call_id=event.tool_call_id, tool_name=event.tool_name)
                self._records[event.tool_call_id] = record
            record.status = ToolCallStatus.FAILED if event.is_error else ToolCallStatus.RESOLVED
            record.message = None
        elif isinstance(event, (MessageEnd, ErrorEvent)):
            self.finish()

    def finish(self) -> None:
        """Mark the turn as ended; calls still pending become unresolved."""

        self._finished = True
        stuck = self.unresolved()
        if stuck:
            LOGGER.debug("Turn ended with %s unanswered tool call(s): %s", len(stuck), stuck)

    def status(self, tool_call_id: str) -> ToolCallStatus | None:
        record = self._records.get(tool_call_id)
        return record.status if record else None

    def records(self) -> List[ToolCallRecord]:
        return list(self._records.values())

    def in_progress(self) -> frozenset[str]:
        """Ids seen in ``tool-call`` but not yet in ``tool-result``; empty once the turn ended."""

        if self._finished:
            return frozenset()
        return frozenset(call_id for call_id, record in self._records.items() if record.status.pending)

    def pending_count(self) -> int:
        return len(self.in_progress())

    def unresolved(self) -> List[str]:
        """Calls left without a result once the turn has ended."""

        if not self._finished:
            return []
        return [call_id for call_id, record in self._records.items() if record.status.pending]

    def clear(self) -> None:
        self._records.clear()
        self._finished = False


__all__ = ["ToolCallRecord", "ToolCallStatus", "ToolCallTracker"]
