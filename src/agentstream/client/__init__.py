"""Client side of the assistant stream: transport, reducer and session."""

from .cancellation import CancellationController
from .events import EventBus, SessionStateChanged
from .persistence import ConversationStore, HistoryAdoptionError
from .reducer import apply
from .result_router import ToolResultRouter
from .session import AssistantSession, SessionBusyError
from .state import AssistantSessionState
from .tool_tracker import ToolCallStatus, ToolCallTracker
from .transport import StreamTransport, TransportError

__all__ = [
    "AssistantSession",
    "AssistantSessionState",
    "CancellationController",
    "ConversationStore",
    "EventBus",
    "HistoryAdoptionError",
    "SessionBusyError",
    "SessionStateChanged",
    "StreamTransport",
    "ToolCallStatus",
    "ToolCallTracker",
    "ToolResultRouter",
    "TransportError",
    "apply",
]
