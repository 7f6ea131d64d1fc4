"""Client session: sends user turns and folds the stream into state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

from ..chat.message_model import FileAttachmentPart, Turn
from ..protocol.events import (
    TERMINAL_EVENT_TYPES,
    Done,
    ErrorEvent,
    MessageEnd,
    StreamEvent,
    ToolResultEvent,
)
from . import reducer
from .cancellation import CancellationController
from .events import (
    AssistantTurnCanceled,
    AssistantTurnCompleted,
    AssistantTurnFailed,
    AssistantTurnStarted,
    ConversationCleared,
    ConversationLoaded,
    ConversationSaved,
    EventBus,
    SessionStateChanged,
)
from .persistence import ConversationStore, HistoryAdoptionError
from .result_router import ToolResultRouter
from .state import AssistantSessionState
from .tool_tracker import ToolCallTracker
from .transport import StreamTransport, TransportError

LOGGER = logging.getLogger(__name__)

INCOMPLETE_STREAM_MESSAGE = "Connection closed before the assistant finished responding"


class SessionBusyError(RuntimeError):
    """Raised when a request is started while another is still loading."""


def current_date_time_context(now: datetime | None = None) -> Dict[str, str]:
    """Describe the local clock the way the server expects ``dateTimeContext``."""

    moment = (now or datetime.now()).astimezone()
    current_date = moment.strftime("%A, %B %d, %Y")
    current_time = moment.strftime("%I:%M %p")
    zone = moment.tzname() or "UTC"
    return {
        "currentDate": current_date,
        "currentTime": current_time,
        "timezone": zone,
        "isoString": moment.isoformat(),
        "formatted": f"{current_date} at {current_time} ({zone})",
    }


class AssistantSession:
    """Own one conversation's :class:`AssistantSessionState`.

    All state changes go through :mod:`.reducer`; each one is published as
    :class:`SessionStateChanged` on :attr:`bus`. Only one request may be in
    flight; :meth:`send` and :meth:`retry` raise :class:`SessionBusyError`
    otherwise.
    """

    def __init__(
        self,
        transport: StreamTransport,
        *,
        store: ConversationStore | None = None,
        bus: EventBus | None = None,
        router: ToolResultRouter | None = None,
        tool_preferences: Mapping[str, bool] | None = None,
        max_steps: int | None = None,
        thread_id: str | None = None,
        include_date_time: bool = True,
    ) -> None:
        self._transport = transport
        self._store = store
        self._bus = bus or EventBus()
        self._router = router or ToolResultRouter()
        self._tool_preferences = dict(tool_preferences or {})
        self._max_steps = max_steps
        self._include_date_time = include_date_time
        self._state = reducer.reset(thread_id)
        self._tracker = ToolCallTracker()
        self._cancellation: CancellationController | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> AssistantSessionState:
        return self._state

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def router(self) -> ToolResultRouter:
        return self._router

    @property
    def tracker(self) -> ToolCallTracker:
        return self._tracker

    @property
    def thread_id(self) -> str:
        return self._state.thread_id

    @property
    def is_busy(self) -> bool:
        return self._state.is_loading or self._cancellation is not None

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    async def send(
        self,
        text: str,
        *,
        attachments: Sequence[FileAttachmentPart] = (),
        document_context: str | None = None,
    ) -> AssistantSessionState:
        """Send a new user turn and consume the response stream.

        Returns the state once the stream ends, fails or is aborted.
        """

        if self.is_busy:
            raise SessionBusyError("A request is already in progress")
        user_turn = Turn.user(text, attachments)
        if user_turn.is_empty():
            raise ValueError("Cannot send an empty message")
        return await self._run(user_turn, document_context=document_context)

    async def retry(self, *, document_context: str | None = None) -> AssistantSessionState:
        """Re-send the last user turn against the history that preceded it."""

        if self.is_busy:
            raise SessionBusyError("A request is already in progress")
        trimmed, user_turn = reducer.prepare_retry(self._state)
        self._set_state(trimmed, "retry")
        return await self._run(user_turn, document_context=document_context)

    def stop(self) -> bool:
        """Abort the in-flight request; returns ``False`` when there is none or it was already aborted."""

        controller = self._cancellation
        if controller is None:
            return False
        return controller.abort()

    def clear(self) -> None:
        self.stop()
        previous = self._state.thread_id
        self._tracker.clear()
        self._set_state(reducer.reset(), "clear")
        self._bus.publish(ConversationCleared(thread_id=previous))

    def replace_history(self, turns: Sequence[Turn], *, thread_id: str | None = None) -> AssistantSessionState:
        """Adopt ``turns`` as the committed history.

        This is the only way to swap history wholesale. Any in-flight request
        is aborted first and the session always ends idle. Raises
        :class:`HistoryAdoptionError` when ``turns`` are not turns.
        """

        invalid = [index for index, turn in enumerate(turns) if not isinstance(turn, Turn)]
        if invalid:
            raise HistoryAdoptionError(f"History entries {invalid} are not turns")
        self.stop()
        self._tracker.clear()
        self._set_state(reducer.load(turns, thread_id=thread_id or self._state.thread_id), "load")
        return self._state

    def load(self, thread_id: str) -> AssistantSessionState:
        saved = self._require_store().load(thread_id)
        state = self.replace_history(saved.messages, thread_id=saved.thread_id)
        self._bus.publish(ConversationLoaded(thread_id=saved.thread_id, message_count=len(saved.messages)))
        return state

    def save(self, *, metadata: Mapping[str, Any] | None = None, title: str | None = None) -> Path:
        path = self._require_store().save(self._state, metadata=metadata, title=title)
        self._bus.publish(ConversationSaved(thread_id=self._state.thread_id, path=str(path)))
        return path

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------
    async def _run(self, user_turn: Turn, *, document_context: str | None) -> AssistantSessionState:
        self._set_state(reducer.begin_send(self._state, user_turn), "send")
        self._tracker.clear()
        self._bus.publish(AssistantTurnStarted(thread_id=self._state.thread_id, prompt=user_turn.text))
        payload = self._build_payload(document_context=document_context)

        controller = CancellationController()
        controller.on_abort(self._on_abort)
        self._cancellation = controller
        task = asyncio.create_task(self._consume(payload, controller))
        controller.attach(task)
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                controller.abort()
                raise
            if not controller.aborted:
                raise
        finally:
            self._cancellation = None
        return self._state

    async def _consume(self, payload: Mapping[str, Any], controller: CancellationController) -> None:
        saw_terminal = False
        try:
            async for event in self._transport.stream(payload, cancellation=controller):
                if controller.aborted:
                    return
                self._handle_event(event)
                if event.type in TERMINAL_EVENT_TYPES:
                    saw_terminal = True
                if isinstance(event, Done):
                    break
        except TransportError as exc:
            if controller.aborted:
                return
            self._fail(str(exc))
            return
        if not saw_terminal and not controller.aborted:
            LOGGER.warning("Stream for thread %s ended without a terminal event", self._state.thread_id)
            self._fail(INCOMPLETE_STREAM_MESSAGE)

    def _handle_event(self, event: StreamEvent) -> None:
        self._tracker.apply(event)
        self._set_state(reducer.apply(self._state, event), event.type)
        if isinstance(event, ToolResultEvent):
            self._router.dispatch(event)
        elif isinstance(event, MessageEnd):
            self._bus.publish(AssistantTurnCompleted(thread_id=self._state.thread_id, reason=event.reason))
        elif isinstance(event, ErrorEvent):
            LOGGER.warning("Assistant request failed: %s", event.error)
            self._bus.publish(AssistantTurnFailed(thread_id=self._state.thread_id, error=event.error))

    def _fail(self, message: str) -> None:
        self._tracker.apply(ErrorEvent(error=message))
        self._set_state(reducer.fail_transport(self._state, message), "transport-error")
        self._bus.publish(AssistantTurnFailed(thread_id=self._state.thread_id, error=message))

    def _on_abort(self) -> None:
        self._tracker.finish()
        self._set_state(reducer.abort(self._state), "abort")
        self._bus.publish(AssistantTurnCanceled(thread_id=self._state.thread_id))

    def _build_payload(self, *, document_context: str | None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messages": [turn.to_dict() for turn in self._state.messages],
            "threadId": self._state.thread_id,
            "toolPreferences": dict(self._tool_preferences),
        }
        if self._max_steps is not None:
            payload["maxSteps"] = self._max_steps
        if document_context:
            payload["documentContext"] = document_context
        if self._include_date_time:
            payload["dateTimeContext"] = current_date_time_context()
        return payload

    def _set_state(self, state: AssistantSessionState, cause: str) -> None:
        self._state = state
        self._bus.publish(SessionStateChanged(state=state, cause=cause))

    def _require_store(self) -> ConversationStore:
        if self._store is None:
            raise RuntimeError("This session has no conversation store")
        return self._store


__all__ = [
    "AssistantSession",
    "INCOMPLETE_STREAM_MESSAGE",
    "SessionBusyError",
    "current_date_time_context",
]
