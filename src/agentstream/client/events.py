"""Session notifications and the event bus that delivers them.

Consumers subscribe to these events instead of polling the session for
changes; every state transition the session performs publishes one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Generic, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from .state import AssistantSessionState

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for session events."""

    # Published on every stream event; kept out of debug logs.
    quiet: ClassVar[bool] = False


@dataclass(slots=True)
class SessionStateChanged(Event):
    """Emitted after every state transition.

    Attributes:
        state: The new session state.
        cause: The stream event type or user action that produced it.
    """

    quiet: ClassVar[bool] = True

    state: "AssistantSessionState"
    cause: str


@dataclass(slots=True)
class AssistantTurnStarted(Event):
    thread_id: str
    prompt: str


@dataclass(slots=True)
class AssistantTurnCompleted(Event):
    """Emitted when a request ends with ``message-end``.

    Attributes:
        thread_id: Conversation the turn belongs to.
        reason: ``stop``, ``max-steps`` or ``cancelled``.
    """

    thread_id: str
    reason: str


@dataclass(slots=True)
class AssistantTurnFailed(Event):
    thread_id: str
    error: str


@dataclass(slots=True)
class AssistantTurnCanceled(Event):
    thread_id: str


@dataclass(slots=True)
class ConversationSaved(Event):
    thread_id: str
    path: str


@dataclass(slots=True)
class ConversationLoaded(Event):
    thread_id: str
    message_count: int


@dataclass(slots=True)
class ConversationCleared(Event):
    thread_id: str


class _Subscription:
    """A registered handler.

    Bound methods are held through :class:`WeakMethod` so a listener object
    can be collected without unsubscribing first.
    """

    __slots__ = ("_target", "_weak")

    def __init__(self, handler: Handler) -> None:
        self._weak = False
        self._target: Any = handler
        if getattr(handler, "__self__", None) is not None and hasattr(handler, "__func__"):
            try:
                self._target = WeakMethod(handler)
                self._weak = True
            except TypeError:
                self._target = handler

    @property
    def handler(self) -> Handler | None:
        return self._target() if self._weak else self._target

    @property
    def alive(self) -> bool:
        return self.handler is not None


class EventBus(Generic[E]):
    """Synchronous publish-subscribe keyed on the exact event class.

    Example::

        bus = EventBus()
        bus.subscribe(AssistantTurnCompleted, lambda event: print(event.reason))
        bus.publish(AssistantTurnCompleted(thread_id="t1", reason="stop"))

    Publish only from the event loop that owns the session.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: dict[type[Event], list[_Subscription]] = {}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler``; subscribing twice means it runs twice."""
        self._subscriptions.setdefault(event_type, []).append(_Subscription(handler))
        logger.debug("%s subscribed to %s", _describe(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        subscriptions = self._subscriptions.get(event_type, [])
        for index, subscription in enumerate(subscriptions):
            if subscription.handler == handler:
                del subscriptions[index]
                logger.debug("%s unsubscribed from %s", _describe(handler), event_type.__name__)
                return

    def publish(self, event: E) -> None:
        """Deliver ``event`` to its handlers in subscription order.

        A handler that raises is logged and does not stop delivery to the rest.
        """
        event_type = type(event)
        subscriptions = self._subscriptions.get(event_type)
        if not event.quiet:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(subscriptions or ()))
        if not subscriptions:
            return

        for subscription in list(subscriptions):
            handler = subscription.handler
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("%s failed while handling %s", _describe(handler), event_type.__name__)

        subscriptions[:] = [subscription for subscription in subscriptions if subscription.alive]

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is None:
            return sum(len(subscriptions) for subscriptions in self._subscriptions.values())
        return len(self._subscriptions.get(event_type, ()))


def _describe(handler: Handler) -> str:
    owner = getattr(handler, "__self__", None)
    if owner is not None:
        return f"{type(owner).__name__}.{getattr(handler, '__name__', '?')}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "AssistantTurnCanceled",
    "AssistantTurnCompleted",
    "AssistantTurnFailed",
    "AssistantTurnStarted",
    "ConversationCleared",
    "ConversationLoaded",
    "ConversationSaved",
    "Event",
    "EventBus",
    "Handler",
    "SessionStateChanged",
]
