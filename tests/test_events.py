"""Unit tests for :mod:`agentstream.client.events`."""

from __future__ import annotations

import gc
from dataclasses import dataclass

from agentstream.client.events import AssistantTurnCompleted, Event, EventBus


@dataclass(slots=True)
class SampleEvent(Event):
    """A sample event for testing."""

    message: str
    value: int = 0


@dataclass(slots=True)
class AnotherEvent(Event):
    data: str


class TestEventBusSubscription:
    """Tests for EventBus subscription functionality."""

    def test_handlers_run_in_registration_order(self) -> None:
        bus: EventBus[Event] = EventBus()
        calls: list[str] = []
        bus.subscribe(SampleEvent, lambda event: calls.append(f"first:{event.message}"))
        bus.subscribe(SampleEvent, lambda event: calls.append(f"second:{event.message}"))

        bus.publish(SampleEvent(message="hi"))

        assert calls == ["first:hi", "second:hi"]

    def test_event_types_are_isolated(self) -> None:
        """Handlers only see the exact type they subscribed to."""
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []
        bus.subscribe(AnotherEvent, received.append)

        bus.publish(SampleEvent(message="ignored"))
        bus.publish(AnotherEvent(data="seen"))

        assert received == [AnotherEvent(data="seen")]

    def test_unsubscribe_removes_one_registration(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[SampleEvent] = []

        def handler(event: SampleEvent) -> None:
            received.append(event)

        bus.subscribe(SampleEvent, handler)
        bus.subscribe(SampleEvent, handler)
        bus.unsubscribe(SampleEvent, handler)
        bus.publish(SampleEvent(message="x"))

        assert len(received) == 1
        assert bus.handler_count(SampleEvent) == 1

    def test_unsubscribe_unknown_handler_is_ignored(self) -> None:
        bus: EventBus[Event] = EventBus()

        bus.unsubscribe(SampleEvent, lambda event: None)

        assert bus.handler_count() == 0


class TestEventBusPublishing:
    def test_raising_handler_does_not_block_others(self) -> None:
        """A failing handler is logged and later handlers still run."""
        bus: EventBus[Event] = EventBus()
        received: list[SampleEvent] = []

        def broken(event: SampleEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(SampleEvent, broken)
        bus.subscribe(SampleEvent, received.append)

        bus.publish(SampleEvent(message="still delivered"))

        assert [event.message for event in received] == ["still delivered"]

    def test_bound_method_handlers_are_weak(self) -> None:
        bus: EventBus[Event] = EventBus()

        class Listener:
            def __init__(self) -> None:
                self.count = 0

            def on_event(self, event: SampleEvent) -> None:
                self.count += 1

        listener = Listener()
        bus.subscribe(SampleEvent, listener.on_event)
        bus.publish(SampleEvent(message="a"))
        assert listener.count == 1

        del listener
        gc.collect()
        bus.publish(SampleEvent(message="b"))

        assert bus.handler_count(SampleEvent) == 0

    def test_clear_drops_everything(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.subscribe(SampleEvent, lambda event: None)
        bus.subscribe(AssistantTurnCompleted, lambda event: None)

        bus.clear()

        assert bus.handler_count() == 0
