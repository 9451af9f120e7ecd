"""
devrel-gate — unit tests for the security event bus

File: tests/unit/observability/test_event_bus.py

Purpose
- Validate subscription filtering, critical-event persistence ordering,
  failure isolation, replay filters, and async dispatch.
"""

from __future__ import annotations

import pytest

from devrel_gate.domain.events import EventSeverity, EventType, SecurityEvent
from devrel_gate.observability.events import EventBus


def _event(
    event_type: EventType = EventType.CONTEXT_ASSEMBLED,
    severity: EventSeverity = EventSeverity.INFO,
) -> SecurityEvent:
    return SecurityEvent(event_type=event_type, severity=severity)


def test_subscribers_receive_matching_events_only() -> None:
    bus = EventBus()
    typed: list[EventType] = []
    everything: list[EventType] = []
    bus.subscribe(EventType.CONTEXT_ACCESS_DENIED, lambda event: typed.append(event.event_type))
    bus.subscribe(None, lambda event: everything.append(event.event_type))

    bus.publish(_event(EventType.CONTEXT_ASSEMBLED))
    bus.publish(_event(EventType.CONTEXT_ACCESS_DENIED, EventSeverity.WARNING))

    assert typed == [EventType.CONTEXT_ACCESS_DENIED]
    assert everything == [EventType.CONTEXT_ASSEMBLED, EventType.CONTEXT_ACCESS_DENIED]


def test_critical_events_are_persisted_before_subscribers_run() -> None:
    order: list[str] = []
    bus = EventBus(persistence_callback=lambda event: order.append("persist"))
    bus.subscribe(None, lambda event: order.append("subscriber"))

    bus.publish(_event(EventType.SECRET_DETECTION_BLOCKED, EventSeverity.CRITICAL))
    bus.publish(_event(EventType.CONTEXT_ASSEMBLED, EventSeverity.INFO))

    assert order == ["persist", "subscriber", "subscriber"]


def test_failing_subscriber_is_recorded_and_isolated() -> None:
    bus = EventBus()
    received: list[str] = []

    def broken(event: SecurityEvent) -> None:
        raise RuntimeError("sink offline")

    bus.subscribe(None, broken)
    bus.subscribe(None, lambda event: received.append(event.event_id))
    event = _event()

    errors = bus.publish(event)

    assert received == [event.event_id]
    assert len(errors) == 1
    assert errors[0].stage == "subscriber"
    assert errors[0].target == "broken"
    assert errors[0].error_type == "RuntimeError"
    assert bus.dispatch_errors() == errors


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list[SecurityEvent] = []
    token = bus.subscribe(None, received.append)

    assert bus.unsubscribe(token)
    assert not bus.unsubscribe(token)
    bus.publish(_event())
    assert received == []


def test_replay_filters_by_type_severity_and_limit() -> None:
    bus = EventBus(buffer_size=3)
    events = [
        _event(EventType.CONTEXT_ASSEMBLED, EventSeverity.INFO),
        _event(EventType.CONTEXT_ACCESS_DENIED, EventSeverity.WARNING),
        _event(EventType.DISTRIBUTION_BLOCKED, EventSeverity.CRITICAL),
        _event(EventType.CONTEXT_ACCESS_DENIED, EventSeverity.WARNING),
    ]
    for event in events:
        bus.publish(event)

    assert bus.replay() == tuple(events[1:])
    assert bus.replay(event_type=EventType.CONTEXT_ACCESS_DENIED) == (events[1], events[3])
    assert bus.replay(min_severity=EventSeverity.CRITICAL) == (events[2],)
    assert bus.replay(limit=1) == (events[3],)
    assert bus.replay(limit=0) == ()


def test_bus_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError, match="buffer_size"):
        EventBus(buffer_size=0)
    with pytest.raises(ValueError, match="callable"):
        EventBus().subscribe(None, "not callable")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_publish_async_awaits_coroutine_subscribers() -> None:
    bus = EventBus()
    received: list[str] = []

    async def sink(event: SecurityEvent) -> None:
        received.append(event.event_id)

    bus.subscribe(None, sink)
    event = _event()

    errors = await bus.publish_async(event)

    assert errors == ()
    assert received == [event.event_id]


@pytest.mark.asyncio
async def test_sync_publish_inside_loop_schedules_async_subscribers() -> None:
    bus = EventBus()
    received: list[str] = []

    async def sink(event: SecurityEvent) -> None:
        received.append(event.event_id)

    async def broken(event: SecurityEvent) -> None:
        raise ValueError("async sink failed")

    bus.subscribe(None, sink)
    bus.subscribe(None, broken)
    event = _event()

    bus.publish(event)
    errors = await bus.drain_async()

    assert received == [event.event_id]
    assert [error.error_type for error in errors] == ["ValueError"]
