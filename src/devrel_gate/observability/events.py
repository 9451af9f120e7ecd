"""In-process security event bus.

Publishing appends to a bounded replay buffer, hands critical events to the
persistence hook, then fans out to subscribers. Callback failures are captured
as :class:`DispatchError` records and never propagate: an audit sink going
down must not change a gate's verdict.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import threading
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Final, NamedTuple

from devrel_gate.domain.events import EventSeverity, EventType, SecurityEvent

Subscriber = Callable[[SecurityEvent], object]
PersistenceCallback = Callable[[SecurityEvent], object]

_ERROR_HISTORY: Final[int] = 1024


@dataclass(frozen=True, slots=True)
class DispatchError:
    stage: str
    event_id: str
    target: str
    error_type: str
    message: str

    @classmethod
    def capture(
        cls, stage: str, event: SecurityEvent, target: object, exc: Exception
    ) -> DispatchError:
        name = getattr(target, "__name__", "") or type(target).__name__
        return cls(
            stage=stage,
            event_id=event.event_id,
            target=name,
            error_type=type(exc).__name__,
            message=str(exc),
        )


class _Delivery(NamedTuple):
    stage: str
    callback: Callable[[SecurityEvent], object]


async def _settle(awaitable: Awaitable[Any]) -> None:
    await awaitable


class EventBus:
    """Fan-out for gate decisions with replay and a critical-event persistence hook.

    Subscribers may be plain callables or coroutine functions. From synchronous
    code with no running loop, coroutine subscribers are run to completion;
    inside a loop they are scheduled and can be awaited with :meth:`drain_async`.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 512,
        persistence_callback: PersistenceCallback | None = None,
    ) -> None:
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size < 1:
            raise ValueError(f"buffer_size must be a positive integer, got {buffer_size!r}")
        self._lock = threading.RLock()
        self._history: deque[SecurityEvent] = deque(maxlen=buffer_size)
        self._errors: deque[DispatchError] = deque(maxlen=_ERROR_HISTORY)
        self._subscribers: dict[int, tuple[EventType | None, Subscriber]] = {}
        self._tokens = itertools.count(1)
        self._in_flight: set[asyncio.Task[None]] = set()
        self._persist: PersistenceCallback | None = None
        self.set_persistence_callback(persistence_callback)

    def set_persistence_callback(self, callback: PersistenceCallback | None) -> None:
        if callback is not None and not callable(callback):
            raise ValueError("persistence callback must be callable")
        with self._lock:
            self._persist = callback

    def subscribe(self, event_type: str | EventType | None, callback: Subscriber) -> int:
        """Register ``callback`` for one event type, or for everything when ``None``.

        Returns a token for :meth:`unsubscribe`.
        """
        if not callable(callback):
            raise ValueError("callback must be callable")
        wanted = EventType(event_type) if event_type is not None else None
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = (wanted, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    def _deliveries(self, event: SecurityEvent) -> list[_Delivery]:
        if not isinstance(event, SecurityEvent):
            raise ValueError(f"event must be SecurityEvent, got {type(event).__name__}")
        with self._lock:
            self._history.append(event)
            plan: list[_Delivery] = []
            if event.is_critical and self._persist is not None:
                plan.append(_Delivery("persistence", self._persist))
            plan.extend(
                _Delivery("subscriber", callback)
                for wanted, callback in self._subscribers.values()
                if wanted is None or wanted is event.event_type
            )
        return plan

    def _remember(self, errors: Iterable[DispatchError]) -> None:
        with self._lock:
            self._errors.extend(errors)

    def publish(self, event: SecurityEvent) -> tuple[DispatchError, ...]:
        """Deliver ``event`` synchronously; returns failures from this publish."""
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        failures: list[DispatchError] = []
        for delivery in self._deliveries(event):
            try:
                outcome = delivery.callback(event)
                if inspect.isawaitable(outcome):
                    if loop is None:
                        asyncio.run(_settle(outcome))
                    else:
                        self._schedule(loop, outcome, delivery, event)
            except Exception as exc:  # noqa: BLE001
                failures.append(
                    DispatchError.capture(delivery.stage, event, delivery.callback, exc)
                )
        self._remember(failures)
        return tuple(failures)

    async def publish_async(self, event: SecurityEvent) -> tuple[DispatchError, ...]:
        """Deliver ``event`` and await coroutine subscribers in order."""
        failures: list[DispatchError] = []
        for delivery in self._deliveries(event):
            try:
                outcome = delivery.callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:  # noqa: BLE001
                failures.append(
                    DispatchError.capture(delivery.stage, event, delivery.callback, exc)
                )
        self._remember(failures)
        return tuple(failures)

    def _schedule(
        self,
        loop: asyncio.AbstractEventLoop,
        outcome: Awaitable[Any],
        delivery: _Delivery,
        event: SecurityEvent,
    ) -> None:
        task = loop.create_task(_settle(outcome))
        with self._lock:
            self._in_flight.add(task)

        def _finished(done: asyncio.Task[None]) -> None:
            with self._lock:
                self._in_flight.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if isinstance(exc, Exception):
                error = DispatchError.capture(delivery.stage, event, delivery.callback, exc)
                self._remember([error])

        task.add_done_callback(_finished)

    async def drain_async(self) -> tuple[DispatchError, ...]:
        """Wait for subscriber tasks scheduled by :meth:`publish`; return all recorded errors."""
        with self._lock:
            pending = list(self._in_flight)
        if pending:
            await asyncio.wait(pending)
        return self.dispatch_errors()

    def replay(
        self,
        *,
        event_type: str | EventType | None = None,
        min_severity: EventSeverity | None = None,
        limit: int | None = None,
    ) -> tuple[SecurityEvent, ...]:
        """Buffered events in publish order; ``limit`` keeps the newest matches."""
        if limit is not None and limit <= 0:
            return ()
        wanted = EventType(event_type) if event_type is not None else None
        floor = min_severity.rank if min_severity is not None else 0
        with self._lock:
            matches = [
                event
                for event in self._history
                if (wanted is None or event.event_type is wanted) and event.severity.rank >= floor
            ]
        return tuple(matches[-limit:] if limit is not None else matches)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._errors)


__all__ = [
    "DispatchError",
    "EventBus",
    "PersistenceCallback",
    "Subscriber",
]
