"""In-process publish/subscribe for ``CompetencyEvent`` with a bounded history.

Subscriber failures never reach the publisher. They are returned from
``publish`` and kept in ``failures()``.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import threading
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from competency_engine.domain.events import CompetencyEvent, EventType

Subscriber = Callable[[CompetencyEvent], object]


@dataclass(frozen=True, slots=True)
class SubscriberFailure:
    event_id: str
    target: str
    error_type: str
    message: str

    @classmethod
    def of(cls, event: CompetencyEvent, callback: Subscriber, exc: BaseException) -> SubscriberFailure:
        target = getattr(callback, "__name__", None) or type(callback).__name__
        return cls(event.event_id, target, type(exc).__name__, str(exc))


class EventBus:
    def __init__(self, *, buffer_size: int = 512) -> None:
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size <= 0:
            raise ValueError(f"buffer_size must be a positive integer, got {buffer_size!r}")
        self._history: deque[CompetencyEvent] = deque(maxlen=buffer_size)
        self._failures: deque[SubscriberFailure] = deque(maxlen=buffer_size)
        self._subscribers: dict[int, tuple[EventType | None, Subscriber]] = {}
        self._tokens = itertools.count(1)
        self._background: set[asyncio.Task[SubscriberFailure | None]] = set()
        self._late: list[SubscriberFailure] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: str | EventType | None, callback: Subscriber) -> int:
        """Register ``callback`` for one event type, or every event when ``None``."""
        if not callable(callback):
            raise ValueError("subscriber must be callable")
        wanted = None if event_type is None else EventType(event_type)
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = (wanted, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    def publish(self, event: CompetencyEvent) -> tuple[SubscriberFailure, ...]:
        """Deliver from sync code.

        Coroutine subscribers run to completion when no loop is running;
        inside a loop they are scheduled and ``drain_async`` awaits them.
        """
        failures: list[SubscriberFailure] = []
        for callback in self._record(event):
            try:
                result = callback(event)
                if not inspect.isawaitable(result):
                    continue
                settle = self._settle(result, event, callback)
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    failure = asyncio.run(settle)
                    if failure is not None:
                        failures.append(failure)
                    continue
                task = loop.create_task(settle)
                with self._lock:
                    self._background.add(task)
                task.add_done_callback(self._on_settled)
            except Exception as exc:  # noqa: BLE001
                failures.append(SubscriberFailure.of(event, callback, exc))
        return self._keep(failures)

    async def publish_async(self, event: CompetencyEvent) -> tuple[SubscriberFailure, ...]:
        failures: list[SubscriberFailure] = []
        for callback in self._record(event):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                failures.append(SubscriberFailure.of(event, callback, exc))
        return self._keep(failures)

    def emit(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object] | None = None,
        *,
        form_id: str | None = None,
    ) -> CompetencyEvent:
        event = CompetencyEvent(EventType(event_type), form_id=form_id, payload=dict(payload or {}))
        self.publish(event)
        return event

    async def emit_async(
        self,
        event_type: str | EventType,
        payload: Mapping[str, object] | None = None,
        *,
        form_id: str | None = None,
    ) -> CompetencyEvent:
        event = CompetencyEvent(EventType(event_type), form_id=form_id, payload=dict(payload or {}))
        await self.publish_async(event)
        return event

    async def drain_async(self) -> tuple[SubscriberFailure, ...]:
        """Wait for subscribers scheduled by ``publish``; returns their failures."""
        with self._lock:
            pending = tuple(self._background)
        await asyncio.gather(*pending)
        # Done callbacks of the drained tasks run before this resumes.
        with self._lock:
            late, self._late = self._late, []
        return self._keep(late)

    def history(
        self,
        *,
        event_type: str | EventType | None = None,
        form_id: str | None = None,
        limit: int | None = None,
    ) -> tuple[CompetencyEvent, ...]:
        """Recorded events, oldest first; ``limit`` keeps the newest ones."""
        wanted = None if event_type is None else EventType(event_type)
        with self._lock:
            events = [
                event
                for event in self._history
                if (wanted is None or event.event_type is wanted)
                and (form_id is None or event.form_id == form_id)
            ]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return tuple(events)

    def failures(self) -> tuple[SubscriberFailure, ...]:
        with self._lock:
            return tuple(self._failures)

    def _record(self, event: CompetencyEvent) -> list[Subscriber]:
        with self._lock:
            self._history.append(event)
            return [
                callback
                for wanted, callback in self._subscribers.values()
                if wanted is None or wanted is event.event_type
            ]

    def _keep(self, failures: list[SubscriberFailure]) -> tuple[SubscriberFailure, ...]:
        if failures:
            with self._lock:
                self._failures.extend(failures)
        return tuple(failures)

    async def _settle(
        self, awaitable: Awaitable[object], event: CompetencyEvent, callback: Subscriber
    ) -> SubscriberFailure | None:
        try:
            await awaitable
        except Exception as exc:  # noqa: BLE001
            return SubscriberFailure.of(event, callback, exc)
        return None

    def _on_settled(self, task: asyncio.Task[SubscriberFailure | None]) -> None:
        with self._lock:
            self._background.discard(task)
            failure = None if task.cancelled() else task.result()
            if failure is not None:
                self._late.append(failure)


__all__ = ["EventBus", "Subscriber", "SubscriberFailure"]
