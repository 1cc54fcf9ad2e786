"""Editor signal bus.

The console collector and the compilation monitor publish here; the
error fix cycle subscribes. Neither side imports the other. Delivery is
in emit order, one event at a time, and every subscriber of an event
runs before the next event is taken off the queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    ERROR_BATCH_READY = "error_batch_ready"
    COMPILATION_STARTED = "compilation_started"
    COMPILATION_FINISHED = "compilation_finished"
    ERROR_FIX_COMPLETED = "error_fix_completed"


ERROR_BATCH_READY = EventType.ERROR_BATCH_READY
COMPILATION_STARTED = EventType.COMPILATION_STARTED
COMPILATION_FINISHED = EventType.COMPILATION_FINISHED
ERROR_FIX_COMPLETED = EventType.ERROR_FIX_COMPLETED


@dataclass
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[Event], Awaitable[None]]


class EventBus:
    """Bounded queue drained by a single dispatcher task."""

    def __init__(self, max_queue: int = 1000):
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._dispatcher: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._dispatcher is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def on(self, event_type: str, subscriber: Subscriber) -> None:
        self._subscribers[event_type].append(subscriber)
        logger.debug("Subscribed %s to %s", subscriber.__qualname__, event_type)

    async def emit(self, event: Event) -> None:
        """Enqueue without blocking. A full queue drops the event."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Signal queue full (%d), dropped %s", self._queue.maxsize, event.type)

    async def start(self) -> None:
        if self._dispatcher is not None:
            return
        self._dispatcher = asyncio.create_task(self._dispatch_forever(), name="signal-bus")
        logger.info("Signal bus started")

    async def stop(self) -> None:
        """Cancel the dispatcher, then deliver whatever is still queued."""
        if self._dispatcher is None:
            return
        self._dispatcher.cancel()
        try:
            await self._dispatcher
        except asyncio.CancelledError:
            pass
        self._dispatcher = None

        leftover = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            leftover += 1
            await self._deliver(event)
            self._queue.task_done()
        logger.info("Signal bus stopped (%d queued event(s) delivered on shutdown)", leftover)

    async def join(self) -> None:
        """Wait until every event emitted so far has been delivered."""
        await self._queue.join()

    async def _dispatch_forever(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: Event) -> None:
        subscribers = list(self._subscribers.get(event.type, ()))
        if not subscribers:
            logger.debug("No subscribers for %s", event.type)
            return
        outcomes = await asyncio.gather(*(s(event) for s in subscribers), return_exceptions=True)
        for subscriber, outcome in zip(subscribers, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(
                    "Subscriber %s failed on %s",
                    subscriber.__qualname__,
                    event.type,
                    exc_info=outcome,
                )
