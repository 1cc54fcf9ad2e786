"""Console error collection with de-duplication and debounce.

Editor log entries arrive one by one (often the same compiler error
several times). Only error-class severities are kept. Identical
(message, stack_trace) pairs collapse into one ErrorBatch whose
occurrence_count grows. The batch list is flushed onto the bus once no
new unique error has arrived for the debounce delay.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from codehero.config import Settings
from codehero.events import ERROR_BATCH_READY, Event, EventBus

logger = logging.getLogger(__name__)

RECENT_LOG_LIMIT = 10


class LogSeverity(StrEnum):
    LOG = "log"
    WARNING = "warning"
    ASSERT = "assert"
    ERROR = "error"
    EXCEPTION = "exception"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def is_error(self) -> bool:
        return self in (LogSeverity.ERROR, LogSeverity.EXCEPTION, LogSeverity.ASSERT)


class ErrorBatch(BaseModel):
    """One unique console error and how often it was seen."""

    message: str
    stack_trace: str | None = None
    severity: LogSeverity = LogSeverity.ERROR
    occurrence_count: int = Field(default=1, ge=1)
    first_seen: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[str, str]:
        return (self.message, self.stack_trace or "")


class ErrorCollector:
    """Collects console errors and emits error_batch_ready on the bus."""

    def __init__(self, bus: EventBus, settings: Settings) -> None:
        self._bus = bus
        self._debounce = settings.error_debounce_seconds
        self._recent_window = settings.recent_error_window
        self._pending: dict[tuple[str, str], ErrorBatch] = {}
        self._timer: asyncio.Task | None = None
        self._recent: deque[tuple[float, bool]] = deque(maxlen=RECENT_LOG_LIMIT)

    def record(self, message: str, stack_trace: str | None = None, severity: LogSeverity = LogSeverity.ERROR) -> bool:
        """Record one log entry. Returns True when it was routed to a batch."""
        self._recent.append((time.monotonic(), severity.is_error))
        if not severity.is_error:
            return False

        batch = ErrorBatch(message=message, stack_trace=stack_trace or None, severity=severity)
        existing = self._pending.get(batch.key)
        if existing is not None:
            existing.occurrence_count += 1
            logger.debug("Duplicate error (x%d): %.120s", existing.occurrence_count, message)
            return True

        self._pending[batch.key] = batch
        logger.info("Collected console error: %.200s", message)
        self._restart_timer()
        return True

    def _restart_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._flush_later(), name="error-debounce")

    async def _flush_later(self) -> None:
        try:
            await asyncio.sleep(self._debounce)
        except asyncio.CancelledError:
            return
        await self.flush()

    async def flush(self) -> list[ErrorBatch]:
        """Emit everything pending as one error_batch_ready event."""
        if not self._pending:
            return []
        batches = list(self._pending.values())
        self._pending.clear()
        logger.info(
            "Flushing %d unique error(s), %d total occurrence(s)",
            len(batches),
            sum(b.occurrence_count for b in batches),
        )
        await self._bus.emit(Event(type=ERROR_BATCH_READY, data={"batches": batches}))
        return batches

    @property
    def pending(self) -> list[ErrorBatch]:
        return list(self._pending.values())

    def has_recent_errors(self) -> bool:
        """Pending errors, or an error among the last logs within the window."""
        if self._pending:
            return True
        cutoff = time.monotonic() - self._recent_window
        return any(is_error and ts >= cutoff for ts, is_error in self._recent)

    def clear_recent(self) -> None:
        self._recent.clear()

    async def stop(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self._timer = None
