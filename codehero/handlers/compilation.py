"""Compilation oracle fed by editor signals.

The editor reports compilation_started / compilation_finished; waiters
block on an asyncio.Condition keyed by generation counters, so a waiter
that snapshots the counters before triggering a change can never miss
the signal, and nothing polls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from codehero.events import COMPILATION_FINISHED, COMPILATION_STARTED, Event, EventBus
from codehero.handlers.error_collector import ErrorCollector

logger = logging.getLogger(__name__)


class CompilationOutcome(StrEnum):
    FINISHED = "finished"
    NOT_STARTED = "not_started"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class CompilationMark:
    started: int
    finished: int


class CompilationOracle(Protocol):
    def is_compiling(self) -> bool: ...

    def has_recent_errors(self) -> bool: ...

    def mark(self) -> CompilationMark: ...

    async def wait_for_compilation(
        self, since: CompilationMark, start_timeout: float, finish_timeout: float
    ) -> CompilationOutcome: ...


class CompilationMonitor:
    def __init__(self, collector: ErrorCollector | None = None, bus: EventBus | None = None) -> None:
        self._collector = collector
        self._bus = bus
        self._cond = asyncio.Condition()
        self._compiling = False
        self._started = 0
        self._finished = 0
        self._last_has_errors: bool | None = None

    def is_compiling(self) -> bool:
        return self._compiling

    @property
    def generation(self) -> int:
        return self._finished

    def mark(self) -> CompilationMark:
        return CompilationMark(self._started, self._finished)

    def has_recent_errors(self) -> bool:
        """Errors reported by the last compilation, else recent console errors."""
        if self._last_has_errors is not None:
            return self._last_has_errors or self._collector_has_errors()
        return self._collector_has_errors()

    def _collector_has_errors(self) -> bool:
        return self._collector is not None and self._collector.has_recent_errors()

    async def compilation_started(self) -> None:
        async with self._cond:
            self._compiling = True
            self._started += 1
            self._last_has_errors = None
            self._cond.notify_all()
        if self._collector is not None:
            self._collector.clear_recent()
        logger.info("Compilation started (#%d)", self._started)
        if self._bus is not None:
            await self._bus.emit(Event(type=COMPILATION_STARTED, data={"generation": self._started}))

    async def compilation_finished(self, has_errors: bool | None = None) -> None:
        async with self._cond:
            self._compiling = False
            self._finished += 1
            # a finish without a reported start still counts as one compilation
            self._started = max(self._started, self._finished)
            self._last_has_errors = has_errors
            self._cond.notify_all()
        logger.info("Compilation finished (#%d, errors=%s)", self._finished, has_errors)
        if self._bus is not None:
            await self._bus.emit(
                Event(type=COMPILATION_FINISHED, data={"generation": self._finished, "has_errors": has_errors})
            )

    async def wait_for_compilation(
        self,
        since: CompilationMark,
        start_timeout: float,
        finish_timeout: float,
    ) -> CompilationOutcome:
        """Wait for a compilation that started after ``since`` to finish."""
        async with self._cond:
            try:
                await asyncio.wait_for(
                    self._cond.wait_for(lambda: self._started > since.started),
                    timeout=start_timeout,
                )
            except asyncio.TimeoutError:
                logger.info("No compilation started within %.1fs", start_timeout)
                return CompilationOutcome.NOT_STARTED

            try:
                await asyncio.wait_for(
                    self._cond.wait_for(lambda: self._finished > since.finished and not self._compiling),
                    timeout=finish_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Compilation did not finish within %.1fs", finish_timeout)
                return CompilationOutcome.TIMED_OUT
        return CompilationOutcome.FINISHED
