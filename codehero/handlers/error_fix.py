"""Compiler-error driven fix cycle.

Listens for error_batch_ready, queues batches FIFO and processes them one
at a time on a worker task. A cycle holds the session gate from its first
request until the outcome is known, so it never interleaves with a user
conversation:

  ANALYZING -> WAITING_FOR_COMPILATION -> success | retry | give up

Each attempt sends the same structured report in a fresh history, then
waits for the editor to recompile and asks the compilation oracle whether
errors remain.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from codehero.api.callbacks import StreamCallbacks
from codehero.api.errors import ConversationError
from codehero.api.session import ConversationSession, RunOwner
from codehero.config import Settings
from codehero.events import ERROR_BATCH_READY, ERROR_FIX_COMPLETED, Event, EventBus
from codehero.handlers.compilation import CompilationMark, CompilationOracle, CompilationOutcome
from codehero.handlers.error_collector import ErrorBatch
from codehero.prompts import (
    EMPTY_RESPONSE_MESSAGE,
    NO_COMPILATION_MESSAGE,
    RETRY_MESSAGE,
    STOPPED_MESSAGE,
    build_error_report,
    extract_fix_summary,
    max_attempts_message,
    success_message,
    summarize_errors,
)

logger = logging.getLogger(__name__)


class FixCycleState(StrEnum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    WAITING_FOR_COMPILATION = "waiting_for_compilation"


class FixOutcome(StrEnum):
    SUCCESS = "success"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    NO_COMPILATION = "no_compilation"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class FixCycleResult:
    outcome: FixOutcome
    attempts: int
    batches: list[ErrorBatch]
    message: str
    fix_summary: list[str] = field(default_factory=list)
    error: str | None = None


class ErrorFixCycle:
    def __init__(
        self,
        session: ConversationSession,
        oracle: CompilationOracle,
        bus: EventBus,
        settings: Settings,
        callbacks: StreamCallbacks | None = None,
        on_message: Callable[[str], None] | None = None,
        on_complete: Callable[[FixCycleResult], None] | None = None,
    ) -> None:
        self._session = session
        self._oracle = oracle
        self._bus = bus
        self._settings = settings
        self._callbacks = callbacks or StreamCallbacks()
        self._on_message = on_message
        self._on_complete = on_complete
        self._queue: asyncio.Queue[list[ErrorBatch]] = asyncio.Queue()
        self._state = FixCycleState.IDLE
        self._active = False
        self._current_keys: set[tuple[str, str]] = set()
        self._worker: asyncio.Task | None = None
        self.last_result: FixCycleResult | None = None

        bus.on(ERROR_BATCH_READY, self.on_error_batch)

    @property
    def state(self) -> FixCycleState:
        return self._state

    @property
    def active(self) -> bool:
        return self._active

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._worker_loop(), name="error-fix-cycle")
        logger.info("Error fix cycle started (max %d attempts)", self._settings.max_fix_attempts)

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        logger.info("Error fix cycle stopped")

    async def on_error_batch(self, event: Event) -> None:
        """Bus handler for error_batch_ready."""
        batches: list[ErrorBatch] = list(event.data.get("batches", []))
        if not batches:
            return
        if not self._settings.auto_fix_enabled:
            logger.info("Auto-fix disabled, ignoring %d error(s)", len(batches))
            return
        if self._active:
            # errors the running cycle is already fixing are judged by its own recompilation
            fresh = [b for b in batches if b.key not in self._current_keys]
            if not fresh:
                logger.info("Fix cycle in progress, %d error(s) already being fixed", len(batches))
                return
            if len(fresh) < len(batches):
                logger.info("Fix cycle in progress, queueing %d of %d error(s)", len(fresh), len(batches))
            batches = fresh
        self.submit(batches)

    def submit(self, batches: list[ErrorBatch]) -> None:
        self._notify(summarize_errors(batches))
        self._queue.put_nowait(batches)
        logger.info("Queued error batch (%d unique, %d queued)", len(batches), self._queue.qsize())

    async def _worker_loop(self) -> None:
        while True:
            batches = await self._queue.get()
            try:
                await self.run_cycle(batches)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error fix cycle crashed")
            finally:
                self._queue.task_done()

    async def run_cycle(self, batches: list[ErrorBatch]) -> FixCycleResult:
        """Run up to max_fix_attempts attempts for one batch list."""
        await self._session.acquire(RunOwner.ERROR_FIX)
        self._active = True
        self._current_keys = {b.key for b in batches}
        try:
            result = await self._attempt_fixes(batches)
        finally:
            self._session.release()
            self._state = FixCycleState.IDLE
            self._active = False
            self._current_keys = set()

        self.last_result = result
        logger.info("Error fix cycle finished: %s after %d attempt(s)", result.outcome, result.attempts)
        self._notify(result.message)
        if self._on_complete is not None:
            self._on_complete(result)
        await self._bus.emit(
            Event(
                type=ERROR_FIX_COMPLETED,
                data={"outcome": str(result.outcome), "attempts": result.attempts, "result": result},
            )
        )
        return result

    async def _attempt_fixes(self, batches: list[ErrorBatch]) -> FixCycleResult:
        max_attempts = self._settings.max_fix_attempts
        report = build_error_report(batches)
        summary: list[str] = []
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            self._state = FixCycleState.ANALYZING
            logger.info("Fix attempt %d/%d", attempt, max_attempts)
            mark = self._oracle.mark()

            try:
                result = await self._session.engine.run(
                    [], report, callbacks=self._callbacks, cancel=self._session.cancel_token
                )
            except ConversationError as e:
                logger.error("Fix attempt %d failed: %s", attempt, e)
                return FixCycleResult(
                    FixOutcome.FAILED, attempt, batches, f"❌ Error fix failed: {e}", summary, error=str(e)
                )

            if result.cancelled:
                return FixCycleResult(FixOutcome.CANCELLED, attempt, batches, STOPPED_MESSAGE, summary)
            if not result.text.strip() and not result.exchange:
                return FixCycleResult(FixOutcome.FAILED, attempt, batches, EMPTY_RESPONSE_MESSAGE, summary)

            for line in extract_fix_summary(result.text):
                if line not in summary:
                    summary.append(line)

            self._state = FixCycleState.WAITING_FOR_COMPILATION
            outcome = await self._wait_for_compilation(mark)
            if outcome is None:
                return FixCycleResult(FixOutcome.CANCELLED, attempt, batches, STOPPED_MESSAGE, summary)
            if outcome != CompilationOutcome.FINISHED:
                return FixCycleResult(FixOutcome.NO_COMPILATION, attempt, batches, NO_COMPILATION_MESSAGE, summary)

            if not self._oracle.has_recent_errors():
                return FixCycleResult(FixOutcome.SUCCESS, attempt, batches, success_message(summary), summary)

            if attempt < max_attempts:
                self._notify(RETRY_MESSAGE)

        return FixCycleResult(
            FixOutcome.MAX_ATTEMPTS_REACHED, attempt, batches, max_attempts_message(attempt), summary
        )

    async def _wait_for_compilation(self, mark: CompilationMark) -> CompilationOutcome | None:
        """Wait for the editor to recompile; None when the user stops the cycle."""
        cancel = self._session.cancel_token
        if cancel.cancelled:
            return None
        waiter = asyncio.create_task(
            self._oracle.wait_for_compilation(
                mark,
                self._settings.compilation_grace_seconds,
                self._settings.compilation_timeout_seconds,
            )
        )
        stopper = asyncio.create_task(cancel.wait())
        done: set[asyncio.Task] = set()
        try:
            done, _ = await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (waiter, stopper):
                if not task.done():
                    task.cancel()
            await asyncio.gather(waiter, stopper, return_exceptions=True)
        if waiter in done:
            return waiter.result()
        logger.info("Compilation wait stopped by user")
        return None

    def _notify(self, message: str) -> None:
        logger.debug("Fix cycle message: %s", message)
        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                logger.exception("Fix cycle message callback failed")
