"""The chat session: shared history, the busy gate and user sends.

Exactly one run may use the session at a time. A user send is refused
while the session is busy; the error fix cycle waits for the gate
instead and holds it for the whole cycle so its runs never interleave
with a user conversation.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from codehero.api.callbacks import StreamCallbacks
from codehero.api.cancel import CancelToken
from codehero.api.engine import ConversationEngine, EngineResult
from codehero.api.errors import SessionBusyError
from codehero.api.models import ConversationMessage

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    IDLE = "idle"
    BUSY = "busy"


class RunOwner(StrEnum):
    USER = "user"
    ERROR_FIX = "error_fix"


class ConversationSession:
    def __init__(self, engine: ConversationEngine) -> None:
        self.engine = engine
        self.history: list[ConversationMessage] = []
        self._owner: RunOwner | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._cancel = CancelToken()

    @property
    def state(self) -> SessionState:
        return SessionState.IDLE if self._owner is None else SessionState.BUSY

    @property
    def owner(self) -> RunOwner | None:
        return self._owner

    @property
    def busy(self) -> bool:
        return self._owner is not None

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    # ------------------------------------------------------------------
    # Busy gate
    # ------------------------------------------------------------------

    def try_acquire(self, owner: RunOwner) -> None:
        """Take the gate or raise SessionBusyError."""
        if self._owner is not None:
            logger.info("Session busy (%s), rejecting %s run", self._owner, owner)
            raise SessionBusyError(f"Session is busy ({self._owner})")
        self._take(owner)

    async def acquire(self, owner: RunOwner) -> None:
        """Wait until the session is idle, then take the gate."""
        while self._owner is not None:
            await self._idle.wait()
        self._take(owner)

    def release(self) -> None:
        if self._owner is None:
            return
        logger.debug("Session released by %s", self._owner)
        self._owner = None
        self._idle.set()

    def _take(self, owner: RunOwner) -> None:
        self._owner = owner
        self._idle.clear()
        self._cancel = CancelToken()
        logger.debug("Session acquired by %s", owner)

    def stop(self) -> bool:
        """Request cancellation of the active run. Returns False when idle."""
        if self._owner is None:
            return False
        logger.info("Stop requested for %s run", self._owner)
        self._cancel.cancel()
        return True

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def send(self, prompt: str, callbacks: StreamCallbacks | None = None) -> EngineResult:
        """Run one user turn against the shared history.

        Raises SessionBusyError when another run holds the session. When
        the run raises after tools have already executed, the prompt and
        the tool exchange so far are still recorded before re-raising, so
        the next turn knows what changed in the editor.
        """
        self.try_acquire(RunOwner.USER)
        try:
            working = list(self.history)
            try:
                result = await self.engine.run(working, prompt, callbacks=callbacks, cancel=self._cancel)
            except Exception:
                exchange = working[len(self.history):]
                if exchange:
                    logger.warning("Run failed after %d tool exchange message(s), keeping them", len(exchange))
                    self.record(prompt, EngineResult(text="", exchange=exchange))
                raise
            self.record(prompt, result)
            return result
        finally:
            self.release()

    def record(self, prompt: str, result: EngineResult) -> None:
        """Append a finished run to the history, keeping roles alternating."""
        if prompt:
            self._append(ConversationMessage.user_text(prompt))
        for message in result.exchange:
            self._append(message)
        if result.final_text:
            self._append(ConversationMessage.assistant_text(result.final_text))

    def _append(self, message: ConversationMessage) -> None:
        if self.history and self.history[-1].role == message.role:
            message = self.history.pop().merge(message)
        self.history.append(message)

    def clear(self) -> None:
        if self._owner is not None:
            raise SessionBusyError("Cannot clear history while a run is active")
        self.history.clear()
        logger.info("Conversation history cleared")
