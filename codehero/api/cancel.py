"""Cooperative cancellation shared by the decoder, engine and tool loop."""

from __future__ import annotations

import asyncio

from codehero.api.errors import StreamCancelled


class CancelToken:
    """A flag checked at every stream line and tool boundary.

    Setting it never interrupts an awaited call: the next check point
    raises StreamCancelled (or, in the tool loop, skips what remains).
    Long waits that have no check points race against wait() instead.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled("Streaming stopped by user")
