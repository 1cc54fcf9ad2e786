"""Chat feed for the background error fix cycle.

The fix cycle has no request to stream into, so everything it would show
in the chat window (streamed text, tool progress, status notices, cycle
messages and the final outcome) is appended here as sequenced items. The
editor polls GET /fix/messages?after=<seq> and renders what is new.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any

from codehero.api.callbacks import StatusNotice, StreamCallbacks, ToolPhase, format_notice, format_tool_phase
from codehero.events import COMPILATION_FINISHED, COMPILATION_STARTED, ERROR_FIX_COMPLETED, Event, EventBus

logger = logging.getLogger(__name__)


class FixCycleFeed:
    def __init__(self, bus: EventBus | None = None, max_items: int = 500) -> None:
        self._items: deque[dict[str, Any]] = deque(maxlen=max_items)
        self._seq = 0
        self.last_message: str | None = None
        self.last_completion: dict[str, Any] | None = None

        if bus is not None:
            bus.on(ERROR_FIX_COMPLETED, self.on_completed)
            bus.on(COMPILATION_STARTED, self.on_compilation)
            bus.on(COMPILATION_FINISHED, self.on_compilation)

    @property
    def seq(self) -> int:
        """Sequence number of the newest item (0 when empty)."""
        return self._seq

    def publish(self, kind: str, **data: Any) -> dict[str, Any]:
        self._seq += 1
        item = {"seq": self._seq, "type": kind, "timestamp": time.time(), **data}
        self._items.append(item)
        return item

    def items(self, after: int = 0) -> list[dict[str, Any]]:
        """Items newer than the given sequence number, oldest first."""
        return [item for item in self._items if item["seq"] > after]

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def callbacks(self) -> StreamCallbacks:
        """Stream callbacks for the fix cycle's engine runs."""

        def on_text(text: str) -> None:
            self.publish("text_delta", text=text)

        def on_tool(name: str, phase: ToolPhase) -> None:
            self.publish("tool_progress", tool_name=name, phase=str(phase), text=format_tool_phase(name, phase))

        def on_status(notice: StatusNotice, detail: str) -> None:
            self.publish("status", status=str(notice), detail=detail, text=format_notice(notice, detail))

        return StreamCallbacks(on_text_delta=on_text, on_tool_progress=on_tool, on_status=on_status)

    def message(self, text: str) -> None:
        """on_message hook: a complete chat message from the cycle."""
        logger.info("[fix] %s", text)
        self.last_message = text
        self.publish("message", text=text)

    async def on_completed(self, event: Event) -> None:
        """Bus subscriber for error_fix_completed."""
        result = event.data.get("result")
        completion = {
            "outcome": event.data.get("outcome"),
            "attempts": event.data.get("attempts"),
            "message": getattr(result, "message", None),
            "fix_summary": list(getattr(result, "fix_summary", []) or []),
        }
        self.last_completion = completion
        self.publish("completed", **completion)

    async def on_compilation(self, event: Event) -> None:
        """Bus subscriber for compilation_started and compilation_finished."""
        if event.type == COMPILATION_STARTED:
            self.publish("compilation", state="started", generation=event.data.get("generation"))
        elif event.type == COMPILATION_FINISHED:
            self.publish(
                "compilation",
                state="finished",
                generation=event.data.get("generation"),
                has_errors=event.data.get("has_errors"),
            )
