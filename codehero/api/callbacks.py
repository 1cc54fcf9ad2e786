"""Callback surface between the engine and whatever renders the chat."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class ToolPhase(StrEnum):
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"
    SKIPPED = "skipped"


class StatusNotice(StrEnum):
    TOOL_REQUESTED = "tool_requested"
    GENERATING_PARAMETERS = "generating_parameters"
    PARAMETERS_READY = "parameters_ready"
    ANALYZING_RESULTS = "analyzing_results"
    STOPPED = "stopped"
    TRUNCATED = "truncated"


STOP_MARKER = "\n⏹️ Streaming stopped by user.\n"
TRUNCATION_NOTE = (
    "\n\n⚠️ Stopped after reaching the tool iteration limit. "
    "Send another message to let Claude continue."
)

_NOTICE_TEXT = {
    StatusNotice.TOOL_REQUESTED: "\n🔧 Claude wants to use tool: {detail}",
    StatusNotice.GENERATING_PARAMETERS: " (generating parameters...)",
    StatusNotice.PARAMETERS_READY: " ✓\n",
    StatusNotice.ANALYZING_RESULTS: "\n💬 Claude is analyzing the tool results...",
    StatusNotice.STOPPED: STOP_MARKER,
    StatusNotice.TRUNCATED: TRUNCATION_NOTE,
}

_PHASE_TEXT = {
    ToolPhase.STARTED: "\n🔧 Executing tool: {name}...",
    ToolPhase.FINISHED: "\n✅ Tool {name} finished",
    ToolPhase.FAILED: "\n❌ Tool {name} failed",
    ToolPhase.SKIPPED: "\n⏭️ Tool {name} skipped",
}


def format_notice(notice: StatusNotice, detail: str = "") -> str:
    """Human-readable chat line for a status notice."""
    return _NOTICE_TEXT[notice].format(detail=detail)


def format_tool_phase(name: str, phase: ToolPhase) -> str:
    return _PHASE_TEXT[phase].format(name=name)


@dataclass
class StreamCallbacks:
    """Optional hooks fired during a run. All are plain synchronous callables.

    Exceptions raised by a hook are logged and swallowed so a broken
    renderer cannot abort a conversation half way through a tool exchange.
    """

    on_text_delta: Callable[[str], None] | None = None
    on_tool_progress: Callable[[str, ToolPhase], None] | None = None
    on_status: Callable[[StatusNotice, str], None] | None = None

    def text_delta(self, text: str) -> None:
        if self.on_text_delta is not None:
            _safe_call(self.on_text_delta, text)

    def tool_progress(self, name: str, phase: ToolPhase) -> None:
        if self.on_tool_progress is not None:
            _safe_call(self.on_tool_progress, name, phase)

    def status(self, notice: StatusNotice, detail: str = "") -> None:
        if self.on_status is not None:
            _safe_call(self.on_status, notice, detail)


def _safe_call(hook: Callable[..., None], *args: object) -> None:
    try:
        hook(*args)
    except Exception:
        logger.exception("Stream callback %s failed", getattr(hook, "__qualname__", hook))
