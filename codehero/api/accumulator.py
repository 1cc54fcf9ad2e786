"""Folding stream events into content blocks and tool calls.

ContentAccumulator owns the blocks of one round trip. Text deltas are
forwarded live; input_json_delta fragments are buffered per block and
re-parsed after every fragment, so a tool call becomes available as soon
as its JSON is complete no matter how the fragments were split.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from codehero.api.callbacks import StatusNotice, StreamCallbacks
from codehero.api.models import ContentBlock, TextBlock, ToolCall, ToolUseBlock, block_from_api
from codehero.api.sse import StreamEvent

logger = logging.getLogger(__name__)


class ToolInvocationCollector:
    """Ordered, id-keyed set of tool calls.

    register() reserves a position when a tool_use block opens, so the
    execution order is the order in which blocks first appeared even when
    a later block's JSON completes first. upsert() replaces in place.
    """

    def __init__(self) -> None:
        self._calls: dict[str, ToolCall] = {}

    def register(self, tool_id: str, name: str, input: dict[str, Any] | None = None) -> None:
        if tool_id in self._calls:
            return
        self._calls[tool_id] = ToolCall(id=tool_id, name=name, input=dict(input or {}))

    def upsert(self, tool_id: str, name: str, input: dict[str, Any]) -> None:
        # dict assignment keeps the original insertion position
        self._calls[tool_id] = ToolCall(id=tool_id, name=name, input=input)

    def discard(self, tool_id: str) -> None:
        self._calls.pop(tool_id, None)

    def calls(self) -> list[ToolCall]:
        return list(self._calls.values())

    def __len__(self) -> int:
        return len(self._calls)


class ContentAccumulator:
    """Builds the assistant content of one streamed response."""

    def __init__(
        self,
        callbacks: StreamCallbacks | None = None,
        collector: ToolInvocationCollector | None = None,
    ) -> None:
        self.callbacks = callbacks or StreamCallbacks()
        self.collector = collector or ToolInvocationCollector()
        self.blocks: list[ContentBlock] = []
        self.stop_reason: str | None = None
        self.usage: dict[str, Any] = {}
        self._text_parts: list[str] = []
        self._parsed: set[int] = set()
        self._generating_notified: set[int] = set()

    @property
    def text(self) -> str:
        """All text delivered so far in this response."""
        return "".join(self._text_parts)

    @property
    def has_content(self) -> bool:
        return bool(self.blocks) or self.stop_reason is not None

    def on_event(self, event: StreamEvent) -> None:
        if event.type == "content_block_start":
            self._start_block(event.index, event.block)
        elif event.type == "content_block_delta":
            self._apply_delta(event.index, event.delta)
        elif event.type == "message_delta":
            if event.stop_reason:
                self.stop_reason = event.stop_reason
            if event.usage:
                self.usage.update(event.usage)
        elif event.type == "message_start" and event.usage:
            self.usage.update(event.usage)

    def _start_block(self, index: int, raw: dict[str, Any]) -> None:
        block = block_from_api(raw)
        if block is None:
            logger.debug("Ignoring content block of type %s", raw.get("type"))
            block = TextBlock()

        while len(self.blocks) < index:
            self.blocks.append(TextBlock())
        if index == len(self.blocks):
            self.blocks.append(block)
        else:
            self.blocks[index] = block

        if isinstance(block, ToolUseBlock):
            self.collector.register(block.id, block.name, block.input)
            self.callbacks.status(StatusNotice.TOOL_REQUESTED, block.name)
        elif isinstance(block, TextBlock) and block.text:
            self._emit_text(block.text)

    def _apply_delta(self, index: int, delta: dict[str, Any]) -> None:
        if index < 0 or index >= len(self.blocks):
            return
        block = self.blocks[index]
        delta_type = delta.get("type")

        if delta_type == "text_delta" and isinstance(block, TextBlock):
            text = delta.get("text", "")
            if text:
                block.text += text
                self._emit_text(text)
            return

        if delta_type == "input_json_delta" and isinstance(block, ToolUseBlock):
            if block.partial_input is None:
                block.partial_input = ""
            if index not in self._generating_notified:
                self._generating_notified.add(index)
                self.callbacks.status(StatusNotice.GENERATING_PARAMETERS, block.name)
            block.partial_input += delta.get("partial_json", "")
            self._try_parse(index, block)

    def _try_parse(self, index: int, block: ToolUseBlock) -> None:
        try:
            parsed = json.loads(block.partial_input or "")
        except json.JSONDecodeError:
            return
        if not isinstance(parsed, dict):
            return
        block.input = parsed
        self.collector.upsert(block.id, block.name, parsed)
        if index not in self._parsed:
            self._parsed.add(index)
            self.callbacks.status(StatusNotice.PARAMETERS_READY, block.name)

    def _emit_text(self, text: str) -> None:
        self._text_parts.append(text)
        self.callbacks.text_delta(text)

    def tool_calls(self) -> list[ToolCall]:
        """Final ordered tool calls for this response.

        A block whose input buffer never received a fragment keeps its
        start input. A block whose buffer never parsed is dropped.
        """
        for index, block in enumerate(self.blocks):
            if not isinstance(block, ToolUseBlock):
                continue
            if block.partial_input and index not in self._parsed:
                logger.warning(
                    "Dropping tool call %s (%s): incomplete input JSON %.200s",
                    block.name,
                    block.id,
                    block.partial_input,
                )
                self.collector.discard(block.id)
        return self.collector.calls()
