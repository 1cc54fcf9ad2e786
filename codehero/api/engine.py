"""Streaming tool-use conversation loop.

One run sends the history plus the prompt, streams the answer through
the decoder and accumulator, executes any requested tools in order,
appends the exchange and asks again, until the model stops asking for
tools or the iteration cap is hit.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from codehero.api.accumulator import ContentAccumulator
from codehero.api.callbacks import STOP_MARKER, TRUNCATION_NOTE, StatusNotice, StreamCallbacks
from codehero.api.cancel import CancelToken
from codehero.api.client import AnthropicClient
from codehero.api.errors import ApiError, MalformedResponseError, StreamCancelled
from codehero.api.models import ConversationMessage, Role
from codehero.api.sse import decode_stream
from codehero.api.tools import ToolExecutionCoordinator, ToolExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class EngineState(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"


@dataclass
class EngineResult:
    """Outcome of one run.

    ``text`` is everything delivered through on_text_delta, in order, plus
    any stop marker or truncation note. ``final_text`` is the text of the
    last response that is not already part of ``exchange``.
    """

    text: str
    final_text: str = ""
    stop_reason: str | None = None
    iterations: int = 0
    exchange: list[ConversationMessage] = field(default_factory=list)
    truncated: bool = False
    cancelled: bool = False
    usage: dict[str, int] = field(default_factory=dict)


class ConversationEngine:
    def __init__(
        self,
        client: AnthropicClient,
        executor: ToolExecutor,
        tools: list[dict[str, Any]] | None = None,
        system_prompt: str = "",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._client = client
        self._executor = executor
        self._tools = list(tools or [])
        self._system_prompt = system_prompt
        self._max_iterations = max(1, max_iterations)
        self._state = EngineState.IDLE

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def run(
        self,
        history: list[ConversationMessage],
        prompt: str,
        *,
        callbacks: StreamCallbacks | None = None,
        cancel: CancelToken | None = None,
    ) -> EngineResult:
        """Run the tool loop for one prompt.

        ``history`` is appended to with each assistant tool_use message and
        the user tool_result message that answers it. The prompt itself and
        the closing assistant text are left to the caller (see EngineResult).
        An empty prompt continues from the history as it stands.
        """
        callbacks = callbacks or StreamCallbacks()
        cancel = cancel or CancelToken()
        coordinator = ToolExecutionCoordinator(callbacks)

        request: list[ConversationMessage] = list(history)
        if prompt:
            message = ConversationMessage.user_text(prompt)
            if request and request[-1].role == Role.USER:
                # a failed run can leave a trailing tool_result turn
                message = request.pop().merge(message)
            request.append(message)

        delivered: list[str] = []
        exchange: list[ConversationMessage] = []
        usage: dict[str, int] = {}
        iterations = 0
        acc: ContentAccumulator | None = None

        try:
            while True:
                iterations += 1
                acc = ContentAccumulator(callbacks)
                logger.info("Engine request %d/%d (%d messages)", iterations, self._max_iterations, len(request))
                await self._stream_response(request, acc, cancel)
                _merge_usage(usage, acc.usage)

                text = acc.text
                calls = acc.tool_calls()
                stop_reason = acc.stop_reason
                delivered.append(text)
                acc = None

                if not calls or stop_reason != "tool_use":
                    return EngineResult(
                        text="".join(delivered),
                        final_text=text,
                        stop_reason=stop_reason,
                        iterations=iterations,
                        exchange=exchange,
                        usage=usage,
                    )

                assistant = ConversationMessage.assistant_turn(text, calls)
                for target in (history, request, exchange):
                    target.append(assistant)

                self._state = EngineState.EXECUTING_TOOLS
                logger.info("Executing %d tool call(s): %s", len(calls), ", ".join(c.name for c in calls))
                results = await coordinator.execute_all(calls, self._executor, cancel)
                tool_message = ConversationMessage.tool_results(results)
                for target in (history, request, exchange):
                    target.append(tool_message)

                cancel.raise_if_cancelled()

                if iterations >= self._max_iterations:
                    logger.warning("Tool iteration limit (%d) reached, stopping", self._max_iterations)
                    callbacks.text_delta(TRUNCATION_NOTE)
                    callbacks.status(StatusNotice.TRUNCATED)
                    delivered.append(TRUNCATION_NOTE)
                    return EngineResult(
                        text="".join(delivered),
                        stop_reason="tool_use",
                        iterations=iterations,
                        exchange=exchange,
                        truncated=True,
                        usage=usage,
                    )

                callbacks.status(StatusNotice.ANALYZING_RESULTS)
        except StreamCancelled:
            partial = acc.text if acc is not None else ""
            logger.info("Run cancelled after %d request(s)", iterations)
            callbacks.text_delta(STOP_MARKER)
            callbacks.status(StatusNotice.STOPPED)
            return EngineResult(
                text="".join(delivered) + partial + STOP_MARKER,
                final_text=partial,
                stop_reason="cancelled",
                iterations=iterations,
                exchange=exchange,
                cancelled=True,
                usage=usage,
            )
        finally:
            self._state = EngineState.IDLE

    async def _stream_response(
        self,
        request: list[ConversationMessage],
        acc: ContentAccumulator,
        cancel: CancelToken,
    ) -> None:
        self._state = EngineState.REQUESTING
        payload = self._client.build_payload(
            [m.to_api() for m in request],
            self._tools,
            system_prompt=self._system_prompt,
        )
        cancel.raise_if_cancelled()
        async with self._client.stream_lines(payload) as lines:
            self._state = EngineState.STREAMING
            async for event in decode_stream(lines, cancel):
                if event.type == "error":
                    error_type = event.message.get("type", "unknown")
                    message = event.message.get("message", "")
                    raise ApiError(f"{error_type}: {message}", body=json.dumps(event.message))
                acc.on_event(event)

        if not acc.has_content:
            raise MalformedResponseError("Stream ended without content or stop reason")


def _merge_usage(total: dict[str, int], usage: dict[str, Any]) -> None:
    for key, value in usage.items():
        if isinstance(value, int):
            total[key] = total.get(key, 0) + value
