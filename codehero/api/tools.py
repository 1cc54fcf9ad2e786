"""Tool execution: the executor contract, an in-process dispatcher, the
editor bridge executor and the sequential coordinator used by the engine.

Provides:
- ToolExecutor: the host contract, execute(name, input) -> str (sync or async)
- ToolDispatcher: registry of handlers with optional pydantic input models
- HostToolExecutor: forwards each call to the editor bridge over HTTP
- ToolExecutionCoordinator: runs a batch of calls one at a time and turns
  every failure into a tool_result string
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError

from codehero.api.callbacks import StreamCallbacks, ToolPhase
from codehero.api.cancel import CancelToken
from codehero.api.errors import ToolExecutionError, ToolInputError
from codehero.api.models import ToolCall, ToolResult

logger = logging.getLogger(__name__)

FAILURE_PREFIX = "Tool execution failed: "
CANCELLED_RESULT = "Tool execution cancelled by user."


@runtime_checkable
class ToolExecutor(Protocol):
    """Executes one tool call inside the host.

    May return a string (or any JSON-encodable value), an awaitable of
    one, an exception instance, or a ``(text, is_error)`` tuple. May raise.
    """

    def execute(self, name: str, input: dict[str, Any]) -> Any: ...


# ---------------------------------------------------------------------------
# ToolDispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Registers tool handlers and dispatches tool calls from the API.

    Handlers are called with the tool input as keyword arguments and may
    be sync or async. When an input model is registered the input is
    validated first, so a missing field fails with a readable message
    instead of a TypeError deep inside the handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._input_models: dict[str, type[BaseModel]] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        input_model: type[BaseModel] | None = None,
    ) -> None:
        """Register a tool handler, optionally with a pydantic model for its input."""
        self._handlers[name] = handler
        if input_model is not None:
            self._input_models[name] = input_model

    async def dispatch(self, name: str, args: dict[str, Any]) -> tuple[str, bool]:
        """Dispatch a tool call and return (result_text, is_error)."""
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown tool: {name}", True
        try:
            kwargs = self._validate(name, args)
            result = handler(**kwargs)
            if inspect.isawaitable(result):
                result = await result
            return _to_text(result), False
        except ToolInputError as e:
            logger.warning("Invalid input for tool %s: %s", name, e)
            return str(e), True
        except Exception as e:
            logger.exception("Tool dispatch error for %s", name)
            return str(e), True

    async def execute(self, name: str, input: dict[str, Any]) -> tuple[str, bool]:
        return await self.dispatch(name, input)

    def _validate(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        model = self._input_models.get(name)
        if model is None:
            return dict(args)
        try:
            return model.model_validate(args).model_dump()
        except ValidationError as e:
            missing = [".".join(str(p) for p in err["loc"]) for err in e.errors() if err["type"] == "missing"]
            if missing:
                raise ToolInputError(f"Missing required field(s): {', '.join(missing)}") from e
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first["loc"]) or "input"
            raise ToolInputError(f"Invalid value for {loc}: {first['msg']}") from e


# ---------------------------------------------------------------------------
# HostToolExecutor
# ---------------------------------------------------------------------------


class HostToolExecutor:
    """Executes tools inside the editor through its HTTP bridge.

    POST {bridge}/tools/{name} with the tool input as the JSON body.
    The bridge answers {"result": ...} on success or {"error": "..."}.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    async def execute(self, name: str, input: dict[str, Any]) -> str:
        url = f"{self._base_url}/tools/{name}"
        try:
            response = await self._http.post(url, json=input)
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Editor bridge unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text[:500]} if response.status_code >= 400 else {"result": response.text}

        if response.status_code >= 400 or "error" in body:
            message = body.get("error") or f"HTTP {response.status_code}"
            raise ToolExecutionError(str(message))
        return _to_text(body.get("result", ""))


# ---------------------------------------------------------------------------
# ToolExecutionCoordinator
# ---------------------------------------------------------------------------


class ToolExecutionCoordinator:
    """Runs tool calls strictly in order, one at a time.

    A failing tool never aborts the batch: its result becomes
    ``Tool execution failed: <message>`` and the next call runs. When the
    cancel token fires, the running tool completes and every remaining
    call gets a cancelled result so the conversation stays well formed.
    """

    def __init__(self, callbacks: StreamCallbacks | None = None) -> None:
        self.callbacks = callbacks or StreamCallbacks()

    async def execute_all(
        self,
        calls: list[ToolCall],
        executor: ToolExecutor,
        cancel: CancelToken | None = None,
    ) -> list[ToolResult]:
        results: list[ToolResult] = []
        for call in calls:
            if cancel is not None and cancel.cancelled:
                logger.info("Skipping tool %s (%s): cancelled", call.name, call.id)
                self.callbacks.tool_progress(call.name, ToolPhase.SKIPPED)
                results.append(ToolResult(call.id, CANCELLED_RESULT))
                continue

            self.callbacks.tool_progress(call.name, ToolPhase.STARTED)
            content, failed = await self._execute_one(call, executor)
            self.callbacks.tool_progress(call.name, ToolPhase.FAILED if failed else ToolPhase.FINISHED)
            results.append(ToolResult(call.id, content))
        return results

    async def _execute_one(self, call: ToolCall, executor: ToolExecutor) -> tuple[str, bool]:
        logger.info("Executing tool %s (%s)", call.name, call.id)
        try:
            output = executor.execute(call.name, dict(call.input))
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            logger.warning("Tool %s raised: %s", call.name, e)
            return f"{FAILURE_PREFIX}{e}", True

        if isinstance(output, BaseException):
            return f"{FAILURE_PREFIX}{output}", True
        if isinstance(output, tuple) and len(output) == 2 and isinstance(output[1], bool):
            text, is_error = output
            if is_error:
                return f"{FAILURE_PREFIX}{text}", True
            return _to_text(text), False
        return _to_text(output), False


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
