"""REST command channel between the editor and the agent.

Endpoints:
  POST   /chat/stream   - Send a message, stream the run as SSE
  POST   /chat/stop     - Stop the active run
  DELETE /chat          - Clear the conversation history
  POST   /console       - Editor console log entry (feeds error collection)
  POST   /compilation   - Editor compilation started/finished signal
  GET    /status        - Session, fix cycle and compilation state
  GET    /fix/messages  - Fix cycle chat feed, polled with ?after=<seq>
  GET    /health        - Health check
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from codehero.api.callbacks import StatusNotice, StreamCallbacks, ToolPhase, format_notice, format_tool_phase
from codehero.api.errors import ConversationError, SessionBusyError
from codehero.api.session import ConversationSession
from codehero.config import Settings
from codehero.handlers.compilation import CompilationMonitor
from codehero.handlers.error_collector import ErrorCollector, LogSeverity
from codehero.handlers.error_fix import ErrorFixCycle
from codehero.handlers.fix_feed import FixCycleFeed

logger = logging.getLogger(__name__)


def create_app(
    session: ConversationSession,
    collector: ErrorCollector,
    monitor: CompilationMonitor,
    fix_cycle: ErrorFixCycle,
    settings: Settings,
    feed: FixCycleFeed | None = None,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    if feed is None:
        feed = FixCycleFeed()

    async def _json_body(request: Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except Exception:
            return None
        return body if isinstance(body, dict) else None

    async def chat_stream(request: Request) -> JSONResponse | StreamingResponse:
        """POST /chat/stream - SSE streaming chat."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)
        if session.busy:
            return JSONResponse({"error": f"Session is busy ({session.owner})"}, status_code=409)

        queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

        def on_text(text: str) -> None:
            queue.put_nowait({"type": "text_delta", "text": text})

        def on_tool(name: str, phase: ToolPhase) -> None:
            queue.put_nowait(
                {"type": "tool_progress", "tool_name": name, "phase": str(phase), "text": format_tool_phase(name, phase)}
            )

        def on_status(notice: StatusNotice, detail: str) -> None:
            queue.put_nowait(
                {"type": "status", "status": str(notice), "detail": detail, "text": format_notice(notice, detail)}
            )

        callbacks = StreamCallbacks(on_text_delta=on_text, on_tool_progress=on_tool, on_status=on_status)

        async def run() -> None:
            try:
                result = await session.send(message, callbacks)
                queue.put_nowait({
                    "type": "done",
                    "stop_reason": result.stop_reason,
                    "iterations": result.iterations,
                    "truncated": result.truncated,
                    "cancelled": result.cancelled,
                })
            except ConversationError as e:
                logger.error("Chat run failed (%s): %s", e.reason, e)
                queue.put_nowait({"type": "error", "reason": str(e.reason), "text": str(e)})
            except Exception as e:
                logger.exception("Unexpected chat run failure")
                queue.put_nowait({"type": "error", "reason": "internal", "text": str(e)})
            finally:
                queue.put_nowait(None)

        async def event_generator():
            task = asyncio.create_task(run(), name="chat-run")
            try:
                while True:
                    item = await queue.get()
                    if item is None:
                        break
                    yield f"data: {json.dumps(item)}\n\n"
            finally:
                if not task.done():
                    # client went away mid-run
                    session.stop()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    async def stop_chat(request: Request) -> JSONResponse:
        """POST /chat/stop - Stop the active run."""
        stopped = session.stop()
        return JSONResponse({"stopped": stopped, "owner": session.owner})

    async def clear_chat(request: Request) -> JSONResponse:
        """DELETE /chat - Clear the conversation history."""
        try:
            session.clear()
        except SessionBusyError as e:
            return JSONResponse({"error": str(e)}, status_code=409)
        return JSONResponse({"status": "cleared"})

    async def console(request: Request) -> JSONResponse:
        """POST /console - Record one editor console entry."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        message = body.get("message")
        if not message:
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)
        try:
            severity = LogSeverity(str(body.get("severity", "error")).lower())
        except ValueError:
            return JSONResponse({"error": f"Unknown severity: {body.get('severity')}"}, status_code=400)

        routed = collector.record(message, body.get("stack_trace"), severity)
        return JSONResponse({"routed": routed, "pending": len(collector.pending)})

    async def compilation(request: Request) -> JSONResponse:
        """POST /compilation - Compilation started/finished signal."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        state = body.get("state")
        if state == "started":
            await monitor.compilation_started()
        elif state == "finished":
            has_errors = body.get("has_errors")
            await monitor.compilation_finished(None if has_errors is None else bool(has_errors))
        else:
            return JSONResponse({"error": "state must be 'started' or 'finished'"}, status_code=400)
        return JSONResponse({"state": state, "generation": monitor.generation})

    async def status(request: Request) -> JSONResponse:
        """GET /status - Agent status overview."""
        last = fix_cycle.last_result
        return JSONResponse({
            "model": settings.model,
            "session": {
                "state": session.state,
                "owner": session.owner,
                "engine_state": session.engine.state,
                "history_length": len(session.history),
            },
            "error_fix": {
                "enabled": settings.auto_fix_enabled,
                "state": fix_cycle.state,
                "queued": fix_cycle.queued,
                "last_outcome": last.outcome if last else None,
                "last_attempts": last.attempts if last else None,
                "last_message": feed.last_message,
                "fix_summary": last.fix_summary if last else [],
                "feed_seq": feed.seq,
            },
            "compilation": {
                "compiling": monitor.is_compiling(),
                "generation": monitor.generation,
                "has_recent_errors": monitor.has_recent_errors(),
            },
            "pending_errors": len(collector.pending),
        })

    async def fix_messages(request: Request) -> JSONResponse:
        """GET /fix/messages - Fix cycle items newer than ?after=<seq>."""
        try:
            after = int(request.query_params.get("after", "0"))
        except ValueError:
            return JSONResponse({"error": "after must be an integer"}, status_code=400)
        return JSONResponse({"items": feed.items(after), "seq": feed.seq})

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/chat/stop", stop_chat, methods=["POST"]),
        Route("/chat", clear_chat, methods=["DELETE"]),
        Route("/console", console, methods=["POST"]),
        Route("/compilation", compilation, methods=["POST"]),
        Route("/status", status),
        Route("/fix/messages", fix_messages),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
