"""Tests for tool execution: coordinator, dispatcher and editor bridge executor."""

import json

import httpx
import pytest
from pydantic import BaseModel

from codehero.api.callbacks import StreamCallbacks, ToolPhase
from codehero.api.cancel import CancelToken
from codehero.api.errors import ToolExecutionError
from codehero.api.models import ToolCall
from codehero.api.tools import (
    CANCELLED_RESULT,
    HostToolExecutor,
    ToolDispatcher,
    ToolExecutionCoordinator,
    ToolExecutor,
)
from stream_fixtures import RecordingExecutor

# ---------------------------------------------------------------------------
# ToolExecutionCoordinator
# ---------------------------------------------------------------------------


def _calls(*names):
    return [ToolCall(id=f"toolu_{i}", name=name, input={"n": i}) for i, name in enumerate(names)]


class TestCoordinator:
    @pytest.mark.asyncio
    async def test_runs_in_order_and_keeps_ids(self):
        executor = RecordingExecutor()
        results = await ToolExecutionCoordinator().execute_all(_calls("a", "b", "c"), executor)
        assert [name for name, _ in executor.calls] == ["a", "b", "c"]
        assert [r.tool_use_id for r in results] == ["toolu_0", "toolu_1", "toolu_2"]
        assert [r.content for r in results] == ["a ok", "b ok", "c ok"]

    @pytest.mark.asyncio
    async def test_failure_isolated(self):
        executor = RecordingExecutor({"b": RuntimeError("GameObject 'Cube' not found")})
        phases = []
        coordinator = ToolExecutionCoordinator(StreamCallbacks(on_tool_progress=lambda n, p: phases.append((n, p))))
        results = await coordinator.execute_all(_calls("a", "b", "c"), executor)

        assert results[1].content == "Tool execution failed: GameObject 'Cube' not found"
        assert results[2].content == "c ok"
        assert phases == [
            ("a", ToolPhase.STARTED),
            ("a", ToolPhase.FINISHED),
            ("b", ToolPhase.STARTED),
            ("b", ToolPhase.FAILED),
            ("c", ToolPhase.STARTED),
            ("c", ToolPhase.FINISHED),
        ]

    @pytest.mark.asyncio
    async def test_output_coercion(self):
        class Executor:
            async def execute(self, name, input):
                return {
                    "obj": {"objects": ["Main Camera", "Cube"]},
                    "none": None,
                    "exc": ValueError("bad path"),
                    "err_tuple": ("no such file", True),
                    "ok_tuple": ("done", False),
                }[name]

        results = await ToolExecutionCoordinator().execute_all(
            _calls("obj", "none", "exc", "err_tuple", "ok_tuple"), Executor()
        )
        assert json.loads(results[0].content) == {"objects": ["Main Camera", "Cube"]}
        assert results[1].content == ""
        assert results[2].content == "Tool execution failed: bad path"
        assert results[3].content == "Tool execution failed: no such file"
        assert results[4].content == "done"

    @pytest.mark.asyncio
    async def test_cancel_finishes_current_and_skips_rest(self):
        cancel = CancelToken()

        class Executor:
            def __init__(self):
                self.names = []

            def execute(self, name, input):
                self.names.append(name)
                cancel.cancel()
                return "created"

        executor = Executor()
        results = await ToolExecutionCoordinator().execute_all(_calls("a", "b", "c"), executor, cancel)
        assert executor.names == ["a"]
        assert [r.content for r in results] == ["created", CANCELLED_RESULT, CANCELLED_RESULT]
        assert [r.tool_use_id for r in results] == ["toolu_0", "toolu_1", "toolu_2"]

    def test_protocol_is_structural(self):
        assert isinstance(RecordingExecutor(), ToolExecutor)


# ---------------------------------------------------------------------------
# ToolDispatcher
# ---------------------------------------------------------------------------


class CreateScriptInput(BaseModel):
    script_name: str
    script_content: str
    folder_path: str = "Scripts"


class TestToolDispatcher:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        text, is_error = await ToolDispatcher().dispatch("nope", {})
        assert is_error
        assert text == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        dispatcher = ToolDispatcher()

        async def list_gameobjects():
            return ["Main Camera", "Directional Light"]

        dispatcher.register("list_gameobjects", list_gameobjects)
        dispatcher.register("echo", lambda text: text)

        assert await dispatcher.dispatch("list_gameobjects", {}) == ('["Main Camera", "Directional Light"]', False)
        assert await dispatcher.dispatch("echo", {"text": "hi"}) == ("hi", False)

    @pytest.mark.asyncio
    async def test_missing_field_reported(self):
        dispatcher = ToolDispatcher()
        dispatcher.register(
            "create_script",
            lambda **kw: f"created {kw['folder_path']}/{kw['script_name']}.cs",
            input_model=CreateScriptInput,
        )
        text, is_error = await dispatcher.dispatch("create_script", {"script_name": "Spin"})
        assert is_error
        assert text == "Missing required field(s): script_content"

        text, is_error = await dispatcher.dispatch(
            "create_script", {"script_name": "Spin", "script_content": "class Spin {}"}
        )
        assert (text, is_error) == ("created Scripts/Spin.cs", False)

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error(self):
        dispatcher = ToolDispatcher()

        def boom():
            raise RuntimeError("editor locked")

        dispatcher.register("boom", boom)
        results = await ToolExecutionCoordinator().execute_all([ToolCall("t1", "boom", {})], dispatcher)
        assert results[0].content == "Tool execution failed: editor locked"


# ---------------------------------------------------------------------------
# HostToolExecutor
# ---------------------------------------------------------------------------


class TestHostToolExecutor:
    @pytest.mark.asyncio
    async def test_posts_input_and_returns_result(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": "Created Cube at (0,0,0)"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            executor = HostToolExecutor(http, "http://editor.test/")
            result = await executor.execute("create_gameobject", {"primitive_type": "Cube"})

        assert result == "Created Cube at (0,0,0)"
        assert seen["url"] == "http://editor.test/tools/create_gameobject"
        assert seen["body"] == {"primitive_type": "Cube"}

    @pytest.mark.asyncio
    async def test_error_body_raises(self):
        def handler(request):
            return httpx.Response(404, json={"error": "GameObject 'Ghost' not found"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            executor = HostToolExecutor(http, "http://editor.test")
            with pytest.raises(ToolExecutionError, match="Ghost"):
                await executor.execute("delete_gameobject", {"gameobject_name": "Ghost"})

    @pytest.mark.asyncio
    async def test_unreachable_bridge_becomes_tool_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            executor = HostToolExecutor(http, "http://editor.test")
            results = await ToolExecutionCoordinator().execute_all(
                [ToolCall("t1", "list_gameobjects", {})], executor
            )
        assert results[0].content.startswith("Tool execution failed: Editor bridge unreachable")
