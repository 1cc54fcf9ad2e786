"""Tests for AnthropicClient over httpx.MockTransport."""

import json

import httpx
import pytest

from codehero.api.client import AnthropicClient
from codehero.api.errors import ApiError, AuthenticationError, ErrorReason, NetworkError
from stream_fixtures import text_response


def _sse_body(lines):
    return ("\n\n".join(lines) + "\n\n").encode()


async def _started(settings, handler, api_key="sk-ant-test-key"):
    client = AnthropicClient(settings, api_key=api_key, transport=httpx.MockTransport(handler))
    await client.start()
    return client


class TestBuildPayload:
    def test_payload_shape(self, settings):
        client = AnthropicClient(settings)
        tools = [{"name": "list_gameobjects", "description": "List", "input_schema": {"type": "object"}}]
        messages = [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
        payload = client.build_payload(messages, tools, system_prompt="You are CodeHero.")
        assert payload["model"] == settings.model
        assert payload["max_tokens"] == 8192
        assert payload["stream"] is True
        assert payload["tools"] is tools
        assert payload["messages"] == messages
        assert payload["system"] == [{"type": "text", "text": "You are CodeHero."}]

    def test_no_system_when_empty(self, settings):
        payload = AnthropicClient(settings).build_payload([], [])
        assert "system" not in payload
        assert payload["tools"] == []


class TestStreamLines:
    @pytest.mark.asyncio
    async def test_streams_lines_with_headers(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                content=_sse_body(text_response("Hi")),
                headers={"content-type": "text/event-stream"},
            )

        client = await _started(settings, handler)
        try:
            payload = client.build_payload([{"role": "user", "content": "hi"}], [])
            async with client.stream_lines(payload) as lines:
                received = [line async for line in lines if line]
        finally:
            await client.close()

        assert seen["path"] == "/v1/messages"
        assert seen["headers"]["x-api-key"] == "sk-ant-test-key"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["stream"] is True
        assert received == text_response("Hi")

    @pytest.mark.asyncio
    async def test_server_error_raises_api_error(self, settings):
        def handler(request):
            return httpx.Response(529, json={"type": "error", "error": {"type": "overloaded_error"}})

        client = await _started(settings, handler)
        with pytest.raises(ApiError) as exc_info:
            async with client.stream_lines(client.build_payload([], [])):
                pass
        await client.close()
        assert exc_info.value.status_code == 529
        assert "overloaded_error" in exc_info.value.body
        assert exc_info.value.reason == ErrorReason.API

    @pytest.mark.asyncio
    async def test_unauthorized_raises_authentication_error(self, settings):
        def handler(request):
            return httpx.Response(401, json={"error": {"type": "authentication_error"}})

        client = await _started(settings, handler, api_key="")
        with pytest.raises(AuthenticationError):
            async with client.stream_lines(client.build_payload([], [])):
                pass
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_failure_raises_network_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = await _started(settings, handler)
        with pytest.raises(NetworkError) as exc_info:
            async with client.stream_lines(client.build_payload([], [])):
                pass
        await client.close()
        assert exc_info.value.reason == ErrorReason.NETWORK

    @pytest.mark.asyncio
    async def test_requires_start(self, settings):
        client = AnthropicClient(settings)
        with pytest.raises(RuntimeError):
            async with client.stream_lines({}):
                pass
