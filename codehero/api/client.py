"""Anthropic Messages API client over httpx.

One AsyncClient is shared by every engine run. Failures are mapped onto
the engine's taxonomy here: transport problems become NetworkError, a
non-2xx answer becomes ApiError carrying the status and body. Nothing is
retried automatically.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from codehero.api.errors import ApiError, AuthenticationError, NetworkError
from codehero.config import Settings

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/v1/messages"


class AnthropicClient:
    def __init__(
        self,
        settings: Settings,
        api_key: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._api_key = api_key
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http is not None:
            return
        settings = self._settings
        headers: dict[str, str] = {
            "anthropic-version": settings.api_version,
            "content-type": "application/json",
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        else:
            logger.warning("No API key configured -- API calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("API client initialized (%s)", settings.api_base_url)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        self._http = None

    @property
    def model(self) -> str:
        return self._settings.model

    def build_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        system_prompt: str = "",
        stream: bool = True,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "messages": messages,
            "tools": tools,
            "stream": stream,
        }
        if system_prompt:
            payload["system"] = [{"type": "text", "text": system_prompt}]
        return payload

    @asynccontextmanager
    async def stream_lines(self, payload: dict[str, Any]) -> AsyncIterator[AsyncIterator[str]]:
        """POST the payload and yield an iterator over the response lines.

        The response (and its connection) is released when the context
        exits, including when the consumer stops early.
        """
        if self._http is None:
            raise RuntimeError("httpx client not initialized -- call start() first")
        try:
            async with self._http.stream("POST", MESSAGES_PATH, json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")[:2000]
                    raise _api_error(response.status_code, body)
                yield _iter_lines(response)
        except httpx.TimeoutException as e:
            raise NetworkError(f"API request timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"API connection failed: {e}") from e


async def _iter_lines(response: httpx.Response) -> AsyncIterator[str]:
    try:
        async for line in response.aiter_lines():
            yield line
    except httpx.TimeoutException as e:
        raise NetworkError(f"API stream timed out: {e}") from e
    except httpx.TransportError as e:
        raise NetworkError(f"API stream interrupted: {e}") from e


def _api_error(status: int, body: str) -> ApiError:
    logger.error("API error %d: %.500s", status, body)
    message = f"API error {status}: {body[:500]}"
    if status in (401, 403):
        return AuthenticationError(message, status_code=status, body=body)
    return ApiError(message, status_code=status, body=body)
