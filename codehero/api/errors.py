"""Failure taxonomy for the conversation engine.

Every failure carries a reason so callers can tell a user stop from a
transport problem without string matching. Tool failures never reach
the caller: the coordinator turns them into tool_result text.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorReason(StrEnum):
    CANCELLED = "cancelled"
    NETWORK = "network"
    API = "api"
    MALFORMED_RESPONSE = "malformed-response"


class ConversationError(Exception):
    """Base class for engine failures."""

    reason: ErrorReason = ErrorReason.API

    def __init__(self, message: str, reason: ErrorReason | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class NetworkError(ConversationError):
    """Connect, read or timeout failure. Not retried."""

    reason = ErrorReason.NETWORK


class ApiError(ConversationError):
    """Non-2xx response or an in-stream error event."""

    reason = ErrorReason.API

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthenticationError(ApiError):
    """401/403 from the API, usually a missing or invalid key."""


class MalformedResponseError(ConversationError):
    reason = ErrorReason.MALFORMED_RESPONSE


class StreamCancelled(ConversationError):
    """Raised inside a run when the cancel token fires; converted to a result."""

    reason = ErrorReason.CANCELLED


class SessionBusyError(ConversationError):
    """A run was requested while another one holds the session."""

    reason = ErrorReason.API


class ToolExecutionError(Exception):
    """A tool failed. Caught per tool and encoded as a textual result."""


class ToolInputError(ToolExecutionError):
    """Tool input is missing a required field or has the wrong shape."""
