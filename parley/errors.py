"""Parley exception hierarchy.

Usage:
    from parley.errors import APIError, TransportError

    try:
        answer = await agent.send("hello")
    except APIError as e:
        logger.error("Request rejected (%d): %s", e.status_code, e)

Decode-level failures never surface here: they are folded into the event
stream as ``ErrorEvent`` values. Tool failures are folded into tool-result
text by the agent loop.
"""

from __future__ import annotations


class ParleyError(Exception):
    """Base exception for all parley errors."""


class AuthenticationError(ParleyError):
    """The service rejected the configured credentials (HTTP 401/403)."""

    def __init__(self, message: str = "Invalid API key", *, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(ParleyError):
    """A response body or content block could not be decoded."""


class APIError(ParleyError):
    """The service answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        error_type: str | None = None,
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        label = f"{error_type} - " if error_type else ""
        super().__init__(f"API error ({status_code}): {label}{message}")


class StreamError(APIError):
    """An ``error`` event arrived inside an otherwise successful stream."""

    def __init__(self, message: str, *, error_type: str | None = None):
        super().__init__(200, message, error_type=error_type)


class TransportError(ParleyError):
    """Connectivity failure: timeout, refused connection, broken stream."""


class StreamInterruptedError(TransportError):
    """The byte stream ended before a terminal event was received."""


class ToolExecutionError(ParleyError):
    """A tool executor could not produce a result."""

    def __init__(self, message: str, *, tool_name: str | None = None):
        self.tool_name = tool_name
        super().__init__(message)


class IterationLimitError(ParleyError):
    """The agent tool loop did not reach a text answer within its bound."""

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(
            f"Maximum tool execution iterations reached ({iterations}). "
            "Possible infinite tool use loop."
        )


class ConfigurationError(ParleyError):
    """The agent was asked to do something it is not configured for."""
