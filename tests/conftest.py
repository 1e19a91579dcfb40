"""Shared fixtures: settings, wire-format builders and mock transports."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from parley.config import Settings

# ---------------------------------------------------------------------------
# Wire builders
# ---------------------------------------------------------------------------


def response_body(
    content: list[dict[str, Any]] | None = None,
    stop_reason: str = "end_turn",
    response_id: str = "msg_test",
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> dict[str, Any]:
    """A non-streaming Messages API response body."""
    return {
        "id": response_id,
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": content if content is not None else [{"type": "text", "text": "Hello"}],
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def sse(event: dict[str, Any] | str) -> str:
    """One ``data:`` line; strings are sent verbatim (e.g. "[DONE]")."""
    payload = event if isinstance(event, str) else json.dumps(event)
    return f"data: {payload}"


def text_stream_events(
    fragments: list[str],
    output_tokens: int = 7,
    stop_reason: str = "end_turn",
) -> list[dict[str, Any]]:
    """Events of a single-text-block stream, as the service sends them."""
    events: list[dict[str, Any]] = [
        {
            "type": "message_start",
            "message": {
                "id": "msg_stream",
                "type": "message",
                "role": "assistant",
                "content": [],
                "model": "claude-test",
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {"input_tokens": 12, "output_tokens": 1},
            },
        },
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "ping"},
    ]
    for fragment in fragments:
        events.append({
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": fragment},
        })
    events.append({"type": "content_block_stop", "index": 0})
    events.append({
        "type": "message_delta",
        "delta": {"stop_reason": stop_reason, "stop_sequence": None},
        "usage": {"output_tokens": output_tokens},
    })
    events.append({"type": "message_stop"})
    return events


def sse_body(events: list[dict[str, Any]], done: bool = True) -> bytes:
    """Full SSE body with ``event:`` lines, as real streams interleave them."""
    lines: list[str] = []
    for event in events:
        lines.append(f"event: {event['type']}")
        lines.append(sse(event))
        lines.append("")
    if done:
        lines.append(sse("[DONE]"))
    return ("\n".join(lines) + "\n").encode()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any) -> Settings:
    defaults: dict[str, Any] = {
        "ANTHROPIC_API_KEY": "test-key",
        "model": "claude-test",
        "max_tokens": 1024,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


@pytest.fixture
def settings() -> Settings:
    """Minimal settings for client and agent tests."""
    return make_settings()


Handler = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)

    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]
