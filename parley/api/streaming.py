"""Server-sent event decoding and response assembly for the Messages API.

A streamed response arrives as newline-delimited SSE. Only ``data: {...}``
lines carry events; ``event:`` lines, comments, blank lines and retry
directives are skipped. ``data: [DONE]`` ends the stream.

Decoding never raises: a malformed or unknown payload becomes an
ErrorEvent and the caller moves on to the next line. StreamAssembler
rebuilds one MessagesResponse from decoded events, and also hands back
each text fragment as it arrives for live display.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Union

from parley.errors import StreamInterruptedError
from parley.models.content import ContentBlock, Role, TextBlock, ToolUseBlock
from parley.models.response import MessagesResponse, Usage

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# A stream reassembles into the same shape as a non-streaming response
AssembledResponse = MessagesResponse


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageStart:
    id: str
    model: str
    role: Role
    usage: Usage  # initial usage (input tokens)
    stop_reason: str | None = None
    stop_sequence: str | None = None


@dataclass(frozen=True)
class ContentBlockStart:
    index: int
    block_type: str  # text, tool_use, ...
    tool_id: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContentBlockDelta:
    index: int
    delta_type: str  # text_delta, input_json_delta, ...
    text: str | None = None
    partial_json: str | None = None


@dataclass(frozen=True)
class ContentBlockStop:
    index: int


@dataclass(frozen=True)
class MessageDelta:
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage | None = None


@dataclass(frozen=True)
class MessageStop:
    usage: Usage | None = None


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    """A decode failure, or an ``error`` event sent by the service.

    ``error_type`` is set only for service-sent errors (e.g. overloaded_error).
    """

    message: str
    error_type: str | None = None


StreamEvent = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    Ping,
    ErrorEvent,
]


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _index(data: dict[str, Any]) -> int:
    index = data["index"]
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"invalid block index {index!r}")
    return index


def _optional_str(value: Any, name: str) -> str | None:
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return value


def _object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data[key]
    if not isinstance(value, dict):
        raise TypeError(f"{key} must be an object")
    return value


def _decode_message_start(data: dict[str, Any]) -> MessageStart:
    message = _object(data, "message")
    return MessageStart(
        id=message["id"],
        model=message["model"],
        role=Role(message.get("role", "assistant")),
        usage=Usage.model_validate(message["usage"]),
        stop_reason=_optional_str(message.get("stop_reason"), "stop_reason"),
        stop_sequence=_optional_str(message.get("stop_sequence"), "stop_sequence"),
    )


def _decode_block_start(data: dict[str, Any]) -> ContentBlockStart:
    block = _object(data, "content_block")
    block_type = block["type"]
    if not isinstance(block_type, str):
        raise TypeError("content_block.type must be a string")
    tool_input = block.get("input") or {}
    if not isinstance(tool_input, dict):
        raise TypeError("content_block.input must be an object")
    return ContentBlockStart(
        index=_index(data),
        block_type=block_type,
        tool_id=_optional_str(block.get("id"), "id"),
        tool_name=_optional_str(block.get("name"), "name"),
        tool_input=tool_input,
    )


def _decode_block_delta(data: dict[str, Any]) -> ContentBlockDelta:
    delta = _object(data, "delta")
    return ContentBlockDelta(
        index=_index(data),
        delta_type=delta["type"],
        text=_optional_str(delta.get("text"), "text"),
        partial_json=_optional_str(delta.get("partial_json"), "partial_json"),
    )


def _decode_block_stop(data: dict[str, Any]) -> ContentBlockStop:
    return ContentBlockStop(index=_index(data))


def _decode_message_delta(data: dict[str, Any]) -> MessageDelta:
    # stop_reason lives in message_delta.delta, not message_start
    delta = _object(data, "delta")
    usage = data.get("usage")
    return MessageDelta(
        stop_reason=_optional_str(delta.get("stop_reason"), "stop_reason"),
        stop_sequence=_optional_str(delta.get("stop_sequence"), "stop_sequence"),
        usage=Usage.model_validate(usage) if usage is not None else None,
    )


def _decode_message_stop(data: dict[str, Any]) -> MessageStop:
    """Usage may be top-level, under ``message.usage``, or absent."""
    usage = data.get("usage")
    if usage is None:
        message = data.get("message")
        if isinstance(message, dict):
            usage = message.get("usage")
    if not isinstance(usage, dict):
        return MessageStop()
    try:
        return MessageStop(usage=Usage.model_validate(usage))
    except ValueError:
        logger.debug("Ignoring unreadable usage on message_stop: %s", usage)
        return MessageStop()


def _decode_ping(data: dict[str, Any]) -> Ping:
    return Ping()


def _decode_error(data: dict[str, Any]) -> ErrorEvent:
    error = data.get("error") or {}
    if not isinstance(error, dict):
        raise TypeError("error must be an object")
    error_type = _optional_str(error.get("type"), "error.type") or "unknown"
    return ErrorEvent(
        message=f"{error_type}: {error.get('message', '')}",
        error_type=error_type,
    )


_EVENT_DECODERS: dict[str, Callable[[dict[str, Any]], StreamEvent]] = {
    "message_start": _decode_message_start,
    "content_block_start": _decode_block_start,
    "content_block_delta": _decode_block_delta,
    "content_block_stop": _decode_block_stop,
    "message_delta": _decode_message_delta,
    "message_stop": _decode_message_stop,
    "ping": _decode_ping,
    "error": _decode_error,
}


def is_stream_end(line: str) -> bool:
    """True for the ``data: [DONE]`` sentinel line."""
    return line.startswith(DATA_PREFIX) and line[len(DATA_PREFIX):].strip() == DONE_SENTINEL


def decode_sse_line(line: str) -> StreamEvent | None:
    """Decode one SSE line.

    Returns None for lines that carry no event (non-data lines and the
    ``[DONE]`` sentinel) and an ErrorEvent for anything undecodable.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return None

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        return ErrorEvent(message=f"JSON parsing error: {e}")
    if not isinstance(data, dict):
        return ErrorEvent(message="Event payload must be a JSON object")

    event_type = data.get("type")
    if not isinstance(event_type, str):
        return ErrorEvent(message="Missing event type")
    decoder = _EVENT_DECODERS.get(event_type)
    if decoder is None:
        return ErrorEvent(message=f"Unknown event type: {event_type}")

    try:
        return decoder(data)
    except (KeyError, TypeError, ValueError) as e:
        return ErrorEvent(message=f"Failed to parse {event_type}: {e!r}")


def iter_events(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Decode a finite sequence of SSE lines.

    Stops at ``[DONE]``. Raises StreamInterruptedError if the lines run
    out before either ``[DONE]`` or a message_stop event was seen.
    """
    terminated = False
    for line in lines:
        if is_stream_end(line):
            return
        event = decode_sse_line(line)
        if event is None:
            continue
        if isinstance(event, MessageStop):
            terminated = True
        yield event
    if not terminated:
        raise StreamInterruptedError("Stream ended before message_stop or [DONE]")


async def aiter_events(lines: AsyncIterable[str]) -> AsyncGenerator[StreamEvent, None]:
    """Async twin of iter_events() for lines read off the network."""
    terminated = False
    async for line in lines:
        if is_stream_end(line):
            return
        event = decode_sse_line(line)
        if event is None:
            continue
        if isinstance(event, MessageStop):
            terminated = True
        yield event
    if not terminated:
        raise StreamInterruptedError("Stream ended before message_stop or [DONE]")


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


@dataclass
class _ToolAccumulator:
    tool_id: str
    name: str
    initial_input: dict[str, Any]
    json_parts: list[str] = field(default_factory=list)

    def build(self) -> ToolUseBlock:
        tool_input: Any = self.initial_input
        raw = "".join(self.json_parts)
        if raw:
            try:
                tool_input = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Unparseable input for tool %s: %.200s", self.name, raw)
                tool_input = {}
        if not isinstance(tool_input, dict):
            tool_input = {}
        return ToolUseBlock(id=self.tool_id, name=self.name, input=tool_input)


class StreamAssembler:
    """Rebuilds one response from stream events fed in arrival order.

    Text deltas are buffered per block index. The buffer is flushed into
    a TextBlock when a later index arrives, on content_block_stop, and at
    the end. Tool use blocks are rebuilt from their input_json_delta
    fragments. Final usage comes from the most recent message_delta or
    message_stop that carried one.
    """

    def __init__(self) -> None:
        self._start: MessageStart | None = None
        self._blocks: list[ContentBlock] = []
        self._text_parts: list[str] = []
        self._current_index: int | None = None
        self._tools: dict[int, _ToolAccumulator] = {}
        self._usage: Usage | None = None
        self._stop_reason: str | None = None
        self._stop_sequence: str | None = None
        self._errors: list[ErrorEvent] = []
        self._stopped = False

    @property
    def errors(self) -> list[ErrorEvent]:
        """ErrorEvents seen so far; they never abort assembly."""
        return list(self._errors)

    @property
    def stopped(self) -> bool:
        """True once message_stop has been fed."""
        return self._stopped

    def feed(self, event: StreamEvent) -> str | None:
        """Consume one event; return its text fragment, if it carries one."""
        if isinstance(event, ContentBlockDelta):
            self._advance(event.index)
            if event.text is not None:
                self._text_parts.append(event.text)
                return event.text
            if event.partial_json is not None:
                acc = self._tools.get(event.index)
                if acc:
                    acc.json_parts.append(event.partial_json)
        elif isinstance(event, ContentBlockStart):
            self._advance(event.index)
            if event.block_type == "tool_use":
                self._tools[event.index] = _ToolAccumulator(
                    tool_id=event.tool_id or "",
                    name=event.tool_name or "",
                    initial_input=event.tool_input,
                )
        elif isinstance(event, ContentBlockStop):
            self._flush_text()
            acc = self._tools.pop(event.index, None)
            if acc:
                self._blocks.append(acc.build())
        elif isinstance(event, MessageStart):
            self._start = event
        elif isinstance(event, MessageDelta):
            if event.usage is not None:
                self._usage = event.usage
            if event.stop_reason is not None:
                self._stop_reason = event.stop_reason
            if event.stop_sequence is not None:
                self._stop_sequence = event.stop_sequence
        elif isinstance(event, MessageStop):
            if event.usage is not None:
                self._usage = event.usage
            self._stopped = True
        elif isinstance(event, ErrorEvent):
            self._errors.append(event)
        return None

    def result(self) -> MessagesResponse | None:
        """The assembled response, or None if the stream was incomplete.

        Incomplete means no message_start, or no usage on any
        message_delta/message_stop. Safe to call more than once.
        """
        start = self._start
        if start is None or self._usage is None:
            return None

        # Pending text and unfinished tool blocks, in index order
        pending: list[tuple[int, ContentBlock]] = [
            (index, acc.build()) for index, acc in self._tools.items()
        ]
        if self._text_parts:
            text_index = self._current_index if self._current_index is not None else 0
            pending.append((text_index, TextBlock(text="".join(self._text_parts))))
        pending.sort(key=lambda item: item[0])
        content = self._blocks + [block for _, block in pending]

        usage = self._usage
        if usage.input_tokens == 0 and start.usage.input_tokens:
            # message_delta usage usually carries output tokens only
            usage = usage.model_copy(update={"input_tokens": start.usage.input_tokens})

        return MessagesResponse(
            id=start.id,
            model=start.model,
            role=start.role,
            content=tuple(content),
            stop_reason=self._stop_reason or start.stop_reason,
            stop_sequence=self._stop_sequence or start.stop_sequence,
            usage=usage,
        )

    def _advance(self, index: int) -> None:
        if self._current_index is None:
            self._current_index = index
        elif index > self._current_index:
            self._flush_text()
            self._current_index = index

    def _flush_text(self) -> None:
        if self._text_parts:
            self._blocks.append(TextBlock(text="".join(self._text_parts)))
            self._text_parts = []


def assemble(events: Iterable[StreamEvent]) -> MessagesResponse | None:
    """Rebuild a complete response from an ordered event sequence."""
    assembler = StreamAssembler()
    for event in events:
        assembler.feed(event)
    return assembler.result()
