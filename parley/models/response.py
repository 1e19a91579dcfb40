"""Inbound response models from the Messages API."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from parley.errors import MalformedResponseError
from parley.models.content import (
    ContentBlock,
    Message,
    Role,
    ToolUseBlock,
    decode_content_blocks,
    join_text,
)


class StopReason(StrEnum):
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"


class Usage(BaseModel):
    """Token accounting for one request/response pair."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    cache_creation_input_tokens: int | None = Field(None, ge=0)
    cache_read_input_tokens: int | None = Field(None, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class MessagesResponse(BaseModel):
    """A complete assistant response, received whole or assembled from a stream."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "message"
    role: Role = Role.ASSISTANT
    content: tuple[ContentBlock, ...] = ()
    model: str
    stop_reason: StopReason | str | None = None  # unknown reasons kept verbatim
    stop_sequence: str | None = None
    usage: Usage

    @classmethod
    def from_wire(cls, data: Any) -> MessagesResponse:
        """Decode a JSON response body, raising MalformedResponseError."""
        if not isinstance(data, dict):
            raise MalformedResponseError("Response body must be a JSON object")
        content = decode_content_blocks(data.get("content", []))
        try:
            return cls.model_validate({**data, "content": content})
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid response body: {e}") from e

    @property
    def text_content(self) -> str:
        """Text blocks joined with newlines; tool use blocks are skipped."""
        return join_text(self.content)

    def tool_uses(self) -> list[ToolUseBlock]:
        """Tool invocation blocks, in the order they appeared."""
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_message(self) -> Message:
        return Message(role=self.role, content=self.content)
