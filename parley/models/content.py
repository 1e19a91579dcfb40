"""Content blocks and messages -- the wire-level conversation model.

Each block mirrors its JSON shape on the Messages API, so encoding is a
plain ``model_dump`` and decoding dispatches on the ``type`` discriminator
through CONTENT_BLOCK_TYPES. All models are frozen: once a message joins a
conversation it is never mutated.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError

from parley.errors import MalformedResponseError


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent to (and received from) the API."""
        return self.model_dump(mode="json", exclude_none=True)


class TextBlock(_WireModel):
    type: Literal["text"] = "text"
    text: str


class ImageSource(_WireModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ImageBlock(_WireModel):
    type: Literal["image"] = "image"
    source: ImageSource

    @classmethod
    def from_base64(cls, media_type: str, data: str) -> ImageBlock:
        return cls(source=ImageSource(media_type=media_type, data=data))

    @property
    def media_type(self) -> str:
        return self.source.media_type

    @property
    def data(self) -> str:
        return self.source.data


class ToolUseBlock(_WireModel):
    """A request from the model to run a named tool."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, JsonValue] = Field(default_factory=dict)


class ToolResultBlock(_WireModel):
    """The local reply to a ToolUseBlock, paired by ``tool_use_id``."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool | None = None


ContentBlock = Annotated[
    Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]

CONTENT_BLOCK_TYPES: dict[str, type[_WireModel]] = {
    "text": TextBlock,
    "image": ImageBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
}


def decode_content_block(data: Any) -> ContentBlock:
    """Decode one wire content block, raising MalformedResponseError."""
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Content block must be an object, got {type(data).__name__}"
        )
    block_type = data.get("type")
    block_cls = CONTENT_BLOCK_TYPES.get(block_type)  # type: ignore[arg-type]
    if block_cls is None:
        raise MalformedResponseError(f"Unknown content block type: {block_type}")
    try:
        return block_cls.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid {block_type} block: {e}") from e


def decode_content_blocks(data: Any) -> tuple[ContentBlock, ...]:
    if not isinstance(data, list):
        raise MalformedResponseError("Content must be a list of content blocks")
    return tuple(decode_content_block(item) for item in data)


def join_text(blocks: tuple[ContentBlock, ...] | list[ContentBlock]) -> str:
    """Concatenate the text blocks, newline separated."""
    return "\n".join(b.text for b in blocks if isinstance(b, TextBlock))


class Message(_WireModel):
    """One conversation entry: a plain string or an ordered block sequence."""

    role: Role
    content: str | tuple[ContentBlock, ...]

    @classmethod
    def user(cls, content: str | list[ContentBlock] | tuple[ContentBlock, ...]) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str | list[ContentBlock] | tuple[ContentBlock, ...]) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def from_wire(cls, data: Any) -> Message:
        if not isinstance(data, dict):
            raise MalformedResponseError("Message must be an object")
        try:
            role = Role(data.get("role"))
        except ValueError as e:
            raise MalformedResponseError(f"Unknown role: {data.get('role')}") from e
        content = data.get("content")
        if isinstance(content, str):
            return cls(role=role, content=content)
        return cls(role=role, content=decode_content_blocks(content))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks; a plain string becomes one TextBlock."""
        if isinstance(self.content, str):
            return (TextBlock(text=self.content),)
        return self.content

    @property
    def text_content(self) -> str:
        """Text blocks joined with newlines; other blocks are skipped."""
        if isinstance(self.content, str):
            return self.content
        return join_text(self.content)

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]
