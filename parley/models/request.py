"""Outbound request models: tool definitions and the Messages API payload."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from parley.models.content import Message

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


class PropertyItems(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str


class Property(BaseModel):
    """One parameter in a tool's input schema."""

    model_config = ConfigDict(frozen=True)

    type: str
    description: str | None = None
    enum: list[str] | None = None
    items: PropertyItems | None = None


class InputSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: dict[str, Property] | None = None
    required: list[str] | None = None


class Tool(BaseModel):
    """A tool definition advertised to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: InputSchema = Field(default_factory=InputSchema)

    @classmethod
    def function(
        cls,
        name: str,
        description: str,
        parameters: dict[str, Property] | None = None,
        required: list[str] | None = None,
    ) -> Tool:
        """Build a tool with an object schema; empty parts are omitted."""
        return cls(
            name=name,
            description=description,
            input_schema=InputSchema(
                properties=parameters or None,
                required=required or None,
            ),
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Metadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str | None = None


class MessagesRequest(BaseModel):
    """Body of a POST /v1/messages call."""

    model_config = ConfigDict(frozen=True)

    model: str = DEFAULT_MODEL
    messages: tuple[Message, ...]
    max_tokens: int = Field(4096, ge=1)
    system: str | None = None
    tools: tuple[Tool, ...] | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stream: bool | None = None
    stop_sequences: list[str] | None = None
    metadata: Metadata | None = None

    @classmethod
    def simple(cls, prompt: str, model: str = DEFAULT_MODEL, max_tokens: int = 4096) -> MessagesRequest:
        return cls(model=model, messages=(Message.user(prompt),), max_tokens=max_tokens)

    def streaming(self) -> MessagesRequest:
        """Copy of this request with ``stream`` enabled."""
        if self.stream:
            return self
        return self.model_copy(update={"stream": True})

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude_none=True)
        if not payload.get("tools"):
            payload.pop("tools", None)
        return payload
