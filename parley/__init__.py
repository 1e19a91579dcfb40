"""Parley -- async client and tool-using agent for the Anthropic Messages API."""

from parley.agent import Agent, Conversation, FunctionTool, ToolDispatcher, ToolExecutor
from parley.api.client import MessagesClient
from parley.api.streaming import StreamAssembler, assemble, decode_sse_line
from parley.api.usage import UsageTracker
from parley.builder import image_from_bytes, image_from_file, user_message
from parley.config import Settings
from parley.errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    IterationLimitError,
    MalformedResponseError,
    ParleyError,
    StreamError,
    StreamInterruptedError,
    ToolExecutionError,
    TransportError,
)
from parley.models import (
    ImageBlock,
    Message,
    MessagesRequest,
    MessagesResponse,
    Property,
    Role,
    TextBlock,
    Tool,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "Agent",
    "AuthenticationError",
    "ConfigurationError",
    "Conversation",
    "FunctionTool",
    "ImageBlock",
    "IterationLimitError",
    "MalformedResponseError",
    "Message",
    "MessagesClient",
    "MessagesRequest",
    "MessagesResponse",
    "ParleyError",
    "Property",
    "Role",
    "Settings",
    "StreamAssembler",
    "StreamError",
    "StreamInterruptedError",
    "TextBlock",
    "Tool",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolResultBlock",
    "ToolUseBlock",
    "TransportError",
    "Usage",
    "UsageTracker",
    "assemble",
    "decode_sse_line",
    "image_from_bytes",
    "image_from_file",
    "user_message",
]
