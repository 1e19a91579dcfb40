"""Wire models for the Messages API.

Public API:
    Role, Message                   - conversation entries
    TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock
                                    - content block variants (ContentBlock)
    Tool, InputSchema, Property     - tool definitions
    MessagesRequest, Metadata       - outbound request body
    MessagesResponse, Usage, StopReason
                                    - inbound response body
"""

from parley.models.content import (
    CONTENT_BLOCK_TYPES,
    ContentBlock,
    ImageBlock,
    ImageSource,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    decode_content_block,
)
from parley.models.request import (
    DEFAULT_MODEL,
    InputSchema,
    MessagesRequest,
    Metadata,
    Property,
    PropertyItems,
    Tool,
)
from parley.models.response import MessagesResponse, StopReason, Usage

__all__ = [
    "CONTENT_BLOCK_TYPES",
    "ContentBlock",
    "DEFAULT_MODEL",
    "ImageBlock",
    "ImageSource",
    "InputSchema",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "Metadata",
    "Property",
    "PropertyItems",
    "Role",
    "StopReason",
    "TextBlock",
    "Tool",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
    "decode_content_block",
]
