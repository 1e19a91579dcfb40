"""Token estimation for conversation pruning.

A rough heuristic, not the service's tokenizer: text costs chars/4, each
image a flat 1500, each tool use or tool result a flat 100. Conversation
accepts any object with ``estimate_message`` so callers can plug in a
better estimator.
"""

from __future__ import annotations

from typing import Protocol

from parley.models.content import ImageBlock, Message, TextBlock, ToolResultBlock, ToolUseBlock


class MessageEstimator(Protocol):
    """Anything that can price a message in tokens."""

    def estimate_message(self, message: Message) -> int: ...


class TokenEstimator:
    """Fixed-ratio heuristic estimator."""

    def __init__(
        self,
        chars_per_token: int = 4,
        image_tokens: int = 1500,
        tool_block_tokens: int = 100,
    ) -> None:
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token
        self.image_tokens = image_tokens
        self.tool_block_tokens = tool_block_tokens

    def estimate_text(self, text: str) -> int:
        return len(text) // self.chars_per_token

    def estimate_message(self, message: Message) -> int:
        if isinstance(message.content, str):
            return self.estimate_text(message.content)
        total = 0
        for block in message.content:
            if isinstance(block, TextBlock):
                total += self.estimate_text(block.text)
            elif isinstance(block, ImageBlock):
                total += self.image_tokens
            elif isinstance(block, (ToolUseBlock, ToolResultBlock)):
                total += self.tool_block_tokens
        return total
