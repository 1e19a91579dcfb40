"""Conversation store -- an append-only, lock-guarded message log.

Messages are only ever appended, or trimmed from the front by
prune_to_budget(). Readers get snapshot() copies, never the live list,
so an agent loop can't race a concurrent append.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence

from parley.agent.estimator import MessageEstimator, TokenEstimator
from parley.models.content import ContentBlock, Message, Role, ToolResultBlock, ToolUseBlock
from parley.models.request import DEFAULT_MODEL, Metadata, MessagesRequest, Tool
from parley.models.response import MessagesResponse

logger = logging.getLogger(__name__)

# Pruning trims down to this fraction of the limit, not just under it
PRUNE_TARGET_RATIO = 0.8


class Conversation:
    """Thread-safe ordered message log for one conversation."""

    def __init__(self, estimator: MessageEstimator | None = None) -> None:
        self._lock = threading.Lock()
        self._messages: list[Message] = []
        self.estimator: MessageEstimator = estimator or TokenEstimator()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        """Append several messages as one atomic step."""
        batch = list(messages)
        with self._lock:
            self._messages.extend(batch)

    def add_user_text(self, text: str) -> None:
        self.append(Message.user(text))

    def add_user_blocks(self, blocks: Sequence[ContentBlock]) -> None:
        self.append(Message.user(tuple(blocks)))

    def add_assistant_response(self, response: MessagesResponse) -> None:
        self.append(response.to_message())

    def add_tool_result(self, tool_use_id: str, result: str, *, is_error: bool = False) -> None:
        self.append(tool_result_message(tool_use_id, result, is_error=is_error))

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def prune_to_budget(self, token_limit: int, *, turn_aligned: bool = False) -> int:
        """Drop the oldest messages once the estimate exceeds token_limit.

        Trims until the remaining estimate is <= 80% of the limit, but
        always keeps at least the most recent message. Returns the number
        of messages removed.

        With ``turn_aligned`` the kept history always opens with a user
        message that is not a tool result, as the API requires. The cut
        moves forward to the next such message, or back to the previous
        one when none follows, so the estimate may stay above target.
        """
        with self._lock:
            costs = [self.estimator.estimate_message(m) for m in self._messages]
            total = sum(costs)
            if total <= token_limit:
                return 0

            target = int(token_limit * PRUNE_TARGET_RATIO)
            remaining = total
            remove_count = 0
            while remove_count < len(costs) - 1 and remaining > target:
                remaining -= costs[remove_count]
                remove_count += 1

            if turn_aligned and remove_count:
                remove_count = self._turn_start(remove_count)
                remaining = total - sum(costs[:remove_count])

            if remove_count:
                del self._messages[:remove_count]
                logger.info(
                    "Pruned %d messages (estimate %d -> %d tokens, limit %d)",
                    remove_count,
                    total,
                    remaining,
                    token_limit,
                )
            return remove_count

    def _turn_start(self, index: int) -> int:
        # Caller holds the lock
        last = len(self._messages) - 1
        for i in range(index, last + 1):
            if _opens_turn(self._messages[i]):
                return i
        for i in range(index - 1, -1, -1):
            if _opens_turn(self._messages[i]):
                return i
        return 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> list[Message]:
        """A copy of the current messages, oldest first."""
        with self._lock:
            return list(self._messages)

    @property
    def messages(self) -> list[Message]:
        return self.snapshot()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def estimated_tokens(self) -> int:
        return sum(self.estimator.estimate_message(m) for m in self.snapshot())

    @property
    def last_message(self) -> Message | None:
        with self._lock:
            return self._messages[-1] if self._messages else None

    def _last_with_role(self, role: Role) -> Message | None:
        with self._lock:
            for message in reversed(self._messages):
                if message.role == role:
                    return message
        return None

    @property
    def last_user_message(self) -> Message | None:
        return self._last_with_role(Role.USER)

    @property
    def last_assistant_message(self) -> Message | None:
        return self._last_with_role(Role.ASSISTANT)

    def last_tool_uses(self) -> list[ToolUseBlock]:
        """Tool use blocks from the most recent assistant message."""
        message = self.last_assistant_message
        return message.tool_uses if message else []

    def build_request(
        self,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        system: str | None = None,
        tools: Sequence[Tool] | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: list[str] | None = None,
        metadata: Metadata | None = None,
    ) -> MessagesRequest:
        """Build a request over a consistent snapshot of the messages."""
        return MessagesRequest(
            model=model,
            messages=tuple(self.snapshot()),
            max_tokens=max_tokens,
            system=system,
            tools=tuple(tools) if tools else None,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            metadata=metadata,
        )


def _opens_turn(message: Message) -> bool:
    """A user message that doesn't answer an earlier tool use."""
    if message.role != Role.USER:
        return False
    blocks = message.blocks
    return not blocks or not isinstance(blocks[0], ToolResultBlock)


def tool_result_message(tool_use_id: str, result: str, *, is_error: bool = False) -> Message:
    """A user message carrying one tool result."""
    block = ToolResultBlock(tool_use_id=tool_use_id, content=result, is_error=is_error or None)
    return Message.user((block,))
