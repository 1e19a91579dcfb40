"""Agent -- a tool-use loop over one Conversation.

send() appends the user turn, then alternates between calling the API
and running the requested tools until the model answers in plain text.
The loop is bounded: after max_iterations round-trips that all asked for
tools, it gives up with IterationLimitError.

Every step is committed to the conversation as it completes (the
assistant turn, then that turn's tool results as one batch), so an error
or cancellation leaves the history consistent up to the last finished step.

One Agent is single-writer: concurrent send()/stream() calls on the same
instance are serialized by an asyncio lock, never interleaved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from typing import Any

from parley.agent.conversation import Conversation, tool_result_message
from parley.agent.tools import FunctionTool, ToolDispatcher, ToolExecutor
from parley.api.client import MessagesClient
from parley.api.streaming import ErrorEvent, StreamAssembler
from parley.errors import ConfigurationError, IterationLimitError, MalformedResponseError, StreamError
from parley.models.content import ContentBlock, Message, ToolUseBlock
from parley.models.request import MessagesRequest, Tool
from parley.models.response import MessagesResponse

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10


def _user_message(message: str | Sequence[ContentBlock]) -> Message:
    if isinstance(message, str):
        return Message.user(message)
    return Message.user(tuple(message))


async def _execute_one(executor: ToolExecutor, tool_use: ToolUseBlock) -> tuple[str, bool]:
    """Run one tool; failures become ("Error: ...", True)."""
    start_time = time.monotonic()
    try:
        text = await executor.execute(tool_use)
        is_error = False
    except Exception as e:
        logger.warning("Tool %s failed: %s", tool_use.name, e)
        text = f"Error: {e}"
        is_error = True
    duration_ms = int((time.monotonic() - start_time) * 1000)
    logger.debug("Tool %s finished in %dms (error=%s)", tool_use.name, duration_ms, is_error)
    return text, is_error


class Agent:
    """Conversational agent that resolves tool use turns automatically."""

    def __init__(
        self,
        client: MessagesClient,
        *,
        system_prompt: str | None = None,
        tools: Sequence[Tool] = (),
        tool_executor: ToolExecutor | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        max_iterations: int | None = None,
        context_token_limit: int | None = None,
        parallel_tools: bool = False,
        conversation: Conversation | None = None,
    ) -> None:
        settings = client.settings
        self.system_prompt = system_prompt
        self.tools = tuple(tools)
        self.model = model or settings.model
        self.max_tokens = max_tokens or settings.max_tokens
        self.temperature = temperature
        self.max_iterations = max_iterations if max_iterations is not None else settings.max_iterations
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        self.context_token_limit = (
            context_token_limit if context_token_limit is not None else settings.context_token_limit
        )
        self.parallel_tools = parallel_tools

        self._client = client
        self._executor = tool_executor
        self._conversation = conversation or Conversation()
        self._lock = asyncio.Lock()

    @classmethod
    def with_tools(
        cls,
        client: MessagesClient,
        functions: Sequence[FunctionTool],
        **kwargs: Any,
    ) -> Agent:
        """Agent whose tool definitions and executor come from ``functions``."""
        dispatcher = ToolDispatcher(functions)
        return cls(client, tools=dispatcher.tool_definitions(), tool_executor=dispatcher, **kwargs)

    # ------------------------------------------------------------------
    # Conversation access
    # ------------------------------------------------------------------

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def messages(self) -> list[Message]:
        return self._conversation.snapshot()

    @property
    def message_count(self) -> int:
        return len(self._conversation)

    def clear(self) -> None:
        self._conversation.clear()

    def last_tool_uses(self) -> list[ToolUseBlock]:
        return self._conversation.last_tool_uses()

    # ------------------------------------------------------------------
    # Tool loop
    # ------------------------------------------------------------------

    async def send(self, message: str | Sequence[ContentBlock]) -> str:
        """Send a user turn and return the model's final text answer.

        Raises IterationLimitError if every one of max_iterations
        responses asked for tools, ConfigurationError if tools were
        requested but no executor is set, and any transport/API error
        from the client unchanged.
        """
        async with self._lock:
            self._conversation.append(_user_message(message))

            for iteration in range(1, self.max_iterations + 1):
                response = await self._client.send(self._build_request())
                if await self._commit_turn(response, iteration):
                    return response.text_content

            logger.warning("Tool loop reached max_iterations=%d", self.max_iterations)
            raise IterationLimitError(self.max_iterations)

    async def stream(self, message: str | Sequence[ContentBlock]) -> AsyncGenerator[str, None]:
        """Streaming twin of send(): yields text fragments of every turn.

        Tool calls run between stream segments. Close the generator (or
        exhaust it) to release the agent for the next call.
        """
        async with self._lock:
            self._conversation.append(_user_message(message))

            for iteration in range(1, self.max_iterations + 1):
                assembler = StreamAssembler()
                async with aclosing(self._client.stream(self._build_request())) as events:
                    async for event in events:
                        if isinstance(event, ErrorEvent) and event.error_type is not None:
                            raise StreamError(event.message, error_type=event.error_type)
                        fragment = assembler.feed(event)
                        if fragment:
                            yield fragment

                response = assembler.result()
                if response is None:
                    raise MalformedResponseError("Stream ended without message_start or usage")
                if await self._commit_turn(response, iteration):
                    return

            logger.warning("Streaming tool loop reached max_iterations=%d", self.max_iterations)
            raise IterationLimitError(self.max_iterations)

    async def _commit_turn(self, response: MessagesResponse, iteration: int) -> bool:
        """Record one assistant turn and run its tools.

        Returns True when the turn is a final text answer.
        """
        self._conversation.add_assistant_response(response)
        tool_uses = response.tool_uses()
        if not tool_uses:
            logger.debug("Agent answered after %d iteration(s)", iteration)
            return True

        if self._executor is None:
            names = ", ".join(t.name for t in tool_uses)
            raise ConfigurationError(f"No tool executor available to handle tools: {names}")

        logger.debug(
            "Iteration %d requested tools: %s",
            iteration,
            ", ".join(t.name for t in tool_uses),
        )
        results = await self._execute_tools(self._executor, tool_uses)
        # One tool-result message per tool use, in extraction order
        self._conversation.extend(
            tool_result_message(tool_use.id, text, is_error=is_error)
            for tool_use, (text, is_error) in zip(tool_uses, results)
        )
        return False

    async def _execute_tools(
        self, executor: ToolExecutor, tool_uses: list[ToolUseBlock]
    ) -> list[tuple[str, bool]]:
        if self.parallel_tools and len(tool_uses) > 1:
            return list(await asyncio.gather(*(_execute_one(executor, t) for t in tool_uses)))
        return [await _execute_one(executor, t) for t in tool_uses]

    def _build_request(self) -> MessagesRequest:
        if self.context_token_limit is not None:
            self._conversation.prune_to_budget(self.context_token_limit, turn_aligned=True)
        return self._conversation.build_request(
            model=self.model,
            max_tokens=self.max_tokens,
            system=self.system_prompt,
            tools=self.tools or None,
            temperature=self.temperature,
        )
