"""Tool execution for the agent loop.

Provides:
- ToolExecutor: the protocol the agent calls once per tool use block
- FunctionTool: a tool definition bundled with its handler
- ToolDispatcher: name -> handler registry implementing ToolExecutor

Handlers may be sync or async and are called with the tool input as
keyword arguments. A failing handler raises ToolExecutionError; the agent
turns that into an "Error: ..." tool result rather than aborting the turn.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from parley.errors import ToolExecutionError
from parley.models.content import ToolUseBlock
from parley.models.request import Property, Tool

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]


class ToolExecutor(Protocol):
    """Runs one tool use and returns its result text, or raises."""

    async def execute(self, tool_use: ToolUseBlock) -> str: ...


@dataclass(frozen=True)
class FunctionTool:
    """A tool definition plus the callable that implements it."""

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Property] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)

    @property
    def tool(self) -> Tool:
        return Tool.function(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            required=self.required,
        )


def _result_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    if isinstance(result, (dict, list)):
        return json.dumps(result)
    return str(result)


class ToolDispatcher:
    """Registers tool handlers and dispatches tool use blocks to them."""

    def __init__(self, tools: Iterable[FunctionTool] = ()) -> None:
        self._tools: dict[str, FunctionTool] = {}
        for function_tool in tools:
            self.add(function_tool)

    def add(self, function_tool: FunctionTool) -> None:
        self._tools[function_tool.name] = function_tool

    def register(
        self,
        name: str,
        handler: ToolHandler,
        description: str = "",
        parameters: dict[str, Property] | None = None,
        required: list[str] | None = None,
    ) -> None:
        """Register a handler under ``name``; replaces any existing one."""
        self.add(
            FunctionTool(
                name=name,
                description=description or f"Custom tool: {name}",
                handler=handler,
                parameters=parameters or {},
                required=required or [],
            )
        )

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def tool_definitions(self) -> list[Tool]:
        """All registered tools in API definition form."""
        return [t.tool for t in self._tools.values()]

    async def execute(self, tool_use: ToolUseBlock) -> str:
        function_tool = self._tools.get(tool_use.name)
        if function_tool is None:
            raise ToolExecutionError(f"Tool '{tool_use.name}' not found", tool_name=tool_use.name)
        try:
            result = function_tool.handler(**tool_use.input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.exception("Tool dispatch error for %s", tool_use.name)
            raise ToolExecutionError(
                f"Tool '{tool_use.name}' failed: {e}", tool_name=tool_use.name
            ) from e
        return _result_text(result)
