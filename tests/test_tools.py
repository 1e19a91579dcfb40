"""Tests for ToolDispatcher and FunctionTool."""

import logging

import pytest

from parley.agent.tools import FunctionTool, ToolDispatcher
from parley.errors import ToolExecutionError
from parley.models.content import ToolUseBlock
from parley.models.request import Property


def _use(name: str, /, **tool_input) -> ToolUseBlock:
    return ToolUseBlock(id=f"toolu_{name}", name=name, input=tool_input)


class TestToolDispatcher:
    """Tests for dispatch by tool name."""

    @pytest.mark.asyncio
    async def test_sync_handler(self):
        """Sync handlers get the tool input as keyword arguments."""
        dispatcher = ToolDispatcher()
        dispatcher.register("add", lambda a, b: str(a + b))
        assert await dispatcher.execute(_use("add", a=2, b=3)) == "5"

    @pytest.mark.asyncio
    async def test_async_handler(self):
        """Async handlers are awaited."""

        async def greet(name: str) -> str:
            return f"Hello, {name}"

        dispatcher = ToolDispatcher([FunctionTool("greet", "Greets", greet)])
        assert await dispatcher.execute(_use("greet", name="Ada")) == "Hello, Ada"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("returned", "expected"),
        [({"temp": 21}, '{"temp": 21}'), ([1, 2], "[1, 2]"), (None, ""), (3.5, "3.5")],
    )
    async def test_result_text(self, returned, expected):
        """Non-string results are rendered to text."""
        dispatcher = ToolDispatcher()
        dispatcher.register("f", lambda: returned)
        assert await dispatcher.execute(_use("f")) == expected

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Unknown names raise ToolExecutionError."""
        with pytest.raises(ToolExecutionError, match="Tool 'missing' not found") as exc_info:
            await ToolDispatcher().execute(_use("missing"))
        assert exc_info.value.tool_name == "missing"

    @pytest.mark.asyncio
    async def test_handler_failure(self, caplog):
        """Handler exceptions are logged and wrapped."""

        def broken(**kwargs):
            raise RuntimeError("disk full")

        dispatcher = ToolDispatcher()
        dispatcher.register("save", broken)
        with caplog.at_level(logging.ERROR, logger="parley.agent.tools"):
            with pytest.raises(ToolExecutionError, match="Tool 'save' failed: disk full") as exc_info:
                await dispatcher.execute(_use("save", path="/tmp/x"))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "Tool dispatch error for save" in caplog.text

    @pytest.mark.asyncio
    async def test_bad_arguments(self):
        """Input that doesn't match the handler signature is a tool failure."""
        dispatcher = ToolDispatcher()
        dispatcher.register("add", lambda a, b: a + b)
        with pytest.raises(ToolExecutionError):
            await dispatcher.execute(_use("add", a=1))

    def test_register_defaults(self):
        """register() fills a default description and replaces by name."""
        dispatcher = ToolDispatcher()
        dispatcher.register("ping", lambda: "pong")
        dispatcher.register("ping", lambda: "PONG", description="Ping the server")
        definitions = dispatcher.tool_definitions()
        assert len(definitions) == 1
        assert definitions[0].description == "Ping the server"
        assert "ping" in dispatcher
        assert "pong" not in dispatcher

    def test_tool_definitions(self):
        """FunctionTool.tool carries the parameter schema."""
        tool = FunctionTool(
            name="weather",
            description="Weather by city",
            handler=lambda city: city,
            parameters={"city": Property(type="string", description="City name")},
            required=["city"],
        )
        definition = ToolDispatcher([tool]).tool_definitions()[0]
        assert definition.to_wire()["input_schema"] == {
            "type": "object",
            "properties": {"city": {"type": "string", "description": "City name"}},
            "required": ["city"],
        }

    def test_default_description(self):
        """A registration without a description gets a generic one."""
        dispatcher = ToolDispatcher()
        dispatcher.register("noop", lambda: None)
        assert dispatcher.tool_definitions()[0].description == "Custom tool: noop"
