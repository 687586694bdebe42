"""Tests for the tool registry."""

import pytest
from pydantic import Field

from swiftbot.tools.base import ToolParams, ToolResult
from swiftbot.tools.registry import ToolRegistry, should_enable_tools

# -- Fixtures ----------------------------------------------------------------


@pytest.fixture
def reg() -> ToolRegistry:
    """Fresh registry for each test."""
    return ToolRegistry()


class EchoParams(ToolParams):
    message: str = Field(description="What to echo")
    times: int = Field(default=1, ge=1)


# -- Decorator registration --------------------------------------------------


def test_register_via_decorator(reg: ToolRegistry) -> None:
    @reg.tool(name="ping", description="Ping", category="test")
    async def ping() -> ToolResult:
        return ToolResult(data={"pong": True})

    assert "ping" in reg.tool_names
    assert reg.get("ping") is not None
    assert reg.get("ping").category == "test"


def test_decorator_rejects_sync_function(reg: ToolRegistry) -> None:
    with pytest.raises(TypeError, match="must be an async function"):

        @reg.tool(name="bad", description="Bad", category="test")
        def bad() -> ToolResult:
            return ToolResult()


# -- Schemas -----------------------------------------------------------------


def test_schema_from_params_model(reg: ToolRegistry) -> None:
    @reg.tool(name="echo", description="Echo text", category="test", params_model=EchoParams)
    async def echo(message: str, times: int = 1) -> ToolResult:
        return ToolResult(data={"echo": message * times})

    schema = reg.get_schemas()[0]
    assert schema["type"] == "function"
    assert schema["function"]["name"] == "echo"
    assert schema["function"]["description"] == "Echo text"
    assert "message" in schema["function"]["parameters"]["properties"]
    assert schema["function"]["parameters"]["required"] == ["message"]


def test_schema_without_params(reg: ToolRegistry) -> None:
    @reg.tool(name="ping", description="Ping", category="test")
    async def ping() -> ToolResult:
        return ToolResult(data={})

    assert reg.get_schemas()[0]["function"]["parameters"] == {"type": "object", "properties": {}}


# -- Execution ---------------------------------------------------------------


async def test_execute_validates_and_calls(reg: ToolRegistry) -> None:
    @reg.tool(name="echo", description="Echo", category="test", params_model=EchoParams)
    async def echo(message: str, times: int = 1) -> ToolResult:
        return ToolResult(data={"echo": message * times})

    result = await reg.execute("echo", {"message": "ab", "times": 2})
    assert result.success
    assert result.data == {"echo": "abab"}


async def test_execute_unknown_tool(reg: ToolRegistry) -> None:
    result = await reg.execute("nope", {})
    assert not result.success
    assert result.error == "Unsupported tool: nope"


async def test_execute_invalid_arguments(reg: ToolRegistry) -> None:
    @reg.tool(name="echo", description="Echo", category="test", params_model=EchoParams)
    async def echo(message: str, times: int = 1) -> ToolResult:
        return ToolResult(data={})

    result = await reg.execute("echo", {"times": 0})
    assert not result.success
    assert result.error.startswith("Invalid arguments for 'echo'")


async def test_execute_handler_exception(reg: ToolRegistry) -> None:
    @reg.tool(name="boom", description="Boom", category="test")
    async def boom() -> ToolResult:
        raise RuntimeError("kaboom")

    result = await reg.execute("boom", {})
    assert result.error == "Tool 'boom' failed."


def test_tool_result_content() -> None:
    assert ToolResult(data={"a": 1}).to_content() == '{"a": 1}'
    assert ToolResult(error="bad").to_content() == '{"error": "bad"}'
    assert ToolResult().to_content() == "{}"


# -- Eligibility -------------------------------------------------------------


@pytest.mark.parametrize(
    "text",
    [
        "Calculate the area",
        "convert 5 km to miles",
        "what's the time in Tokyo",
        "Summarize this paragraph",
        "what is 12 * 7",
        "give me the key points",
    ],
)
def test_should_enable_tools(text: str) -> None:
    assert should_enable_tools(text)


@pytest.mark.parametrize("text", ["tell me a joke", "write a poem about rain"])
def test_should_not_enable_tools(text: str) -> None:
    assert not should_enable_tools(text)
