"""Tests for the Anthropic adapter - message conversion and a mocked SDK client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from swiftbot.errors import ProviderError
from swiftbot.llm.providers.anthropic_provider import (
    AnthropicProvider,
    convert_messages,
    convert_tools,
    parse_message,
)
from swiftbot.llm.providers.base import ChatRequest


def _sdk_message(*blocks, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason, model="claude-test")


def _text_block(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


# -- Conversion ----------------------------------------------------------------


def test_convert_messages_splits_system_and_tools() -> None:
    system, messages = convert_messages([
        {"role": "system", "content": "Be brief."},
        {"role": "system", "content": "Grounding here."},
        {"role": "user", "content": "What is 2+2?"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "calculator", "arguments": '{"expression": "2+2"}'},
                }
            ],
        },
        {"role": "tool", "tool_call_id": "call_1", "name": "calculator", "content": "4"},
    ])

    assert system == "Be brief.\n\nGrounding here."
    assert messages[0] == {"role": "user", "content": "What is 2+2?"}
    assert messages[1] == {
        "role": "assistant",
        "content": [
            {
                "type": "tool_use",
                "id": "call_1",
                "name": "calculator",
                "input": {"expression": "2+2"},
            }
        ],
    }
    assert messages[2]["role"] == "user"
    assert messages[2]["content"][0]["type"] == "tool_result"
    assert messages[2]["content"][0]["tool_use_id"] == "call_1"


def test_convert_tools() -> None:
    tools = convert_tools([
        {
            "type": "function",
            "function": {
                "name": "calculator",
                "description": "Evaluate math",
                "parameters": {"type": "object", "properties": {"expression": {"type": "string"}}},
            },
        }
    ])
    assert tools[0]["name"] == "calculator"
    assert tools[0]["input_schema"]["properties"]["expression"] == {"type": "string"}


def test_parse_message_with_tool_use() -> None:
    message = _sdk_message(
        _text_block("Let me compute."),
        SimpleNamespace(type="tool_use", id="tu_1", name="calculator", input={"expression": "1"}),
        stop_reason="tool_use",
    )
    completion = parse_message(message, "fallback-model")
    assert completion.text == "Let me compute."
    assert completion.finish_reason == "tool_calls"
    assert completion.tool_calls[0].parsed_arguments() == {"expression": "1"}
    assert completion.model == "claude-test"


def test_parse_message_max_tokens_is_truncated() -> None:
    completion = parse_message(_sdk_message(_text_block("cut"), stop_reason="max_tokens"), "m")
    assert completion.truncated


# -- Client calls --------------------------------------------------------------


@pytest.fixture
def provider() -> AnthropicProvider:
    provider = AnthropicProvider(api_key="test-key")
    provider._client = MagicMock()
    return provider


async def test_complete_passes_converted_kwargs(provider: AnthropicProvider) -> None:
    provider._client.messages.create = AsyncMock(return_value=_sdk_message(_text_block("Hi!")))
    request = ChatRequest(
        model="claude-sonnet",
        messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "hello"}],
        temperature=1.6,
        max_tokens=500,
    )

    completion = await provider.complete(request)

    assert completion.text == "Hi!"
    kwargs = provider._client.messages.create.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["temperature"] == 1.0
    assert kwargs["max_tokens"] == 500
    assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
    assert "tools" not in kwargs


async def test_status_errors_are_translated(provider: AnthropicProvider) -> None:
    response = httpx.Response(
        401, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )
    provider._client.messages.create = AsyncMock(
        side_effect=anthropic.AuthenticationError("invalid x-api-key", response=response, body=None)
    )

    with pytest.raises(ProviderError) as excinfo:
        await provider.complete(ChatRequest(model="claude", messages=[]))
    assert excinfo.value.status == 401
    assert excinfo.value.fatal


def test_configured_requires_key() -> None:
    assert not AnthropicProvider(api_key="").configured
    assert AnthropicProvider(api_key="k").name == "anthropic"
