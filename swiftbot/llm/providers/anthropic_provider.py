"""Anthropic Messages API adapter built on the official SDK."""

from __future__ import annotations

import json
import logging
from typing import Any

import anthropic

from swiftbot.config import settings
from swiftbot.errors import ProviderError
from swiftbot.llm.providers.base import (
    ChatRequest,
    Completion,
    OnDelta,
    ToolCall,
    normalize_finish_reason,
)

logger = logging.getLogger(__name__)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    try:
        value = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def convert_messages(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """Split chat-completions messages into Anthropic's system text and turns."""
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content") or ""
        if role == "system":
            system_parts.append(content)
        elif role == "tool":
            converted.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": message.get("tool_call_id", ""),
                    "content": content,
                }],
            })
        elif role == "assistant" and message.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if content:
                blocks.append({"type": "text", "text": content})
            for call in message["tool_calls"]:
                function = call.get("function") or {}
                blocks.append({
                    "type": "tool_use",
                    "id": call.get("id", ""),
                    "name": function.get("name", ""),
                    "input": _parse_arguments(function.get("arguments")),
                })
            converted.append({"role": "assistant", "content": blocks})
        else:
            converted.append({"role": role, "content": content})
    return "\n\n".join(p for p in system_parts if p), converted


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Function schemas to Anthropic tool definitions."""
    result = []
    for tool in tools:
        function = tool.get("function", tool)
        result.append({
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
        })
    return result


def parse_message(message: Any, model: str) -> Completion:
    """Normalize an SDK Message into a Completion."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in message.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(
                ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input))
            )
    return Completion(
        text="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=normalize_finish_reason(message.stop_reason),
        model=getattr(message, "model", None) or model,
    )


class AnthropicProvider:
    """Claude models through ``anthropic.AsyncAnthropic``."""

    def __init__(self, api_key: str | None = None, *, timeout: float | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.anthropic_api_key
        self._timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._client: anthropic.AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Lazily initialize the Anthropic client."""
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=settings.provider_max_retries,
            )
        return self._client

    @staticmethod
    def _kwargs(request: ChatRequest) -> dict[str, Any]:
        system, messages = convert_messages(request.messages)
        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": min(request.temperature, 1.0),
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if request.tools:
            kwargs["tools"] = convert_tools(request.tools)
        return kwargs

    def _translate(self, exc: anthropic.APIError) -> ProviderError:
        if isinstance(exc, anthropic.APIStatusError):
            return ProviderError(exc.message, provider=self.name, status=exc.status_code)
        if isinstance(exc, anthropic.APITimeoutError):
            return ProviderError("request timed out", provider=self.name)
        return ProviderError(str(exc), provider=self.name)

    async def complete(self, request: ChatRequest) -> Completion:
        client = self._get_client()
        try:
            response = await client.messages.create(**self._kwargs(request))
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc
        return parse_message(response, request.model)

    async def stream(self, request: ChatRequest, on_delta: OnDelta) -> Completion:
        client = self._get_client()
        try:
            async with client.messages.stream(**self._kwargs(request)) as stream:
                async for text in stream.text_stream:
                    await on_delta(text)
                response = await stream.get_final_message()
        except anthropic.APIError as exc:
            raise self._translate(exc) from exc
        return parse_message(response, request.model)
