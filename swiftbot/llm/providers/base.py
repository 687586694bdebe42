"""Provider adapter contract and the normalized request/response types."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

OnDelta = Callable[[str], Awaitable[None]]

_FINISH_REASONS = {
    "length": "length",
    "max_tokens": "length",
    "max_output_tokens": "length",
    "stop": "stop",
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_calls": "tool_calls",
    "tool_use": "tool_calls",
    "function_call": "tool_calls",
    "content_filter": "content_filter",
    "safety": "content_filter",
}


def normalize_finish_reason(value: str | None) -> str | None:
    """Map provider-specific stop reasons onto stop/length/tool_calls/content_filter."""
    if not value:
        return None
    return _FINISH_REASONS.get(value.lower(), value.lower())


@dataclass
class ToolCall:
    """A function call requested by the model. ``arguments`` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_chat(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ChatRequest:
    """A provider-independent chat completion request.

    ``messages`` use the chat-completions shape (role/content dicts, with
    ``tool_calls`` on assistant turns and ``tool_call_id`` on tool turns).
    ``tools`` are function schemas in the same shape.
    """

    model: str
    messages: list[dict[str, Any]]
    temperature: float = 0.4
    max_tokens: int = 1200
    tools: list[dict[str, Any]] | None = None

    def with_model(self, model: str) -> ChatRequest:
        return replace(self, model=model)


@dataclass
class Completion:
    """Normalized provider response."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    model: str = ""

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"

    @property
    def empty(self) -> bool:
        return not self.text.strip() and not self.tool_calls


@runtime_checkable
class ProviderAdapter(Protocol):
    """One implementation per backing AI provider.

    Adapters translate request/response shapes and raise ``ProviderError``
    for every transport or API failure.
    """

    @property
    def name(self) -> str:
        """Registry key (e.g. 'openrouter', 'anthropic')."""
        ...

    @property
    def configured(self) -> bool:
        """False when credentials are missing; the cascade skips such candidates."""
        ...

    async def complete(self, request: ChatRequest) -> Completion:
        """Single-shot completion."""
        ...

    async def stream(self, request: ChatRequest, on_delta: OnDelta) -> Completion:
        """Streaming completion. *on_delta* receives each new text fragment."""
        ...
