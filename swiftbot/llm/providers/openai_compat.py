"""Adapter for chat-completions compatible APIs (OpenRouter, OpenAI, Moonshot, Sarvam)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from swiftbot.errors import ProviderError
from swiftbot.llm.providers.base import (
    ChatRequest,
    Completion,
    OnDelta,
    ToolCall,
    normalize_finish_reason,
)
from swiftbot.llm.providers.http import HttpProvider

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/chat/completions"


def content_text(value: Any) -> str:
    """Flatten message content that may be a string or a list of parts."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        pieces = []
        for part in value:
            if isinstance(part, str):
                pieces.append(part)
            elif isinstance(part, dict):
                text = part.get("text") or part.get("content")
                if isinstance(text, str):
                    pieces.append(text)
        return "".join(pieces)
    if isinstance(value, dict):
        return content_text(value.get("text") or value.get("content"))
    return ""


def _reasoning_text(message: dict[str, Any]) -> str:
    return content_text(message.get("reasoning_content")) or content_text(message.get("reasoning"))


def parse_completion(data: dict[str, Any], model: str, provider: str) -> Completion:
    """Normalize a non-streaming chat-completions envelope."""
    choices = data.get("choices") or []
    if not choices and data.get("error"):
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        status = error.get("code") if isinstance(error, dict) else None
        raise ProviderError(
            str(message), provider=provider, status=status if isinstance(status, int) else None
        )

    choice = choices[0] if choices else {}
    message = choice.get("message") or {}

    text = content_text(message.get("content"))
    if not text:
        text = _reasoning_text(message)
    if not text:
        # Sarvam and other loosely compatible envelopes
        text = (
            content_text(choice.get("text"))
            or content_text(data.get("output_text"))
            or content_text(data.get("response"))
        )

    tool_calls = [
        ToolCall(
            id=call.get("id") or f"call_{index}",
            name=(call.get("function") or {}).get("name", ""),
            arguments=(call.get("function") or {}).get("arguments") or "{}",
        )
        for index, call in enumerate(message.get("tool_calls") or [])
    ]
    return Completion(
        text=text,
        tool_calls=tool_calls,
        finish_reason=normalize_finish_reason(choice.get("finish_reason")),
        model=data.get("model") or model,
    )


class StreamAccumulator:
    """Folds streaming chunks into a Completion, returning new text per chunk."""

    def __init__(self, model: str) -> None:
        self._model = model
        self._text = ""
        self._reasoning = ""
        self._finish_reason: str | None = None
        self._tool_calls: dict[int, dict[str, str]] = {}

    @property
    def text(self) -> str:
        return self._text

    def feed(self, chunk: dict[str, Any]) -> str:
        if chunk.get("model"):
            self._model = chunk["model"]
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        choice = choices[0]
        delta = choice.get("delta") or {}

        new_text = content_text(delta.get("content"))
        if not new_text and choice.get("message"):
            # Some providers resend the whole message so far instead of a delta
            snapshot = content_text(choice["message"].get("content"))
            if snapshot.startswith(self._text):
                new_text = snapshot[len(self._text):]
            elif snapshot not in self._text:
                new_text = snapshot

        self._reasoning += _reasoning_text(delta)
        for call in delta.get("tool_calls") or []:
            self._merge_tool_call(call)
        if choice.get("finish_reason"):
            self._finish_reason = normalize_finish_reason(choice["finish_reason"])

        self._text += new_text
        return new_text

    def _merge_tool_call(self, call: dict[str, Any]) -> None:
        index = call.get("index", len(self._tool_calls))
        entry = self._tool_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if call.get("id"):
            entry["id"] = call["id"]
        function = call.get("function") or {}
        if function.get("name"):
            entry["name"] += function["name"]
        if function.get("arguments"):
            entry["arguments"] += function["arguments"]

    def result(self) -> Completion:
        tool_calls = [
            ToolCall(
                id=entry["id"] or f"call_{index}",
                name=entry["name"],
                arguments=entry["arguments"] or "{}",
            )
            for index, entry in sorted(self._tool_calls.items())
        ]
        return Completion(
            text=self._text or self._reasoning,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason,
            model=self._model,
        )


class OpenAICompatibleProvider(HttpProvider):
    """Talks to any ``/chat/completions`` endpoint."""

    def __init__(
        self,
        name: str,
        *,
        base_url: str,
        api_key: str,
        auth_header: str = "Authorization",
        auth_scheme: str = "Bearer",
        extra_headers: dict[str, str] | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            name,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_base_delay=retry_base_delay,
            transport=transport,
        )
        self._api_key = api_key
        self._auth_header = auth_header
        self._auth_scheme = auth_scheme
        self._extra_headers = extra_headers or {}

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        token = f"{self._auth_scheme} {self._api_key}" if self._auth_scheme else self._api_key
        return {
            self._auth_header: token,
            "Content-Type": "application/json",
            **self._extra_headers,
        }

    @staticmethod
    def _payload(request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "stream": stream,
        }
        if request.tools:
            payload["tools"] = request.tools
            payload["tool_choice"] = "auto"
        return payload

    async def complete(self, request: ChatRequest) -> Completion:
        data = await self._post_json(COMPLETIONS_PATH, self._payload(request, stream=False))
        return parse_completion(data, request.model, self.name)

    async def stream(self, request: ChatRequest, on_delta: OnDelta) -> Completion:
        accumulator = StreamAccumulator(request.model)

        async def handle(event: dict[str, Any]) -> bool:
            if event.get("error") and not event.get("choices"):
                error = event["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise ProviderError(str(message), provider=self.name)
            delta = accumulator.feed(event)
            if delta:
                await on_delta(delta)
            return bool(accumulator.text)

        await self._stream_events(COMPLETIONS_PATH, self._payload(request, stream=True), handle)
        return accumulator.result()
