"""Google Gemini adapter over the generativelanguage REST API."""

from __future__ import annotations

from typing import Any

import httpx

from swiftbot.config import settings
from swiftbot.errors import ProviderError
from swiftbot.llm.providers.base import ChatRequest, Completion, OnDelta, normalize_finish_reason
from swiftbot.llm.providers.http import HttpProvider


def build_contents(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """System text plus Gemini ``contents`` (roles user/model)."""
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        text = message.get("content") or ""
        if role == "system":
            system_parts.append(text)
            continue
        if role == "tool":
            text = f"Tool result: {text}"
        gemini_role = "model" if role == "assistant" else "user"
        if not text:
            continue
        contents.append({"role": gemini_role, "parts": [{"text": text}]})
    return "\n\n".join(p for p in system_parts if p), contents


def candidate_text(data: dict[str, Any]) -> tuple[str, str | None]:
    candidates = data.get("candidates") or []
    if not candidates:
        return "", None
    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    return text, normalize_finish_reason(candidate.get("finishReason"))


class GeminiProvider(HttpProvider):
    """Text-only Gemini completions; tool schemas are not forwarded."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            "gemini", base_url=base_url or settings.gemini_base_url, transport=transport
        )
        self._api_key = api_key if api_key is not None else settings.gemini_api_key

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key, "Content-Type": "application/json"}

    @staticmethod
    def _payload(request: ChatRequest) -> dict[str, Any]:
        system, contents = build_contents(request.messages)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def complete(self, request: ChatRequest) -> Completion:
        data = await self._post_json(
            f"/models/{request.model}:generateContent", self._payload(request)
        )
        if data.get("error"):
            raise ProviderError(str(data["error"]), provider=self.name)
        text, finish_reason = candidate_text(data)
        return Completion(text=text, finish_reason=finish_reason, model=request.model)

    async def stream(self, request: ChatRequest, on_delta: OnDelta) -> Completion:
        collected: list[str] = []
        finish: list[str | None] = [None]

        async def handle(event: dict[str, Any]) -> bool:
            text, finish_reason = candidate_text(event)
            if finish_reason:
                finish[0] = finish_reason
            if text:
                collected.append(text)
                await on_delta(text)
            return bool(collected)

        await self._stream_events(
            f"/models/{request.model}:streamGenerateContent",
            self._payload(request),
            handle,
            params={"alt": "sse"},
        )
        return Completion(text="".join(collected), finish_reason=finish[0], model=request.model)
