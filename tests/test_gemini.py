"""Tests for the Gemini REST adapter."""

import json

import httpx

from swiftbot.llm.providers.base import ChatRequest
from swiftbot.llm.providers.gemini import GeminiProvider, build_contents


def _provider(handler) -> GeminiProvider:
    return GeminiProvider(
        api_key="gem-key",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


def _candidate(text: str, finish: str | None = "STOP") -> dict:
    candidate: dict = {"content": {"parts": [{"text": text}], "role": "model"}}
    if finish:
        candidate["finishReason"] = finish
    return {"candidates": [candidate]}


def test_build_contents_maps_roles() -> None:
    system, contents = build_contents([
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "tool", "content": "42"},
        {"role": "assistant", "content": ""},
    ])
    assert system == "rules"
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[2]["parts"][0]["text"] == "Tool result: 42"


async def test_complete() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_candidate("Gemini says hi", "MAX_TOKENS"))

    request = ChatRequest(
        model="gemini-2.0-flash",
        messages=[{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
        tools=[{"type": "function", "function": {"name": "calculator"}}],
    )
    completion = await _provider(handler).complete(request)

    assert completion.text == "Gemini says hi"
    assert completion.truncated
    assert seen[0].url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
    assert seen[0].headers["x-goog-api-key"] == "gem-key"
    body = json.loads(seen[0].content)
    assert body["systemInstruction"] == {"parts": [{"text": "sys"}]}
    assert "tools" not in body


async def test_stream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["alt"] == "sse"
        events = [_candidate("Part one, ", None), _candidate("part two.")]
        body = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
        return httpx.Response(200, content=body.encode())

    deltas: list[str] = []

    async def on_delta(delta: str) -> None:
        deltas.append(delta)

    completion = await _provider(handler).stream(
        ChatRequest(model="gemini-2.0-flash", messages=[{"role": "user", "content": "go"}]),
        on_delta,
    )
    assert deltas == ["Part one, ", "part two."]
    assert completion.text == "Part one, part two."
    assert completion.finish_reason == "stop"
