"""Shared test fixtures: temp store, recording gateway, scripted providers."""

from __future__ import annotations

from pathlib import Path

import pytest

from swiftbot.llm.providers.base import ChatRequest, Completion, OnDelta
from swiftbot.memory.store import ConversationStore


class RecordingGateway:
    """OutboundGateway that records every call instead of talking to a platform."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.edits: list[tuple[str, str, str]] = []
        self.typing: list[str] = []
        self.stickers: list[tuple[str, str]] = []
        self.documents: list[tuple[str, str, bytes]] = []
        self.fail_edits = False
        self._next_id = 0

    async def send_message(self, chat_id: str, text: str) -> str:
        self._next_id += 1
        self.sent.append((chat_id, text))
        return str(self._next_id)

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> None:
        if self.fail_edits:
            raise RuntimeError("edit failed")
        self.edits.append((chat_id, message_id, text))

    async def send_typing(self, chat_id: str) -> None:
        self.typing.append(chat_id)

    async def send_sticker(self, chat_id: str, sticker_id: str) -> None:
        self.stickers.append((chat_id, sticker_id))

    async def send_document(
        self, chat_id: str, filename: str, data: bytes, *, caption: str | None = None
    ) -> None:
        self.documents.append((chat_id, filename, data))

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.sent]

    @property
    def final_text(self) -> str:
        """Text currently shown in the last edited message, else the last send."""
        if self.edits:
            return self.edits[-1][2]
        return self.sent[-1][1] if self.sent else ""


class ScriptedProvider:
    """ProviderAdapter that replays a script of completions, strings or exceptions."""

    def __init__(
        self,
        name: str = "openrouter",
        script: list[Completion | str | Exception] | None = None,
        *,
        configured: bool = True,
        chunk_size: int = 5,
    ) -> None:
        self._name = name
        self.script = list(script or [])
        self._configured = configured
        self._chunk_size = chunk_size
        self.requests: list[ChatRequest] = []
        self.streamed: list[bool] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def configured(self) -> bool:
        return self._configured

    def _next(self, request: ChatRequest) -> Completion:
        self.requests.append(request)
        item = self.script.pop(0) if self.script else Completion(text="", model=request.model)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return Completion(text=item, finish_reason="stop", model=request.model)
        return item

    async def complete(self, request: ChatRequest) -> Completion:
        self.streamed.append(False)
        return self._next(request)

    async def stream(self, request: ChatRequest, on_delta: OnDelta) -> Completion:
        self.streamed.append(True)
        completion = self._next(request)
        text = completion.text
        for start in range(0, len(text), self._chunk_size):
            await on_delta(text[start : start + self._chunk_size])
        return completion


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    """A ConversationStore backed by a temp database."""
    return ConversationStore(db_path=tmp_path / "swiftbot.db")


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def provider_factory():
    """Build ScriptedProvider instances."""
    return ScriptedProvider
