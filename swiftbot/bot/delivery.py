"""Streaming delivery: throttled placeholder edits, simulated reveal, chunked final send."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING

from swiftbot.bot.formatting import chunk_text
from swiftbot.config import settings

if TYPE_CHECKING:
    from swiftbot.bot.concurrency import CancelToken
    from swiftbot.bot.gateway import OutboundGateway

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "Thinking..."
SIMULATED_CHUNK_CHARS = 48
SIMULATED_DELAY_SECONDS = 0.035


class StreamingReply:
    """One reply message that grows as deltas arrive.

    Edits are throttled to ``interval`` seconds; the final text is split
    into platform-sized chunks where the first chunk replaces the placeholder.
    """

    def __init__(
        self,
        gateway: OutboundGateway,
        chat_id: str,
        *,
        interval: float | None = None,
        chunk_limit: int | None = None,
        cancel_token: CancelToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._chat_id = chat_id
        self._interval = (
            interval if interval is not None else settings.stream_edit_interval_seconds
        )
        self._chunk_limit = chunk_limit if chunk_limit is not None else settings.chunk_limit
        self._cancel_token = cancel_token
        self._clock = clock
        self._text = ""
        self._shown = ""
        self._last_edit = 0.0
        self.message_id: str | None = None
        self.live_deltas = False

    @property
    def text(self) -> str:
        return self._text

    async def start(self, placeholder: str = PLACEHOLDER_TEXT) -> str:
        self.message_id = await self._gateway.send_message(self._chat_id, placeholder)
        self._shown = placeholder
        return self.message_id

    def reset(self) -> None:
        """Discard partial text from a failed attempt."""
        self._text = ""
        self.live_deltas = False

    async def on_delta(self, delta: str) -> None:
        """Delta callback for the cascade. Checks for cancellation first."""
        if self._cancel_token is not None:
            self._cancel_token.raise_if_cancelled()
        self._text += delta
        self.live_deltas = True
        await self._flush()

    async def simulate(self, text: str, *, delay: float = SIMULATED_DELAY_SECONDS) -> None:
        """Reveal precomputed *text* progressively when nothing streamed live."""
        for start in range(0, len(text), SIMULATED_CHUNK_CHARS):
            if self._cancel_token is not None:
                self._cancel_token.raise_if_cancelled()
            self._text += text[start : start + SIMULATED_CHUNK_CHARS]
            await self._flush()
            await asyncio.sleep(delay)

    async def _flush(self, *, force: bool = False) -> None:
        if self.message_id is None:
            return
        now = self._clock()
        if not force and now - self._last_edit < self._interval:
            return
        preview = self._text[: self._chunk_limit]
        if not preview.strip() or preview == self._shown:
            return
        with contextlib.suppress(Exception):
            await self._gateway.edit_message(self._chat_id, self.message_id, preview)
            self._shown = preview
        self._last_edit = now

    async def finalize(self, text: str) -> list[str]:
        """Deliver the final text. Returns the chunks sent."""
        chunks = chunk_text(text, self._chunk_limit) or [text]
        first, rest = chunks[0], chunks[1:]

        if self.message_id is None:
            await self._gateway.send_message(self._chat_id, first)
        elif first != self._shown:
            try:
                await self._gateway.edit_message(self._chat_id, self.message_id, first)
            except Exception:
                logger.warning("Final edit failed for chat %s, sending a new message", self._chat_id)
                await self._gateway.send_message(self._chat_id, first)
        self._shown = first

        for chunk in rest:
            await self._gateway.send_message(self._chat_id, chunk)
        return chunks


@contextlib.asynccontextmanager
async def typing_indicator(
    gateway: OutboundGateway, chat_id: str, interval: float | None = None
) -> AsyncIterator[None]:
    """Refresh the typing indicator every *interval* seconds while the block runs."""
    period = interval if interval is not None else settings.typing_interval_seconds

    async def _loop() -> None:
        while True:
            with contextlib.suppress(Exception):
                await gateway.send_typing(chat_id)
            await asyncio.sleep(period)

    task = asyncio.create_task(_loop())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
