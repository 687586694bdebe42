"""Telegram implementation of the OutboundGateway protocol."""

from __future__ import annotations

import logging

import telegram
from telegram.constants import ChatAction

logger = logging.getLogger(__name__)


class TelegramGateway:
    """Delivers engine output via the Telegram Bot API.

    Messages are sent as plain text; replies are already stripped of
    Markdown before they get here.
    """

    def __init__(self, bot: telegram.Bot) -> None:
        self._bot = bot

    @property
    def name(self) -> str:
        return "telegram"

    async def send_message(self, chat_id: str, text: str) -> str:
        message = await self._bot.send_message(chat_id=int(chat_id), text=text)
        return str(message.message_id)

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> None:
        await self._bot.edit_message_text(
            chat_id=int(chat_id), message_id=int(message_id), text=text
        )

    async def send_typing(self, chat_id: str) -> None:
        await self._bot.send_chat_action(chat_id=int(chat_id), action=ChatAction.TYPING)

    async def send_sticker(self, chat_id: str, sticker_id: str) -> None:
        await self._bot.send_sticker(chat_id=int(chat_id), sticker=sticker_id)

    async def send_document(
        self, chat_id: str, filename: str, data: bytes, *, caption: str | None = None
    ) -> None:
        await self._bot.send_document(
            chat_id=int(chat_id),
            document=telegram.InputFile(data, filename=filename),
            caption=caption,
        )
        logger.info("Sent document %s to chat %s", filename, chat_id)
