"""Telegram application factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from swiftbot.bot.engine import build_engine
from swiftbot.bot.telegram.gateway import TelegramGateway
from swiftbot.bot.telegram.handlers import (
    ENGINE_KEY,
    handle_callback_query,
    handle_export,
    handle_help,
    handle_message,
    handle_model,
    handle_photo,
    handle_reset,
    handle_settings,
    handle_start,
    handle_stop,
)
from swiftbot.config import settings

if TYPE_CHECKING:
    from swiftbot.bot.engine import ConversationEngine

logger = logging.getLogger(__name__)


async def _post_shutdown(app: Application) -> None:
    """Let pending summaries finish before the loop closes."""
    engine: ConversationEngine | None = app.bot_data.get(ENGINE_KEY)
    if engine is not None:
        await engine.drain()


def create_app(engine: ConversationEngine | None = None) -> Application:
    """Build and configure the Telegram application.

    Updates are processed concurrently so /stop and newer messages can reach
    the engine while a reply is still streaming.
    """
    app = Application.builder().token(settings.telegram_bot_token).concurrent_updates(True).build()

    if engine is None:
        engine = build_engine(TelegramGateway(app.bot))
    app.bot_data[ENGINE_KEY] = engine

    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(CommandHandler("help", handle_help))
    app.add_handler(CommandHandler("reset", handle_reset))
    app.add_handler(CommandHandler("model", handle_model))
    app.add_handler(CommandHandler("settings", handle_settings))
    app.add_handler(CommandHandler("export", handle_export))
    app.add_handler(CommandHandler("stop", handle_stop))
    app.add_handler(CallbackQueryHandler(handle_callback_query))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    app.add_handler(MessageHandler(filters.PHOTO, handle_photo))

    app.post_shutdown = _post_shutdown

    return app
