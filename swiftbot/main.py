"""SwiftBot entry point."""

import logging

from swiftbot.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the bot on Telegram."""
    from swiftbot.bot.telegram.app import create_app

    if not settings.telegram_bot_token:
        logger.warning("TELEGRAM_BOT_TOKEN is empty, Telegram will reject the connection")

    logger.info(
        "Starting SwiftBot on Telegram (default provider %s, fast mode %s)...",
        settings.default_provider,
        settings.fast_reply_mode,
    )
    app = create_app()
    app.run_polling()


if __name__ == "__main__":
    main()
