"""Telegram update handlers: commands, inline callbacks, text and photo messages."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatType
from telegram.ext import ContextTypes

from swiftbot.bot.gateway import Attachment, InboundEvent
from swiftbot.errors import LockTimeoutError
from swiftbot.llm.models import MODEL_KEYS, friendly, get_profile
from swiftbot.memory.models import Verbosity

if TYPE_CHECKING:
    from swiftbot.bot.engine import ConversationEngine

logger = logging.getLogger(__name__)

ENGINE_KEY = "engine"

HELP_TEXT = "\n".join(
    [
        "Commands:",
        "/start - onboarding",
        "/help - this help message",
        "/reset - clear chat history for this chat context",
        f"/model [{'|'.join(MODEL_KEYS)}] - model selection",
        "/settings - view or update settings",
        "/export - export this conversation as txt/json",
        "/stop - stop the response in progress",
        "",
        "Examples:",
        "- /settings temperature 0.2",
        "- /settings verbosity detailed",
        "- /model code",
        "- remember: I prefer metric units",
    ]
)

START_TEXT = "\n".join(
    [
        "Welcome. I am your AI assistant.",
        "",
        "Quick tips:",
        "- Ask coding, math, writing, planning and research questions.",
        "- Use /model to switch models or keep auto-routing.",
        "- Use /settings to change temperature and verbosity.",
        "- Use /reset to clear this conversation memory.",
        "- Use /stop to stop an in-progress response.",
    ]
)

FAILURE_REPLY = "Sorry, something went wrong while processing your message. Please try again."
PHOTO_FAILURE_REPLY = "I could not process this image right now."
DEFAULT_PHOTO_PROMPT = "Please analyze this image."


# -- Helpers -------------------------------------------------------------------


def get_engine(context: ContextTypes.DEFAULT_TYPE) -> ConversationEngine:
    return context.application.bot_data[ENGINE_KEY]


def conversation_key_for(update: Update) -> str:
    """Chat id, scoped per user inside group chats."""
    chat = update.effective_chat
    user = update.effective_user
    if chat.type in (ChatType.GROUP, ChatType.SUPERGROUP) and user is not None:
        return f"{chat.id}:{user.id}"
    return str(chat.id)


def _inbound_event(
    update: Update,
    text: str,
    *,
    attachments: tuple[Attachment, ...] = (),
    model_override: str | None = None,
) -> InboundEvent:
    user = update.effective_user
    return InboundEvent(
        conversation_key=conversation_key_for(update),
        user_id=str(user.id) if user else "",
        chat_id=str(update.effective_chat.id),
        text=text,
        attachments=attachments,
        model_override=model_override,
    )


def start_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton("Reset chat", callback_data="action:reset")],
            [InlineKeyboardButton("Switch model", callback_data="action:switch-model")],
            [
                InlineKeyboardButton(
                    "Toggle concise/detailed", callback_data="settings:toggle-verbosity"
                )
            ],
        ]
    )


def model_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(friendly(key), callback_data=f"model:{key}")] for key in MODEL_KEYS]
    )


def settings_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    "Toggle concise/detailed", callback_data="settings:toggle-verbosity"
                )
            ],
            [InlineKeyboardButton("Reset chat", callback_data="action:reset")],
        ]
    )


# -- Commands ------------------------------------------------------------------


async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start - onboarding text with quick actions."""
    await update.message.reply_text(START_TEXT, reply_markup=start_keyboard())


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(HELP_TEXT)


async def handle_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reset - clear messages, pins and summary for this conversation."""
    try:
        count = await get_engine(context).reset(conversation_key_for(update))
    except LockTimeoutError:
        await update.message.reply_text("Still busy with a reply. Try /stop first.")
        return
    await update.message.reply_text(
        f"Conversation reset for this chat context ({count} messages cleared)."
    )


async def handle_model(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /model - show the current model or switch to another one."""
    engine = get_engine(context)
    key = conversation_key_for(update)

    if not context.args:
        conversation = await engine.get_conversation(key)
        await update.message.reply_text(
            f"Current model selection: {friendly(conversation.model_key)}\n"
            "Choose from the list below:",
            reply_markup=model_keyboard(),
        )
        return

    requested = " ".join(context.args).strip()
    conversation = await engine.set_model(key, requested)
    profile = get_profile(conversation.model_key)
    if profile is None:
        await update.message.reply_text(
            f"Using custom model id {conversation.model_key}. "
            f"Built-in options: {', '.join(MODEL_KEYS)}"
        )
        return
    await update.message.reply_text(f"Model set to {profile.label} ({profile.model_id}).")


async def handle_settings(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /settings - view or update temperature, verbosity and style."""
    engine = get_engine(context)
    key = conversation_key_for(update)
    args = context.args or []

    if not args:
        conversation = await engine.get_conversation(key)
        lines = [
            "Settings:",
            f"- model: {conversation.model_key}",
            f"- temperature: {conversation.temperature}",
            f"- verbosity: {conversation.verbosity.value}",
            f"- style: {conversation.style_prompt or '(default)'}",
            "",
            "Examples:",
            "/settings temperature 0.3",
            "/settings verbosity concise",
            "/settings style answer in product-manager style",
            "/settings reset_style",
        ]
        await update.message.reply_text("\n".join(lines), reply_markup=settings_keyboard())
        return

    name = args[0].lower()

    if name == "temperature":
        try:
            conversation = await engine.set_temperature(key, float(args[1]))
        except (IndexError, ValueError):
            await update.message.reply_text("Temperature must be between 0 and 2.")
            return
        await update.message.reply_text(f"Temperature updated to {conversation.temperature}.")
        return

    if name == "verbosity":
        value = args[1].lower() if len(args) > 1 else ""
        if value not in {v.value for v in Verbosity}:
            await update.message.reply_text(
                "Verbosity must be one of: concise, normal, detailed."
            )
            return
        conversation = await engine.set_verbosity(key, value)
        await update.message.reply_text(
            f"Verbosity updated to {conversation.verbosity.value}."
        )
        return

    if name == "style":
        style = " ".join(args[1:])
        if not style.strip():
            await update.message.reply_text("Provide a style text after /settings style.")
            return
        conversation = await engine.set_style(key, style)
        await update.message.reply_text(f"Style prompt updated: {conversation.style_prompt}")
        return

    if name == "reset_style":
        await engine.set_style(key, None)
        await update.message.reply_text("Custom style has been cleared.")
        return

    await update.message.reply_text("Unknown setting. Use /settings for available options.")


async def handle_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export - send the conversation as .txt and .json documents."""
    engine = get_engine(context)
    snapshot = await engine.export(conversation_key_for(update))
    if snapshot is None:
        await update.message.reply_text("Nothing to export yet.")
        return

    chat_id = str(update.effective_chat.id)
    await engine.gateway.send_document(
        chat_id, "conversation.txt", snapshot.to_text().encode("utf-8")
    )
    await engine.gateway.send_document(
        chat_id, "conversation.json", snapshot.model_dump_json(indent=2).encode("utf-8")
    )


async def handle_stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stop - cancel the generation in progress."""
    stopped = get_engine(context).stop(conversation_key_for(update))
    await update.message.reply_text(
        "Stopped current response." if stopped else "No active response to stop."
    )


# -- Callbacks -----------------------------------------------------------------


async def handle_callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle inline keyboard callbacks."""
    query = update.callback_query
    data = query.data or ""
    engine = get_engine(context)
    key = conversation_key_for(update)
    chat_id = str(update.effective_chat.id)

    if data == "action:reset":
        try:
            await engine.reset(key)
        except LockTimeoutError:
            await query.answer("Still busy, try /stop first.")
            return
        await query.answer("Chat reset.")
        await engine.gateway.send_message(chat_id, "Conversation reset.")
        return

    if data == "action:switch-model":
        await query.answer()
        await context.bot.send_message(
            chat_id=update.effective_chat.id, text="Choose model:", reply_markup=model_keyboard()
        )
        return

    if data == "settings:toggle-verbosity":
        verbosity = await engine.toggle_verbosity(key)
        await query.answer(f"Verbosity: {verbosity.value}")
        await engine.gateway.send_message(chat_id, f"Verbosity changed to {verbosity.value}.")
        return

    if data.startswith("model:"):
        profile = get_profile(data.removeprefix("model:"))
        if profile is None:
            await query.answer("Unknown model")
            return
        await engine.set_model(key, profile.key)
        await query.answer(f"Model: {profile.label}")
        with contextlib.suppress(Exception):
            await query.edit_message_text(
                f"Model switched to {profile.label} ({profile.model_id})."
            )
        return

    await query.answer()


# -- Messages ------------------------------------------------------------------


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle incoming text messages."""
    event = _inbound_event(update, update.message.text or "")
    try:
        await get_engine(context).handle_turn(event)
    except Exception:
        logger.exception("Failed to handle text message from %s", event.conversation_key)
        with contextlib.suppress(Exception):
            await update.message.reply_text(FAILURE_REPLY)


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle photos: route to the vision model with the caption as the prompt."""
    photo = update.message.photo[-1]
    caption = update.message.caption or DEFAULT_PHOTO_PROMPT
    event = _inbound_event(
        update,
        f"[image]\n{caption}",
        attachments=(Attachment(kind="photo", file_id=photo.file_id),),
        model_override="vision",
    )
    try:
        await get_engine(context).handle_turn(event)
    except Exception:
        logger.exception("Failed to handle photo message from %s", event.conversation_key)
        with contextlib.suppress(Exception):
            await update.message.reply_text(PHOTO_FAILURE_REPLY)
