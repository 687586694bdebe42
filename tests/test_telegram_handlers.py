"""Tests for the Telegram command and message handlers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.constants import ChatType

from swiftbot.bot.gateway import InboundEvent
from swiftbot.bot.telegram.handlers import (
    ENGINE_KEY,
    FAILURE_REPLY,
    HELP_TEXT,
    START_TEXT,
    conversation_key_for,
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
from swiftbot.errors import LockTimeoutError
from swiftbot.memory.models import Conversation, ConversationSnapshot, Verbosity

# -- Helpers -----------------------------------------------------------------


def _conversation(**overrides) -> Conversation:
    fields = {
        "id": 1,
        "channel_key": "100",
        "created_at": "2025-01-01T00:00:00+00:00",
        "updated_at": "2025-01-01T00:00:00+00:00",
    }
    fields.update(overrides)
    return Conversation(**fields)


def _make_update(text: str = "", *, chat_type: str = ChatType.PRIVATE) -> MagicMock:
    update = MagicMock()
    update.effective_chat.id = 100
    update.effective_chat.type = chat_type
    update.effective_user.id = 7
    update.message.text = text
    update.message.reply_text = AsyncMock()
    return update


def _make_context(args: list[str] | None = None) -> tuple[MagicMock, MagicMock]:
    engine = MagicMock()
    engine.handle_turn = AsyncMock()
    engine.reset = AsyncMock(return_value=4)
    engine.get_conversation = AsyncMock(return_value=_conversation())
    engine.set_model = AsyncMock()
    engine.set_temperature = AsyncMock()
    engine.set_verbosity = AsyncMock()
    engine.set_style = AsyncMock()
    engine.export = AsyncMock()
    engine.gateway.send_document = AsyncMock()

    context = MagicMock()
    context.args = args or []
    context.application.bot_data = {ENGINE_KEY: engine}
    return context, engine


def _reply(update: MagicMock) -> str:
    return update.message.reply_text.call_args.args[0]


# -- Conversation keys -------------------------------------------------------


@pytest.mark.parametrize(
    "chat_type,expected",
    [
        (ChatType.PRIVATE, "100"),
        (ChatType.GROUP, "100:7"),
        (ChatType.SUPERGROUP, "100:7"),
        (ChatType.CHANNEL, "100"),
    ],
)
def test_conversation_key_for(chat_type: str, expected: str) -> None:
    assert conversation_key_for(_make_update(chat_type=chat_type)) == expected


# -- Static commands -----------------------------------------------------------


async def test_start_and_help() -> None:
    update = _make_update()
    context, _ = _make_context()

    await handle_start(update, context)
    assert _reply(update) == START_TEXT
    assert update.message.reply_text.call_args.kwargs["reply_markup"] is not None

    await handle_help(update, context)
    assert _reply(update) == HELP_TEXT
    assert "/model [auto|fast|smart|code|math|vision]" in HELP_TEXT


# -- /reset and /stop ----------------------------------------------------------


async def test_reset() -> None:
    update = _make_update()
    context, engine = _make_context()
    await handle_reset(update, context)
    engine.reset.assert_awaited_once_with("100")
    assert "4 messages cleared" in _reply(update)


async def test_reset_busy() -> None:
    update = _make_update()
    context, engine = _make_context()
    engine.reset.side_effect = LockTimeoutError("busy")
    await handle_reset(update, context)
    assert "Try /stop first" in _reply(update)


@pytest.mark.parametrize(
    "stopped,expected",
    [(True, "Stopped current response."), (False, "No active response to stop.")],
)
async def test_stop(stopped: bool, expected: str) -> None:
    update = _make_update()
    context, engine = _make_context()
    engine.stop = MagicMock(return_value=stopped)
    await handle_stop(update, context)
    engine.stop.assert_called_once_with("100")
    assert _reply(update) == expected


# -- /model --------------------------------------------------------------------


async def test_model_without_args_shows_current() -> None:
    update = _make_update()
    context, _ = _make_context()
    await handle_model(update, context)
    assert _reply(update).startswith("Current model selection: Auto (best available)")


async def test_model_switch_to_profile() -> None:
    update = _make_update()
    context, engine = _make_context(["code"])
    engine.set_model.return_value = _conversation(model_key="code")
    await handle_model(update, context)
    engine.set_model.assert_awaited_once_with("100", "code")
    assert _reply(update).startswith("Model set to Code (")


async def test_model_switch_to_custom_id() -> None:
    update = _make_update()
    context, engine = _make_context(["mistral/small"])
    engine.set_model.return_value = _conversation(model_key="mistral/small")
    await handle_model(update, context)
    assert _reply(update).startswith("Using custom model id mistral/small.")


# -- /settings -----------------------------------------------------------------


async def test_settings_overview() -> None:
    update = _make_update()
    context, _ = _make_context()
    await handle_settings(update, context)
    text = _reply(update)
    assert "- temperature: 0.4" in text
    assert "- verbosity: normal" in text
    assert "- style: (default)" in text


async def test_settings_temperature() -> None:
    update = _make_update()
    context, engine = _make_context(["temperature", "0.7"])
    engine.set_temperature.return_value = _conversation(temperature=0.7)
    await handle_settings(update, context)
    engine.set_temperature.assert_awaited_once_with("100", 0.7)
    assert _reply(update) == "Temperature updated to 0.7."


@pytest.mark.parametrize("args", [["temperature"], ["temperature", "hot"]])
async def test_settings_temperature_invalid(args: list[str]) -> None:
    update = _make_update()
    context, engine = _make_context(args)
    await handle_settings(update, context)
    assert _reply(update) == "Temperature must be between 0 and 2."


async def test_settings_temperature_out_of_range() -> None:
    update = _make_update()
    context, engine = _make_context(["temperature", "3"])
    engine.set_temperature.side_effect = ValueError("Temperature must be between 0 and 2")
    await handle_settings(update, context)
    assert _reply(update) == "Temperature must be between 0 and 2."


async def test_settings_verbosity() -> None:
    update = _make_update()
    context, engine = _make_context(["verbosity", "Concise"])
    engine.set_verbosity.return_value = _conversation(verbosity=Verbosity.CONCISE)
    await handle_settings(update, context)
    engine.set_verbosity.assert_awaited_once_with("100", "concise")
    assert _reply(update) == "Verbosity updated to concise."


async def test_settings_verbosity_invalid() -> None:
    update = _make_update()
    context, engine = _make_context(["verbosity", "loud"])
    await handle_settings(update, context)
    engine.set_verbosity.assert_not_awaited()
    assert _reply(update).startswith("Verbosity must be one of")


async def test_settings_style_and_reset() -> None:
    update = _make_update()
    context, engine = _make_context(["style", "answer", "like", "a", "pirate"])
    engine.set_style.return_value = _conversation(style_prompt="answer like a pirate")
    await handle_settings(update, context)
    engine.set_style.assert_awaited_once_with("100", "answer like a pirate")

    context.args = ["reset_style"]
    await handle_settings(update, context)
    engine.set_style.assert_awaited_with("100", None)
    assert _reply(update) == "Custom style has been cleared."


async def test_settings_unknown() -> None:
    update = _make_update()
    context, _ = _make_context(["colour", "blue"])
    await handle_settings(update, context)
    assert _reply(update).startswith("Unknown setting.")


# -- /export -------------------------------------------------------------------


async def test_export_sends_two_documents() -> None:
    update = _make_update()
    context, engine = _make_context()
    engine.export.return_value = ConversationSnapshot(
        conversation=_conversation(),
        memories=[],
        messages=[],
        exported_at="2025-01-01T00:00:00+00:00",
    )

    await handle_export(update, context)

    calls = engine.gateway.send_document.await_args_list
    assert [c.args[1] for c in calls] == ["conversation.txt", "conversation.json"]
    assert calls[0].args[2].startswith(b"Conversation 100")
    assert json.loads(calls[1].args[2])["conversation"]["channel_key"] == "100"


async def test_export_nothing() -> None:
    update = _make_update()
    context, engine = _make_context()
    engine.export.return_value = None
    await handle_export(update, context)
    assert _reply(update) == "Nothing to export yet."


# -- Messages ------------------------------------------------------------------


async def test_text_message_becomes_inbound_event() -> None:
    update = _make_update("hello bot", chat_type=ChatType.GROUP)
    context, engine = _make_context()

    await handle_message(update, context)

    event: InboundEvent = engine.handle_turn.call_args.args[0]
    assert event.conversation_key == "100:7"
    assert event.user_id == "7"
    assert event.chat_id == "100"
    assert event.text == "hello bot"
    assert event.model_override is None


async def test_text_message_failure_replies() -> None:
    update = _make_update("hello")
    context, engine = _make_context()
    engine.handle_turn.side_effect = RuntimeError("boom")

    await handle_message(update, context)

    assert _reply(update) == FAILURE_REPLY


async def test_photo_uses_vision_override() -> None:
    update = _make_update()
    update.message.caption = "What breed is this?"
    small, large = MagicMock(file_id="small"), MagicMock(file_id="large")
    update.message.photo = [small, large]
    context, engine = _make_context()

    await handle_photo(update, context)

    event: InboundEvent = engine.handle_turn.call_args.args[0]
    assert event.text == "[image]\nWhat breed is this?"
    assert event.model_override == "vision"
    assert event.attachments[0].file_id == "large"


async def test_photo_without_caption() -> None:
    update = _make_update()
    update.message.caption = None
    update.message.photo = [MagicMock(file_id="only")]
    context, engine = _make_context()

    await handle_photo(update, context)

    assert engine.handle_turn.call_args.args[0].text == "[image]\nPlease analyze this image."
