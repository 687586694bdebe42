"""Tests for incremental conversation summarization."""

from swiftbot.errors import ProviderError
from swiftbot.llm.cascade import FallbackCascade
from swiftbot.llm.prompt import SUMMARY_PROMPT
from swiftbot.llm.providers.registry import ProviderRegistry
from swiftbot.memory.models import Message, Role
from swiftbot.memory.summarizer import ConversationSummarizer, format_transcript


async def _seed(store, count: int) -> int:
    conversation = await store.get_or_create("chat:1")
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        await store.append_message(conversation.id, role, f"message {i}")
    return conversation.id


def _summarizer(store, provider, **kwargs) -> ConversationSummarizer:
    cascade = FallbackCascade(ProviderRegistry([provider]), attempt_timeout=5)
    return ConversationSummarizer(store, cascade, **kwargs)


async def test_skips_below_threshold(store, provider_factory) -> None:
    provider = provider_factory(script=["should not be used"])
    conversation_id = await _seed(store, 10)
    summarizer = _summarizer(store, provider, keep_last=4, min_new=8)

    assert await summarizer.maybe_summarize(conversation_id) is False
    assert provider.requests == []


async def test_summarizes_old_segment(store, provider_factory) -> None:
    provider = provider_factory(script=["User is learning Python."])
    conversation_id = await _seed(store, 12)
    summarizer = _summarizer(store, provider, keep_last=4, min_new=8)

    assert await summarizer.maybe_summarize(conversation_id) is True

    conversation = await store.refresh(conversation_id)
    assert conversation.summary_text == "User is learning Python."
    assert conversation.summary_watermark == 8

    request = provider.requests[0]
    assert request.messages[0] == {"role": "system", "content": SUMMARY_PROMPT}
    prompt = request.messages[1]["content"]
    assert prompt.startswith("Existing summary:\n(none)")
    assert "user: message 0" in prompt
    assert "assistant: message 7" in prompt
    assert "message 8" not in prompt
    assert request.model == "openai/gpt-4o-mini"
    assert provider.streamed == [False]


async def test_includes_existing_summary(store, provider_factory) -> None:
    provider = provider_factory(script=["first", "second"])
    conversation_id = await _seed(store, 12)
    summarizer = _summarizer(store, provider, keep_last=4, min_new=8)
    await summarizer.maybe_summarize(conversation_id)

    for i in range(8):
        await store.append_message(conversation_id, Role.USER, f"later {i}")
    assert await summarizer.maybe_summarize(conversation_id) is True

    prompt = provider.requests[1].messages[1]["content"]
    assert prompt.startswith("Existing summary:\nfirst")
    assert "message 0" not in prompt
    conversation = await store.refresh(conversation_id)
    assert conversation.summary_watermark == 16


async def test_summary_model_setting(store, provider_factory, monkeypatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.summary_model", "meta/llama-3-8b")
    provider = provider_factory(script=["summary"])
    conversation_id = await _seed(store, 12)
    await _summarizer(store, provider, keep_last=4, min_new=8).maybe_summarize(conversation_id)
    assert provider.requests[0].model == "meta/llama-3-8b"


async def test_failures_are_swallowed(store, provider_factory) -> None:
    provider = provider_factory(script=[ProviderError("down", provider="openrouter", status=500)])
    conversation_id = await _seed(store, 12)
    summarizer = _summarizer(store, provider, keep_last=4, min_new=8)

    assert await summarizer.maybe_summarize(conversation_id) is False
    conversation = await store.refresh(conversation_id)
    assert conversation.summary_text is None
    assert conversation.summary_watermark == 0


async def test_reset_during_summary_discards_it(store, provider_factory) -> None:
    provider = provider_factory(script=["summary of OLD secrets"])
    conversation_id = await _seed(store, 12)
    scripted_complete = provider.complete

    async def complete_after_reset(request):
        await store.clear_conversation(conversation_id)
        for i in range(20):
            await store.append_message(conversation_id, Role.USER, f"fresh {i}")
        return await scripted_complete(request)

    provider.complete = complete_after_reset
    summarizer = _summarizer(store, provider, keep_last=4, min_new=8)

    assert await summarizer.maybe_summarize(conversation_id) is False
    conversation = await store.refresh(conversation_id)
    assert conversation.summary_text is None
    assert conversation.summary_watermark == 0


async def test_missing_conversation(store, provider_factory) -> None:
    summarizer = _summarizer(store, provider_factory())
    assert await summarizer.maybe_summarize(404) is False


def test_format_transcript_truncates() -> None:
    message = Message(
        id=1, conversation_id=1, role=Role.USER, content="abcdefghij", created_at="now"
    )
    assert format_transcript([message], 4) == "user: abcd..."
