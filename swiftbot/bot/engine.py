"""Conversation engine: one inbound message in, one delivered reply out.

A turn moves through a fixed sequence:

    rate limit -> supersede previous generation -> conversation lock ->
    moderation -> memory command -> context assembly -> generation ->
    formatting -> delivery -> persistence -> lock release -> summarization

Everything stateful (rate counters, locks, cancellation tokens, retrieval
cache) lives on the collaborators injected here, so two engines never share
state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from swiftbot.bot.concurrency import CancellationRegistry, CancelToken, KeyedLocks
from swiftbot.bot.delivery import SIMULATED_DELAY_SECONDS, StreamingReply, typing_indicator
from swiftbot.bot.formatting import format_reply
from swiftbot.bot.gateway import InboundEvent, OutboundGateway
from swiftbot.bot.moderation import ModerationPolicy, PatternModeration
from swiftbot.bot.rate_limit import RateLimiter
from swiftbot.config import settings
from swiftbot.errors import (
    GenerationCancelled,
    GroundingUnavailableError,
    LockTimeoutError,
    ProviderError,
    RoutingError,
)
from swiftbot.llm.cascade import Decision, FallbackCascade, classify_failure
from swiftbot.llm.intent import AMBIGUOUS_PYTHON_CLARIFICATION, Intent, IntentClassifier
from swiftbot.llm.models import get_profile
from swiftbot.llm.prompt import build_messages, build_system_prompt
from swiftbot.llm.providers import ChatRequest, build_registry
from swiftbot.llm.router import ModelRouter, RouteDecision
from swiftbot.memory.models import Conversation, ConversationSnapshot, Role, Verbosity
from swiftbot.memory.store import ConversationStore
from swiftbot.memory.summarizer import ConversationSummarizer
from swiftbot.retrieval import RetrievalEngine, inject_grounding
from swiftbot.tools import should_enable_tools
from swiftbot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

REMEMBER_PATTERN = re.compile(
    r"^\s*remember(?:\s+this|\s+that)?\s*:?\s+(.+)$", re.IGNORECASE | re.DOTALL
)
MEMORY_VALUE_LIMIT = 600
STYLE_PROMPT_LIMIT = 500

RATE_LIMIT_REPLY = "Rate limit reached. Please wait ~{seconds}s and try again."
BUSY_REPLY = "I am still working on your previous message. Please try again in a moment."
MEMORY_SAVED_REPLY = "Saved. I will remember that for future responses."
EMPTY_GENERATION_REPLY = "I hit an issue generating a reply. Please try again in a moment."
LIVE_DATA_UNAVAILABLE_REPLY = (
    "Live data is temporarily unavailable, so I cannot answer that reliably right now. "
    "Please try again in a moment."
)
STOPPED_SUFFIX = "\n\n[stopped]"

VERBOSITY_CYCLE = {
    Verbosity.CONCISE: Verbosity.DETAILED,
    Verbosity.DETAILED: Verbosity.NORMAL,
    Verbosity.NORMAL: Verbosity.CONCISE,
}


class TurnStatus(StrEnum):
    REPLIED = "replied"
    RATE_LIMITED = "rate_limited"
    BUSY = "busy"
    SUPERSEDED = "superseded"
    IGNORED = "ignored"
    MODERATED = "moderated"
    REMEMBERED = "remembered"
    CLARIFIED = "clarified"
    UNGROUNDED = "ungrounded"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class TurnOutcome:
    """What happened to one inbound message."""

    status: TurnStatus
    text: str | None = None
    conversation_id: int | None = None


def describe_generation_error(exc: Exception) -> str:
    """One actionable sentence for a failed generation."""
    status = getattr(exc, "status", None)
    message = str(exc).lower()

    if status in (401, 403) or "unauthorized" in message:
        return "Model provider authentication failed. Please check the API key configuration."
    if status == 402 or any(
        marker in message
        for marker in ("insufficient credits", "insufficient_quota", "payment required", "billing")
    ):
        return (
            "Model provider credits are insufficient. "
            "Please add credits or switch to a free model, then try again."
        )
    if status == 429 or "rate limit" in message:
        return "The model provider is rate limiting right now. Please wait 30-60 seconds and retry."
    if any(marker in message for marker in ("network", "connect", "timed out", "timeout")):
        return "Network issue while contacting the model provider. Please retry in a moment."
    return (
        "I could not reach the selected AI model right now. "
        "Please try /model auto and send your message again."
    )


class ConversationEngine:
    """Runs conversation turns and the chat commands that touch conversation state."""

    def __init__(
        self,
        *,
        store: ConversationStore,
        gateway: OutboundGateway,
        cascade: FallbackCascade,
        retrieval: RetrievalEngine | None = None,
        router: ModelRouter | None = None,
        classifier: IntentClassifier | None = None,
        summarizer: ConversationSummarizer | None = None,
        moderation: ModerationPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        locks: KeyedLocks | None = None,
        cancellations: CancellationRegistry | None = None,
        tools: ToolRegistry | None = None,
        reveal_delay: float = SIMULATED_DELAY_SECONDS,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self._cascade = cascade
        self._retrieval = retrieval or RetrievalEngine()
        self._router = router or ModelRouter()
        self._classifier = classifier or IntentClassifier()
        self._summarizer = summarizer or ConversationSummarizer(store, cascade)
        self._moderation = moderation or PatternModeration()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._locks = locks or KeyedLocks()
        self._cancellations = cancellations or CancellationRegistry()
        self._tools = tools
        self._reveal_delay = reveal_delay
        self._rng = rng
        self._background: set[asyncio.Task] = set()

    # -- Turn ------------------------------------------------------------------

    async def handle_turn(self, event: InboundEvent) -> TurnOutcome:
        """Process one inbound message end to end."""
        key = event.conversation_key
        logger.info("Turn from %s: %s", key, event.text[:80])

        limit = self._rate_limiter.consume(event.rate_limit_key)
        if not limit.allowed:
            reply = RATE_LIMIT_REPLY.format(seconds=limit.retry_after(self._rate_limiter.now()))
            logger.info("Rate limited %s", event.rate_limit_key)
            await self.gateway.send_message(event.chat_id, reply)
            return TurnOutcome(TurnStatus.RATE_LIMITED, reply)

        text = event.text.strip()[: settings.max_input_chars]
        if not text:
            return TurnOutcome(TurnStatus.IGNORED)

        token = self._cancellations.replace(key)
        try:
            async with self._locks.hold(key):
                if token.cancelled:
                    logger.info("Turn for %s superseded before it started", key)
                    return TurnOutcome(TurnStatus.SUPERSEDED)
                outcome = await self._run_turn(event, text, token)
        except LockTimeoutError:
            logger.warning("Lock timeout for %s", key)
            await self.gateway.send_message(event.chat_id, BUSY_REPLY)
            return TurnOutcome(TurnStatus.BUSY, BUSY_REPLY)
        finally:
            self._cancellations.release(key, token)

        if outcome.status in (TurnStatus.REPLIED, TurnStatus.STOPPED):
            self._schedule_summary(outcome.conversation_id)
        return outcome

    async def _run_turn(self, event: InboundEvent, text: str, token: CancelToken) -> TurnOutcome:
        conversation = await self.store.get_or_create(event.conversation_key)

        verdict = self._moderation.check(text)
        if verdict.blocked:
            await self.gateway.send_message(event.chat_id, verdict.refusal)
            return TurnOutcome(TurnStatus.MODERATED, verdict.refusal, conversation.id)

        remember = REMEMBER_PATTERN.match(text)
        if remember:
            return await self._remember(conversation, event, text, remember.group(1))

        user_message = await self.store.append_message(conversation.id, Role.USER, text)

        intent = Intent.GENERAL if event.model_override else self._classifier.classify(text)
        if intent is Intent.AMBIGUOUS:
            await self.store.append_message(
                conversation.id, Role.ASSISTANT, AMBIGUOUS_PYTHON_CLARIFICATION
            )
            await self.gateway.send_message(event.chat_id, AMBIGUOUS_PYTHON_CLARIFICATION)
            return TurnOutcome(
                TurnStatus.CLARIFIED, AMBIGUOUS_PYTHON_CLARIFICATION, conversation.id
            )

        route = self._router.route(
            conversation.model_key,
            intent,
            text,
            conversation.verbosity,
            override=event.model_override,
        )

        temporal = intent is Intent.CURRENT_EVENT or self._retrieval.is_temporal(text)
        try:
            grounding = await self._retrieval.ground(text, temporal=temporal)
        except GroundingUnavailableError as exc:
            logger.warning("No live grounding for %s: %s", event.conversation_key, exc)
            await self.store.append_message(
                conversation.id, Role.ASSISTANT, LIVE_DATA_UNAVAILABLE_REPLY
            )
            await self.gateway.send_message(event.chat_id, LIVE_DATA_UNAVAILABLE_REPLY)
            return TurnOutcome(TurnStatus.UNGROUNDED, LIVE_DATA_UNAVAILABLE_REPLY, conversation.id)

        memories = await self.store.get_memories(conversation.id)
        recent = await self.store.get_recent_messages(
            conversation.id, settings.recent_context_messages + 1
        )
        history = [m for m in recent if m.id != user_message.id]
        history = history[-settings.recent_context_messages :]

        messages = build_messages(
            build_system_prompt(
                conversation.verbosity,
                style_prompt=conversation.style_prompt,
                memories=memories,
            ),
            summary=conversation.summary_text,
            history=history,
            user_content=inject_grounding(text, grounding) if grounding else text,
        )

        status = TurnStatus.REPLIED
        reply = StreamingReply(self.gateway, event.chat_id, cancel_token=token)
        async with typing_indicator(self.gateway, event.chat_id):
            await reply.start()
            task = asyncio.create_task(
                self._generate(conversation, route, messages, text, reply, token)
            )
            token.bind(task)
            try:
                output = await task
            except (GenerationCancelled, asyncio.CancelledError):
                if not token.cancelled:
                    raise
                logger.info("Generation for %s stopped", event.conversation_key)
                status = TurnStatus.STOPPED
                output = f"{reply.text.strip()}{STOPPED_SUFFIX}".strip()
            except (ProviderError, RoutingError) as exc:
                logger.error("Generation failed for %s: %s", event.conversation_key, exc)
                status = TurnStatus.FAILED
                output = describe_generation_error(exc)

        if not output.strip():
            status = TurnStatus.FAILED
            output = EMPTY_GENERATION_REPLY
        final = format_reply(output)

        await reply.finalize(final)
        if status is TurnStatus.REPLIED:
            await self._maybe_send_sticker(event.chat_id)

        await self.store.append_message(conversation.id, Role.ASSISTANT, final)
        return TurnOutcome(status, final, conversation.id)

    async def _remember(
        self, conversation: Conversation, event: InboundEvent, text: str, value: str
    ) -> TurnOutcome:
        memory = value.strip()[:MEMORY_VALUE_LIMIT]
        await self.store.upsert_memory(conversation.id, f"memory_{int(time.time() * 1000)}", memory)
        await self.store.append_message(conversation.id, Role.USER, text)
        await self.store.append_message(
            conversation.id, Role.ASSISTANT, f"Saved to memory: {memory}"
        )
        await self.gateway.send_message(event.chat_id, MEMORY_SAVED_REPLY)
        return TurnOutcome(TurnStatus.REMEMBERED, MEMORY_SAVED_REPLY, conversation.id)

    # -- Generation ------------------------------------------------------------

    async def _generate(
        self,
        conversation: Conversation,
        route: RouteDecision,
        messages: list[dict[str, Any]],
        text: str,
        reply: StreamingReply,
        token: CancelToken,
    ) -> str:
        working = list(messages)

        if self._tools is not None and should_enable_tools(text):
            precomputed = await self._run_tools(conversation.id, route, working, token)
            if precomputed:
                await reply.simulate(precomputed, delay=self._reveal_delay)
                return precomputed

        request = ChatRequest(
            model=route.model_id,
            messages=working,
            temperature=conversation.temperature,
            max_tokens=route.max_tokens,
        )

        async def _on_attempt(candidate: str) -> None:
            reply.reset()

        try:
            result = await self._cascade.run(
                route.candidates,
                request,
                on_delta=reply.on_delta,
                on_attempt=_on_attempt,
                cancel_token=token,
            )
        except ProviderError as exc:
            if classify_failure(exc) is Decision.ABORT:
                raise
            logger.warning("Streaming produced no usable reply (%s), retrying once more", exc)
            reply.reset()
            result = await self._cascade.run(route.candidates, request, cancel_token=token)
            await reply.simulate(result.text, delay=self._reveal_delay)
            return result.text

        return result.text if result.text.strip() else reply.text

    async def _run_tools(
        self,
        conversation_id: int,
        route: RouteDecision,
        messages: list[dict[str, Any]],
        token: CancelToken,
    ) -> str | None:
        """Let the model call tools for up to ``tool_max_rounds`` rounds.

        Mutates *messages* with the assistant tool-call turns and tool results.
        Returns the model's text if it answered without asking for a tool.
        """
        schemas = self._tools.get_schemas()
        for _ in range(settings.tool_max_rounds):
            request = ChatRequest(
                model=route.model_id,
                messages=messages,
                temperature=route.temperature,
                max_tokens=min(route.max_tokens, settings.tool_max_tokens),
                tools=schemas,
            )
            result = await self._cascade.run(
                route.candidates, request, cancel_token=token, continue_truncated=False
            )
            completion = result.completion
            if not completion.tool_calls:
                return completion.text or None

            names = ", ".join(call.name for call in completion.tool_calls)
            messages.append(
                {
                    "role": "assistant",
                    "content": completion.text or "",
                    "tool_calls": [call.to_chat() for call in completion.tool_calls],
                }
            )
            await self.store.append_message(
                conversation_id, Role.ASSISTANT, completion.text or f"[tool-calls] {names}"
            )

            for call in completion.tool_calls:
                token.raise_if_cancelled()
                outcome = await self._tools.execute(call.name, call.parsed_arguments())
                content = outcome.to_content()
                logger.info(
                    "Tool %s for conversation %s: %s",
                    call.name,
                    conversation_id,
                    "ok" if outcome.success else outcome.error,
                )
                messages.append(
                    {"role": "tool", "name": call.name, "tool_call_id": call.id, "content": content}
                )
                await self.store.append_message(
                    conversation_id, Role.TOOL, content, name=call.name, tool_call_id=call.id
                )
        return None

    async def _maybe_send_sticker(self, chat_id: str) -> None:
        sticker_ids = settings.get_sticker_ids()
        if not sticker_ids or self._rng() >= settings.reply_sticker_probability:
            return
        index = min(int(self._rng() * len(sticker_ids)), len(sticker_ids) - 1)
        with contextlib.suppress(Exception):
            await self.gateway.send_sticker(chat_id, sticker_ids[index])

    # -- Background ------------------------------------------------------------

    def _schedule_summary(self, conversation_id: int | None) -> None:
        if conversation_id is None:
            return
        task = asyncio.create_task(self._summarizer.maybe_summarize(conversation_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for scheduled background work (summaries) to finish."""
        if self._background:
            await asyncio.gather(*self._background)

    # -- Commands --------------------------------------------------------------

    async def get_conversation(self, conversation_key: str) -> Conversation:
        return await self.store.get_or_create(conversation_key)

    def stop(self, conversation_key: str) -> bool:
        """Cancel the in-flight generation. Returns True if one was running."""
        return self._cancellations.cancel(conversation_key)

    async def reset(self, conversation_key: str) -> int:
        """Stop any generation and wipe messages, pins and summary.

        Raises:
            LockTimeoutError: the conversation stayed busy past the lock timeout.
        """
        self._cancellations.cancel(conversation_key)
        async with self._locks.hold(conversation_key):
            conversation = await self.store.get_or_create(conversation_key)
            return await self.store.clear_conversation(conversation.id)

    async def set_model(self, conversation_key: str, model_key: str) -> Conversation:
        """Switch the model. Unknown keys are stored as custom model ids."""
        profile = get_profile(model_key)
        stored = profile.key if profile else model_key.strip()
        conversation = await self.store.get_or_create(conversation_key)
        return await self.store.update_settings(conversation.id, model_key=stored)

    async def set_temperature(self, conversation_key: str, temperature: float) -> Conversation:
        if not 0 <= temperature <= 2:
            raise ValueError("Temperature must be between 0 and 2")
        conversation = await self.store.get_or_create(conversation_key)
        return await self.store.update_settings(conversation.id, temperature=temperature)

    async def set_verbosity(
        self, conversation_key: str, verbosity: Verbosity | str
    ) -> Conversation:
        conversation = await self.store.get_or_create(conversation_key)
        return await self.store.update_settings(conversation.id, verbosity=Verbosity(verbosity))

    async def toggle_verbosity(self, conversation_key: str) -> Verbosity:
        """Cycle concise -> detailed -> normal -> concise."""
        conversation = await self.store.get_or_create(conversation_key)
        nxt = VERBOSITY_CYCLE[conversation.verbosity]
        await self.store.update_settings(conversation.id, verbosity=nxt)
        return nxt

    async def set_style(self, conversation_key: str, style_prompt: str | None) -> Conversation:
        """Set (or clear, with None) the custom style prompt, capped at 500 characters."""
        if style_prompt is not None:
            style_prompt = style_prompt.strip()
            if not style_prompt:
                raise ValueError("Style prompt cannot be empty")
            style_prompt = style_prompt[:STYLE_PROMPT_LIMIT]
        conversation = await self.store.get_or_create(conversation_key)
        return await self.store.update_settings(conversation.id, style_prompt=style_prompt)

    async def export(self, conversation_key: str) -> ConversationSnapshot | None:
        conversation = await self.store.get_or_create(conversation_key)
        return await self.store.export_conversation(conversation.id)


def build_engine(gateway: OutboundGateway) -> ConversationEngine:
    """Wire the production collaborators around *gateway*."""
    from swiftbot.tools import registry as tool_registry

    store = ConversationStore()
    cascade = FallbackCascade(build_registry())
    return ConversationEngine(
        store=store,
        gateway=gateway,
        cascade=cascade,
        summarizer=ConversationSummarizer(store, cascade),
        tools=tool_registry,
    )
