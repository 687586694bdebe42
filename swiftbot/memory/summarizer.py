"""Incremental conversation summarization.

Messages older than the newest ``keep_last`` are folded into a running
summary once enough of them have accumulated past the watermark. Runs in the
background after a reply has been delivered; failures never reach the user.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from swiftbot.config import settings
from swiftbot.llm.models import get_profile
from swiftbot.llm.prompt import SUMMARY_PROMPT
from swiftbot.llm.providers.base import ChatRequest

if TYPE_CHECKING:
    from swiftbot.llm.cascade import FallbackCascade
    from swiftbot.memory.models import Message
    from swiftbot.memory.store import ConversationStore

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.15
SUMMARY_MAX_TOKENS = 360


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def format_transcript(messages: list[Message], max_chars: int) -> str:
    return "\n".join(f"{m.role.value}: {_truncate(m.content, max_chars)}" for m in messages)


class ConversationSummarizer:
    """Folds old history into ``Conversation.summary_text``."""

    def __init__(
        self,
        store: ConversationStore,
        cascade: FallbackCascade,
        *,
        keep_last: int | None = None,
        min_new: int | None = None,
        max_message_chars: int | None = None,
    ) -> None:
        self._store = store
        self._cascade = cascade
        self._keep_last = keep_last if keep_last is not None else settings.summary_keep_last
        self._min_new = min_new if min_new is not None else settings.summary_min_new
        self._max_message_chars = (
            max_message_chars
            if max_message_chars is not None
            else settings.summary_max_message_chars
        )

    def _candidates(self) -> list[str]:
        if settings.summary_model:
            return [settings.summary_model]
        fast = get_profile("fast")
        return [fast.model_id] if fast else []

    async def maybe_summarize(self, conversation_id: int) -> bool:
        """Summarize if enough unsummarized history exists. Returns True on update."""
        try:
            return await self._summarize(conversation_id)
        except Exception:
            logger.exception("Summarization failed for conversation %s (non-fatal)", conversation_id)
            return False

    async def _summarize(self, conversation_id: int) -> bool:
        conversation = await self._store.refresh(conversation_id)
        if conversation is None:
            return False

        messages = await self._store.get_all_messages(conversation_id)
        total = len(messages)
        watermark = conversation.summary_watermark
        cutoff = total - self._keep_last
        if cutoff - watermark < self._min_new:
            return False

        segment = messages[watermark:cutoff]
        transcript = format_transcript(segment, self._max_message_chars)
        request = ChatRequest(
            model="",
            messages=[
                {"role": "system", "content": SUMMARY_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Existing summary:\n{conversation.summary_text or '(none)'}\n\n"
                        f"New conversation segment:\n{transcript}"
                    ),
                },
            ],
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )
        result = await self._cascade.run(self._candidates(), request, continue_truncated=False)
        summary = result.text.strip()
        if not summary:
            logger.info("Summary model returned nothing for conversation %s", conversation_id)
            return False

        updated = await self._store.update_summary(
            conversation_id,
            summary,
            cutoff,
            expected_watermark=watermark,
            through_message_id=segment[-1].id,
        )
        if updated:
            logger.info(
                "Summarized conversation %s: watermark %d -> %d", conversation_id, watermark, cutoff
            )
        return updated
