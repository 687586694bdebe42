"""Provider fallback cascade.

Candidates are tried in order. Each failure is classified and the
classification alone decides whether the loop moves on or stops:

* transient failures (timeouts, 429, 5xx, empty responses) continue
* authentication/billing failures abort the run
* the first usable completion is returned

A length-truncated success is extended with continuation rounds on the
same candidate.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from swiftbot.config import settings
from swiftbot.errors import ProviderError, RoutingError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from swiftbot.bot.concurrency import CancelToken
    from swiftbot.llm.providers.base import (
        ChatRequest,
        Completion,
        OnDelta,
        ProviderAdapter,
    )
    from swiftbot.llm.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

BILLING_PATTERN = re.compile(
    r"insufficient (credits|funds|balance|quota)|billing|payment required", re.IGNORECASE
)

CONTINUATION_TAIL_CHARS = 1200
CONTINUATION_PROMPT = (
    "Continue exactly where you stopped. Do not repeat anything already written."
)
MIN_OVERLAP_CHARS = 8


class Decision(StrEnum):
    SUCCESS = "success"
    CONTINUE = "continue"
    ABORT = "abort"
    SKIPPED = "skipped"


def classify_failure(exc: ProviderError) -> Decision:
    """Fatal auth/billing errors abort; everything else moves to the next candidate."""
    if exc.fatal or BILLING_PATTERN.search(str(exc)):
        return Decision.ABORT
    return Decision.CONTINUE


def merge_continuation(accumulated: str, piece: str) -> str:
    """Return the part of *piece* that is new relative to *accumulated*.

    Empty when the piece adds nothing (blank, or already present). A prefix
    of the piece that repeats the end of the accumulated text is dropped.
    """
    if not piece.strip() or piece.strip() in accumulated:
        return ""
    longest = min(len(accumulated), len(piece))
    for size in range(longest, MIN_OVERLAP_CHARS - 1, -1):
        if accumulated.endswith(piece[:size]):
            return piece[size:]
    return piece


@dataclass
class AttemptRecord:
    candidate: str
    provider: str
    decision: Decision
    error: str | None = None


@dataclass
class CascadeResult:
    completion: Completion
    candidate: str
    attempts: list[AttemptRecord] = field(default_factory=list)
    continuation_rounds: int = 0

    @property
    def text(self) -> str:
        return self.completion.text


class FallbackCascade:
    """Runs a request against an ordered candidate list."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        attempt_timeout: float | None = None,
        max_continuation_rounds: int | None = None,
        continuation_max_tokens: int | None = None,
    ) -> None:
        self._registry = registry
        self._attempt_timeout = (
            attempt_timeout
            if attempt_timeout is not None
            else settings.provider_attempt_timeout_seconds
        )
        self._max_continuation_rounds = (
            max_continuation_rounds
            if max_continuation_rounds is not None
            else settings.max_continuation_rounds
        )
        self._continuation_max_tokens = (
            continuation_max_tokens
            if continuation_max_tokens is not None
            else settings.continuation_max_tokens
        )

    async def run(
        self,
        candidates: list[str],
        request: ChatRequest,
        *,
        on_delta: OnDelta | None = None,
        on_attempt: Callable[[str], Awaitable[None]] | None = None,
        cancel_token: CancelToken | None = None,
        continue_truncated: bool = True,
    ) -> CascadeResult:
        """Try each candidate until one succeeds.

        Streams through *on_delta* when given, otherwise uses single-shot
        completions. *on_attempt* fires before each real invocation.

        Raises:
            ProviderError: the last transient error once candidates run out,
                or the first fatal error.
            RoutingError: no candidate had a configured provider.
        """
        attempts: list[AttemptRecord] = []
        last_error: ProviderError | None = None

        for candidate in candidates:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            adapter, model_id = self._registry.resolve(candidate)
            if adapter is None or not adapter.configured:
                provider = adapter.name if adapter else self._registry.default_name
                logger.warning("Skipping %s: provider %s is not configured", candidate, provider)
                attempts.append(
                    AttemptRecord(candidate, provider, Decision.SKIPPED, "not configured")
                )
                continue

            if on_attempt is not None:
                await on_attempt(candidate)

            try:
                completion = await self._invoke(adapter, request.with_model(model_id), on_delta)
            except ProviderError as exc:
                decision = classify_failure(exc)
                attempts.append(AttemptRecord(candidate, adapter.name, decision, str(exc)))
                last_error = exc
                if decision is Decision.ABORT:
                    logger.error("Fatal provider error on %s, aborting cascade: %s", candidate, exc)
                    self._log_attempts(attempts)
                    raise
                logger.warning("Candidate %s failed (%s), trying next", candidate, exc)
                continue

            attempts.append(AttemptRecord(candidate, adapter.name, Decision.SUCCESS))
            rounds = 0
            if continue_truncated and completion.truncated and completion.text.strip():
                completion, rounds = await self._continue(
                    adapter, request.with_model(model_id), completion, on_delta, cancel_token
                )
            return CascadeResult(
                completion=completion,
                candidate=candidate,
                attempts=attempts,
                continuation_rounds=rounds,
            )

        self._log_attempts(attempts)
        if last_error is not None:
            raise last_error
        msg = f"No configured provider for candidates: {', '.join(candidates) or '(none)'}"
        raise RoutingError(msg)

    async def _invoke(
        self, adapter: ProviderAdapter, request: ChatRequest, on_delta: OnDelta | None
    ) -> Completion:
        try:
            async with asyncio.timeout(self._attempt_timeout):
                if on_delta is not None:
                    completion = await adapter.stream(request, on_delta)
                else:
                    completion = await adapter.complete(request)
        except TimeoutError as exc:
            raise ProviderError("attempt timed out", provider=adapter.name) from exc
        if completion.empty:
            raise ProviderError("empty response", provider=adapter.name)
        return completion

    async def _continue(
        self,
        adapter: ProviderAdapter,
        request: ChatRequest,
        completion: Completion,
        on_delta: OnDelta | None,
        cancel_token: CancelToken | None,
    ) -> tuple[Completion, int]:
        text = completion.text
        finish_reason = completion.finish_reason
        rounds = 0

        while finish_reason == "length" and rounds < self._max_continuation_rounds:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            rounds += 1
            follow_up = replace(
                request,
                messages=[
                    *request.messages,
                    {"role": "assistant", "content": text[-CONTINUATION_TAIL_CHARS:]},
                    {"role": "user", "content": CONTINUATION_PROMPT},
                ],
                max_tokens=min(request.max_tokens, self._continuation_max_tokens),
                tools=None,
            )
            try:
                async with asyncio.timeout(self._attempt_timeout):
                    piece = await adapter.complete(follow_up)
            except (ProviderError, TimeoutError) as exc:
                logger.warning("Continuation round %d failed, keeping partial text: %s", rounds, exc)
                break

            addition = merge_continuation(text, piece.text)
            if not addition:
                logger.info("Continuation round %d added nothing new, stopping", rounds)
                break
            text += addition
            if on_delta is not None:
                await on_delta(addition)
            finish_reason = piece.finish_reason

        logger.info("Continuation finished after %d round(s)", rounds)
        return replace(completion, text=text, finish_reason=finish_reason), rounds

    @staticmethod
    def _log_attempts(attempts: list[AttemptRecord]) -> None:
        summary = "; ".join(
            f"{a.candidate} via {a.provider}: {a.decision.value}"
            + (f" ({a.error})" if a.error else "")
            for a in attempts
        )
        logger.error("Cascade failed after %d attempt(s): %s", len(attempts), summary or "none")
