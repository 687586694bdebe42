"""Model router: (model key, intent) -> ordered candidates and generation parameters."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from swiftbot.config import settings
from swiftbot.llm.intent import Intent
from swiftbot.llm.models import AUTO_KEY, ModelProfile, get_profile, resolve_profile
from swiftbot.memory.models import Verbosity

logger = logging.getLogger(__name__)

# Profile used when the conversation is on "auto"
INTENT_PROFILE: dict[Intent, str] = {
    Intent.CODING: "code",
    Intent.MATH: "math",
    Intent.CURRENT_EVENT: "fast",
    Intent.GENERAL: "fast",
    Intent.AMBIGUOUS: "fast",
}

# Settings pool consulted after the primary candidate
INTENT_POOL: dict[Intent, str] = {
    Intent.CODING: "coding",
    Intent.MATH: "math",
    Intent.CURRENT_EVENT: "realtime",
    Intent.GENERAL: "general",
    Intent.AMBIGUOUS: "general",
}

CURRENT_EVENT_TEMPERATURE = 0.2

DETAIL_PATTERN = re.compile(
    r"\b(explain|detailed|in detail|step by step|step-by-step|elaborate|in depth|"
    r"comprehensive|thorough)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RouteDecision:
    """Per-turn routing result. Never persisted."""

    model_key: str
    model_id: str
    candidates: list[str]
    temperature: float
    max_tokens: int


def wants_detail(text: str, verbosity: Verbosity | str) -> bool:
    return verbosity == Verbosity.DETAILED or bool(DETAIL_PATTERN.search(text))


def token_ceiling(profile: ModelProfile, text: str, verbosity: Verbosity | str) -> int:
    """Response-length heuristic on top of the profile ceiling."""
    if wants_detail(text, verbosity):
        ceiling = settings.max_output_tokens
    elif len(text.strip()) < settings.short_prompt_chars or verbosity == Verbosity.CONCISE:
        ceiling = min(profile.max_tokens, settings.short_reply_max_tokens)
    else:
        ceiling = profile.max_tokens
    return min(ceiling, settings.max_output_tokens)


def _dedupe(candidates: list[str]) -> list[str]:
    return list(dict.fromkeys(c.strip() for c in candidates if c and c.strip()))


class ModelRouter:
    """Resolves the candidate list for one turn."""

    def route(
        self,
        model_key: str,
        intent: Intent,
        text: str,
        verbosity: Verbosity | str = Verbosity.NORMAL,
        *,
        override: str | None = None,
    ) -> RouteDecision:
        key = (override or model_key or AUTO_KEY).strip()
        temperature: float | None = None

        if key.lower() == AUTO_KEY:
            profile = get_profile(INTENT_PROFILE[intent])
            if intent is Intent.CURRENT_EVENT:
                temperature = CURRENT_EVENT_TEMPERATURE
        else:
            profile = resolve_profile(key)

        candidates = _dedupe(
            [profile.model_id]
            + settings.get_model_pool(INTENT_POOL[intent])
            + settings.get_fallback_models()
        )[: settings.get_max_model_attempts()]

        decision = RouteDecision(
            model_key=profile.key,
            model_id=profile.model_id,
            candidates=candidates,
            temperature=temperature if temperature is not None else profile.temperature,
            max_tokens=token_ceiling(profile, text, verbosity),
        )
        logger.info(
            "Routed %s/%s -> %s (max_tokens=%d)",
            key,
            intent.value,
            decision.candidates,
            decision.max_tokens,
        )
        return decision
