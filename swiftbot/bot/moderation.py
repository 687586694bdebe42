"""Pluggable moderation policy applied before generation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from swiftbot.config import settings

logger = logging.getLogger(__name__)

GENERIC_REFUSAL = "I cannot help with that request. I can help with a safer alternative."


@dataclass(frozen=True)
class ModerationRule:
    name: str
    pattern: re.Pattern[str]
    refusal: str


@dataclass(frozen=True)
class ModerationResult:
    blocked: bool
    rule: str | None = None
    refusal: str | None = None


ALLOWED = ModerationResult(blocked=False)


@runtime_checkable
class ModerationPolicy(Protocol):
    """Decides whether an inbound message may reach generation."""

    def check(self, text: str) -> ModerationResult:
        ...


def _rule(name: str, phrases: str, refusal: str) -> ModerationRule:
    return ModerationRule(name, re.compile(rf"\b({phrases})\b", re.IGNORECASE), refusal)


DEFAULT_RULES = [
    _rule(
        "self_harm",
        r"how to kill myself|how can i die|suicide method|self harm method",
        "I cannot help with self-harm instructions. "
        "I can help with support resources and safer coping steps.",
    ),
    _rule(
        "wrongdoing",
        r"build a bomb|make explosive|buy illegal drugs|credit card fraud|steal password|"
        r"malware code",
        "I cannot help with illegal or harmful wrongdoing. "
        "I can help with legal and ethical alternatives.",
    ),
]


class PatternModeration:
    """Denylist of regular expressions, each with a fixed refusal message."""

    def __init__(self, rules: list[ModerationRule] | None = None) -> None:
        self._rules = rules if rules is not None else self.default_rules()

    @staticmethod
    def default_rules() -> list[ModerationRule]:
        """Built-in rules plus any MODERATION_PATTERNS from settings."""
        extra = [
            ModerationRule(f"custom_{i}", re.compile(pattern, re.IGNORECASE), GENERIC_REFUSAL)
            for i, pattern in enumerate(settings.moderation_patterns)
        ]
        return [*DEFAULT_RULES, *extra]

    def check(self, text: str) -> ModerationResult:
        for rule in self._rules:
            if rule.pattern.search(text):
                logger.info("Moderation rule %s blocked a message", rule.name)
                return ModerationResult(blocked=True, rule=rule.name, refusal=rule.refusal)
        return ALLOWED
