"""Rule-based intent classification for inbound prompts.

Rules are evaluated in order and the first rule that returns an intent wins.
The default rule set is built from settings so individual patterns can be
replaced without code changes.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from swiftbot.config import settings


class Intent(StrEnum):
    MATH = "math"
    CODING = "coding"
    CURRENT_EVENT = "current_event"
    GENERAL = "general"
    AMBIGUOUS = "ambiguous"


MATH_PROMPT_PATTERN = r"(^|\s)(solve|calculate|what is|evaluate)\s+[-+*/().\d\s^%]{3,}$"
ARITHMETIC_PATTERN = r"\d\s*[-+*/^%]\s*\(?\d"
MATH_LENGTH_CAP = 100

CODING_PATTERN = (
    r"\b(code|coding|bug|debug|typescript|javascript|python|java|golang|rust|"
    r"c\+\+|c#|sql|regex|api|function|class|compile|compiler|stack trace|"
    r"traceback|exception|syntax)\b"
)

REALTIME_PATTERN = (
    r"\b(20(2[4-9]|3\d)|today|now|current|latest|right now|this week|"
    r"richest|top\s+\d+|top company|best phone|prime minister|president|ceo|"
    r"stock price|net worth|market cap|breaking news|rank(ing)?|leader|who is|"
    r"what is the current)\b"
)

LIVE_FACTS_PATTERN = (
    r"\b(latest|today|current|recent|now\b|as of|202[4-9]|price|market cap|gdp|revenue|"
    r"stock|rank|top\s+\d+|news|update|election|breaking|who is)"
)

PYTHON_PATTERN = r"\bpython\b"
PYTHON_PROGRAMMING_PATTERN = (
    r"\b(learn|code|coding|function|error|install|pip|syntax|script|programming|debug)\b"
)
PYTHON_ENTERTAINMENT_PATTERN = r"\b(monty|movie|comedy|series|show|sketch)\b"

AMBIGUOUS_PYTHON_CLARIFICATION = (
    "Do you mean Python programming or Monty Python? If programming, tell me your "
    "current level and goal, and I will start a learning path."
)


@dataclass(frozen=True)
class IntentRule:
    """A named rule. ``match`` returns an intent or None to defer to later rules."""

    name: str
    match: Callable[[str], Intent | None]


def pattern_rule(name: str, pattern: str, intent: Intent) -> IntentRule:
    """Build a rule that yields *intent* when *pattern* matches (case-insensitive)."""
    compiled = re.compile(pattern, re.IGNORECASE)

    def _match(text: str) -> Intent | None:
        return intent if compiled.search(text) else None

    return IntentRule(name=name, match=_match)


def ambiguous_python_rule() -> IntentRule:
    """A bare mention of Python is ambiguous between the language and the comedy troupe."""
    mention = re.compile(PYTHON_PATTERN, re.IGNORECASE)
    programming = re.compile(PYTHON_PROGRAMMING_PATTERN, re.IGNORECASE)
    entertainment = re.compile(PYTHON_ENTERTAINMENT_PATTERN, re.IGNORECASE)

    def _match(text: str) -> Intent | None:
        if not mention.search(text):
            return None
        if programming.search(text):
            return Intent.CODING
        if entertainment.search(text):
            return None
        return Intent.AMBIGUOUS

    return IntentRule(name="ambiguous_python", match=_match)


def math_rule(prompt_pattern: str = MATH_PROMPT_PATTERN) -> IntentRule:
    prompt_re = re.compile(prompt_pattern, re.IGNORECASE)
    arithmetic_re = re.compile(ARITHMETIC_PATTERN)

    def _match(text: str) -> Intent | None:
        if prompt_re.search(text):
            return Intent.MATH
        if len(text) < MATH_LENGTH_CAP and arithmetic_re.search(text):
            return Intent.MATH
        return None

    return IntentRule(name="math", match=_match)


def current_event_rule(realtime_pattern: str = REALTIME_PATTERN) -> IntentRule:
    realtime_re = re.compile(realtime_pattern, re.IGNORECASE)
    live_re = re.compile(LIVE_FACTS_PATTERN, re.IGNORECASE)

    def _match(text: str) -> Intent | None:
        if realtime_re.search(text) or live_re.search(text):
            return Intent.CURRENT_EVENT
        return None

    return IntentRule(name="current_event", match=_match)


def default_rules() -> list[IntentRule]:
    """The built-in rule chain, with pattern overrides applied from settings."""
    rules: list[IntentRule] = []
    if settings.clarify_ambiguous_python:
        rules.append(ambiguous_python_rule())
    rules.append(math_rule(settings.intent_math_pattern or MATH_PROMPT_PATTERN))
    rules.append(
        pattern_rule("coding", settings.intent_coding_pattern or CODING_PATTERN, Intent.CODING)
    )
    rules.append(current_event_rule(settings.intent_realtime_pattern or REALTIME_PATTERN))
    return rules


class IntentClassifier:
    """Classifies text by running an ordered list of rules."""

    def __init__(self, rules: list[IntentRule] | None = None) -> None:
        self._rules = rules if rules is not None else default_rules()

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self._rules]

    def classify(self, text: str) -> Intent:
        normalized = text.strip()
        if not normalized:
            return Intent.GENERAL
        for rule in self._rules:
            intent = rule.match(normalized)
            if intent is not None:
                return intent
        return Intent.GENERAL
