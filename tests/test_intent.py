"""Tests for rule-based intent classification."""

import pytest

from swiftbot.llm.intent import (
    Intent,
    IntentClassifier,
    IntentRule,
    default_rules,
    pattern_rule,
)


@pytest.fixture
def classifier() -> IntentClassifier:
    return IntentClassifier()


@pytest.mark.parametrize(
    "text",
    ["2+2", "what is 12 * (3 + 4)", "calculate 15 % 4", "solve 3^2 + 1", "17 / 4?"],
)
def test_math_prompts(classifier: IntentClassifier, text: str) -> None:
    assert classifier.classify(text) is Intent.MATH


def test_long_text_with_numbers_is_not_math(classifier: IntentClassifier) -> None:
    text = "I walked 3-4 miles yesterday and then " + "kept talking about the trip " * 4
    assert len(text) >= 100
    assert classifier.classify(text) is not Intent.MATH


@pytest.mark.parametrize(
    "text",
    [
        "How do I fix this TypeScript bug?",
        "Write a SQL query to list users",
        "What does this traceback mean",
        "explain this regex",
    ],
)
def test_coding_prompts(classifier: IntentClassifier, text: str) -> None:
    assert classifier.classify(text) is Intent.CODING


@pytest.mark.parametrize(
    "text",
    [
        "What is the current GDP of Japan",
        "Who is the richest person today?",
        "latest news about the election",
        "Tesla stock price",
    ],
)
def test_current_event_prompts(classifier: IntentClassifier, text: str) -> None:
    assert classifier.classify(text) is Intent.CURRENT_EVENT


def test_general_prompt(classifier: IntentClassifier) -> None:
    assert classifier.classify("Write me a short poem about autumn") is Intent.GENERAL


def test_empty_is_general(classifier: IntentClassifier) -> None:
    assert classifier.classify("   ") is Intent.GENERAL


# -- Ambiguous python ----------------------------------------------------------


def test_bare_python_is_ambiguous(classifier: IntentClassifier) -> None:
    assert classifier.classify("Tell me about Python") is Intent.AMBIGUOUS


def test_python_with_programming_words_is_coding(classifier: IntentClassifier) -> None:
    assert classifier.classify("I want to learn python") is Intent.CODING


def test_python_entertainment_falls_through(classifier: IntentClassifier) -> None:
    # Falls through to the later rules; "python" is still coding vocabulary.
    assert classifier.classify("Monty Python movie quotes") is not Intent.AMBIGUOUS


def test_ambiguous_rule_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.clarify_ambiguous_python", False)
    classifier = IntentClassifier()
    assert "ambiguous_python" not in classifier.rule_names
    assert classifier.classify("Tell me about Python") is Intent.CODING


# -- Overrides -----------------------------------------------------------------


def test_rule_order(classifier: IntentClassifier) -> None:
    assert classifier.rule_names == ["ambiguous_python", "math", "coding", "current_event"]


def test_coding_pattern_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.intent_coding_pattern", r"\bkotlin\b")
    classifier = IntentClassifier(default_rules())
    assert classifier.classify("kotlin coroutines") is Intent.CODING
    assert classifier.classify("debug my program") is Intent.GENERAL


def test_realtime_pattern_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.intent_realtime_pattern", r"\bweather\b")
    classifier = IntentClassifier()
    assert classifier.classify("weather in Paris") is Intent.CURRENT_EVENT


def test_custom_rule_list() -> None:
    rules = [
        IntentRule(name="always_math", match=lambda text: Intent.MATH),
        pattern_rule("never", r"zzz", Intent.CODING),
    ]
    classifier = IntentClassifier(rules)
    assert classifier.classify("hello") is Intent.MATH
    assert classifier.rule_names == ["always_math", "never"]


def test_first_matching_rule_wins() -> None:
    rules = [
        IntentRule(name="defer", match=lambda text: None),
        pattern_rule("greeting", r"\bhello\b", Intent.CODING),
    ]
    assert IntentClassifier(rules).classify("hello there") is Intent.CODING
