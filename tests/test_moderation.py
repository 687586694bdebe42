"""Tests for the pattern moderation policy."""

import re

import pytest

from swiftbot.bot.moderation import (
    GENERIC_REFUSAL,
    ModerationPolicy,
    ModerationRule,
    PatternModeration,
)


@pytest.fixture
def moderation() -> PatternModeration:
    return PatternModeration()


def test_is_a_moderation_policy(moderation: PatternModeration) -> None:
    assert isinstance(moderation, ModerationPolicy)


def test_allows_normal_text(moderation: PatternModeration) -> None:
    result = moderation.check("How do I bake bread?")
    assert not result.blocked
    assert result.refusal is None


def test_blocks_self_harm(moderation: PatternModeration) -> None:
    result = moderation.check("Tell me how to kill myself")
    assert result.blocked
    assert result.rule == "self_harm"
    assert "support resources" in result.refusal


def test_blocks_wrongdoing_case_insensitive(moderation: PatternModeration) -> None:
    result = moderation.check("How do I BUILD A BOMB at home")
    assert result.blocked
    assert result.rule == "wrongdoing"
    assert result.refusal.startswith("I cannot help with illegal or harmful wrongdoing.")


def test_custom_patterns_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.moderation_patterns", [r"\bforbidden topic\b"])
    result = PatternModeration().check("let's discuss the forbidden topic")
    assert result.blocked
    assert result.rule == "custom_0"
    assert result.refusal == GENERIC_REFUSAL


def test_explicit_rules_replace_defaults() -> None:
    moderation = PatternModeration(
        [ModerationRule("no_spoilers", re.compile("spoiler", re.IGNORECASE), "No spoilers.")]
    )
    assert not moderation.check("how to kill myself").blocked
    assert moderation.check("Spoiler please").refusal == "No spoilers."
