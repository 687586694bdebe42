"""Tests for the text tools and the global tool catalog."""

from swiftbot.tools import registry
from swiftbot.tools.text_tools import extract_key_points, rewrite_text, summarize_text


def test_catalog_registers_builtin_tools() -> None:
    assert set(registry.tool_names) >= {
        "calculator",
        "date_time",
        "unit_convert",
        "text_summarize",
        "text_rewrite",
        "text_extract_key_points",
    }


def test_summarize_keeps_first_sentences() -> None:
    text = "One. Two!  Three? Four. Five."
    assert summarize_text(text) == "One. Two! Three? ..."
    assert summarize_text("Short one.") == "Short one."
    assert summarize_text("   ") == "No text provided."


def test_rewrite_tones() -> None:
    assert rewrite_text("I can't go", "formal") == "I cannot go"
    assert rewrite_text("I am sure I do not know", "casual") == "I'm sure I don't know"
    assert rewrite_text("  Keep as is.  ") == "Keep as is."


def test_rewrite_concise_is_capped() -> None:
    long_sentence = "word " * 100 + "."
    result = rewrite_text(long_sentence, "concise")
    assert len(result) <= 260
    assert result.endswith("...")


def test_extract_key_points_from_lines() -> None:
    assert extract_key_points("alpha\n\nbeta\ngamma") == "1. alpha\n2. beta\n3. gamma"


def test_extract_key_points_from_sentences() -> None:
    assert extract_key_points("First point. Second point.") == "1. First point.\n2. Second point."


async def test_text_tool_execution() -> None:
    result = await registry.execute("text_rewrite", {"text": "I won't", "tone": "formal"})
    assert result.data == {"text": "I will not"}

    bad = await registry.execute("text_rewrite", {"text": "x", "tone": "pirate"})
    assert not bad.success
