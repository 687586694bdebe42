"""Deterministic text tools: summarize, rewrite, extract key points."""

import re
from typing import Literal

from pydantic import Field

from swiftbot.tools.base import ToolParams, ToolResult
from swiftbot.tools.registry import registry

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
MAX_SUMMARY_SENTENCES = 3
MAX_KEY_POINTS = 8
CONCISE_LIMIT = 260


def summarize_text(text: str) -> str:
    cleaned = " ".join(text.split())
    if not cleaned:
        return "No text provided."
    sentences = [s.strip() for s in SENTENCE_SPLIT.split(cleaned) if s.strip()]
    if len(sentences) <= MAX_SUMMARY_SENTENCES:
        return " ".join(sentences)
    return f"{' '.join(sentences[:MAX_SUMMARY_SENTENCES])} ..."


_FORMAL = [
    (re.compile(r"\bcan't\b", re.IGNORECASE), "cannot"),
    (re.compile(r"\bwon't\b", re.IGNORECASE), "will not"),
    (re.compile(r"\bI'm\b", re.IGNORECASE), "I am"),
    (re.compile(r"\bdon't\b", re.IGNORECASE), "do not"),
]
_CASUAL = [
    (re.compile(r"\bdo not\b", re.IGNORECASE), "don't"),
    (re.compile(r"\bcannot\b", re.IGNORECASE), "can't"),
    (re.compile(r"\bi am\b", re.IGNORECASE), "I'm"),
]


def rewrite_text(text: str, tone: str = "professional") -> str:
    cleaned = text.strip()
    if not cleaned:
        return "No text provided."
    tone = tone.lower()
    if tone == "concise":
        summary = summarize_text(cleaned)
        if len(summary) > CONCISE_LIMIT:
            return f"{summary[: CONCISE_LIMIT - 3].rstrip()}..."
        return summary
    replacements = {"formal": _FORMAL, "casual": _CASUAL}.get(tone, [])
    for pattern, replacement in replacements:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned


def extract_key_points(text: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        return "No text provided."
    lines = [line.strip() for line in cleaned.splitlines() if line.strip()]
    points = lines if len(lines) > 1 else SENTENCE_SPLIT.split(cleaned)
    return "\n".join(
        f"{index}. {point.strip()}" for index, point in enumerate(points[:MAX_KEY_POINTS], 1)
    )


class TextParams(ToolParams):
    text: str = Field(description="The text to process")


class RewriteParams(ToolParams):
    text: str = Field(description="The text to rewrite")
    tone: Literal["professional", "formal", "casual", "concise"] = Field(
        default="professional", description="Target tone"
    )


@registry.tool(
    name="text_summarize",
    description="Summarize text into a short compact version.",
    category="text",
    params_model=TextParams,
)
async def text_summarize(text: str) -> ToolResult:
    return ToolResult(data={"summary": summarize_text(text)})


@registry.tool(
    name="text_rewrite",
    description="Rewrite text in a different tone.",
    category="text",
    params_model=RewriteParams,
)
async def text_rewrite(text: str, tone: str = "professional") -> ToolResult:
    return ToolResult(data={"text": rewrite_text(text, tone)})


@registry.tool(
    name="text_extract_key_points",
    description="Extract key points from text.",
    category="text",
    params_model=TextParams,
)
async def text_extract_key_points(text: str) -> ToolResult:
    return ToolResult(data={"key_points": extract_key_points(text)})
