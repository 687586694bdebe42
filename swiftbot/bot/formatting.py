"""Reply post-processing and platform-size chunking."""

from __future__ import annotations

import re

CODE_FENCE = re.compile(r"```[a-zA-Z0-9_+-]*\n?(.*?)```", re.DOTALL)
HEADING = re.compile(r"^\s*#{1,6}\s+", re.MULTILINE)
HORIZONTAL_RULE = re.compile(r"^\s*[-_*]{3,}\s*$", re.MULTILINE)
BOLD = re.compile(r"\*\*(.*?)\*\*|__(.*?)__")
ITALIC = re.compile(r"(?<![\w*])\*(?!\s)([^*\n]+?)\*(?![\w*])")
INLINE_CODE = re.compile(r"`([^`\n]+)`")
TABLE_DIVIDER = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)+\|?\s*$")
TABLE_ROW = re.compile(r"^\s*\|.*\|\s*$")
LIST_ITEM = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s+(.*)$")

EMPTY_REPLY = "I could not generate a clean response. Please try again."


def _strip_inline(text: str) -> str:
    text = HEADING.sub("", text)
    text = HORIZONTAL_RULE.sub("", text)
    text = BOLD.sub(lambda m: m.group(1) if m.group(1) is not None else m.group(2), text)
    text = ITALIC.sub(r"\1", text)
    return INLINE_CODE.sub(r"\1", text)


def _renumber(lines: list[str]) -> list[str]:
    """Number list items and table rows 1..n per block; drop table dividers."""
    out: list[str] = []
    index = 0
    for raw in lines:
        line = raw.strip()
        if not line:
            out.append("")
            index = 0
            continue
        if TABLE_DIVIDER.match(line):
            continue
        if TABLE_ROW.match(line):
            cells = [cell.strip() for cell in line.split("|") if cell.strip()]
            if cells:
                index += 1
                out.append(f"{index}. {' - '.join(cells)}")
            continue
        item = LIST_ITEM.match(line)
        if item:
            index += 1
            out.append(f"{index}. {item.group(1).strip()}")
            continue
        index = 0
        out.append(re.sub(r"[ \t]{2,}", " ", line))
    return out


def _collapse_blank_lines(lines: list[str]) -> list[str]:
    out: list[str] = []
    for line in lines:
        if line == "" and out and out[-1] == "":
            continue
        out.append(line)
    return out


def format_reply(text: str) -> str:
    """Strip Markdown markers and tables, renumber lists, keep code verbatim."""
    parts: list[str] = []
    cursor = 0
    for match in CODE_FENCE.finditer(text or ""):
        parts.extend(_renumber(_strip_inline(text[cursor : match.start()]).split("\n")))
        code = "\n".join(line.rstrip() for line in match.group(1).split("\n")).strip("\n")
        if code.strip():
            parts.extend(["Code Example:", code])
        cursor = match.end()
    parts.extend(_renumber(_strip_inline((text or "")[cursor:]).split("\n")))

    output = "\n".join(_collapse_blank_lines(parts)).strip()
    return output or EMPTY_REPLY


def chunk_text(text: str, limit: int = 3500) -> list[str]:
    """Split *text* into pieces of at most *limit* characters.

    Prefers a paragraph break, then a line break, then a space, as long as
    the break falls past the halfway point; otherwise hard-splits.
    """
    remaining = text.strip()
    if not remaining:
        return []
    chunks: list[str] = []
    while len(remaining) > limit:
        segment = remaining[:limit]
        split_at = limit
        for separator in ("\n\n", "\n", " "):
            position = segment.rfind(separator)
            if position > limit * 0.5:
                split_at = position
                break
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks
