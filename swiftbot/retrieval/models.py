"""Retrieved search documents."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetrievalDocument:
    """One search hit from a retrieval source.

    Attributes:
        title: Result title, HTML stripped.
        snippet: Short excerpt, HTML stripped.
        url: Link to the source page, when the adapter provides one.
        source: Adapter tag, e.g. ``"duckduckgo"`` or ``"wikipedia"``.
    """

    title: str
    snippet: str
    url: str | None = None
    source: str = ""

    @property
    def dedup_key(self) -> str:
        return f"{self.title}|{self.snippet}".lower()

    def to_line(self) -> str:
        """Render as a single grounding bullet (without the leading dash)."""
        link = f" ({self.url})" if self.url else ""
        return f"{self.title}: {self.snippet}{link} [{self.source}]"
