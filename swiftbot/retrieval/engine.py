"""Retrieval engine: fan out search adapters, rank results, build grounding text."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from swiftbot.config import settings
from swiftbot.errors import GroundingUnavailableError
from swiftbot.llm.intent import LIVE_FACTS_PATTERN, REALTIME_PATTERN
from swiftbot.retrieval.adapters import SearchAdapter, default_adapters
from swiftbot.retrieval.models import RetrievalDocument

logger = logging.getLogger(__name__)

TEMPORAL_PATTERN = re.compile(
    r"\b(latest|today|current|recent|now|this year|202[4-9]|forecast|estimate|"
    r"prediction|market|price|revenue|gdp|election|news)\b",
    re.IGNORECASE,
)
RECENT_YEAR_PATTERN = re.compile(r"\b20(2[4-9]|3[0-9])\b")
TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
MIN_TOKEN_LENGTH = 4
MIN_SCORE = 2
RECENT_YEAR_BONUS = 2

GROUNDING_HEADER = (
    "Verified Data (retrieved at {timestamp})\n"
    "You MUST use the following verified data as ground truth. "
    "Do not override it with model memory."
)


def normalize_query(prompt: str) -> str:
    return " ".join(prompt.strip().lower().split())


def score_document(doc: RetrievalDocument, tokens: set[str]) -> int:
    """Token overlap with the prompt plus a bonus for a recent year mention."""
    haystack = f"{doc.title} {doc.snippet}".lower()
    score = sum(1 for token in tokens if token in haystack)
    if RECENT_YEAR_PATTERN.search(haystack):
        score += RECENT_YEAR_BONUS
    return score


def rank_documents(
    prompt: str, docs: list[RetrievalDocument], limit: int
) -> list[RetrievalDocument]:
    """Deduplicate, score, drop weak matches, and keep the best *limit* documents."""
    tokens = {t for t in TOKEN_SPLIT.split(prompt.lower()) if len(t) >= MIN_TOKEN_LENGTH}

    unique: dict[str, RetrievalDocument] = {}
    for doc in docs:
        unique.setdefault(doc.dedup_key, doc)

    scored = [(score_document(doc, tokens), doc) for doc in unique.values()]
    kept = [item for item in scored if item[0] >= MIN_SCORE]
    # sorted() is stable, so equal scores keep adapter order
    kept = sorted(kept, key=lambda item: item[0], reverse=True)
    return [doc for _, doc in kept[:limit]]


def inject_grounding(prompt: str, grounding: str) -> str:
    """Wrap the user's question with a grounding block."""
    return (
        f"{grounding}\n\nCurrent User Question:\n{prompt}\n\n"
        "Use the retrieved data carefully and state uncertainty if sources conflict."
    )


@dataclass
class _CacheEntry:
    documents: list[RetrievalDocument]
    grounding: str
    expires_at: float


class RetrievalEngine:
    """Runs every enabled adapter for every query variant and caches the ranked set.

    The cache is owned by the instance. Concurrent misses for the same prompt
    may both search; the later write simply overwrites the earlier one.
    """

    def __init__(
        self,
        adapters: list[SearchAdapter] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapters = adapters if adapters is not None else default_adapters()
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._realtime = re.compile(REALTIME_PATTERN, re.IGNORECASE)
        self._live_facts = re.compile(LIVE_FACTS_PATTERN, re.IGNORECASE)

    # -- Gating ----------------------------------------------------------------

    @staticmethod
    def is_temporal(prompt: str) -> bool:
        return bool(TEMPORAL_PATTERN.search(prompt))

    def should_retrieve(self, prompt: str) -> bool:
        if not settings.live_grounding_enabled:
            return False
        return (
            bool(self._realtime.search(prompt))
            or settings.always_web_retrieval
            or bool(self._live_facts.search(prompt))
        )

    # -- Search ----------------------------------------------------------------

    def build_queries(self, prompt: str) -> list[str]:
        base = prompt.strip()
        year = datetime.now(UTC).year
        queries = list(dict.fromkeys([base, f"{base} latest {year}"]))
        return queries[: settings.get_retrieval_max_queries()]

    async def _run_adapter(self, adapter: SearchAdapter, query: str) -> list[RetrievalDocument]:
        try:
            return await asyncio.wait_for(adapter.search(query), settings.get_web_timeout())
        except Exception as exc:
            logger.warning("Search adapter %s failed for %r: %s", adapter.name, query, exc)
            return []

    def _cached(self, key: str) -> _CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._cache[key]
            return None
        return entry

    async def search(self, prompt: str) -> list[RetrievalDocument]:
        """Ranked documents for *prompt*, served from cache within the TTL."""
        entry = await self._lookup(prompt)
        return list(entry.documents) if entry else []

    async def _lookup(self, prompt: str) -> _CacheEntry | None:
        key = normalize_query(prompt)
        cached = self._cached(key)
        if cached is not None:
            logger.debug("Retrieval cache hit for %r", key)
            return cached

        adapters = [a for a in self._adapters if a.enabled]
        jobs = [
            self._run_adapter(adapter, query)
            for query in self.build_queries(prompt)
            for adapter in adapters
        ]
        batches = await asyncio.gather(*jobs)
        docs = [doc for batch in batches for doc in batch]
        ranked = rank_documents(prompt, docs, settings.get_web_max_snippets())
        logger.info(
            "Retrieval for %r: %d raw documents, %d kept", key, len(docs), len(ranked)
        )
        if not ranked:
            return None

        entry = _CacheEntry(
            documents=ranked,
            grounding=self.format_grounding(ranked),
            expires_at=self._clock() + settings.retrieval_cache_ttl_seconds,
        )
        self._cache[key] = entry
        return entry

    # -- Grounding -------------------------------------------------------------

    @staticmethod
    def format_grounding(docs: list[RetrievalDocument], retrieved_at: datetime | None = None) -> str:
        timestamp = (retrieved_at or datetime.now(UTC)).isoformat()
        lines = "\n- ".join(doc.to_line() for doc in docs)
        block = f"{GROUNDING_HEADER.format(timestamp=timestamp)}\n- {lines}"
        return block[: settings.web_max_chars]

    async def build_grounding(self, prompt: str) -> str | None:
        """Grounding block for *prompt*, or None when retrieval is gated off or empty."""
        if not self.should_retrieve(prompt):
            return None
        entry = await self._lookup(prompt)
        return entry.grounding if entry else None

    async def ground(self, prompt: str, *, temporal: bool) -> str | None:
        """Grounding for a prompt the caller judged temporally sensitive.

        Raises:
            GroundingUnavailableError: strict mode is on and nothing was found.
        """
        if not temporal:
            return None
        grounding = await self.build_grounding(prompt)
        if grounding is None and settings.strict_temporal_grounding:
            raise GroundingUnavailableError("Live data is required but no sources responded")
        return grounding

    def clear_cache(self) -> None:
        self._cache.clear()
