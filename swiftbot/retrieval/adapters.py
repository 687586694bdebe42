"""Search adapters: each turns a query into a list of RetrievalDocuments.

Adapters raise on transport errors; the retrieval engine wraps every call
in its own timeout and converts failures into empty results.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from swiftbot.config import settings
from swiftbot.retrieval.models import RetrievalDocument

logger = logging.getLogger(__name__)

DUCKDUCKGO_URL = "https://duckduckgo.com/html/"
WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"
SERPER_URL = "https://google.serper.dev/search"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SwiftBot/1.0; +https://swiftdeploy.app)"
MAX_RESULTS = 5


@runtime_checkable
class SearchAdapter(Protocol):
    """Protocol that all retrieval sources must satisfy."""

    @property
    def name(self) -> str:
        """Source tag attached to every document (e.g. 'wikipedia')."""
        ...

    @property
    def enabled(self) -> bool:
        """Whether this source should be queried at all."""
        ...

    async def search(self, query: str) -> list[RetrievalDocument]:
        """Run *query* and return documents. May raise on transport errors."""
        ...


def strip_html(value: str) -> str:
    """Drop tags and collapse whitespace."""
    text = BeautifulSoup(value or "", "html.parser").get_text(" ")
    return " ".join(text.split())


def _unwrap_duckduckgo_link(href: str) -> str:
    """DuckDuckGo result links redirect through /l/?uddg=<target>."""
    if not href:
        return ""
    parsed = urlparse(href if "://" in href else f"https:{href}")
    target = parse_qs(parsed.query).get("uddg")
    if target:
        return target[0]
    return href if href.startswith("http") else f"https:{href}"


class DuckDuckGoAdapter:
    """Scrapes the DuckDuckGo HTML results page."""

    def __init__(self, max_results: int = MAX_RESULTS) -> None:
        self._max_results = max_results

    @property
    def name(self) -> str:
        return "duckduckgo"

    @property
    def enabled(self) -> bool:
        return not settings.fast_reply_mode or settings.enable_duck_retrieval

    async def search(self, query: str) -> list[RetrievalDocument]:
        async with httpx.AsyncClient(
            timeout=settings.get_web_timeout(),
            follow_redirects=True,
            headers={"User-Agent": DEFAULT_USER_AGENT},
        ) as client:
            resp = await client.get(DUCKDUCKGO_URL, params={"q": query})
        resp.raise_for_status()
        return self.parse(resp.text)

    def parse(self, html: str) -> list[RetrievalDocument]:
        soup = BeautifulSoup(html, "html.parser")
        docs: list[RetrievalDocument] = []
        for result in soup.select(".result"):
            link = result.select_one("a.result__a")
            if link is None:
                continue
            snippet_el = result.select_one(".result__snippet")
            title = " ".join(link.get_text(" ").split())
            snippet = " ".join(snippet_el.get_text(" ").split()) if snippet_el else ""
            if not title or not snippet:
                continue
            docs.append(
                RetrievalDocument(
                    title=title,
                    snippet=snippet,
                    url=_unwrap_duckduckgo_link(link.get("href", "")) or None,
                    source=self.name,
                )
            )
            if len(docs) >= self._max_results:
                break
        return docs


class WikipediaAdapter:
    """Queries the MediaWiki search API."""

    def __init__(self, max_results: int = MAX_RESULTS) -> None:
        self._max_results = max_results

    @property
    def name(self) -> str:
        return "wikipedia"

    @property
    def enabled(self) -> bool:
        return True

    async def search(self, query: str) -> list[RetrievalDocument]:
        params = {
            "action": "query",
            "list": "search",
            "srsearch": query,
            "utf8": "1",
            "format": "json",
            "srlimit": str(self._max_results),
        }
        async with httpx.AsyncClient(
            timeout=settings.get_web_timeout(),
            headers={"User-Agent": DEFAULT_USER_AGENT},
        ) as client:
            resp = await client.get(WIKIPEDIA_API_URL, params=params)
        resp.raise_for_status()

        results = resp.json().get("query", {}).get("search", [])
        docs = []
        for item in results:
            title = strip_html(item.get("title", ""))
            snippet = strip_html(item.get("snippet", ""))
            if not title or not snippet:
                continue
            page_id = item.get("pageid")
            docs.append(
                RetrievalDocument(
                    title=title,
                    snippet=snippet,
                    url=f"https://en.wikipedia.org/?curid={page_id}" if page_id else None,
                    source=self.name,
                )
            )
        return docs


class SerperAdapter:
    """Google results through the Serper API. Requires SERPER_API_KEY."""

    def __init__(self, max_results: int = MAX_RESULTS) -> None:
        self._max_results = max_results

    @property
    def name(self) -> str:
        return "serper"

    @property
    def enabled(self) -> bool:
        return bool(settings.serper_api_key)

    async def search(self, query: str) -> list[RetrievalDocument]:
        headers = {"X-API-KEY": settings.serper_api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=settings.get_web_timeout()) as client:
            resp = await client.post(
                SERPER_URL, headers=headers, json={"q": query, "num": self._max_results}
            )
        resp.raise_for_status()

        docs = []
        for item in resp.json().get("organic", []):
            title = strip_html(item.get("title", ""))
            snippet = strip_html(item.get("snippet", ""))
            if not title or not snippet:
                continue
            docs.append(
                RetrievalDocument(
                    title=title, snippet=snippet, url=item.get("link") or None, source=self.name
                )
            )
        return docs


def default_adapters() -> list[SearchAdapter]:
    """Scraped web page, knowledge base, then the optional paid API."""
    return [DuckDuckGoAdapter(), WikipediaAdapter(), SerperAdapter()]
