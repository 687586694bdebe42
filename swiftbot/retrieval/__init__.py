"""Live retrieval grounding for time-sensitive prompts."""

from swiftbot.retrieval.adapters import (
    DuckDuckGoAdapter,
    SearchAdapter,
    SerperAdapter,
    WikipediaAdapter,
)
from swiftbot.retrieval.engine import RetrievalEngine, inject_grounding
from swiftbot.retrieval.models import RetrievalDocument

__all__ = [
    "DuckDuckGoAdapter",
    "RetrievalDocument",
    "RetrievalEngine",
    "SearchAdapter",
    "SerperAdapter",
    "WikipediaAdapter",
    "inject_grounding",
]
