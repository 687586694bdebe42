"""Provider adapters behind one capability interface."""

from swiftbot.llm.providers.base import ChatRequest, Completion, ProviderAdapter, ToolCall
from swiftbot.llm.providers.registry import ProviderRegistry, build_registry

__all__ = [
    "ChatRequest",
    "Completion",
    "ProviderAdapter",
    "ProviderRegistry",
    "ToolCall",
    "build_registry",
]
