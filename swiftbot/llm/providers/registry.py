"""Provider registry: maps candidate model identifiers to adapters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from swiftbot.config import settings
from swiftbot.llm.providers.anthropic_provider import AnthropicProvider
from swiftbot.llm.providers.gemini import GeminiProvider
from swiftbot.llm.providers.openai_compat import OpenAICompatibleProvider

if TYPE_CHECKING:
    from collections.abc import Iterable

    from swiftbot.llm.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of provider adapters keyed by name.

    A candidate ``"anthropic:claude-sonnet-4-5"`` goes to the ``anthropic``
    adapter with model ``claude-sonnet-4-5``. Anything without a registered
    prefix (``"openai/gpt-4o-mini"``) goes to the default provider unchanged.
    """

    def __init__(
        self, providers: Iterable[ProviderAdapter] = (), *, default: str = "openrouter"
    ) -> None:
        self._providers: dict[str, ProviderAdapter] = {}
        self._default = default
        for provider in providers:
            self.register(provider)

    def register(self, provider: ProviderAdapter) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> ProviderAdapter | None:
        return self._providers.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    @property
    def default_name(self) -> str:
        return self._default

    def resolve(self, candidate: str) -> tuple[ProviderAdapter | None, str]:
        """Return ``(adapter, model_id)`` for a candidate identifier."""
        prefix, sep, model = candidate.partition(":")
        if sep and prefix in self._providers:
            return self._providers[prefix], model
        return self._providers.get(self._default), candidate


def build_registry() -> ProviderRegistry:
    """Create every known provider from settings."""
    providers: list[ProviderAdapter] = [
        OpenAICompatibleProvider(
            "openrouter",
            base_url=settings.openrouter_base_url,
            api_key=settings.openrouter_api_key,
            extra_headers={
                "HTTP-Referer": settings.openrouter_site_url,
                "X-Title": settings.openrouter_app_name,
            },
        ),
        OpenAICompatibleProvider(
            "openai", base_url=settings.openai_base_url, api_key=settings.openai_api_key
        ),
        OpenAICompatibleProvider(
            "moonshot", base_url=settings.moonshot_base_url, api_key=settings.moonshot_api_key
        ),
        OpenAICompatibleProvider(
            "sarvam",
            base_url=settings.sarvam_base_url,
            api_key=settings.sarvam_api_key,
            auth_header="api-subscription-key",
            auth_scheme="",
        ),
        AnthropicProvider(),
        GeminiProvider(),
    ]
    registry = ProviderRegistry(providers, default=settings.default_provider)
    configured = [p.name for p in providers if p.configured]
    if not configured:
        logger.warning("No AI provider credentials configured; every generation will fail")
    else:
        logger.info("Configured providers: %s (default=%s)", configured, registry.default_name)
    return registry
