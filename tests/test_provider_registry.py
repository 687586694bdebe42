"""Tests for candidate resolution in the provider registry."""

from swiftbot.llm.providers.base import ProviderAdapter
from swiftbot.llm.providers.registry import ProviderRegistry, build_registry


def test_prefixed_candidate_goes_to_named_provider(provider_factory) -> None:
    openrouter = provider_factory("openrouter")
    anthropic = provider_factory("anthropic")
    registry = ProviderRegistry([openrouter, anthropic])

    adapter, model = registry.resolve("anthropic:claude-sonnet-4-5")
    assert adapter is anthropic
    assert model == "claude-sonnet-4-5"


def test_unprefixed_candidate_uses_default(provider_factory) -> None:
    openrouter = provider_factory("openrouter")
    registry = ProviderRegistry([openrouter])

    adapter, model = registry.resolve("openai/gpt-4o-mini")
    assert adapter is openrouter
    assert model == "openai/gpt-4o-mini"


def test_unknown_prefix_is_part_of_model_id(provider_factory) -> None:
    openrouter = provider_factory("openrouter")
    registry = ProviderRegistry([openrouter])

    adapter, model = registry.resolve("meta:llama")
    assert adapter is openrouter
    assert model == "meta:llama"


def test_missing_default_resolves_to_none(provider_factory) -> None:
    registry = ProviderRegistry([provider_factory("anthropic")], default="openai")
    adapter, _ = registry.resolve("gpt-4o")
    assert adapter is None
    assert registry.default_name == "openai"


def test_build_registry_has_every_provider(monkeypatch) -> None:
    for name in ("openrouter", "openai", "moonshot", "sarvam", "anthropic", "gemini"):
        monkeypatch.setattr(f"swiftbot.config.settings.{name}_api_key", "")
    registry = build_registry()
    assert set(registry.names) == {
        "openrouter",
        "openai",
        "moonshot",
        "sarvam",
        "anthropic",
        "gemini",
    }
    for name in registry.names:
        provider = registry.get(name)
        assert isinstance(provider, ProviderAdapter)
        assert not provider.configured


def test_build_registry_picks_up_keys(monkeypatch) -> None:
    monkeypatch.setattr("swiftbot.config.settings.openrouter_api_key", "or-key")
    monkeypatch.setattr("swiftbot.config.settings.default_provider", "openai")
    registry = build_registry()
    assert registry.get("openrouter").configured
    assert registry.default_name == "openai"
