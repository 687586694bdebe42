"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """SwiftBot configuration. All values come from environment variables."""

    # Telegram
    telegram_bot_token: str = Field(default="")

    # Providers
    default_provider: str = Field(default="openrouter")
    openrouter_api_key: str = Field(default="")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    openrouter_site_url: str = Field(default="https://swiftdeploy.app")
    openrouter_app_name: str = Field(default="SwiftDeploy")
    openai_api_key: str = Field(default="")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    anthropic_api_key: str = Field(default="")
    gemini_api_key: str = Field(default="")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    moonshot_api_key: str = Field(default="")
    moonshot_base_url: str = Field(default="https://api.moonshot.ai/v1")
    sarvam_api_key: str = Field(default="")
    sarvam_base_url: str = Field(default="https://api.sarvam.ai/v1")

    # Model profiles (ids overridable per key)
    model_auto_id: str = Field(default="openrouter/auto")
    model_fast_id: str = Field(default="openai/gpt-4o-mini")
    model_smart_id: str = Field(default="anthropic/claude-3.5-sonnet")
    model_code_id: str = Field(default="qwen/qwen-2.5-coder-32b-instruct")
    model_math_id: str = Field(default="deepseek/deepseek-r1")
    model_vision_id: str = Field(default="openai/gpt-4o-mini")
    summary_model: str = Field(default="")

    # Candidate pools (comma-separated model ids)
    models_coding: str = Field(default="")
    models_math: str = Field(default="")
    models_realtime: str = Field(default="")
    models_general: str = Field(default="")
    fallback_model: str = Field(default="")
    default_model: str = Field(default="")
    fallback_models: str = Field(default="openrouter/auto")

    # Latency-sensitive operating mode
    fast_reply_mode: bool = Field(default=False)
    max_model_attempts: int | None = Field(default=None)

    # Provider transport
    provider_timeout_seconds: float = Field(default=45.0)
    provider_attempt_timeout_seconds: float = Field(default=90.0)
    provider_max_retries: int = Field(default=2)
    provider_retry_base_delay: float = Field(default=0.7)

    # Generation limits
    max_output_tokens: int = Field(default=1800)
    short_reply_max_tokens: int = Field(default=450)
    short_prompt_chars: int = Field(default=80)
    max_input_chars: int = Field(default=12000)
    max_continuation_rounds: int = Field(default=2)
    continuation_max_tokens: int = Field(default=600)
    tool_max_rounds: int = Field(default=2)
    tool_max_tokens: int = Field(default=700)

    # Conversation context
    recent_context_messages: int = Field(default=12)
    history_token_budget: int = Field(default=6000)

    # Summarizer
    summary_keep_last: int = Field(default=12)
    summary_min_new: int = Field(default=8)
    summary_max_message_chars: int = Field(default=900)

    # Retrieval grounding
    live_grounding_enabled: bool = Field(default=True)
    always_web_retrieval: bool = Field(default=False)
    strict_temporal_grounding: bool = Field(default=False)
    enable_duck_retrieval: bool = Field(default=False)
    web_timeout_seconds: float | None = Field(default=None)
    web_max_snippets: int | None = Field(default=None)
    web_max_chars: int = Field(default=2500)
    retrieval_max_queries: int | None = Field(default=None)
    retrieval_cache_ttl_seconds: float = Field(default=300.0)
    serper_api_key: str = Field(default="")

    # Intent rule overrides (regular expressions; empty keeps the built-in rule)
    intent_math_pattern: str = Field(default="")
    intent_coding_pattern: str = Field(default="")
    intent_realtime_pattern: str = Field(default="")
    clarify_ambiguous_python: bool = Field(default=True)

    # Moderation (extra regular expressions, JSON list)
    moderation_patterns: list[str] = Field(default_factory=list)

    # Rate limiting and locking
    rate_limit_max_events: int = Field(default=20)
    rate_limit_window_seconds: float = Field(default=600.0)
    lock_timeout_seconds: float = Field(default=20.0)

    # Delivery
    stream_edit_interval_seconds: float = Field(default=0.5)
    chunk_limit: int = Field(default=3500)
    typing_interval_seconds: float = Field(default=4.0)
    reply_sticker_ids: str = Field(default="")
    reply_sticker_probability: float = Field(default=0.35)

    # Database
    database_path: Path = Field(default=Path("data/swiftbot.db"))

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    # -- Derived values --------------------------------------------------------

    def get_model_pool(self, name: str) -> list[str]:
        """Parse one of the MODELS_* pools (coding, math, realtime, general)."""
        return _split_csv(getattr(self, f"models_{name}", ""))

    def get_fallback_models(self) -> list[str]:
        """Global fallback pool: FALLBACK_MODEL, DEFAULT_MODEL, then FALLBACK_MODELS."""
        head = [m for m in (self.fallback_model.strip(), self.default_model.strip()) if m]
        return head + _split_csv(self.fallback_models)

    def get_sticker_ids(self) -> list[str]:
        """Parse REPLY_STICKER_IDS into a list of Telegram file ids."""
        return _split_csv(self.reply_sticker_ids)

    def get_max_model_attempts(self) -> int:
        if self.max_model_attempts is not None:
            return max(1, self.max_model_attempts)
        return 2 if self.fast_reply_mode else 4

    def get_web_timeout(self) -> float:
        if self.web_timeout_seconds is not None:
            return self.web_timeout_seconds
        return 1.8 if self.fast_reply_mode else 3.5

    def get_web_max_snippets(self) -> int:
        if self.web_max_snippets is not None:
            return self.web_max_snippets
        return 3 if self.fast_reply_mode else 5

    def get_retrieval_max_queries(self) -> int:
        if self.retrieval_max_queries is not None:
            return max(1, self.retrieval_max_queries)
        return 1 if self.fast_reply_mode else 2


settings = Settings()
