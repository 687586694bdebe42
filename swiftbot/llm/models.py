"""Model profile registry: selectable keys and their generation defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from swiftbot.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelProfile:
    """A selectable model: key, label, provider model id and generation defaults."""

    key: str
    label: str
    model_id: str
    temperature: float
    max_tokens: int


AUTO_KEY = "auto"

CUSTOM_TEMPERATURE = 0.4
CUSTOM_MAX_TOKENS = 1200

# key -> (label, default temperature, max output tokens)
_PROFILE_DEFAULTS: dict[str, tuple[str, float, int]] = {
    "auto": ("Auto (best available)", 0.45, 1200),
    "fast": ("Fast", 0.45, 900),
    "smart": ("Smart", 0.4, 1400),
    "code": ("Code", 0.2, 1600),
    "math": ("Math", 0.15, 1500),
    "vision": ("Vision", 0.35, 1200),
}


def model_registry() -> dict[str, ModelProfile]:
    """Build the registry, applying MODEL_<KEY>_ID overrides from settings."""
    return {
        key: ModelProfile(
            key=key,
            label=label,
            model_id=getattr(settings, f"model_{key}_id"),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        for key, (label, temperature, max_tokens) in _PROFILE_DEFAULTS.items()
    }


MODEL_KEYS: list[str] = list(_PROFILE_DEFAULTS)


def get_profile(key: str) -> ModelProfile | None:
    """Look up a profile by key (case-insensitive)."""
    return model_registry().get(key.strip().lower())


def resolve_profile(key: str) -> ModelProfile:
    """Profile for *key*; unknown keys are treated as a custom provider model id."""
    profile = get_profile(key)
    if profile is not None:
        return profile
    return ModelProfile(
        key=key,
        label=f"Custom ({key})",
        model_id=key,
        temperature=CUSTOM_TEMPERATURE,
        max_tokens=CUSTOM_MAX_TOKENS,
    )


def friendly(key: str) -> str:
    """Return the label for a model key, or the key itself."""
    profile = get_profile(key)
    return profile.label if profile else key
