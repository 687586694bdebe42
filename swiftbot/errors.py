"""Exception hierarchy shared by the providers, cascade and conversation engine."""

from __future__ import annotations

# Statuses that mean credentials or billing are broken; retrying another
# candidate from the same run cannot help.
FATAL_STATUSES = frozenset({401, 402, 403})


class SwiftBotError(Exception):
    """Base class for all application errors."""


class ProviderError(SwiftBotError):
    """A provider call failed.

    ``status`` is the HTTP status (or SDK equivalent) when one exists.
    ``fatal`` marks authentication/billing failures that abort a cascade.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status: int | None = None,
        fatal: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.fatal = fatal if fatal is not None else status in FATAL_STATUSES

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"[{self.provider} {self.status}] {base}"
        return f"[{self.provider}] {base}"


class RoutingError(SwiftBotError):
    """No candidate produced a response and no provider error was recorded."""


class GroundingUnavailableError(SwiftBotError):
    """Live grounding was required for a temporal prompt but none was found."""


class LockTimeoutError(SwiftBotError):
    """The per-conversation lock could not be acquired in time."""


class GenerationCancelled(SwiftBotError):
    """The in-flight generation was superseded or stopped."""
