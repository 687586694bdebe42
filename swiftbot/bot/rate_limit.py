"""Fixed-window rate limiter keyed by user or chat identity."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from swiftbot.config import settings


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets (at least 1)."""
        return max(1, math.ceil(self.reset_at - now))


@dataclass
class _Window:
    started_at: float
    count: int = 0


class RateLimiter:
    """Allows ``max_events`` per key in each ``window_seconds`` window.

    Consulted before the conversation lock so a throttled request never waits.
    """

    def __init__(
        self,
        max_events: int | None = None,
        window_seconds: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_events = max_events if max_events is not None else settings.rate_limit_max_events
        self._window = (
            window_seconds if window_seconds is not None else settings.rate_limit_window_seconds
        )
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def now(self) -> float:
        return self._clock()

    def consume(self, key: str) -> RateLimitResult:
        """Count one event for *key* if the window has room."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self._window:
            window = _Window(started_at=now)
            self._windows[key] = window
            self._evict(now)

        reset_at = window.started_at + self._window
        if window.count >= self._max_events:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
        window.count += 1
        return RateLimitResult(
            allowed=True, remaining=self._max_events - window.count, reset_at=reset_at
        )

    def _evict(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self._window]
        for key in expired:
            del self._windows[key]
