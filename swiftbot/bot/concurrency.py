"""Per-conversation locks and replaceable cancellation tokens."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from swiftbot.config import settings
from swiftbot.errors import GenerationCancelled, LockTimeoutError

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation handle for one generation.

    Code on the generation path calls ``raise_if_cancelled()`` at delta and
    attempt boundaries. A task bound with ``bind()`` is also cancelled so that
    a request blocked on the network stops promptly.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        self._event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self.cancelled:
            task.cancel()

    def cancel(self) -> bool:
        """Cancel the generation. Returns False if it was already cancelled."""
        if self.cancelled:
            return False
        self._event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise GenerationCancelled(f"Generation for {self.key} was cancelled")


class CancellationRegistry:
    """Map of conversation key to its current CancelToken."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancelToken] = {}

    def replace(self, key: str) -> CancelToken:
        """Cancel any existing token for *key* and install a fresh one."""
        previous = self._tokens.get(key)
        token = CancelToken(key)
        self._tokens[key] = token
        if previous is not None and previous.cancel():
            logger.info("Superseded in-flight generation for %s", key)
        return token

    def cancel(self, key: str) -> bool:
        """Cancel the active token for *key*. Returns True if one was running."""
        token = self._tokens.get(key)
        return token.cancel() if token is not None else False

    def release(self, key: str, token: CancelToken) -> None:
        """Forget *token* if it is still the current one for *key*."""
        if self._tokens.get(key) is token:
            del self._tokens[key]

    def active(self, key: str) -> CancelToken | None:
        return self._tokens.get(key)


class KeyedLocks:
    """One asyncio.Lock per conversation key, dropped once nobody holds or waits on it."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else settings.lock_timeout_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for *key*.

        Raises:
            LockTimeoutError: the lock was not acquired within the timeout.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                async with asyncio.timeout(self._timeout):
                    await lock.acquire()
            except TimeoutError as exc:
                raise LockTimeoutError(f"Timed out waiting for conversation {key}") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)
