"""Shared httpx transport for REST-based providers: retries, backoff, SSE."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import httpx

from swiftbot.config import settings
from swiftbot.errors import ProviderError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
MAX_BACKOFF_SECONDS = 4.0


def error_detail(resp: httpx.Response) -> str:
    """Best-effort error message from a failed response body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:300] or resp.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)[:300]
    if error:
        return str(error)[:300]
    return str(body)[:300]


async def iter_sse_events(resp: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield JSON payloads from ``data:`` lines until ``[DONE]``."""
    async for line in resp.aiter_lines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if not data:
            continue
        if data == "[DONE]":
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE line: %s", data[:120])
            continue
        if isinstance(event, dict):
            yield event


class HttpProvider:
    """Base class for providers spoken to over plain HTTP.

    Subclasses set ``base_url`` and implement ``_headers()``. Pass a custom
    *transport* (e.g. ``httpx.MockTransport``) in tests.
    """

    def __init__(
        self,
        name: str,
        *,
        base_url: str,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._name = name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._max_retries = max(
            0, max_retries if max_retries is not None else settings.provider_max_retries
        )
        self._retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.provider_retry_base_delay
        )
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    def _headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    def _backoff(self, attempt: int) -> float:
        delay = min(MAX_BACKOFF_SECONDS, self._retry_base_delay * (2**attempt))
        return delay + random.uniform(0, self._retry_base_delay / 2)

    def _status_error(self, resp: httpx.Response) -> ProviderError:
        return ProviderError(error_detail(resp), provider=self.name, status=resp.status_code)

    def _transport_error(self, exc: httpx.HTTPError) -> ProviderError:
        if isinstance(exc, httpx.TimeoutException):
            return ProviderError("request timed out", provider=self.name)
        return ProviderError(f"request failed: {exc}", provider=self.name)

    async def _post_json(
        self, path: str, payload: dict[str, Any], *, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """POST and decode JSON, retrying retryable statuses and transport errors."""
        for attempt in range(self._max_retries + 1):
            try:
                async with self._client() as client:
                    resp = await client.post(path, json=payload, params=params)
            except httpx.HTTPError as exc:
                error = self._transport_error(exc)
            else:
                if resp.status_code < 400:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise ProviderError("invalid JSON response", provider=self.name) from exc
                error = self._status_error(resp)
                if resp.status_code not in RETRYABLE_STATUSES:
                    raise error
            if attempt >= self._max_retries:
                raise error
            logger.info("%s attempt %d failed (%s), retrying", self.name, attempt + 1, error)
            await asyncio.sleep(self._backoff(attempt))
        raise ProviderError("no request attempts were made", provider=self.name)

    async def _stream_events(
        self,
        path: str,
        payload: dict[str, Any],
        handle: Callable[[dict[str, Any]], Awaitable[bool]],
        *,
        params: dict[str, str] | None = None,
    ) -> None:
        """POST a streaming request and feed each SSE event to *handle*.

        *handle* returns True once it has emitted user-visible text; from then
        on failures are raised instead of retried so output is never replayed.
        """
        for attempt in range(self._max_retries + 1):
            emitted = False
            retryable = True
            try:
                async with self._client() as client, client.stream(
                    "POST", path, json=payload, params=params
                ) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        error = self._status_error(resp)
                        retryable = resp.status_code in RETRYABLE_STATUSES
                    else:
                        async for event in iter_sse_events(resp):
                            emitted = await handle(event) or emitted
                        return
            except httpx.HTTPError as exc:
                error = self._transport_error(exc)
            if emitted or not retryable or attempt >= self._max_retries:
                raise error
            logger.info("%s stream attempt %d failed (%s), retrying", self.name, attempt + 1, error)
            await asyncio.sleep(self._backoff(attempt))
        raise ProviderError("no stream attempts were made", provider=self.name)
