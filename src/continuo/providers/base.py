"""Shared HTTP plumbing for provider adapters.

`JsonHttpClient` wraps a `requests.Session` with a per-request timeout, a
short-lived in-memory response cache, HTTP-status error classification and
bounded exponential backoff. Backoff retries only server and network errors;
4xx responses (quota, rate limit, auth) are never retried because repeating
them only burns more quota.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from continuo.errors import ErrorKind, ProviderError, classify_http_status
from continuo.models import Track
from continuo.utils.async_utils import run_blocking
from continuo.version import USER_AGENT

logger = logging.getLogger(__name__)

Params = Mapping[str, Any]


class MetadataProvider(Protocol):
    """Search-capable metadata provider returning canonical tracks."""

    name: str

    async def search(self, query: str, limit: int = 25) -> list[Track]: ...


class ChartProvider(MetadataProvider, Protocol):
    async def get_chart(self, limit: int = 50) -> list[Track]: ...

    async def get_artist_top_tracks(
        self, artist_id: str, limit: int = 10
    ) -> list[Track]: ...


@dataclass
class _CachedResponse:
    payload: Any
    expires_at: float


class ResponseCache:
    """Keyed in-memory cache of decoded JSON payloads with expiry."""

    def __init__(
        self, *, ttl_s: float = 3600.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, _CachedResponse] = {}

    @staticmethod
    def make_key(provider: str, endpoint: str, params: Params | None) -> str:
        items = sorted((params or {}).items())
        return f"{provider}:{endpoint}:{items!r}"

    def get(self, key: str) -> Any | None:
        cached = self._entries.get(key)
        if cached is None:
            return None
        if self._clock() >= cached.expires_at:
            del self._entries[key]
            return None
        return cached.payload

    def set(self, key: str, payload: Any) -> None:
        self._entries[key] = _CachedResponse(payload, self._clock() + self._ttl_s)

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, value in self._entries.items() if now >= value.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _error_reason(response: requests.Response) -> str | None:
    """Extract a Google-style ``error.errors[0].reason`` when present."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    errors = error.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        reason = errors[0].get("reason")
        if isinstance(reason, str):
            return reason
    status = error.get("status")
    return status if isinstance(status, str) else None


class JsonHttpClient:
    """Blocking JSON GET client with async entrypoint `fetch_json`."""

    def __init__(
        self,
        *,
        provider: str,
        base_url: str,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
        response_cache: ResponseCache | None = None,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self._cache = response_cache
        self._max_attempts = max(1, int(max_attempts))
        self._base_delay_s = max(0.0, base_delay_s)
        self._max_delay_s = max_delay_s
        self._sleep = sleep

    def get_json(
        self,
        endpoint: str,
        params: Params | None = None,
        *,
        timeout_s: float | None = None,
        use_cache: bool = True,
    ) -> Any:
        """Perform a GET and return decoded JSON, raising `ProviderError`."""
        key = ResponseCache.make_key(self.provider, endpoint, params)
        if use_cache and self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
        payload = self._get_with_backoff(endpoint, params, timeout_s)
        if use_cache and self._cache is not None:
            self._cache.set(key, payload)
        return payload

    async def fetch_json(
        self,
        endpoint: str,
        params: Params | None = None,
        *,
        timeout_s: float | None = None,
        use_cache: bool = True,
    ) -> Any:
        return await run_blocking(
            self.get_json,
            endpoint,
            params,
            timeout_s=timeout_s,
            use_cache=use_cache,
        )

    def _get_with_backoff(
        self, endpoint: str, params: Params | None, timeout_s: float | None
    ) -> Any:
        delay = self._base_delay_s
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._get_once(endpoint, params, timeout_s)
            except ProviderError as exc:
                if not exc.is_transient or attempt >= self._max_attempts:
                    raise
                jitter = random.random() * delay * 0.25 if delay > 0 else 0.0
                sleep_for = min(self._max_delay_s, delay + jitter)
                logger.info(
                    "%s request to %s failed (%s); retry %d/%d in %.2fs",
                    self.provider,
                    endpoint,
                    exc.kind.value,
                    attempt,
                    self._max_attempts - 1,
                    sleep_for,
                )
                self._sleep(sleep_for)
                delay = min(self._max_delay_s, max(0.01, delay * 2.0))
        raise RuntimeError(f"Backoff loop exhausted unexpectedly for {self.provider}")

    def _get_once(
        self, endpoint: str, params: Params | None, timeout_s: float | None
    ) -> Any:
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        try:
            response = self._session.get(
                url, params=dict(params or {}), timeout=timeout_s or self.timeout_s
            )
        except requests.RequestException as exc:
            raise ProviderError(
                f"No response from {self.provider}: {exc}",
                provider=self.provider,
                kind=ErrorKind.NETWORK_ERROR,
            ) from exc
        if response.status_code >= 400:
            raise self._http_error(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.provider} returned a non-JSON body",
                provider=self.provider,
                kind=ErrorKind.SERVER_ERROR,
                status_code=response.status_code,
            ) from exc

    def _http_error(self, response: requests.Response) -> ProviderError:
        status = response.status_code
        kind = classify_http_status(status)
        reason = _error_reason(response)
        return ProviderError(
            f"{self.provider} API error ({status}{', ' + reason if reason else ''})",
            provider=self.provider,
            kind=kind,
            status_code=status,
            reason=reason,
        )

    def close(self) -> None:
        self._session.close()


def first_text(data: Mapping[str, Any], *keys: str) -> str:
    """Return the first non-empty string among ``keys`` in ``data``."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def as_seconds(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, float(value))
