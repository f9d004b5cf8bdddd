"""Open video frontends used when the primary resolution provider is unavailable.

Each frontend rotates through its own instance list, one instance per call.
Failures never propagate: they are logged and reported as ``None`` so the
resolver can move on to the next frontend.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from continuo.errors import ProviderError
from continuo.models import is_valid_playable_id
from continuo.providers.base import JsonHttpClient, as_seconds, first_text
from continuo.utils.async_utils import with_timeout

logger = logging.getLogger(__name__)

DEFAULT_FRONTEND_TIMEOUT_S = 8.0
DEFAULT_MAX_ATTEMPTS = 2


@dataclass(frozen=True)
class FrontendHit:
    """Usable search hit from an alternate frontend."""

    playable_id: str
    title: str
    author: str
    duration_s: float
    frontend: str


class Frontend(Protocol):
    name: str

    async def search(self, query: str) -> FrontendHit | None: ...


class _InstanceRotation:
    """Round-robin cursor over a frontend's configured instances."""

    def __init__(self, instances: Sequence[str]) -> None:
        self._instances = tuple(url.rstrip("/") for url in instances if url)
        self._index = 0

    def __len__(self) -> int:
        return len(self._instances)

    def next(self) -> str | None:
        if not self._instances:
            return None
        instance = self._instances[self._index % len(self._instances)]
        self._index = (self._index + 1) % len(self._instances)
        return instance


class _RotatingFrontend(ABC):
    name = "frontend"

    def __init__(self, instances: Sequence[str], client: JsonHttpClient) -> None:
        self._rotation = _InstanceRotation(instances)
        self._client = client

    async def search(self, query: str) -> FrontendHit | None:
        instance = self._rotation.next()
        if instance is None:
            logger.debug("%s has no instances configured", self.name)
            return None
        try:
            data = await self._fetch(instance, query)
        except ProviderError as exc:
            logger.warning(
                "%s instance %s failed for %r: %s", self.name, instance, query, exc
            )
            return None
        hit = self._parse(data)
        if hit is None:
            logger.info("%s instance %s had no usable result for %r", self.name, instance, query)
        return hit

    @abstractmethod
    async def _fetch(self, instance: str, query: str) -> Any: ...

    @abstractmethod
    def _parse(self, data: Any) -> FrontendHit | None: ...


class InvidiousFrontend(_RotatingFrontend):
    name = "invidious"

    async def _fetch(self, instance: str, query: str) -> Any:
        return await self._client.fetch_json(
            f"{instance}/api/v1/search",
            {"q": query, "type": "video"},
            use_cache=False,
        )

    def _parse(self, data: Any) -> FrontendHit | None:
        if not isinstance(data, list):
            return None
        for item in data:
            if not isinstance(item, dict):
                continue
            video_id = item.get("videoId")
            if not is_valid_playable_id(video_id):
                continue
            return FrontendHit(
                playable_id=video_id,
                title=first_text(item, "title"),
                author=first_text(item, "author"),
                duration_s=as_seconds(item.get("lengthSeconds")),
                frontend=self.name,
            )
        return None


class PipedFrontend(_RotatingFrontend):
    name = "piped"

    async def _fetch(self, instance: str, query: str) -> Any:
        return await self._client.fetch_json(
            f"{instance}/search",
            {"q": query, "filter": "music_songs"},
            use_cache=False,
        )

    def _parse(self, data: Any) -> FrontendHit | None:
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return None
        for item in items:
            if not isinstance(item, dict):
                continue
            video_id = first_text(item, "url").replace("/watch?v=", "")
            if not is_valid_playable_id(video_id):
                continue
            return FrontendHit(
                playable_id=video_id,
                title=first_text(item, "title"),
                author=first_text(item, "uploaderName"),
                duration_s=as_seconds(item.get("duration")),
                frontend=self.name,
            )
        return None


class FrontendPool:
    """Sequential, round-robin fallback across independent frontends.

    Each call starts at the frontend after the one the previous call started
    at and makes at most `max_attempts` attempts, one at a time, each bounded
    by `timeout_s`. A timeout is logged and counts as an empty result.
    """

    def __init__(
        self,
        frontends: Sequence[Frontend],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_s: float = DEFAULT_FRONTEND_TIMEOUT_S,
    ) -> None:
        self._frontends = tuple(frontends)
        self._max_attempts = max(1, int(max_attempts))
        self._timeout_s = timeout_s
        self._start = 0

    def __len__(self) -> int:
        return len(self._frontends)

    def _order(self) -> list[Frontend]:
        count = len(self._frontends)
        if count == 0:
            return []
        start = self._start % count
        self._start = (start + 1) % count
        rotated = [self._frontends[(start + offset) % count] for offset in range(count)]
        return rotated[: self._max_attempts]

    async def search(self, query: str) -> FrontendHit | None:
        for attempt, frontend in enumerate(self._order(), start=1):
            try:
                hit = await with_timeout(frontend.search(query), self._timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "%s timed out after %.1fs (attempt %d) for %r",
                    frontend.name,
                    self._timeout_s,
                    attempt,
                    query,
                )
                continue
            if hit is not None:
                logger.info(
                    "Fallback resolution via %s for %r -> %s",
                    frontend.name,
                    query,
                    hit.playable_id,
                )
                return hit
        return None
