"""Turns canonical tracks into playable media identifiers.

Resolution order: the track's own id, the resolution cache, the primary
provider, then the alternate frontends. Quota exhaustion trips the injected
cooldown so the primary provider is skipped until it elapses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from continuo.errors import ErrorKind, ProviderError, QuotaExceededError, ResolutionError
from continuo.models import Track, is_valid_playable_id
from continuo.providers.frontends import FrontendHit
from continuo.providers.youtube import VideoMatch
from continuo.services.quota import QuotaCooldown
from continuo.services.resolution_cache import ResolutionCache

logger = logging.getLogger(__name__)

QUERY_SUFFIX = "official audio"


class PrimaryResolver(Protocol):
    @property
    def configured(self) -> bool: ...

    async def resolve(self, query: str) -> VideoMatch | None: ...


class FallbackSearch(Protocol):
    async def search(self, query: str) -> FrontendHit | None: ...


@dataclass(frozen=True)
class Resolution:
    """Successful resolution; `source` names where the id came from."""

    playable_id: str
    is_fallback: bool
    source: str


def resolution_query(track: Track) -> str:
    return f"{track.artist} {track.title} {QUERY_SUFFIX}".strip()


class TrackResolver:
    def __init__(
        self,
        *,
        primary: PrimaryResolver | None,
        frontends: FallbackSearch | None,
        cache: ResolutionCache,
        cooldown: QuotaCooldown,
    ) -> None:
        self._primary = primary
        self._frontends = frontends
        self._cache = cache
        self._cooldown = cooldown

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def cooldown(self) -> QuotaCooldown:
        return self._cooldown

    async def resolve(self, track: Track) -> Resolution:
        """Return a playable id for `track` or raise `ResolutionError`."""
        if track.is_playable and track.playable_id is not None:
            return Resolution(track.playable_id, False, "track")

        cached = self._cache.get(track.identity)
        if cached is not None:
            logger.debug("Resolution cache hit for %s", track.identity)
            return Resolution(cached.playable_id, cached.is_fallback, "cache")

        query = resolution_query(track)
        if self._primary_usable():
            resolution = await self._resolve_primary(track, query)
            if resolution is not None:
                return resolution
        return await self._resolve_fallback(track, query)

    def _primary_usable(self) -> bool:
        if self._primary is None or not self._primary.configured:
            return False
        if self._cooldown.active():
            logger.debug(
                "Skipping primary provider, cooldown %.0fs remaining",
                self._cooldown.remaining_s(),
            )
            return False
        return True

    async def _resolve_primary(self, track: Track, query: str) -> Resolution | None:
        """Return a durable resolution, or None to continue with the fallback."""
        assert self._primary is not None
        try:
            match = await self._primary.resolve(query)
        except QuotaExceededError:
            self._cooldown.trip()
            return None
        except ProviderError as exc:
            logger.warning(
                "Primary resolution failed for %s (%s); trying alternate frontends",
                track.identity,
                exc.kind.value,
            )
            return None
        if match is None:
            raise ResolutionError(
                f"No media found for {track.identity}",
                identity=track.identity,
                kind=ErrorKind.NOT_RESOLVABLE,
            )
        if not is_valid_playable_id(match.playable_id):
            logger.warning(
                "Rejected malformed media id %r for %s", match.playable_id, track.identity
            )
            raise ResolutionError(
                f"Provider returned an invalid media id for {track.identity}",
                identity=track.identity,
                kind=ErrorKind.INVALID_IDENTIFIER,
            )
        self._cache.put(track.identity, match.playable_id)
        logger.info("Resolved %s -> %s", track.identity, match.playable_id)
        return Resolution(match.playable_id, False, "primary")

    async def _resolve_fallback(self, track: Track, query: str) -> Resolution:
        hit = await self._frontends.search(query) if self._frontends is not None else None
        if hit is None or not is_valid_playable_id(hit.playable_id):
            raise ResolutionError(
                f"No provider could resolve {track.identity}",
                identity=track.identity,
                kind=ErrorKind.NOT_RESOLVABLE,
            )
        self._cache.put(track.identity, hit.playable_id, is_fallback=True)
        logger.warning(
            "Degraded resolution for %s via %s -> %s",
            track.identity,
            hit.frontend,
            hit.playable_id,
        )
        return Resolution(hit.playable_id, True, hit.frontend)
