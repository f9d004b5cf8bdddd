"""Metadata facade over the chart, search and video providers.

Provider failures are logged and treated as empty results so one flaky
provider never hides the others.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from continuo.errors import ProviderError
from continuo.models import Track
from continuo.providers.base import ChartProvider, MetadataProvider
from continuo.providers.deezer import IDENTITY_PREFIX as DEEZER_PREFIX
from continuo.utils.titles import UNKNOWN_ARTIST, dedupe_key, extract_artist_name

logger = logging.getLogger(__name__)


class TrendingSource(Protocol):
    @property
    def configured(self) -> bool: ...

    async def trending(self, limit: int = 50, region: str = "US") -> list[Track]: ...


def dedupe_tracks(tracks: Sequence[Track]) -> list[Track]:
    """Collapse the same song listed by several providers, keeping the first."""
    seen: set[str] = set()
    unique: list[Track] = []
    for track in tracks:
        key = dedupe_key(track.artist, track.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(track)
    return unique


class MusicRepository:
    def __init__(
        self,
        *,
        metadata_providers: Sequence[MetadataProvider],
        chart_provider: ChartProvider | None = None,
        trending_fallback: TrendingSource | None = None,
    ) -> None:
        self._providers = tuple(metadata_providers)
        self._chart = chart_provider
        self._trending_fallback = trending_fallback

    async def search(self, query: str, limit: int = 25) -> list[Track]:
        """Search every metadata provider and merge the deduplicated results."""
        if not query.strip():
            return []
        merged: list[Track] = []
        for provider in self._providers:
            merged.extend(await self._safe_search(provider, query, limit))
        return dedupe_tracks(merged)[:limit]

    async def trending(self, limit: int = 50) -> list[Track]:
        """Chart tracks, falling back to the video provider's trending list."""
        tracks: list[Track] = []
        if self._chart is not None:
            try:
                tracks = await self._chart.get_chart(limit)
            except ProviderError as exc:
                logger.warning("Chart fetch from %s failed: %s", self._chart.name, exc)
        if tracks:
            return tracks[:limit]
        fallback = self._trending_fallback
        if fallback is not None and fallback.configured:
            try:
                return (await fallback.trending(limit))[:limit]
            except ProviderError as exc:
                logger.warning("Trending fallback failed: %s", exc)
        return []

    async def similar(self, track: Track, limit: int = 20) -> list[Track]:
        """Tracks resembling `track` by artist and album, excluding itself."""
        album = track.album or "music"
        query = f"{track.artist} {album}" if track.artist != UNKNOWN_ARTIST else album
        candidates = await self.search(query, limit + 5)
        title = track.title.strip().lower()
        return [
            candidate
            for candidate in candidates
            if candidate.identity != track.identity
            and candidate.title.strip().lower() != title
        ][:limit]

    async def artist_tracks(self, track: Track, limit: int = 20) -> list[Track]:
        """Other tracks by the artist of `track`.

        Tries the chart provider's top tracks for the artist id, then an
        artist-scoped search, then a plain search on the artist name.
        """
        artist = track.artist.strip()
        if not artist or artist == UNKNOWN_ARTIST:
            artist = extract_artist_name(track.title) or ""
        if not artist:
            return []
        tracks: list[Track] = []
        chart = self._chart
        if chart is not None and track.artist_id and track.identity.startswith(DEEZER_PREFIX):
            try:
                tracks = await chart.get_artist_top_tracks(track.artist_id, limit)
            except ProviderError as exc:
                logger.debug("Artist top tracks failed for %s: %s", artist, exc)
        if not tracks and chart is not None:
            tracks = await self._safe_search(chart, f'artist:"{artist}"', limit)
        if not tracks:
            tracks = await self.search(artist, limit)
        return [candidate for candidate in tracks if candidate.identity != track.identity][
            :limit
        ]

    async def _safe_search(
        self, provider: MetadataProvider, query: str, limit: int
    ) -> list[Track]:
        try:
            return await provider.search(query, limit)
        except ProviderError as exc:
            logger.warning("Search on %s failed for %r: %s", provider.name, query, exc)
            return []
