"""iTunes Search API adapter used as the alternate metadata provider."""

from __future__ import annotations

import logging
from typing import Any

from continuo.models import Track
from continuo.providers.base import JsonHttpClient, first_text

logger = logging.getLogger(__name__)

PROVIDER_NAME = "itunes"
IDENTITY_PREFIX = "itunes_"


def _upscale_artwork(url: str) -> str:
    # Artwork is served at 100x100 (or 60x60) by default; the CDN accepts any size.
    return url.replace("100x100", "1000x1000").replace("60x60", "1000x1000")


def normalize_track(payload: dict[str, Any]) -> Track | None:
    track_id = payload.get("trackId")
    if track_id is None or isinstance(track_id, bool):
        return None
    millis = payload.get("trackTimeMillis")
    duration_s = (
        max(0.0, float(millis) / 1000.0)
        if isinstance(millis, (int, float)) and not isinstance(millis, bool)
        else 0.0
    )
    artist_id = payload.get("artistId")
    album_id = payload.get("collectionId")
    return Track(
        identity=f"{IDENTITY_PREFIX}{track_id}",
        title=first_text(payload, "trackName") or "Unknown",
        artist=first_text(payload, "artistName") or "Unknown Artist",
        album=first_text(payload, "collectionName"),
        artwork_url=_upscale_artwork(first_text(payload, "artworkUrl100", "artworkUrl60")),
        duration_s=duration_s,
        source_provider="search",
        artist_id=str(artist_id) if artist_id is not None else None,
        album_id=str(album_id) if album_id is not None else None,
        raw_payload=payload,
    )


def _songs(results: Any, limit: int | None = None) -> list[Track]:
    if not isinstance(results, list):
        return []
    tracks: list[Track] = []
    for item in results:
        if not isinstance(item, dict) or item.get("wrapperType", "track") != "track":
            continue
        track = normalize_track(item)
        if track is not None:
            tracks.append(track)
    return tracks[:limit] if limit is not None else tracks


class ITunesProvider:
    """Search-only metadata provider; also resolves artist top songs by lookup."""

    name = PROVIDER_NAME

    def __init__(self, client: JsonHttpClient) -> None:
        self._client = client

    async def search(self, query: str, limit: int = 25) -> list[Track]:
        if not query.strip():
            return []
        data = await self._client.fetch_json(
            "/search",
            {"term": query, "media": "music", "entity": "song", "limit": limit},
        )
        results = data.get("results") if isinstance(data, dict) else None
        tracks = _songs(results, limit)
        logger.debug("iTunes search %r returned %d tracks", query, len(tracks))
        return tracks

    async def get_artist_top_tracks(self, artist_id: str, limit: int = 10) -> list[Track]:
        raw_id = artist_id.removeprefix(IDENTITY_PREFIX)
        data = await self._client.fetch_json(
            "/lookup", {"id": raw_id, "entity": "song", "limit": limit}
        )
        results = data.get("results") if isinstance(data, dict) else None
        # The first lookup row describes the artist itself and is filtered out.
        return _songs(results, limit)
