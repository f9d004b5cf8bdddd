"""Deezer adapter: chart, search and artist top tracks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from continuo.models import SourceProvider, Track
from continuo.providers.base import JsonHttpClient, as_seconds, first_text

logger = logging.getLogger(__name__)

PROVIDER_NAME = "deezer"
IDENTITY_PREFIX = "deezer_"


@dataclass(frozen=True)
class Album:
    """Album with its normalized track list."""

    identity: str
    title: str
    artist: str
    artwork_url: str
    release_date: str | None
    tracks: tuple[Track, ...]


def normalize_track(
    payload: dict[str, Any], *, source: SourceProvider = "search"
) -> Track | None:
    """Normalize one Deezer track object, or None when it has no id."""
    track_id = payload.get("id")
    if track_id is None or isinstance(track_id, bool):
        return None
    album = payload.get("album") if isinstance(payload.get("album"), dict) else {}
    artist = payload.get("artist") if isinstance(payload.get("artist"), dict) else {}
    artist_id = artist.get("id")
    album_id = album.get("id")
    return Track(
        identity=f"{IDENTITY_PREFIX}{track_id}",
        title=first_text(payload, "title", "title_short") or "Unknown",
        artist=first_text(artist, "name") or "Unknown Artist",
        album=first_text(album, "title"),
        artwork_url=first_text(
            album, "cover_xl", "cover_big", "cover_medium", "cover_small", "cover"
        ),
        duration_s=as_seconds(payload.get("duration")),
        source_provider=source,
        artist_id=str(artist_id) if artist_id is not None else None,
        album_id=str(album_id) if album_id is not None else None,
        raw_payload=payload,
    )


def _normalize_many(
    items: Any, *, source: SourceProvider = "search", limit: int | None = None
) -> list[Track]:
    if not isinstance(items, list):
        return []
    tracks = [
        track
        for item in items
        if isinstance(item, dict)
        and (track := normalize_track(item, source=source)) is not None
    ]
    return tracks[:limit] if limit is not None else tracks


def strip_identity(identity: str) -> str:
    """Return the raw Deezer id from a prefixed identity."""
    return identity[len(IDENTITY_PREFIX) :] if identity.startswith(IDENTITY_PREFIX) else identity


class DeezerProvider:
    """Chart/search metadata provider backed by the public Deezer API."""

    name = PROVIDER_NAME

    def __init__(self, client: JsonHttpClient) -> None:
        self._client = client

    async def search(self, query: str, limit: int = 25) -> list[Track]:
        if not query.strip():
            return []
        data = await self._client.fetch_json(
            "/search", {"q": query, "limit": limit, "output": "json"}
        )
        tracks = _normalize_many(_data_list(data), source="search", limit=limit)
        logger.debug("Deezer search %r returned %d tracks", query, len(tracks))
        return tracks

    async def get_chart(self, limit: int = 50) -> list[Track]:
        data = await self._client.fetch_json("/chart/0/tracks", {"limit": limit})
        tracks = _normalize_many(_data_list(data), source="chart", limit=limit)
        logger.debug("Deezer chart returned %d tracks", len(tracks))
        return tracks

    async def get_artist_top_tracks(self, artist_id: str, limit: int = 10) -> list[Track]:
        artist_id = strip_identity(artist_id)
        data = await self._client.fetch_json(
            f"/artist/{artist_id}/top", {"limit": limit}
        )
        return _normalize_many(_data_list(data), source="search", limit=limit)

    async def get_album(self, album_id: str) -> Album:
        album_id = strip_identity(album_id)
        data = await self._client.fetch_json(f"/album/{album_id}")
        if not isinstance(data, dict):
            data = {}
        artist = data.get("artist") if isinstance(data.get("artist"), dict) else {}
        album_title = first_text(data, "title")
        artwork = first_text(data, "cover_xl", "cover_big", "cover_medium")
        tracks_payload = data.get("tracks") if isinstance(data.get("tracks"), dict) else {}
        # Album track listings omit the nested album object.
        tracks = [
            replace(
                track,
                album=track.album or album_title,
                artwork_url=track.artwork_url or artwork,
                album_id=track.album_id or album_id,
            )
            for track in _normalize_many(tracks_payload.get("data"), source="search")
        ]
        return Album(
            identity=f"{IDENTITY_PREFIX}{data.get('id', album_id)}",
            title=album_title,
            artist=first_text(artist, "name") or "Unknown",
            artwork_url=artwork,
            release_date=data.get("release_date")
            if isinstance(data.get("release_date"), str)
            else None,
            tracks=tuple(tracks),
        )


def _data_list(data: Any) -> Any:
    if isinstance(data, dict):
        # `/chart` nests tracks one level deeper than `/chart/0/tracks`.
        if isinstance(data.get("tracks"), dict):
            return data["tracks"].get("data")
        return data.get("data")
    return None
