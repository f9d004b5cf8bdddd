"""Canonical, provider-agnostic data model.

Provider adapters normalize every response into `Track`. The playback
context types describe where the current queue came from and therefore
whether radio mode may take over once it runs dry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Union

SourceProvider = Literal["chart", "search", "resolved"]

PLAYABLE_ID_LENGTH = 11
FOREIGN_ID_PREFIXES = ("deezer_", "itunes_", "spotify_")
_PLAYABLE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def is_valid_playable_id(candidate: object) -> bool:
    """Validate a backend-native media id (11 chars, URL-safe base64 alphabet).

    Identifiers that carry another provider's namespace prefix are rejected
    even when they happen to fit the grammar (``deezer_1234`` is 11 chars).
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    if candidate.lower().startswith(FOREIGN_ID_PREFIXES):
        return False
    return _PLAYABLE_ID_RE.fullmatch(candidate) is not None


@dataclass(frozen=True)
class Track:
    """Normalized track record shared by every provider."""

    identity: str
    title: str
    artist: str
    album: str = ""
    artwork_url: str = ""
    duration_s: float = 0.0
    source_provider: SourceProvider = "search"
    playable_id: str | None = None
    artist_id: str | None = None
    album_id: str | None = None
    raw_payload: Any = field(default=None, compare=False, repr=False)

    @property
    def is_playable(self) -> bool:
        return is_valid_playable_id(self.playable_id)

    def with_playable_id(self, playable_id: str) -> Track:
        """Return a copy bound to a resolved media id."""
        if playable_id == self.playable_id:
            return self
        return replace(self, playable_id=playable_id, source_provider="resolved")

    def search_query(self) -> str:
        return f"{self.artist} {self.title}".strip()


@dataclass(frozen=True)
class CollectionContext:
    """Queue sliced from an explicit list (album, search results, favorites)."""

    collection_id: str
    items: tuple[Track, ...] = ()


@dataclass(frozen=True)
class AutoplayContext:
    """Queue synthesized by the engine rather than chosen by the user."""

    source: Literal["radio"] | None = None


PlaybackContext = Union[CollectionContext, AutoplayContext]

# Sentinel passed to `PlayerService.play_item` to keep the current queue.
KEEP: Literal["KEEP"] = "KEEP"


def track_to_document(track: Track) -> dict[str, Any]:
    """Serialize a track for an external key-value document store."""
    return {
        "identity": track.identity,
        "title": track.title,
        "artist": track.artist,
        "album": track.album,
        "artwork_url": track.artwork_url,
        "duration_s": track.duration_s,
        "source_provider": track.source_provider,
        "playable_id": track.playable_id,
        "artist_id": track.artist_id,
        "album_id": track.album_id,
    }


def track_from_document(data: dict[str, Any]) -> Track | None:
    """Rebuild a track from a stored document, tolerating missing fields.

    Returns None when the document lacks the fields a track cannot exist
    without (identity and title).
    """

    def _str(value: Any, default: str = "") -> str:
        return value if isinstance(value, str) else default

    def _opt_str(value: Any) -> str | None:
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value)
            return text or None
        return None

    identity = _str(data.get("identity"))
    title = _str(data.get("title"))
    if not identity or not title:
        return None
    duration = data.get("duration_s")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        duration = 0.0
    source = data.get("source_provider")
    if source not in ("chart", "search", "resolved"):
        source = "search"
    playable_id = _opt_str(data.get("playable_id"))
    if playable_id is not None and not is_valid_playable_id(playable_id):
        playable_id = None
    return Track(
        identity=identity,
        title=title,
        artist=_str(data.get("artist"), "Unknown Artist"),
        album=_str(data.get("album")),
        artwork_url=_str(data.get("artwork_url")),
        duration_s=max(0.0, float(duration)),
        source_provider=source,
        playable_id=playable_id,
        artist_id=_opt_str(data.get("artist_id")),
        album_id=_opt_str(data.get("album_id")),
    )
