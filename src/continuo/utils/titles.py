"""Best-effort artist/title heuristics for free-text video titles.

Video providers return a single title string such as
"Artist - Song (Official Video)". These helpers split and clean it so the
result can be matched against metadata providers. Matching is heuristic;
ambiguous titles produce whatever the first matching pattern yields.
"""

from __future__ import annotations

import re

UNKNOWN_ARTIST = "Unknown Artist"

_DASH_SPLIT_RE = re.compile(r"\s+[-–—]\s+")
_BY_RE = re.compile(r"\b(?:by|featuring|feat\.|ft\.|with)\s+([^(\[]+)", re.IGNORECASE)
_NOISE_RES = (
    re.compile(r"[(\[]\s*official[^)\]]*[)\]]", re.IGNORECASE),
    re.compile(r"[(\[]\s*(?:audio|video|visualizer|hd|4k)\s*[)\]]", re.IGNORECASE),
    re.compile(r"[(\[]\s*lyrics?[^)\]]*[)\]]", re.IGNORECASE),
)
_TOPIC_SUFFIX_RE = re.compile(r"\s*-\s*Topic$", re.IGNORECASE)
_COMMON_NON_ARTIST_WORDS = ("music", "audio", "official", "video", "lyrics", "live")


def clean_title(title: str) -> str:
    """Strip "(Official Video)"-style decorations and collapse whitespace."""
    cleaned = title
    for pattern in _NOISE_RES:
        cleaned = pattern.sub("", cleaned)
    return " ".join(cleaned.split())


def split_artist_title(raw_title: str, channel: str | None = None) -> tuple[str, str]:
    """Return ``(artist, title)`` from a video title, falling back to channel."""
    text = raw_title.strip()
    parts = _DASH_SPLIT_RE.split(text, maxsplit=1)
    if len(parts) == 2 and parts[0].strip():
        return parts[0].strip(), clean_title(parts[1]) or parts[1].strip()
    artist = normalize_channel_name(channel) if channel else ""
    return artist or UNKNOWN_ARTIST, clean_title(text) or text


def normalize_channel_name(channel: str) -> str:
    """Turn auto-generated "Artist - Topic" channel names into the artist."""
    return _TOPIC_SUFFIX_RE.sub("", channel.strip())


def extract_artist_name(title: str | None) -> str | None:
    """Guess an artist name from a free-text title, or None.

    Patterns are tried in order: "Artist - Song", "Song by/feat. Artist",
    then the first dash-separated segment. Candidates shorter than three
    characters or made of generic words ("official", "lyrics") are dropped.
    """
    if not title:
        return None
    parts = _DASH_SPLIT_RE.split(title.strip(), maxsplit=1)
    candidate: str | None = None
    if len(parts) == 2 and parts[0].strip():
        candidate = parts[0].strip()
    else:
        match = _BY_RE.search(title)
        if match:
            candidate = match.group(1).strip()
        else:
            candidate = re.split(r"[-–—]", title)[0].strip()
    if not candidate or len(candidate) <= 2:
        return None
    lowered = candidate.lower()
    if any(word in lowered for word in _COMMON_NON_ARTIST_WORDS):
        return None
    return candidate


def dedupe_key(artist: str, title: str) -> str:
    """Key used to collapse the same song returned by different providers."""
    return f"{title.strip().lower()}-{artist.strip().lower()}"
