"""YouTube Data API v3 adapter: the primary video-resolution provider.

Quota exhaustion is reported as `QuotaExceededError` so the resolver can
enter cooldown, while "no results" is reported as ``None`` from `resolve`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from continuo.errors import ErrorKind, ProviderError, QuotaExceededError, is_quota_reason
from continuo.models import SourceProvider, Track, is_valid_playable_id
from continuo.providers.base import JsonHttpClient, first_text
from continuo.utils.titles import split_artist_title

logger = logging.getLogger(__name__)

PROVIDER_NAME = "youtube"
IDENTITY_PREFIX = "youtube_"
MUSIC_CATEGORY_ID = "10"
SEARCH_QUOTA_COST = 100
LIST_QUOTA_COST = 1

_ISO_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


@dataclass(frozen=True)
class VideoMatch:
    """Best search hit for a resolution query."""

    playable_id: str
    title: str
    channel: str
    raw_payload: Any = None


def parse_iso_duration(value: str | None) -> float:
    """Parse ``PT#H#M#S`` content durations into seconds (0 when unparseable)."""
    if not value:
        return 0.0
    match = _ISO_DURATION_RE.match(value)
    if match is None:
        return 0.0
    hours, minutes, seconds = (int(group or 0) for group in match.groups())
    return float(hours * 3600 + minutes * 60 + seconds)


def _video_id(item: dict[str, Any]) -> str | None:
    raw = item.get("id")
    if isinstance(raw, dict):
        raw = raw.get("videoId")
    return raw if isinstance(raw, str) else None


def _thumbnail(snippet: dict[str, Any]) -> str:
    thumbnails = snippet.get("thumbnails")
    if not isinstance(thumbnails, dict):
        return ""
    for size in ("maxres", "high", "medium", "default"):
        entry = thumbnails.get(size)
        if isinstance(entry, dict) and isinstance(entry.get("url"), str):
            return entry["url"]
    return ""


def normalize_video(
    item: dict[str, Any], *, source: SourceProvider = "search"
) -> Track | None:
    """Normalize a search/videos item into a pre-resolved canonical track."""
    video_id = _video_id(item)
    if not is_valid_playable_id(video_id):
        return None
    snippet = item.get("snippet") if isinstance(item.get("snippet"), dict) else {}
    artist, title = split_artist_title(
        first_text(snippet, "title"), first_text(snippet, "channelTitle")
    )
    details = item.get("contentDetails")
    duration = (
        parse_iso_duration(details.get("duration")) if isinstance(details, dict) else 0.0
    )
    return Track(
        identity=f"{IDENTITY_PREFIX}{video_id}",
        title=title,
        artist=artist,
        artwork_url=_thumbnail(snippet),
        duration_s=duration,
        source_provider=source,
        playable_id=video_id,
        raw_payload=item,
    )


class YouTubeDataProvider:
    """Resolves free-text queries to playable video ids via the Data API."""

    name = PROVIDER_NAME

    def __init__(
        self,
        client: JsonHttpClient,
        *,
        api_key: str | None,
        on_quota_cost: Callable[[int], None] | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._on_quota_cost = on_quota_cost

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def resolve(self, query: str) -> VideoMatch | None:
        """Return the most relevant music video for ``query``, or None."""
        items = await self._search_items(query, max_results=1)
        for item in items:
            video_id = _video_id(item)
            if video_id is None:
                continue
            snippet = item.get("snippet") if isinstance(item.get("snippet"), dict) else {}
            return VideoMatch(
                playable_id=video_id,
                title=first_text(snippet, "title"),
                channel=first_text(snippet, "channelTitle"),
                raw_payload=item,
            )
        logger.info("No YouTube video found for %r", query)
        return None

    async def search(self, query: str, limit: int = 25) -> list[Track]:
        items = await self._search_items(query, max_results=limit)
        return _normalize_items(items)

    async def related(self, video_id: str, limit: int = 20) -> list[Track]:
        """Videos related to ``video_id``, restricted to the music category."""
        items = await self._call(
            "/search",
            {
                "part": "snippet",
                "relatedToVideoId": video_id,
                "type": "video",
                "videoCategoryId": MUSIC_CATEGORY_ID,
                "maxResults": limit,
            },
            cost=SEARCH_QUOTA_COST,
        )
        return _normalize_items(items)

    async def trending(self, limit: int = 50, region: str = "US") -> list[Track]:
        items = await self._call(
            "/videos",
            {
                "part": "snippet,contentDetails",
                "chart": "mostPopular",
                "videoCategoryId": MUSIC_CATEGORY_ID,
                "maxResults": limit,
                "regionCode": region,
            },
            cost=LIST_QUOTA_COST,
        )
        return _normalize_items(items, source="chart")

    async def _search_items(self, query: str, *, max_results: int) -> list[dict[str, Any]]:
        return await self._call(
            "/search",
            {
                "part": "id,snippet",
                "q": query,
                "type": "video",
                "videoCategoryId": MUSIC_CATEGORY_ID,
                "maxResults": max_results,
                "order": "relevance",
            },
            cost=SEARCH_QUOTA_COST,
        )

    async def _call(
        self, endpoint: str, params: dict[str, Any], *, cost: int
    ) -> list[dict[str, Any]]:
        if not self._api_key:
            raise ProviderError(
                "YouTube API key not configured",
                provider=self.name,
                kind=ErrorKind.UNAUTHORIZED,
            )
        try:
            data = await self._client.fetch_json(
                endpoint, {**params, "key": self._api_key}
            )
        except ProviderError as exc:
            if exc.status_code == 403 and (exc.reason is None or is_quota_reason(exc.reason)):
                logger.error("YouTube quota exceeded (reason=%s)", exc.reason or "unknown")
                raise QuotaExceededError(
                    "YouTube API quota exceeded", provider=self.name, reason=exc.reason
                ) from exc
            raise
        if self._on_quota_cost is not None:
            self._on_quota_cost(cost)
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]


def _normalize_items(
    items: list[dict[str, Any]], *, source: SourceProvider = "search"
) -> list[Track]:
    return [
        track
        for item in items
        if (track := normalize_video(item, source=source)) is not None
    ]
