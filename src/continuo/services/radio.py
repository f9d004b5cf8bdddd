"""Radio mode: keeps music playing once an autoplay queue runs dry.

Strategies are tried strictly in order, once each. A strategy that raises
or returns nothing hands over to the next one. The first non-empty result is
offered to the caller's `accept` callback, which reports whether the head of
the batch actually started playing; a refusal counts as a failed strategy.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from continuo.errors import RecommendationExhaustedError
from continuo.models import Track
from continuo.services.music_repository import MusicRepository

logger = logging.getLogger(__name__)

RadioStatus = Literal["idle", "fetching", "success", "exhausted"]
DEFAULT_RECENT_EXCLUSION = 5
DEFAULT_BATCH_SIZE = 10
DEFAULT_RELATED_SEEDS = 3


@dataclass(frozen=True)
class RadioContext:
    """What the strategies know about the session when the queue ran out."""

    current_track: Track | None
    history: tuple[Track, ...] = ()
    limit: int = DEFAULT_BATCH_SIZE


StrategyFn = Callable[[RadioContext], Awaitable[list[Track]]]
AcceptFn = Callable[[list[Track], str], Awaitable[bool]]


@dataclass(frozen=True)
class Strategy:
    name: str
    fetch: StrategyFn


class RelatedSource(Protocol):
    async def related(self, video_id: str, limit: int = 20) -> list[Track]: ...


def related_media_strategy(
    source: RelatedSource, *, max_seeds: int = DEFAULT_RELATED_SEEDS
) -> Strategy:
    """Related videos seeded by the current track, then by recent history.

    Seeds are tried newest first until one yields results.
    """

    async def fetch(context: RadioContext) -> list[Track]:
        if not context.history:
            return []
        seeds: list[str] = []
        for track in (context.current_track, *context.history):
            if track is None or track.playable_id is None or not track.is_playable:
                continue
            if track.playable_id not in seeds:
                seeds.append(track.playable_id)
            if len(seeds) >= max_seeds:
                break
        for video_id in seeds:
            related = await source.related(video_id, context.limit)
            if related:
                return related
        return []

    return Strategy("related-media", fetch)


def similar_track_strategy(repository: MusicRepository) -> Strategy:
    async def fetch(context: RadioContext) -> list[Track]:
        if context.current_track is None:
            return []
        return await repository.similar(context.current_track, context.limit)

    return Strategy("similar-track", fetch)


def same_artist_strategy(repository: MusicRepository) -> Strategy:
    async def fetch(context: RadioContext) -> list[Track]:
        if context.current_track is None or not context.current_track.artist:
            return []
        return await repository.artist_tracks(context.current_track, context.limit)

    return Strategy("same-artist", fetch)


def chart_strategy(repository: MusicRepository) -> Strategy:
    async def fetch(context: RadioContext) -> list[Track]:
        return await repository.trending(context.limit)

    return Strategy("chart", fetch)


def default_strategies(
    repository: MusicRepository, related: RelatedSource | None = None
) -> list[Strategy]:
    strategies = [
        similar_track_strategy(repository),
        same_artist_strategy(repository),
        chart_strategy(repository),
    ]
    if related is not None:
        strategies.insert(0, related_media_strategy(related))
    return strategies


def exclude_recent(
    candidates: Sequence[Track], history: Sequence[Track], window: int
) -> list[Track]:
    """Drop candidates played within the last `window` history entries.

    Returns the unfiltered candidates when filtering would leave nothing.
    """
    recent = {track.identity for track in history[: max(0, window)]}
    filtered = [track for track in candidates if track.identity not in recent]
    return filtered if filtered else list(candidates)


class RecommendationEngine:
    def __init__(
        self,
        strategies: Sequence[Strategy],
        *,
        seed_strategy: Strategy | None = None,
        recent_exclusion: int = DEFAULT_RECENT_EXCLUSION,
    ) -> None:
        self._strategies = tuple(strategies)
        self._seed_strategy = seed_strategy
        self._recent_exclusion = recent_exclusion
        self._status: RadioStatus = "idle"

    @property
    def status(self) -> RadioStatus:
        return self._status

    @property
    def strategy_names(self) -> tuple[str, ...]:
        return tuple(strategy.name for strategy in self._strategies)

    def reset(self) -> None:
        self._status = "idle"

    async def continue_playback(self, context: RadioContext, accept: AcceptFn) -> str:
        """Run the chain and return the name of the strategy that succeeded.

        Raises `RecommendationExhaustedError` when every strategy fails.
        """
        self._status = "fetching"
        for strategy in self._strategies:
            candidates = await self._run(strategy, context)
            if not candidates:
                continue
            batch = exclude_recent(candidates, context.history, self._recent_exclusion)
            if await accept(batch, strategy.name):
                logger.info(
                    "Radio continued with %d tracks from %s", len(batch), strategy.name
                )
                self._status = "success"
                return strategy.name
            logger.info("Radio batch from %s could not start playback", strategy.name)
        self._status = "exhausted"
        raise RecommendationExhaustedError(
            f"All {len(self._strategies)} recommendation strategies failed"
        )

    async def autoplay_seed(self, context: RadioContext) -> list[Track]:
        """Candidates for a fresh autoplay queue, or an empty list."""
        if self._seed_strategy is None:
            return []
        candidates = await self._run(self._seed_strategy, context)
        return exclude_recent(candidates, context.history, self._recent_exclusion)

    async def _run(self, strategy: Strategy, context: RadioContext) -> list[Track]:
        try:
            candidates = await strategy.fetch(context)
        except Exception as exc:
            logger.warning("Radio strategy %s failed: %s", strategy.name, exc)
            logger.debug("Radio strategy %s traceback", strategy.name, exc_info=True)
            return []
        if not candidates:
            logger.debug("Radio strategy %s returned nothing", strategy.name)
            return []
        return list(candidates)
