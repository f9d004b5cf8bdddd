"""Assemble providers and services from an `EngineConfig`."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from continuo.providers.base import JsonHttpClient, ResponseCache
from continuo.providers.deezer import DeezerProvider
from continuo.providers.frontends import FrontendPool, InvidiousFrontend, PipedFrontend
from continuo.providers.itunes import ITunesProvider
from continuo.providers.youtube import YouTubeDataProvider
from continuo.runtime_config import EngineConfig
from continuo.services.music_repository import MusicRepository
from continuo.services.playback_backend import PlaybackBackend
from continuo.services.player_service import PlayerService
from continuo.services.queue_manager import QueueManager
from continuo.services.quota import QuotaCooldown, QuotaUsage
from continuo.services.radio import (
    RecommendationEngine,
    default_strategies,
    similar_track_strategy,
)
from continuo.services.resolution_cache import ResolutionCache
from continuo.services.track_resolver import TrackResolver

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything a client needs, plus the HTTP clients to close on exit."""

    repository: MusicRepository
    resolver: TrackResolver
    radio: RecommendationEngine
    quota_usage: QuotaUsage
    youtube: YouTubeDataProvider
    clients: tuple[JsonHttpClient, ...]
    player: PlayerService | None = None

    def close(self) -> None:
        for client in self.clients:
            client.close()


def build_engine(
    config: EngineConfig,
    *,
    cache_path: Path | None = None,
    backend: PlaybackBackend | None = None,
    emit_event: Callable[[object], Awaitable[None]] | None = None,
    session: requests.Session | None = None,
) -> Engine:
    """Wire providers, resolver and radio; add a player when a backend is given."""
    response_cache = ResponseCache(ttl_s=config.response_cache_ttl_s)

    def _client(provider: str, base_url: str, max_attempts: int = 3) -> JsonHttpClient:
        return JsonHttpClient(
            provider=provider,
            base_url=base_url,
            timeout_s=config.request_timeout_s,
            session=session,
            response_cache=response_cache,
            max_attempts=max_attempts,
        )

    deezer_client = _client("deezer", config.deezer_base_url)
    itunes_client = _client("itunes", config.itunes_base_url)
    # Transient primary failures go straight to the alternate frontends.
    youtube_client = _client("youtube", config.youtube_base_url, max_attempts=1)
    frontend_client = JsonHttpClient(
        provider="frontends",
        base_url="",
        timeout_s=config.frontend_timeout_s,
        session=session,
        max_attempts=1,
    )

    quota_usage = QuotaUsage()
    deezer = DeezerProvider(deezer_client)
    youtube = YouTubeDataProvider(
        youtube_client,
        api_key=config.youtube_api_key,
        on_quota_cost=quota_usage.record,
    )
    repository = MusicRepository(
        metadata_providers=[deezer, ITunesProvider(itunes_client)],
        chart_provider=deezer,
        trending_fallback=youtube,
    )
    frontends = FrontendPool(
        [
            InvidiousFrontend(config.invidious_instances, frontend_client),
            PipedFrontend(config.piped_instances, frontend_client),
        ],
        max_attempts=config.fallback_attempts,
        timeout_s=config.frontend_timeout_s,
    )
    resolver = TrackResolver(
        primary=youtube,
        frontends=frontends,
        cache=ResolutionCache(cache_path, ttl_s=config.cache_ttl_s),
        cooldown=QuotaCooldown(
            policy=config.cooldown_policy, duration_s=config.cooldown_s
        ),
    )
    radio = RecommendationEngine(
        default_strategies(repository, youtube if youtube.configured else None),
        seed_strategy=similar_track_strategy(repository),
        recent_exclusion=config.recent_exclusion,
    )
    engine = Engine(
        repository=repository,
        resolver=resolver,
        radio=radio,
        quota_usage=quota_usage,
        youtube=youtube,
        clients=(deezer_client, itunes_client, youtube_client, frontend_client),
    )
    if backend is not None:
        if emit_event is None:
            raise ValueError("emit_event is required when a backend is given")
        engine.player = PlayerService(
            emit_event=emit_event,
            backend=backend,
            resolver=resolver,
            queue=QueueManager(history_limit=config.history_limit),
            radio=radio,
            poll_interval_s=config.poll_interval_s,
            low_water_mark=config.low_water_mark,
            radio_batch_size=config.radio_batch_size,
        )
    logger.debug(
        "Engine built (primary configured=%s, frontends=%d)", youtube.configured, len(frontends)
    )
    return engine
