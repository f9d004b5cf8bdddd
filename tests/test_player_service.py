"""Tests for PlayerService orchestration against the fake backend."""

from __future__ import annotations

import asyncio

from continuo.errors import ErrorKind
from continuo.events import (
    DegradedModeNotice,
    PlaybackNotice,
    PlayerStateChanged,
    RadioModeChanged,
    TrackChanged,
)
from continuo.models import KEEP, AutoplayContext, CollectionContext, Track
from continuo.services.fake_backend import FakePlaybackBackend
from continuo.services.player_service import PlayerService, PlayerState
from continuo.services.quota import QuotaCooldown
from continuo.services.radio import RadioContext, RecommendationEngine, Strategy
from continuo.services.resolution_cache import ResolutionCache
from continuo.services.track_resolver import Resolution, TrackResolver


def _run(coro):
    """Run async service scenario from sync test functions."""
    return asyncio.run(coro)


def _track(n: int, *, playable: bool = True) -> Track:
    return Track(
        identity=f"deezer_{n}",
        title=f"Song {n}",
        artist="Artist",
        playable_id=f"vid{n:08d}" if playable else None,
    )


def _resolver() -> TrackResolver:
    """Resolver that only accepts pre-bound tracks; anything else is unresolvable."""
    return TrackResolver(
        primary=None,
        frontends=None,
        cache=ResolutionCache(None),
        cooldown=QuotaCooldown(),
    )


class GatedResolver:
    """Blocks resolution of selected identities until released."""

    def __init__(self, gated: set[str]) -> None:
        self.gated = gated
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def resolve(self, track: Track) -> Resolution:
        if track.identity in self.gated:
            self.entered.set()
            await self.release.wait()
        assert track.playable_id is not None
        return Resolution(track.playable_id, False, "track")


class FallbackResolver:
    async def resolve(self, track: Track) -> Resolution:
        return Resolution(f"alt{track.identity[-1]:0>8}", True, "piped")


def _strategy(name: str, tracks: list[Track], calls: list[str] | None = None) -> Strategy:
    async def fetch(_context: RadioContext) -> list[Track]:
        if calls is not None:
            calls.append(name)
        return list(tracks)

    return Strategy(name, fetch)


def _service(
    events: list[object],
    *,
    backend: FakePlaybackBackend | None = None,
    resolver=None,
    radio: RecommendationEngine | None = None,
) -> tuple[PlayerService, FakePlaybackBackend]:
    async def emit_event(event: object) -> None:
        events.append(event)

    backend = backend or FakePlaybackBackend()
    service = PlayerService(
        emit_event=emit_event,
        backend=backend,
        resolver=resolver or _resolver(),
        radio=radio,
    )
    return service, backend


def _ids(tracks) -> list[str]:
    return [track.identity for track in tracks]


def test_play_item_loads_and_starts_playback() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        assert await service.play_item(_track(1))
        assert backend.commands[-2:] == [("load", "vid00000001"), ("play", None)]
        state = service.state
        assert state.status == "playing"
        assert state.is_playing
        assert state.duration == 180.0
        assert state.current_track == _track(1)
        assert any(isinstance(e, TrackChanged) for e in events)
        assert service.ticker.running
        await service.shutdown()

    _run(run())


def test_radio_continues_after_autoplay_queue_runs_dry() -> None:
    events: list[object] = []
    b, c, d = _track(2), _track(3), _track(4)

    async def run() -> None:
        calls: list[str] = []
        radio = RecommendationEngine(
            [
                _strategy("related-media", [], calls),
                _strategy("similar-track", [b, c, d], calls),
                _strategy("same-artist", [_track(9)], calls),
            ]
        )
        service, backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))
        await service.settle()
        assert isinstance(service.queue.context, AutoplayContext)

        await backend.complete_media()

        assert calls == ["related-media", "similar-track"]
        assert service.state.current_track == b
        assert service.state.status == "playing"
        assert service.state.radio_mode_active
        assert not service.state.fetching_recommendations
        assert _ids(service.queue.queue) == ["deezer_3", "deezer_4"]
        assert _ids(service.queue.history) == ["deezer_2", "deezer_1"]
        assert RadioModeChanged(True, "similar-track") in events
        await service.shutdown()

    _run(run())


def test_collection_queue_ends_without_radio() -> None:
    events: list[object] = []
    items = (_track(1), _track(2), _track(3))

    async def run() -> None:
        calls: list[str] = []
        radio = RecommendationEngine([_strategy("chart", [_track(9)], calls)])
        service, backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(items[1], CollectionContext("album-1", items))
        assert _ids(service.queue.queue) == ["deezer_3"]

        await backend.complete_media()
        assert service.state.current_track == items[2]
        assert service.queue.queue == ()

        await backend.complete_media()
        assert service.state.status == "ended"
        assert not service.state.is_playing
        assert calls == []
        assert not any(isinstance(e, RadioModeChanged) for e in events)
        await service.shutdown()

    _run(run())


def test_stale_resolution_is_discarded() -> None:
    events: list[object] = []

    async def run() -> None:
        resolver = GatedResolver({"deezer_1"})
        service, backend = _service(events, resolver=resolver)
        await service.start()
        slow = asyncio.create_task(service.play_item(_track(1)))
        await resolver.entered.wait()

        assert await service.play_item(_track(2))
        resolver.release.set()
        assert await slow is False

        assert service.state.current_track == _track(2)
        loads = [arg for name, arg in backend.commands if name == "load"]
        assert loads == ["vid00000002"]
        changed = [e.track for e in events if isinstance(e, TrackChanged)]
        assert changed == [_track(2)]
        await service.shutdown()

    _run(run())


def test_ticker_is_stopped_while_next_track_resolves() -> None:
    events: list[object] = []

    async def run() -> None:
        resolver = GatedResolver({"deezer_2"})
        service, _backend = _service(events, resolver=resolver)
        await service.start()
        await service.play_item(_track(1))
        assert service.ticker.running

        pending = asyncio.create_task(service.play_item(_track(2)))
        await resolver.entered.wait()
        assert not service.ticker.running
        assert service.state.status == "resolving"

        resolver.release.set()
        assert await pending
        assert service.ticker.running
        assert service.ticker.starts == 2
        await service.shutdown()

    _run(run())


def test_load_before_backend_ready_is_reissued_on_start() -> None:
    events: list[object] = []

    async def run() -> None:
        backend = FakePlaybackBackend(available=False)
        service, _ = _service(events, backend=backend)
        assert await service.play_item(_track(1))
        assert backend.commands == []
        assert not service.state.is_playing

        await service.start()

        assert backend.commands[:3] == [
            ("set_volume", 1.0),
            ("load", "vid00000001"),
            ("play", None),
        ]
        assert service.state.status == "playing"
        await service.shutdown()

    _run(run())


def test_explicit_failure_surfaces_notice_without_advancing() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(_track(1), CollectionContext("c", (_track(1), _track(2))))

        assert await service.play_item(_track(5, playable=False)) is False

        state = service.state
        assert state.status == "error"
        assert state.last_error is ErrorKind.NOT_RESOLVABLE
        assert state.error is not None and "Song 5" in state.error
        assert state.current_track == _track(1)
        assert _ids(service.queue.queue) == ["deezer_2"]
        assert backend.commands[-1] == ("pause", None)
        notices = [e for e in events if isinstance(e, PlaybackNotice)]
        assert len(notices) == 1
        assert notices[0].kind is ErrorKind.NOT_RESOLVABLE
        await service.shutdown()

    _run(run())


def test_queue_advance_skips_unresolvable_tracks_silently() -> None:
    events: list[object] = []
    items = (_track(1), _track(2, playable=False), _track(3))

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(items[0], CollectionContext("c", items))

        await service.next_track()

        assert service.state.current_track == items[2]
        assert service.state.status == "playing"
        assert not any(isinstance(e, PlaybackNotice) for e in events)
        await service.shutdown()

    _run(run())


def test_radio_exhaustion_surfaces_error() -> None:
    events: list[object] = []

    async def run() -> None:
        calls: list[str] = []
        radio = RecommendationEngine(
            [_strategy(name, [], calls) for name in ("a", "b", "c", "d")]
        )
        service, backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))

        await backend.complete_media()

        state = service.state
        assert calls == ["a", "b", "c", "d"]
        assert state.status == "ended"
        assert state.last_error is ErrorKind.RECOMMENDATION_EXHAUSTED
        assert not state.radio_mode_active
        assert not state.fetching_recommendations
        assert RadioModeChanged(False) in events
        assert any(
            isinstance(e, PlaybackNotice) and e.kind is ErrorKind.RECOMMENDATION_EXHAUSTED
            for e in events
        )
        await service.shutdown()

    _run(run())


def test_autoplay_queue_is_seeded_in_background() -> None:
    events: list[object] = []

    async def run() -> None:
        radio = RecommendationEngine(
            [], seed_strategy=_strategy("similar-track", [_track(1), _track(2), _track(3)])
        )
        service, _backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))
        await service.settle()

        # The playing track is excluded as recently played.
        assert _ids(service.queue.queue) == ["deezer_2", "deezer_3"]
        await service.shutdown()

    _run(run())


def test_seek_clamps_and_volume_is_always_pushed() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(_track(1))

        await service.seek_to(500.0)
        assert service.state.current_time == 180.0
        assert backend.commands[-1] == ("seek", 180.0)
        await service.seek_to(-3.0)
        assert backend.commands[-1] == ("seek", 0.0)

        await service.set_volume(0.5)
        await service.set_volume(0.5)
        await service.set_volume(7.0)
        volumes = [arg for name, arg in backend.commands if name == "set_volume"]
        assert volumes[-3:] == [0.5, 0.5, 1.0]
        assert service.state.volume == 1.0
        await service.shutdown()

    _run(run())


def test_toggle_play_pause() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.toggle_play_pause()
        assert backend.commands == [("set_volume", 1.0)]

        await service.play_item(_track(1))
        await service.toggle_play_pause()
        assert service.state.status == "paused"
        assert not service.state.is_playing
        await service.toggle_play_pause()
        assert service.state.status == "playing"
        assert backend.commands[-2:] == [("pause", None), ("play", None)]
        await service.shutdown()

    _run(run())


def test_previous_replays_last_track_or_restarts() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(_track(1))
        await service.play_item(_track(2), KEEP)

        await service.previous_track()
        assert service.state.current_track == _track(1)

        await service.seek_to(42.0)
        await service.previous_track()
        assert service.state.current_track == _track(1)
        assert backend.commands[-1] == ("seek", 0.0)
        await service.shutdown()

    _run(run())


def test_stop_resets_to_idle() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(_track(1))

        await service.stop()

        assert service.state.status == "idle"
        assert not service.state.is_playing
        assert service.state.current_time == 0.0
        assert not service.ticker.running
        assert ("pause", None) in backend.commands
        assert backend.commands[-1] == ("seek", 0.0)
        await service.shutdown()

    _run(run())


def test_fallback_resolution_emits_degraded_notice() -> None:
    events: list[object] = []

    async def run() -> None:
        service, _backend = _service(events, resolver=FallbackResolver())
        await service.start()
        await service.play_item(_track(7, playable=False))
        assert service.state.degraded
        notices = [e for e in events if isinstance(e, DegradedModeNotice)]
        assert len(notices) == 1
        assert notices[0].track.playable_id == "alt00000007"
        await service.shutdown()

    _run(run())


def test_backend_events_without_media_are_ignored() -> None:
    events: list[object] = []

    async def run() -> None:
        service, backend = _service(events)
        await backend.complete_media()
        await service._handle_backend_event(UnknownEvent())  # type: ignore[arg-type]
        assert service.state == PlayerState()
        assert not any(isinstance(e, PlayerStateChanged) for e in events)

    _run(run())


class UnknownEvent:
    pass


def test_skip_past_end_of_collection_pauses_backend() -> None:
    events: list[object] = []
    items = (_track(1), _track(2))

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(items[1], CollectionContext("album-1", items))
        assert backend.status == "playing"

        await service.next_track()

        assert service.state.status == "ended"
        assert not service.state.is_playing
        assert backend.status == "paused"
        assert not service.ticker.running

        await service.toggle_play_pause()
        assert service.state.status == "playing"
        assert service.state.current_track == items[1]
        await service.shutdown()

    _run(run())


def test_skip_into_unresolvable_tail_pauses_backend() -> None:
    events: list[object] = []
    items = (_track(1), _track(2, playable=False))

    async def run() -> None:
        service, backend = _service(events)
        await service.start()
        await service.play_item(items[0], CollectionContext("album-1", items))

        await service.next_track()

        assert service.state.status == "ended"
        assert backend.status == "paused"
        assert not any(isinstance(e, PlaybackNotice) for e in events)
        await service.shutdown()

    _run(run())


def test_radio_exhaustion_after_skip_pauses_backend() -> None:
    events: list[object] = []

    async def run() -> None:
        radio = RecommendationEngine([_strategy("chart", [])])
        service, backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))
        await service.settle()

        await service.next_track()

        assert service.state.status == "ended"
        assert service.state.last_error is ErrorKind.RECOMMENDATION_EXHAUSTED
        assert backend.status == "paused"
        await service.shutdown()

    _run(run())


def test_user_choice_during_radio_fetch_clears_fetching_flag() -> None:
    events: list[object] = []
    entered = asyncio.Event()
    release = asyncio.Event()

    async def gated(_context: RadioContext) -> list[Track]:
        entered.set()
        await release.wait()
        return [_track(9)]

    async def run() -> None:
        radio = RecommendationEngine([Strategy("similar-track", gated)])
        service, _backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))
        await service.settle()

        skipping = asyncio.create_task(service.next_track())
        await entered.wait()
        assert service.state.fetching_recommendations
        assert service.state.radio_mode_active

        assert await service.play_item(_track(3), CollectionContext("c", (_track(3),)))
        assert not service.state.fetching_recommendations

        release.set()
        await skipping

        state = service.state
        assert state.current_track == _track(3)
        assert not state.fetching_recommendations
        assert not state.radio_mode_active
        assert state.status == "playing"
        assert service.queue.queue == ()
        await service.shutdown()

    _run(run())


def test_refused_radio_batch_leaves_no_leftovers() -> None:
    events: list[object] = []

    async def run() -> None:
        radio = RecommendationEngine(
            [
                _strategy("similar-track", [_track(5, playable=False), _track(6)]),
                _strategy("chart", []),
            ]
        )
        service, backend = _service(events, radio=radio)
        await service.start()
        await service.play_item(_track(1))
        await service.settle()

        await backend.complete_media()

        assert service.state.last_error is ErrorKind.RECOMMENDATION_EXHAUSTED
        assert service.queue.queue == ()
        assert isinstance(service.queue.context, AutoplayContext)
        await service.shutdown()

    _run(run())
