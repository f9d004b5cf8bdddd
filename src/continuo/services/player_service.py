"""Playback orchestration between user intent, resolution and the backend.

`PlayerService` is the only writer of `PlayerState` and of the queue and
history. Every `play_item` takes a fresh request token; a resolution that
completes after a newer request was issued is discarded. Backend commands
are never awaited under the state lock because backends report outcomes by
calling back into `_handle_backend_event`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from contextlib import suppress
from dataclasses import dataclass, replace
from typing import Callable, Literal, Union

from continuo.errors import (
    BackendUnavailableError,
    ErrorKind,
    RecommendationExhaustedError,
    ResolutionError,
)
from continuo.events import (
    DegradedModeNotice,
    PlaybackNotice,
    PlayerStateChanged,
    RadioModeChanged,
    TrackChanged,
)
from continuo.models import KEEP, AutoplayContext, CollectionContext, PlaybackContext, Track
from continuo.services.playback_backend import (
    BackendAvailable,
    BackendError,
    BackendEvent,
    MediaEnded,
    MediaReady,
    PlaybackBackend,
    PlaybackPaused,
    PlaybackStarted,
    TimeUpdate,
)
from continuo.services.position_ticker import PositionTicker
from continuo.services.queue_manager import DEFAULT_LOW_WATER_MARK, QueueManager
from continuo.services.radio import RadioContext, RecommendationEngine
from continuo.services.track_resolver import TrackResolver

logger = logging.getLogger(__name__)

STATUS = Literal["idle", "resolving", "ready", "playing", "paused", "ended", "error"]
PlayContext = Union[PlaybackContext, Literal["KEEP"], None]

RESTART_THRESHOLD_S = 3.0
TIME_EMIT_DELTA_S = 0.1


def _format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message


@dataclass(frozen=True)
class PlayerState:
    """Snapshot of transport state exposed to the UI."""

    status: STATUS = "idle"
    current_track: Track | None = None
    is_playing: bool = False
    volume: float = 1.0
    current_time: float = 0.0
    duration: float = 0.0
    radio_mode_active: bool = False
    fetching_recommendations: bool = False
    last_error: ErrorKind | None = None
    error: str | None = None
    degraded: bool = False


class PlayerService:
    """Owns playback state and emits events to subscribers."""

    def __init__(
        self,
        *,
        emit_event: Callable[[object], Awaitable[None]],
        backend: PlaybackBackend,
        resolver: TrackResolver,
        queue: QueueManager | None = None,
        radio: RecommendationEngine | None = None,
        poll_interval_s: float = 0.4,
        low_water_mark: int = DEFAULT_LOW_WATER_MARK,
        radio_batch_size: int = 10,
        initial_state: PlayerState | None = None,
    ) -> None:
        self._emit_event = emit_event
        self._backend = backend
        self._resolver = resolver
        self._queue = queue or QueueManager()
        self._radio = radio
        self._low_water_mark = low_water_mark
        self._radio_batch_size = radio_batch_size
        self._state = initial_state or PlayerState()
        self._lock = asyncio.Lock()
        self._token = 0
        self._generation = 0
        self._radio_generation = 0
        self._playable_id: str | None = None
        self._pending_load: str | None = None
        self._media_ready = False
        self._play_on_ready = False
        self._autoplay_task: asyncio.Task[None] | None = None
        self._ticker = PositionTicker(
            interval_s=poll_interval_s,
            read_time=self._backend.get_current_time,
            on_time=self._apply_time,
        )
        self._backend.set_event_handler(self._handle_backend_event)

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def queue(self) -> QueueManager:
        return self._queue

    @property
    def ticker(self) -> PositionTicker:
        return self._ticker

    async def start(self) -> None:
        """Start the backend; a deferred load is re-issued once it is available."""
        await self._backend.start()

    async def shutdown(self) -> None:
        """Stop background work and perform best-effort backend shutdown."""
        await self._cancel_autoplay()
        await self._ticker.stop()
        with suppress(Exception):
            await self._backend.shutdown()

    async def settle(self) -> None:
        """Wait for background autoplay seeding to finish."""
        task = self._autoplay_task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def play_item(self, track: Track, context: PlayContext = None) -> bool:
        """Resolve and play `track` as an explicit user choice.

        `context` decides the queue: a `CollectionContext` queues the items
        after `track`, `KEEP` leaves the queue alone, and None (or an
        `AutoplayContext`) starts an autoplay queue seeded in the background.
        Returns whether playback was handed to the backend.
        """
        self._generation += 1
        return await self._play(track, context, explicit=True)

    async def toggle_play_pause(self) -> None:
        async with self._lock:
            if self._playable_id is None:
                return
            playing = not self._state.is_playing
            self._state = replace(self._state, is_playing=playing)
            self._play_on_ready = playing
            ready = self._media_ready
            playable_id = self._playable_id
        await self._emit_state()
        if not ready:
            # Not loaded yet (or played out): loading again starts playback once ready.
            await self._issue_load(playable_id)
            return
        if playing:
            await self._send("play", self._backend.play)
        else:
            await self._send("pause", self._backend.pause)

    async def seek_to(self, time_s: float) -> None:
        async with self._lock:
            if self._playable_id is None:
                return
            position = _clamp_float(float(time_s), 0.0, self._state.duration)
            self._state = replace(self._state, current_time=position)
            ready = self._media_ready
            playable_id = self._playable_id
        await self._emit_state()
        if not ready:
            await self._issue_load(playable_id)
            return
        await self._send("seek", self._backend.seek, position)

    async def set_volume(self, volume: float) -> None:
        async with self._lock:
            self._state = replace(self._state, volume=_clamp_float(float(volume), 0.0, 1.0))
            volume = self._state.volume
        await self._send("set_volume", self._backend.set_volume, volume)
        await self._emit_state()

    async def next_track(self) -> None:
        """Skip to the next queued track, falling into radio mode when allowed."""
        self._generation += 1
        await self._ticker.stop()
        await self._advance()

    async def previous_track(self) -> None:
        """Restart the current track when past 3s, otherwise replay the last one."""
        async with self._lock:
            position = self._state.current_time
            current = self._state.current_track
        history = self._queue.history
        previous = next(
            (
                track
                for track in history
                if current is None or track.identity != current.identity
            ),
            None,
        )
        if position > RESTART_THRESHOLD_S or previous is None:
            await self.seek_to(0.0)
            return
        await self.play_item(previous, KEEP)

    async def stop(self) -> None:
        self._generation += 1
        self._token += 1
        await self._cancel_autoplay()
        await self._ticker.stop()
        if self._media_ready:
            await self._send("pause", self._backend.pause)
            await self._send("seek", self._backend.seek, 0.0)
        async with self._lock:
            self._state = replace(
                self._state,
                status="idle",
                is_playing=False,
                current_time=0.0,
                radio_mode_active=False,
                fetching_recommendations=False,
            )
            self._play_on_ready = False
            self._pending_load = None
        if self._radio is not None:
            self._radio.reset()
        await self._emit_state()

    async def _play(self, track: Track, context: PlayContext, *, explicit: bool) -> bool:
        async with self._lock:
            self._token += 1
            token = self._token
            self._playable_id = None
            self._media_ready = False
            self._play_on_ready = False
            self._state = replace(
                self._state,
                status="resolving",
                error=None,
                last_error=None,
            )
        await self._ticker.stop()
        await self._emit_state()
        try:
            resolution = await self._resolver.resolve(track)
        except ResolutionError as exc:
            if token != self._token:
                return False
            await self._resolution_failed(track, exc, explicit=explicit)
            return False
        if token != self._token:
            logger.debug(
                "Discarding stale resolution for %s (token %d, latest %d)",
                track.identity,
                token,
                self._token,
            )
            return False

        playable = track.with_playable_id(resolution.playable_id)
        seed_autoplay = False
        async with self._lock:
            if token != self._token:
                return False
            self._queue.record_played(playable)
            radio_active = self._state.radio_mode_active
            fetching = self._state.fetching_recommendations
            if isinstance(context, CollectionContext):
                self._queue.splice(context.items, playable)
                self._queue.context = context
                radio_active = fetching = False
            elif context != KEEP:
                source = context.source if isinstance(context, AutoplayContext) else None
                self._queue.seed([], AutoplayContext(source))
                radio_active = fetching = False
                seed_autoplay = True
            self._playable_id = resolution.playable_id
            self._media_ready = False
            self._play_on_ready = True
            self._state = replace(
                self._state,
                current_track=playable,
                is_playing=False,
                current_time=0.0,
                duration=playable.duration_s,
                radio_mode_active=radio_active,
                fetching_recommendations=fetching,
                degraded=resolution.is_fallback,
            )
        if seed_autoplay:
            await self._schedule_autoplay_seed(playable)
        await self._emit_event(TrackChanged(playable))
        if resolution.is_fallback:
            await self._emit_event(
                DegradedModeNotice(
                    playable,
                    "Playing from an alternate source; quality or match may vary.",
                )
            )
        await self._emit_state()
        await self._issue_load(resolution.playable_id)
        return True

    async def _resolution_failed(
        self, track: Track, exc: ResolutionError, *, explicit: bool
    ) -> None:
        if not explicit:
            logger.info("Skipping %s: %s", track.identity, exc)
            return
        logger.warning("Could not resolve %s: %s", track.identity, exc)
        message = _format_user_error(
            what_failed=f"Could not play '{track.title}' by {track.artist}.",
            likely_cause="No playable source was found for this track.",
            next_step="Pick another track or try again later.",
        )
        async with self._lock:
            self._state = replace(
                self._state,
                status="error",
                is_playing=False,
                last_error=exc.kind,
                error=message,
            )
        # The previous track may still be audible while the new one resolved.
        await self._send("pause", self._backend.pause)
        await self._emit_state()
        await self._emit_event(PlaybackNotice(exc.kind, message))

    async def _advance(self) -> None:
        """Play the next resolvable queued track, or hand over to radio mode."""
        generation = self._generation
        while True:
            upcoming = self._queue.advance()
            if upcoming is None:
                break
            if await self._play(upcoming, KEEP, explicit=False):
                return
            if generation != self._generation:
                return
        if generation != self._generation:
            return
        if isinstance(self._queue.context, AutoplayContext) and self._radio is not None:
            await self._run_radio(generation)
            return
        await self._halt_previous_media()
        async with self._lock:
            self._state = replace(self._state, status="ended", is_playing=False)
            self._play_on_ready = False
        await self._emit_state()

    async def _run_radio(self, generation: int) -> None:
        assert self._radio is not None
        async with self._lock:
            self._state = replace(
                self._state, radio_mode_active=True, fetching_recommendations=True
            )
            context = RadioContext(
                current_track=self._state.current_track,
                history=self._queue.history,
                limit=self._radio_batch_size,
            )
        await self._emit_state()
        await self._emit_event(RadioModeChanged(True))

        async def accept(batch: list[Track], _strategy: str) -> bool:
            if generation != self._generation:
                # A newer user action owns playback; end the chain quietly.
                return True
            self._queue.seed(batch, AutoplayContext("radio"))
            head = self._queue.advance()
            if head is not None and await self._play(head, KEEP, explicit=False):
                return True
            if generation == self._generation:
                # The rest of a refused batch must not outlive its strategy.
                self._queue.seed([], AutoplayContext("radio"))
            return False

        self._radio_generation = generation
        try:
            strategy = await self._radio.continue_playback(context, accept)
        except RecommendationExhaustedError as exc:
            if generation == self._generation:
                await self._radio_exhausted(exc)
            return
        finally:
            await self._finish_radio_fetch(generation)
        if generation != self._generation:
            return
        await self._emit_event(RadioModeChanged(True, strategy))

    async def _finish_radio_fetch(self, generation: int) -> None:
        async with self._lock:
            if self._radio_generation != generation:
                # A newer radio run owns the flag.
                return
            if not self._state.fetching_recommendations:
                return
            self._state = replace(self._state, fetching_recommendations=False)
        await self._emit_state()

    async def _radio_exhausted(self, exc: RecommendationExhaustedError) -> None:
        logger.warning("Radio mode exhausted: %s", exc)
        message = _format_user_error(
            what_failed="Could not find more music to play.",
            likely_cause="Every recommendation source failed or returned nothing.",
            next_step="Choose a track to start playing again.",
        )
        await self._halt_previous_media()
        async with self._lock:
            self._state = replace(
                self._state,
                status="ended",
                is_playing=False,
                radio_mode_active=False,
                fetching_recommendations=False,
                last_error=exc.kind,
                error=message,
            )
            self._play_on_ready = False
        await self._emit_state()
        await self._emit_event(RadioModeChanged(False))
        await self._emit_event(PlaybackNotice(exc.kind, message))

    async def _schedule_autoplay_seed(self, track: Track) -> None:
        await self._cancel_autoplay()
        if self._radio is None:
            return
        self._autoplay_task = asyncio.create_task(
            self._seed_autoplay(track, self._generation)
        )

    async def _seed_autoplay(self, track: Track, generation: int) -> None:
        assert self._radio is not None
        context = RadioContext(
            current_track=track,
            history=self._queue.history,
            limit=self._radio_batch_size,
        )
        candidates = await self._radio.autoplay_seed(context)
        if generation != self._generation or not isinstance(
            self._queue.context, AutoplayContext
        ):
            return
        added = self._queue.extend_if_low(candidates, low_water_mark=self._low_water_mark)
        logger.debug("Autoplay queue seeded with %d tracks after %s", added, track.identity)

    async def _halt_previous_media(self) -> None:
        """Silence whatever the backend still holds once continuity has ended."""
        await self._ticker.stop()
        # A skipped track keeps playing even after its replacement failed to resolve.
        await self._send("pause", self._backend.pause)
        if self._media_ready:
            await self._send("seek", self._backend.seek, 0.0)

    async def _cancel_autoplay(self) -> None:
        task = self._autoplay_task
        self._autoplay_task = None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _issue_load(self, playable_id: str) -> None:
        try:
            await self._backend.load(playable_id)
        except BackendUnavailableError:
            logger.info("Backend unavailable; deferring load of %s", playable_id)
            self._pending_load = playable_id
            return
        if self._pending_load == playable_id:
            self._pending_load = None

    async def _send(
        self, command: str, method: Callable[..., Awaitable[None]], *args: object
    ) -> None:
        try:
            await method(*args)
        except BackendUnavailableError:
            logger.debug("Backend unavailable; dropped %s command", command)

    async def _apply_time(self, time_s: float) -> None:
        async with self._lock:
            if self._state.status not in {"ready", "playing", "paused"}:
                return
            position = max(0.0, time_s)
            if abs(position - self._state.current_time) < TIME_EMIT_DELTA_S:
                return
            self._state = replace(self._state, current_time=position)
        await self._emit_state()

    async def _handle_backend_event(self, event: BackendEvent) -> None:
        """Fold backend events into player state; `ended` drives continuity."""
        if isinstance(event, TimeUpdate):
            await self._apply_time(event.time_s)
            return
        if isinstance(event, BackendAvailable):
            await self._send("set_volume", self._backend.set_volume, self._state.volume)
            pending = self._pending_load
            if pending is not None and pending == self._playable_id:
                logger.info("Backend available; re-issuing load of %s", pending)
                await self._issue_load(pending)
            return

        emit = False
        start_playback = False
        handle_end = False
        async with self._lock:
            status = self._state.status
            if self._playable_id is None:
                # Leftover events from media that is being replaced.
                return
            if isinstance(event, MediaReady):
                self._media_ready = True
                self._state = replace(
                    self._state,
                    status="ready",
                    duration=max(0.0, event.duration_s),
                    current_time=0.0,
                )
                start_playback = self._play_on_ready
                emit = True
            elif isinstance(event, PlaybackStarted):
                self._state = replace(self._state, status="playing", is_playing=True)
                emit = True
            elif isinstance(event, PlaybackPaused):
                self._state = replace(self._state, status="paused", is_playing=False)
                emit = True
            elif isinstance(event, MediaEnded):
                if status in {"playing", "paused", "ready"}:
                    self._state = replace(
                        self._state,
                        status="ended",
                        is_playing=False,
                        current_time=self._state.duration,
                    )
                    self._media_ready = False
                    handle_end = True
                    emit = True
            elif isinstance(event, BackendError):
                self._media_ready = False
                self._state = replace(
                    self._state,
                    status="error",
                    is_playing=False,
                    last_error=ErrorKind.BACKEND_ERROR,
                    error=_format_user_error(
                        what_failed="Playback backend reported an error.",
                        likely_cause="The media surface failed to load or play the track.",
                        next_step="Retry playback or pick another track.",
                        detail=event.message,
                    ),
                )
                emit = True
        if isinstance(event, (MediaReady, PlaybackStarted)):
            self._ticker.start()
        elif handle_end or isinstance(event, BackendError):
            await self._ticker.stop()
        if emit:
            await self._emit_state()
        if start_playback:
            await self._send("play", self._backend.play)
        if handle_end:
            self._generation += 1
            await self._advance()

    async def _emit_state(self) -> None:
        await self._emit_event(PlayerStateChanged(self._state))


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
