"""Fake playback backend for deterministic testing and dry runs."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass
from typing import Literal

from continuo.errors import BackendUnavailableError

from .playback_backend import (
    BackendAvailable,
    BackendEvent,
    MediaEnded,
    MediaReady,
    PlaybackPaused,
    PlaybackStarted,
    TimeUpdate,
)

FakeStatus = Literal["idle", "ready", "playing", "paused", "ended"]


@dataclass
class _PlaybackState:
    status: FakeStatus = "idle"
    playable_id: str | None = None
    position_s: float = 0.0
    duration_s: float = 0.0
    volume: float = 1.0


class FakePlaybackBackend:
    """In-memory backend that simulates playback progress.

    With ``available=False`` every command raises `BackendUnavailableError`
    until `start` runs, mimicking a media surface that initializes late.
    Issued commands are recorded in `commands` for inspection.
    """

    def __init__(
        self,
        *,
        tick_interval_s: float = 0.25,
        default_duration_s: float = 180.0,
        durations: Mapping[str, float] | None = None,
        available: bool = True,
    ) -> None:
        self._tick_interval_s = tick_interval_s
        self._default_duration_s = default_duration_s
        self._durations = dict(durations or {})
        self._available = available
        self._state = _PlaybackState()
        self._handler: Callable[[BackendEvent], Awaitable[None]] | None = None
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.commands: list[tuple[str, object]] = []

    @property
    def status(self) -> FakeStatus:
        return self._state.status

    @property
    def loaded_id(self) -> str | None:
        return self._state.playable_id

    @property
    def volume(self) -> float:
        return self._state.volume

    def set_event_handler(
        self, handler: Callable[[BackendEvent], Awaitable[None]]
    ) -> None:
        self._handler = handler

    async def start(self) -> None:
        if self._task is not None:
            return
        self._available = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._ticker_loop())
        await self._emit(BackendAvailable())

    async def shutdown(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def load(self, playable_id: str) -> None:
        self._require_available("load")
        self.commands.append(("load", playable_id))
        async with self._lock:
            if (
                playable_id == self._state.playable_id
                and self._state.status in {"ready", "playing", "paused"}
            ):
                return
            duration = self._durations.get(playable_id, self._default_duration_s)
            self._state.playable_id = playable_id
            self._state.position_s = 0.0
            self._state.duration_s = duration
            self._state.status = "ready"
        await self._emit(MediaReady(duration))

    async def play(self) -> None:
        self._require_available("play")
        self.commands.append(("play", None))
        async with self._lock:
            if self._state.status not in {"ready", "paused"}:
                return
            self._state.status = "playing"
        await self._emit(PlaybackStarted())

    async def pause(self) -> None:
        self._require_available("pause")
        self.commands.append(("pause", None))
        async with self._lock:
            if self._state.status != "playing":
                return
            self._state.status = "paused"
        await self._emit(PlaybackPaused())

    async def seek(self, time_s: float) -> None:
        self._require_available("seek")
        self.commands.append(("seek", time_s))
        async with self._lock:
            position = _clamp_float(time_s, 0.0, self._state.duration_s)
            self._state.position_s = position
        await self._emit(TimeUpdate(position))

    async def set_volume(self, volume: float) -> None:
        self._require_available("set_volume")
        self.commands.append(("set_volume", volume))
        async with self._lock:
            self._state.volume = _clamp_float(volume, 0.0, 1.0)

    async def get_current_time(self) -> float:
        self._require_available("get_current_time")
        async with self._lock:
            return self._state.position_s

    async def complete_media(self) -> None:
        """Jump to the end of the loaded media as if it played out."""
        async with self._lock:
            if self._state.status not in {"playing", "paused", "ready"}:
                return
            self._state.position_s = self._state.duration_s
            self._state.status = "ended"
        await self._emit(MediaEnded())

    def _require_available(self, command: str) -> None:
        if not self._available:
            raise BackendUnavailableError(f"Backend not initialized; cannot {command}")

    async def _ticker_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(self._tick_interval_s)
                await self._tick()
        except asyncio.CancelledError:
            pass

    async def _tick(self) -> None:
        async with self._lock:
            if self._state.status != "playing":
                return
            duration = self._state.duration_s
            if duration <= 0:
                return
            next_pos = self._state.position_s + self._tick_interval_s
            if next_pos >= duration:
                next_pos = duration
                self._state.status = "ended"
            self._state.position_s = next_pos
            status = self._state.status
        if status == "ended":
            await self._emit(MediaEnded())

    async def _emit(self, event: BackendEvent) -> None:
        if self._handler is None:
            return
        await self._handler(event)


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
