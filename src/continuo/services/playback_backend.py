"""Playback backend contracts and event payloads.

`PlayerService` depends on this protocol to stay backend-agnostic. A backend
is an embeddable media surface addressed by playable ids; commands are
fire-and-forget and outcomes arrive later as events.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class BackendEvent:
    """Marker base type for backend-originated events."""

    pass


@dataclass(frozen=True)
class BackendAvailable(BackendEvent):
    """Backend finished deferred initialization and accepts commands."""


@dataclass(frozen=True)
class MediaReady(BackendEvent):
    """Loaded media can play; carries its duration in seconds."""

    duration_s: float


@dataclass(frozen=True)
class PlaybackStarted(BackendEvent):
    pass


@dataclass(frozen=True)
class PlaybackPaused(BackendEvent):
    pass


@dataclass(frozen=True)
class MediaEnded(BackendEvent):
    pass


@dataclass(frozen=True)
class TimeUpdate(BackendEvent):
    """Transport position report in seconds."""

    time_s: float


@dataclass(frozen=True)
class BackendError(BackendEvent):
    """Backend-reported non-recoverable runtime error."""

    message: str


class PlaybackBackend(Protocol):
    """Playback engine protocol consumed by `PlayerService`.

    Commands other than `start`/`shutdown` may raise `BackendUnavailableError`
    while the backend is still initializing.
    """

    def set_event_handler(
        self, handler: Callable[[BackendEvent], Awaitable[None]]
    ) -> None: ...

    async def start(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def load(self, playable_id: str) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, time_s: float) -> None: ...

    async def set_volume(self, volume: float) -> None: ...

    async def get_current_time(self) -> float: ...
