"""Service events emitted by the player for UI-layer subscribers.

All events are plain frozen dataclasses delivered through the async
`emit_event` callback given to `PlayerService`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from continuo.errors import ErrorKind

if TYPE_CHECKING:
    from continuo.models import Track
    from continuo.services.player_service import PlayerState

NOTICE_AUTO_DISMISS_S = 4.0


@dataclass(frozen=True)
class PlayerStateChanged:
    """Emitted when the effective player state changes."""

    state: PlayerState


@dataclass(frozen=True)
class TrackChanged:
    """Emitted when a newly resolved track becomes the current track."""

    track: Track | None


@dataclass(frozen=True)
class PlaybackNotice:
    """Transient, auto-dismissing user-facing error notice."""

    kind: ErrorKind
    message: str
    auto_dismiss_s: float = NOTICE_AUTO_DISMISS_S


@dataclass(frozen=True)
class DegradedModeNotice:
    """Playback continues on a provisional, lower-confidence resolution."""

    track: Track
    message: str


@dataclass(frozen=True)
class RadioModeChanged:
    """Radio mode toggled on or off, with the strategy that produced tracks."""

    active: bool
    strategy: str | None = None
