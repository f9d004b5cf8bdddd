"""Play queue and listening history owned by the player."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Sequence
from typing import Any

from continuo.models import PlaybackContext, Track, track_to_document

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_LOW_WATER_MARK = 2


class QueueManager:
    """FIFO queue plus most-recent-first, identity-deduplicated history."""

    def __init__(self, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._history_limit = max(1, int(history_limit))
        self._queue: deque[Track] = deque()
        self._history: list[Track] = []
        self._context: PlaybackContext | None = None

    @property
    def queue(self) -> tuple[Track, ...]:
        return tuple(self._queue)

    @property
    def history(self) -> tuple[Track, ...]:
        return tuple(self._history)

    @property
    def context(self) -> PlaybackContext | None:
        return self._context

    @context.setter
    def context(self, context: PlaybackContext | None) -> None:
        self._context = context

    def advance(self) -> Track | None:
        """Pop and return the queue head, or None when the queue is empty."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def seed(self, tracks: Iterable[Track], context: PlaybackContext | None) -> None:
        """Replace the queue wholesale."""
        self._queue = deque(tracks)
        self._context = context
        logger.debug("Queue seeded with %d tracks (context=%r)", len(self._queue), context)

    def record_played(self, track: Track) -> None:
        self._history = [
            entry for entry in self._history if entry.identity != track.identity
        ]
        self._history.insert(0, track)
        del self._history[self._history_limit :]

    def splice(self, items: Sequence[Track], played_item: Track) -> None:
        """Queue everything strictly after `played_item` within `items`.

        When `played_item` is not part of `items` the queue is cleared.
        """
        for index, item in enumerate(items):
            if item.identity == played_item.identity:
                self._queue = deque(items[index + 1 :])
                return
        logger.debug("Played item %s not in collection; clearing queue", played_item.identity)
        self._queue.clear()

    def extend_if_low(
        self, tracks: Iterable[Track], *, low_water_mark: int = DEFAULT_LOW_WATER_MARK
    ) -> int:
        """Append tracks only while the queue is at or below the low-water mark.

        Tracks already queued are skipped. Returns how many were appended.
        """
        if len(self._queue) > low_water_mark:
            return 0
        queued = {track.identity for track in self._queue}
        added = 0
        for track in tracks:
            if track.identity in queued:
                continue
            self._queue.append(track)
            queued.add(track.identity)
            added += 1
        return added

    def recent_identities(self, count: int) -> set[str]:
        return {track.identity for track in self._history[: max(0, count)]}

    def export_queue(self) -> list[dict[str, Any]]:
        """Queue as JSON-safe documents for an external document store."""
        return [track_to_document(track) for track in self._queue]

    def clear(self) -> None:
        self._queue.clear()
        self._context = None

    def __len__(self) -> int:
        return len(self._queue)
