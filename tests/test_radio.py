"""Tests for radio strategies and the recommendation engine."""

from __future__ import annotations

import asyncio

import pytest

from continuo.errors import RecommendationExhaustedError
from continuo.models import Track
from continuo.services.radio import (
    RadioContext,
    RecommendationEngine,
    Strategy,
    exclude_recent,
    related_media_strategy,
)


def _run(coro):
    """Run async radio call from sync test functions."""
    return asyncio.run(coro)


def _track(n: int, playable_id: str | None = None) -> Track:
    return Track(identity=f"deezer_{n}", title=f"Song {n}", artist="Artist", playable_id=playable_id)


class CountingStrategy:
    def __init__(self, name: str, result: list[Track] | Exception) -> None:
        self.name = name
        self.result = result
        self.calls = 0

    async def fetch(self, context: RadioContext) -> list[Track]:
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return list(self.result)

    def strategy(self) -> Strategy:
        return Strategy(self.name, self.fetch)


async def _accept_all(batch: list[Track], name: str) -> bool:
    return True


def test_exhausts_after_each_strategy_once() -> None:
    counters = [CountingStrategy(name, []) for name in ("a", "b", "c", "d")]
    engine = RecommendationEngine([counter.strategy() for counter in counters])

    with pytest.raises(RecommendationExhaustedError):
        _run(engine.continue_playback(RadioContext(_track(1)), _accept_all))

    assert [counter.calls for counter in counters] == [1, 1, 1, 1]
    assert engine.status == "exhausted"
    engine.reset()
    assert engine.status == "idle"


def test_first_non_empty_strategy_wins() -> None:
    failing = CountingStrategy("related-media", RuntimeError("boom"))
    empty = CountingStrategy("similar-track", [])
    good = CountingStrategy("same-artist", [_track(2), _track(3)])
    unused = CountingStrategy("chart", [_track(4)])
    engine = RecommendationEngine([s.strategy() for s in (failing, empty, good, unused)])
    accepted: list[tuple[list[str], str]] = []

    async def accept(batch: list[Track], name: str) -> bool:
        accepted.append(([track.identity for track in batch], name))
        return True

    name = _run(engine.continue_playback(RadioContext(_track(1)), accept))

    assert name == "same-artist"
    assert accepted == [(["deezer_2", "deezer_3"], "same-artist")]
    assert unused.calls == 0
    assert engine.status == "success"


def test_refused_batch_moves_to_next_strategy() -> None:
    first = CountingStrategy("one", [_track(2)])
    second = CountingStrategy("two", [_track(3)])
    engine = RecommendationEngine([first.strategy(), second.strategy()])

    async def accept(batch: list[Track], name: str) -> bool:
        return name == "two"

    assert _run(engine.continue_playback(RadioContext(_track(1)), accept)) == "two"


def test_recent_history_is_excluded_from_batches() -> None:
    history = tuple(_track(n) for n in range(1, 7))
    candidates = [_track(2), _track(6), _track(7)]

    assert [t.identity for t in exclude_recent(candidates, history, 5)] == ["deezer_6", "deezer_7"]
    assert exclude_recent([_track(1), _track(2)], history, 5) == [_track(1), _track(2)]


def test_related_media_needs_playable_current_and_history() -> None:
    calls: list[str] = []

    class Related:
        async def related(self, video_id: str, limit: int = 20) -> list[Track]:
            calls.append(video_id)
            return [_track(9)]

    strategy = related_media_strategy(Related())

    assert _run(strategy.fetch(RadioContext(_track(1), history=(_track(0),)))) == []
    assert _run(strategy.fetch(RadioContext(_track(1, "dQw4w9WgXcQ")))) == []
    assert _run(
        strategy.fetch(RadioContext(_track(1, "dQw4w9WgXcQ"), history=(_track(0),)))
    ) == [_track(9)]
    assert calls == ["dQw4w9WgXcQ"]


def test_autoplay_seed_uses_seed_strategy() -> None:
    seed = CountingStrategy("similar-track", [_track(1), _track(2)])
    engine = RecommendationEngine([], seed_strategy=seed.strategy(), recent_exclusion=5)

    context = RadioContext(_track(5), history=(_track(1),))
    assert _run(engine.autoplay_seed(context)) == [_track(2)]
    assert _run(RecommendationEngine([]).autoplay_seed(context)) == []


def test_related_media_falls_back_to_recent_history_seeds() -> None:
    calls: list[str] = []
    answers = {"bbbbbbbbbbb": [_track(8)]}

    class Related:
        async def related(self, video_id: str, limit: int = 20) -> list[Track]:
            calls.append(video_id)
            return list(answers.get(video_id, []))

    strategy = related_media_strategy(Related(), max_seeds=2)
    history = (
        _track(1, "aaaaaaaaaaa"),
        _track(2),
        _track(3, "bbbbbbbbbbb"),
        _track(4, "ccccccccccc"),
    )

    assert _run(strategy.fetch(RadioContext(_track(1, "aaaaaaaaaaa"), history=history))) == [
        _track(8)
    ]
    assert calls == ["aaaaaaaaaaa", "bbbbbbbbbbb"]

    calls.clear()
    answers.clear()
    assert _run(strategy.fetch(RadioContext(None, history=history))) == []
    assert calls == ["aaaaaaaaaaa", "bbbbbbbbbbb"]
