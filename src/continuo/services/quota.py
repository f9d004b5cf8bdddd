"""Quota cooldown and usage ledger for the primary resolution provider."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_S = 3600.0
DEFAULT_DAILY_LIMIT = 10_000


def next_local_midnight(now: float) -> float:
    """Return the epoch timestamp of the next local midnight after `now`."""
    current = datetime.fromtimestamp(now)
    tomorrow = datetime.combine(current.date() + timedelta(days=1), datetime.min.time())
    return tomorrow.timestamp()


class QuotaCooldown:
    """Time window during which the primary provider must not be called.

    ``policy="rolling"`` blocks for `duration_s` after the trip;
    ``policy="midnight"`` blocks until the next local midnight.
    """

    def __init__(
        self,
        *,
        policy: str = "rolling",
        duration_s: float = DEFAULT_COOLDOWN_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if policy not in {"rolling", "midnight"}:
            raise ValueError(f"Unknown cooldown policy: {policy!r}")
        self._policy = policy
        self._duration_s = max(0.0, float(duration_s))
        self._clock = clock
        self._until: float | None = None

    @property
    def policy(self) -> str:
        return self._policy

    @property
    def until(self) -> float | None:
        return self._until

    def trip(self) -> float:
        """Start (or extend) the cooldown; returns its end timestamp."""
        now = self._clock()
        if self._policy == "midnight":
            until = next_local_midnight(now)
        else:
            until = now + self._duration_s
        if self._until is None or until > self._until:
            self._until = until
        logger.warning(
            "Primary resolution provider in quota cooldown for %.0fs (policy=%s)",
            self._until - now,
            self._policy,
        )
        return self._until

    def active(self) -> bool:
        if self._until is None:
            return False
        if self._clock() >= self._until:
            logger.info("Quota cooldown elapsed; primary provider re-enabled")
            self._until = None
            return False
        return True

    def remaining_s(self) -> float:
        if not self.active() or self._until is None:
            return 0.0
        return max(0.0, self._until - self._clock())

    def clear(self) -> None:
        self._until = None


@dataclass(frozen=True)
class QuotaUsageStats:
    day: date
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaUsage:
    """Per-local-day tally of quota units spent on the primary provider."""

    def __init__(
        self,
        *,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limit = daily_limit
        self._clock = clock
        self._day = self._today()
        self._used = 0

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock()).date()

    def _roll(self) -> None:
        today = self._today()
        if today != self._day:
            self._day = today
            self._used = 0

    def record(self, cost: int) -> None:
        self._roll()
        self._used += max(0, int(cost))
        if self._used >= self._limit:
            logger.warning(
                "Estimated quota usage %d has reached the daily limit %d",
                self._used,
                self._limit,
            )

    def stats(self) -> QuotaUsageStats:
        self._roll()
        return QuotaUsageStats(day=self._day, used=self._used, limit=self._limit)
