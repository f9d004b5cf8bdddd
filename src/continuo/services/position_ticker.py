"""Cancellable periodic read of the backend transport position."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress

logger = logging.getLogger(__name__)


class PositionTicker:
    """Polls `read_time` every `interval_s` and forwards it to `on_time`.

    At most one polling task exists at a time; `stop` cancels and awaits it.
    """

    def __init__(
        self,
        *,
        interval_s: float,
        read_time: Callable[[], Awaitable[float]],
        on_time: Callable[[float], Awaitable[None]],
    ) -> None:
        self._interval_s = max(0.05, min(1.0, float(interval_s)))
        self._read_time = read_time
        self._on_time = on_time
        self._task: asyncio.Task[None] | None = None
        self.starts = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self.starts += 1
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        with suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                current = await self._read_time()
            except Exception:  # pragma: no cover - backend safety net
                logger.debug("Position read failed", exc_info=True)
                continue
            await self._on_time(current)
