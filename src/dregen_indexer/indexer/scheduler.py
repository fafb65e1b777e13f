"""Poll scheduler - fixed-interval ticks with an in-flight guard."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger(__name__)


class PollScheduler:
    """Runs ``tick`` every ``interval`` seconds until stopped.

    Ticks never overlap: a trigger that arrives while a tick is still
    running is skipped. ``stop()`` sets the cancellation token; the loop
    wakes from its wait immediately but lets an in-flight tick finish.
    Exceptions raised by ``tick`` end the loop and propagate from ``run()``.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[object]],
        interval: float,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._tick = tick
        self._interval = interval
        self._stop = stop_event or asyncio.Event()
        self._guard = asyncio.Lock()
        self._ticks_run = 0
        self._ticks_skipped = 0

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop

    @property
    def running_tick(self) -> bool:
        return self._guard.locked()

    @property
    def ticks_run(self) -> int:
        return self._ticks_run

    @property
    def ticks_skipped(self) -> int:
        return self._ticks_skipped

    def stop(self) -> None:
        self._stop.set()

    async def trigger(self) -> bool:
        """Run one tick now unless one is already in flight.

        Returns True if the tick ran, False if it was suppressed.
        """
        if self._guard.locked():
            self._ticks_skipped += 1
            log.warning("Previous tick still running, skipping this one")
            return False
        async with self._guard:
            await self._tick()
            self._ticks_run += 1
        return True

    async def run(self) -> None:
        """Tick immediately, then every interval, until stop() is called."""
        log.info("Polling every %.1fs", self._interval)
        while not self._stop.is_set():
            await self.trigger()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        log.info("Poll scheduler stopped after %d ticks", self._ticks_run)
