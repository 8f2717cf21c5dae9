"""Single-flight fixed-interval polling loop.

A cycle only starts once the previous one has finished: the loop awaits the
cycle, then waits out the interval (or a shutdown signal) before the next.
Overlapping cycles are impossible, so no in-flight flag or lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PollingLoop:
    """Run ``cycle`` every ``interval_seconds`` until shutdown.

    Args:
        name: Label used in log lines.
        cycle: Coroutine function performing one poll; returns the number of
            messages it handled.
        interval_seconds: Delay between the end of one cycle and the start
            of the next.
    """

    def __init__(
        self,
        name: str,
        cycle: Callable[[], Awaitable[int]],
        interval_seconds: float,
    ) -> None:
        self.name = name
        self._cycle = cycle
        self.interval_seconds = interval_seconds
        self.cycles_run = 0
        self.messages_handled = 0

    async def run_cycle(self) -> int:
        """Run one cycle, logging (not raising) whatever it throws."""
        self.cycles_run += 1
        try:
            handled = await self._cycle()
        except Exception:  # Intentionally broad: worker loop retries on the next tick
            logger.exception("%s poll cycle failed; retrying in %.1fs", self.name, self.interval_seconds)
            return 0
        self.messages_handled += handled
        return handled

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Poll until ``shutdown_event`` is set or the task is cancelled."""
        logger.info("%s started (interval=%.1fs)", self.name, self.interval_seconds)
        try:
            while not shutdown_event.is_set():
                await self.run_cycle()
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.interval_seconds)
                    break  # shutdown requested
                except TimeoutError:
                    pass  # normal interval elapsed
        except asyncio.CancelledError:
            logger.info("%s cancelled", self.name)
            raise
        finally:
            logger.info("%s stopped (%d messages handled)", self.name, self.messages_handled)
