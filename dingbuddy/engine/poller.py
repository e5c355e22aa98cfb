"""Fixed-interval tick driver shared by the reminder, subscription and calendar loops."""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)


class PollLoop:
    """Run ``tick`` every ``interval`` seconds until ``stop_event`` is set.

    Each tick runs as its own task so the timer keeps its cadence. A tick
    that is still running when the next one is due causes that next one to
    be skipped, never queued. Setting the stop event halts the timer; a tick
    already in flight is allowed to finish.
    """

    def __init__(
        self,
        name: str,
        tick: Callable[[], Awaitable[None]],
        interval: float,
        stop_event: asyncio.Event,
    ):
        self.name = name
        self.tick = tick
        self.interval = interval
        self.stop_event = stop_event
        self._running = False
        self._current: asyncio.Task | None = None

    @property
    def is_ticking(self) -> bool:
        return self._running

    async def run_once(self) -> bool:
        """Run one tick unless one is already in flight. Returns False if skipped."""
        if self._running:
            logger.debug(f"{self.name}: previous tick still running, skipping")
            return False

        self._running = True
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"{self.name} tick failed: {e}", exc_info=True)
        finally:
            self._running = False
        return True

    async def run(self) -> None:
        """Drive ticks until stopped, then wait for any in-flight tick."""
        logger.info(f"{self.name} started (every {self.interval:g}s)")

        while not self.stop_event.is_set():
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self.stop_event.is_set():
                break

            if not self._running:
                self._current = asyncio.create_task(self.run_once())
            else:
                logger.debug(f"{self.name}: previous tick still running, skipping")

        if self._current is not None and not self._current.done():
            await self._current
        logger.info(f"{self.name} stopped")


def tick_interval(seconds: float | None, default: float, floor: float) -> float:
    """Interval in seconds, defaulted and raised to the floor."""
    if seconds is None:
        seconds = default
    return max(floor, float(seconds))


class TextSender(Protocol):
    """Anything that can push a text message to a user."""

    async def send_text_to_user(self, user_id: str, text: str) -> None:
        ...
