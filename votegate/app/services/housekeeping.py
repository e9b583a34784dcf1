"""Background sweeps for in-memory state.

Rate limit entries and cached sessions are purged on fixed intervals by
fire-and-forget asyncio tasks. Request handling never waits on them.
"""

import asyncio
from typing import Callable, Optional

from votegate.app.core.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Runs a synchronous sweep every ``interval`` seconds.

    The first sweep happens one interval after ``start()``. An exception
    raised by the sweep is logged and the loop keeps going.
    """

    def __init__(self, name: str, sweep: Callable[[], object], interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self._sweep = sweep
        self._interval = interval
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background task."""
        if self._task is not None:
            logger.debug(f"Periodic task '{self.name}' already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"votegate-{self.name}")
        logger.info(f"Started periodic task '{self.name}' (interval: {self._interval}s)")

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the background task, cancelling it if it does not finish in time."""
        if self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Periodic task '{self.name}' did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info(f"Stopped periodic task '{self.name}'")

    def run_once(self) -> object:
        """Run the sweep immediately in the caller's context."""
        return self._sweep()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                # Normal case: interval elapsed
                pass
            else:
                break

            try:
                self._sweep()
            except Exception as e:
                logger.error(f"Error during periodic task '{self.name}': {e}")
