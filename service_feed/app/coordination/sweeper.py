"""
Cooperatively scheduled periodic sweeps for coordination primitives.
"""

import asyncio
from typing import Callable, Optional

from shared.logging import get_logger


class PeriodicSweeper:
    """Runs a synchronous sweep callback on a fixed interval.

    The callback runs as a single event-loop step, so it can never interleave
    with a concurrent read of the structure it sweeps.
    """

    def __init__(self, name: str, interval_seconds: float, sweep: Callable[[], int]):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._sweep = sweep
        self.logger = get_logger(f"feed.sweeper.{name}")

        self._task: Optional[asyncio.Task] = None
        self.running = False
        self.runs = 0

    def start(self) -> None:
        """Start sweeping on the running event loop. Idempotent."""
        if self.running:
            return
        self.running = True
        self._task = asyncio.get_running_loop().create_task(self._sweep_loop())
        self.logger.info("Sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop sweeping and wait for the loop task to finish."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self.logger.info("Sweeper stopped", runs=self.runs)

    async def _sweep_loop(self):
        """Main sweep loop."""
        while self.running:
            try:
                await asyncio.sleep(self.interval_seconds)
                removed = self._sweep()
                self.runs += 1
                if removed:
                    self.logger.debug("Sweep removed entries", removed=removed)

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("Error in sweep loop", error=str(e))
