"""
Fixed-Rate Scheduler

Provides ScheduledLoop class that fires an async callback at a fixed
rate, accounting for callback execution time to prevent drift.

Unlike asyncio.sleep()-based loops, this scheduler:
- Schedules relative to the original start, not the last finish
- Tracks cumulative drift
- Skips missed intervals instead of queueing them
- Stops with a bounded grace period for an in-flight callback

Usage:
    async def my_callback():
        # Do work...
        pass

    scheduler = ScheduledLoop(300.0, my_callback, name="config-refresh")
    await scheduler.start()

    # Later:
    await scheduler.stop(grace_s=10.0)
"""

import asyncio
import time
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Fixed-rate interval scheduler.

    The first execution happens one interval after start. If a callback
    runs long, the following run is still scheduled on the original grid;
    intervals that were missed entirely are skipped.

    Attributes:
        interval: The interval in seconds between executions
        callback: Async function to call each interval
        skipped_count: Number of intervals skipped (to catch up)
        execution_count: Number of successful executions
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._in_callback = False
        self._task: asyncio.Task | None = None

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scheduled loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")

    async def stop(self, grace_s: float = 10.0) -> None:
        """
        Stop the scheduled loop.

        An idle loop is cancelled immediately. A callback already running
        gets up to grace_s seconds to finish before it is cancelled.
        """
        self._running = False
        task, self._task = self._task, None
        if task is None or task.done():
            return

        if self._in_callback and grace_s > 0:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=grace_s)
                return
            except asyncio.TimeoutError:
                logger.warning(
                    f"Scheduler '{self.name}' callback still running after {grace_s}s, cancelling"
                )

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        """Main loop that fires callback at a fixed rate."""
        self._next_run = time.monotonic() + self.interval

        while self._running:
            sleep_duration = self._next_run - time.monotonic()
            if sleep_duration > 0:
                await asyncio.sleep(sleep_duration)

            if not self._running:
                break

            # Track drift (how late we are)
            drift = time.monotonic() - self._next_run
            self._drift_total += max(0, drift)
            self._last_drift_ms = drift * 1000

            self._in_callback = True
            try:
                start = time.monotonic()
                await self.callback()
                self._last_execution_time = time.monotonic() - start
                self._execution_count += 1
            except Exception as e:
                logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)
            finally:
                self._in_callback = False

            # Skip missed intervals to catch up (don't queue up missed executions)
            now = time.monotonic()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # First skip is expected (the one we just executed)
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    @property
    def skipped_count(self) -> int:
        """Number of intervals skipped to catch up."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
