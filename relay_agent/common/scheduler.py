"""
Fixed-Interval Scheduler

Provides ScheduledLoop, which fires an async callback once immediately
and then at fixed intervals measured start-to-start.

Unlike `while True: await callback(); await asyncio.sleep(interval)`:
- Ticks land on start + k * interval, so slow callbacks don't push the schedule
- A tick that arrives while the previous callback is still running is
  skipped, never queued
- Callback failures are logged and never end the loop
- stop() only cancels the timer; a callback already running finishes

Usage:
    async def poll():
        ...

    scheduler = ScheduledLoop(60.0, poll, name="poller")
    await scheduler.start()

    # Later:
    scheduler.stop()
    await scheduler.wait_idle(timeout=30)
"""

import asyncio
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


class ScheduledLoop:
    """
    Interval scheduler with non-overlapping callbacks.

    The timer task owns the schedule and is the only thing that
    launches callbacks. Each callback runs in its own task so the
    timer keeps ticking while it is in flight.

    Attributes:
        interval: Seconds between the starts of consecutive callbacks
        callback: Async function to call each interval
        name: Name for logging/identification
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._cycle: asyncio.Task | None = None

        # Observability metrics
        self._drift_total: float = 0
        self._skipped_count: int = 0
        self._execution_count: int = 0
        self._failure_count: int = 0
        self._last_execution_time: float = 0
        self._last_drift_ms: float = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> bool:
        """True while a callback is executing"""
        return self._cycle is not None and not self._cycle.done()

    async def start(self) -> None:
        """Start the loop; the first callback fires immediately."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduler-{self.name}")

    def stop(self) -> None:
        """
        Stop scheduling new callbacks.

        Cancels the pending timer synchronously. A callback that is
        already running is left to finish; use wait_idle() to await it.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """
        Wait for an in-flight callback to finish.

        Returns:
            True if no callback is running on return
        """
        cycle = self._cycle
        if cycle is None or cycle.done():
            return True

        done, _ = await asyncio.wait({cycle}, timeout=timeout)
        return cycle in done

    def cancel_in_flight(self) -> None:
        """Cancel a callback that is still running (used after a shutdown grace period)."""
        if self._cycle is not None and not self._cycle.done():
            logger.warning(f"Scheduler '{self.name}' cancelling in-flight callback")
            self._cycle.cancel()

    async def _run(self) -> None:
        """Timer loop: launch a callback on each tick unless one is in flight."""
        loop = asyncio.get_running_loop()
        self._next_run = loop.time()

        while self._running:
            sleep_duration = self._next_run - loop.time()
            if sleep_duration > 0:
                try:
                    await asyncio.sleep(sleep_duration)
                except asyncio.CancelledError:
                    break

            if not self._running:
                break

            # Track drift (how late the tick fired)
            drift = max(0.0, loop.time() - self._next_run)
            self._drift_total += drift
            self._last_drift_ms = drift * 1000

            if self.in_flight:
                self._skipped_count += 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped a tick: previous callback still running"
                )
            else:
                self._cycle = asyncio.create_task(
                    self._execute(), name=f"scheduler-{self.name}-cycle"
                )

            # Schedule next run; ticks missed while the loop was blocked are dropped
            self._next_run += self.interval
            now = loop.time()
            while self._next_run <= now:
                self._next_run += self.interval
                self._skipped_count += 1

    async def _execute(self) -> None:
        """Run one callback, confining any failure to this tick."""
        # stop() may land between the tick and this task's first step
        if not self._running:
            return

        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            await self.callback()
            self._execution_count += 1
        except Exception as e:
            self._failure_count += 1
            logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)
        finally:
            self._last_execution_time = loop.time() - start

    @property
    def drift_seconds(self) -> float:
        """Total accumulated drift in seconds."""
        return self._drift_total

    @property
    def drift_ms(self) -> float:
        """Most recent drift in milliseconds."""
        return self._last_drift_ms

    @property
    def skipped_count(self) -> int:
        """Number of ticks skipped because a callback was in flight."""
        return self._skipped_count

    @property
    def execution_count(self) -> int:
        """Total number of successful executions."""
        return self._execution_count

    @property
    def failure_count(self) -> int:
        """Callbacks that raised."""
        return self._failure_count

    @property
    def last_execution_time(self) -> float:
        """Duration of last callback execution in seconds."""
        return self._last_execution_time

    def get_stats(self) -> dict:
        """Get scheduler statistics for observability."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "in_flight": self.in_flight,
            "execution_count": self._execution_count,
            "failure_count": self._failure_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
