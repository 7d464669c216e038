"""Periodic refresh triggers."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[object]]


class PeriodicTrigger:
    """Runs a coroutine function every ``interval`` seconds on the event loop.

    An interval of zero (or less) disables the trigger. Re-arming always
    cancels the running task first.
    """

    def __init__(self, name: str, tick: Tick) -> None:
        self.name = name
        self.tick = tick
        self.interval = 0.0
        self._task: asyncio.Task[None] | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, interval: float) -> None:
        """Cancel the current timer and arm a new one.

        Args:
            interval: Seconds between ticks. Zero disables the trigger.
        """
        self.cancel()
        self.interval = interval
        if interval <= 0:
            logger.debug(f"{self.name} trigger disabled")
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"{self.name} trigger armed every {interval}s")

    def cancel(self) -> None:
        """Stop the trigger. Safe to call when it is not armed."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"{self.name} tick failed")


class RefreshScheduler:
    """The active-entry refresh and the lookup data refresh triggers."""

    def __init__(self, refresh_status: Tick, refresh_data: Tick) -> None:
        """Initialize scheduler.

        Args:
            refresh_status: Short-period tick, refreshes the active entry.
            refresh_data: Long-period tick, refreshes projects/tasks/tags.
        """
        self.status_trigger = PeriodicTrigger("status-refresh", refresh_status)
        self.data_trigger = PeriodicTrigger("data-refresh", refresh_data)

    def schedule(self, status_interval_seconds: float, data_interval_minutes: float) -> None:
        """(Re)arm both triggers. Must be called from a running event loop."""
        self.status_trigger.schedule(status_interval_seconds)
        self.data_trigger.schedule(data_interval_minutes * 60)

    def cancel(self) -> None:
        """Cancel both triggers."""
        self.status_trigger.cancel()
        self.data_trigger.cancel()
