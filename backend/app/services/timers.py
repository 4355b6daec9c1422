"""Cancellable timers keyed by purpose.

Each purpose (``clock-check``, ``credit-reset``, ``expiry-check``,
``market-feed``, ``analysis``) owns at most one asyncio task. Scheduling a
purpose that is already running replaces the old task.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]

CLOCK_CHECK = "clock-check"
CREDIT_RESET = "credit-reset"
EXPIRY_CHECK = "expiry-check"
MARKET_FEED = "market-feed"
ANALYSIS = "analysis"


class TimerRegistry:
    """Owns the background tasks of one session."""

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule_periodic(
        self,
        purpose: str,
        interval: float,
        callback: TimerCallback,
        run_immediately: bool = True,
    ) -> asyncio.Task:
        """Run ``callback`` every ``interval`` seconds until cancelled.

        Errors raised by the callback are logged and the loop keeps going.
        """
        self.cancel(purpose)
        task = asyncio.create_task(
            self._periodic(purpose, interval, callback, run_immediately),
            name=f"timer:{purpose}",
        )
        self._tasks[purpose] = task
        logger.debug(f"Timer started: {purpose} every {interval}s")
        return task

    def schedule_task(self, purpose: str, coro: Awaitable[None]) -> asyncio.Task:
        """Track a one-shot coroutine under ``purpose``."""
        self.cancel(purpose)
        task = asyncio.ensure_future(coro)
        self._tasks[purpose] = task
        task.add_done_callback(lambda t, p=purpose: self._forget(p, t))
        return task

    def _forget(self, purpose: str, task: asyncio.Task) -> None:
        if self._tasks.get(purpose) is task:
            del self._tasks[purpose]

    async def _periodic(
        self,
        purpose: str,
        interval: float,
        callback: TimerCallback,
        run_immediately: bool,
    ) -> None:
        if not run_immediately:
            await asyncio.sleep(interval)
        while True:
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Timer {purpose} callback failed")
            await asyncio.sleep(interval)

    def is_active(self, purpose: str) -> bool:
        task = self._tasks.get(purpose)
        return task is not None and not task.done()

    def cancel(self, purpose: str) -> bool:
        """Cancel the timer for ``purpose``. Returns True if one was running."""
        task = self._tasks.pop(purpose, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Timer cancelled: {purpose}")
        return True

    def cancel_all(self) -> None:
        """Cancel every timer (session end)."""
        for purpose in list(self._tasks):
            self.cancel(purpose)

    @property
    def purposes(self) -> list[str]:
        return [p for p, t in self._tasks.items() if not t.done()]
