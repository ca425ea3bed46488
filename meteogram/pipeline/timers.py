"""Cancellable asyncio timers with replace-on-reconfigure semantics."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class RepeatingTimer:
    """Runs an async callback every ``interval`` seconds until cancelled.

    Only one schedule exists at a time: ``replace()`` cancels the running
    schedule before creating the new one, so a reconfiguration never
    leaves an orphaned timer behind.
    """

    def __init__(self, name: str = "refresh"):
        self.name = name
        self.interval: float | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def replace(self, interval: float | None, callback: TimerCallback) -> None:
        """Cancel the current schedule and, if ``interval`` is set, start a new one."""
        await self.cancel()
        if interval is None or interval <= 0:
            return
        self.interval = interval
        self._task = asyncio.create_task(self._run(interval, callback))
        logger.info("Timer %s scheduled every %.1fs", self.name, interval)

    async def cancel(self) -> None:
        task, self._task = self._task, None
        self.interval = None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        logger.debug("Timer %s cancelled", self.name)

    async def _run(self, interval: float, callback: TimerCallback) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer %s callback failed", self.name)
