from __future__ import annotations

import asyncio
import logging
import time

from autoreply.application.ports.scheduler import SchedulerPort, TimerCallback, TimerHandle


logger = logging.getLogger(__name__)


class AsyncioTimer(TimerHandle):
    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None
        self._fired = False
        self._cancelled = False

    def cancel(self) -> bool:
        if self._fired or self._cancelled:
            return False
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        return True


class AsyncioScheduler(SchedulerPort):
    """Timers on the running event loop; each fire runs its callback as a task."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay_seconds: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        timer = AsyncioTimer()

        def _fire() -> None:
            if timer._cancelled:
                return
            timer._fired = True
            task = loop.create_task(self._run(callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        timer._handle = loop.call_later(max(0.0, delay_seconds), _fire)
        return timer

    async def _run(self, callback: TimerCallback) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Timer callback failed")

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
