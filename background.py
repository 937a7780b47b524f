"""Cancellable periodic background tasks.

Used for the token/code expiry sweep and the idle-session sweep. Tasks are
started and stopped by the application lifespan.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``func`` every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, func: Callable[[], Union[Awaitable, None]]):
        self.name = name
        self.interval = interval
        self.func = func
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"[STARTUP] Background task {self.name} started (every {self.interval}s)")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    async def run_once(self) -> None:
        """Run one iteration. Errors are logged; the loop keeps going."""
        try:
            result = self.func()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[SWEEP] Background task {self.name} failed")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"[SHUTDOWN] Background task {self.name} stopped")
