"""Long-running asyncio loops with cooperative shutdown."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from taskhub.config import settings

logger = logging.getLogger("taskhub.background")


class BackgroundLoop:
    """
    One named background task driven until its shutdown event is set.

    ``start`` hands the loop coroutine a fresh ``asyncio.Event``; ``stop``
    sets it, waits up to the grace period, then cancels.
    """

    def __init__(self, name: str):
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, loop: Callable[[asyncio.Event], Awaitable[None]]) -> None:
        if self.running:
            logger.warning(f"{self.name} already running")
            return
        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(loop(self._shutdown_event), name=self.name)

    async def stop(self, timeout: Optional[float] = None) -> None:
        if timeout is None:
            timeout = settings.shutdown_timeout_seconds

        if self._shutdown_event:
            self._shutdown_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"{self.name} did not stop within {timeout}s, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._shutdown_event = None
