#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
RepeatingTimer -- calls a function once immediately, then every `interval` seconds until cancelled.
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .pkg_logging import logger

TimerCallback = Callable[[], None]

class RepeatingTimer:
    """A periodic asyncio timer with an immediate first tick.

    The first tick runs synchronously inside start(); later ticks run on a background task.
    Ticks should be cheap: the callback is synchronous and runs on the event loop thread.
    An exception raised by the callback is logged and does not stop the timer.

    cancel() is idempotent and may be called from inside a tick.
    """

    interval: float
    """The time (in seconds) between ticks."""

    callback: TimerCallback

    name: str

    task: Optional[asyncio.Task[None]] = None
    """The task that runs ticks after the first one. None until start() is called."""

    cancelled: bool = False

    def __init__(self, interval: float, callback: TimerCallback, name: Optional[str]=None):
        if interval <= 0.0:
            raise ValueError(f"Timer interval must be positive: {interval}")
        self.interval = interval
        self.callback = callback
        self.name = "RepeatingTimer" if name is None else name

    def start(self) -> None:
        """Ticks once, then schedules periodic ticks. Must be called with a running event loop."""
        if self.task is not None:
            raise RuntimeError(f"{self.name} already started")
        if self.cancelled:
            return
        loop = asyncio.get_running_loop()
        self.tick()
        if not self.cancelled:
            self.task = loop.create_task(self._run())

    def tick(self) -> None:
        """Invokes the callback once."""
        try:
            self.callback()
        except Exception as e:
            logger.warning(f"{self.name}: tick raised exception: {e}")

    async def _run(self) -> None:
        logger.debug(f"{self.name} task starting, ticking every {self.interval} seconds")
        try:
            while not self.cancelled:
                await asyncio.sleep(self.interval)
                if self.cancelled:
                    break
                self.tick()
        except asyncio.CancelledError:
            logger.debug(f"{self.name} task cancelled; exiting")
            raise
        logger.debug(f"{self.name} task exiting")

    def cancel(self) -> None:
        """Stops further ticks."""
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()

    async def wait_done(self) -> None:
        """Waits for the background task to finish after cancel()."""
        if self.task is not None:
            await asyncio.wait([self.task])

    @property
    def running(self) -> bool:
        return self.task is not None and not self.cancelled
