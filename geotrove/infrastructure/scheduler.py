"""Asyncio Scheduler — production Scheduler backed by the running event loop.

Invariants:
    - now() is the loop's monotonic clock (seconds)
    - call_later returns asyncio.TimerHandle, whose cancel() is idempotent
"""

import asyncio
from typing import Callable


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(
        self, delay_s: float, callback: Callable[[], None],
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_s, 0.0), callback)
