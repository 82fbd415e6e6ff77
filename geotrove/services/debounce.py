"""Debouncer — trailing-edge timer that is cancelled and replaced on every trigger.

Invariants:
    - At most one pending timer per Debouncer (no leakage across rapid events)
    - The callback runs with the arguments of the LAST trigger
    - cancel() is idempotent
"""

import logging
from typing import Any, Callable

from geotrove.core.boundary_protocols import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(
        self, scheduler: Scheduler, delay_ms: float, callback: Callable[..., Any],
    ):
        self._scheduler = scheduler
        self._delay_s = delay_ms / 1000
        self._callback = callback
        self._timer: TimerHandle | None = None
        self._args: tuple = ()
        self.fired = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self, *args: Any) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._args = args
        self._timer = self._scheduler.call_later(self._delay_s, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self.fired += 1
        self._callback(*self._args)
