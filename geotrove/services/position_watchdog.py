"""Position Watchdog — re-asserts the committed draft position against surface drift.

Invariants:
    - Armed by start() (drag end), disarmed ONLY by stop() (drag start, submit, cancel)
    - Polling runs every interval_ms for at most window_ms after start()
    - notify_external_mutation() corrects immediately for as long as it is armed,
      including after the polling window has elapsed
    - A correction happens only when drift exceeds the 1e-6° tolerance
"""

import logging

from geotrove.core.boundary_protocols import RenderSurface, Scheduler, TimerHandle
from geotrove.core.coordinates import same_position

logger = logging.getLogger(__name__)


class PositionWatchdog:
    def __init__(
        self, surface: RenderSurface, scheduler: Scheduler,
        interval_ms: float, window_ms: float,
    ):
        self._surface = surface
        self._scheduler = scheduler
        self._interval_s = interval_ms / 1000
        self._window_s = window_ms / 1000
        self._handle: object | None = None
        self._target: tuple[float, float] | None = None
        self._deadline: float = 0.0
        self._timer: TimerHandle | None = None
        self.corrections = 0

    @property
    def armed(self) -> bool:
        return self._target is not None

    @property
    def polling(self) -> bool:
        return self._timer is not None

    def start(self, handle: object, lat: float, lng: float) -> None:
        self.stop()
        self._handle = handle
        self._target = (lat, lng)
        self._deadline = self._scheduler.now() + self._window_s
        self._timer = self._scheduler.call_later(self._interval_s, self._tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._handle = None
        self._target = None

    def notify_external_mutation(self) -> bool:
        """The surface moved the marker on its own — correct right away."""
        if not self.armed:
            return False
        return self.correct()

    def correct(self) -> bool:
        if self._target is None or self._handle is None:
            return False
        lat, lng = self._target
        current_lat, current_lng = self._surface.marker_position(self._handle)
        if same_position(current_lat, current_lng, lat, lng):
            return False
        self._surface.move_marker(self._handle, lat, lng)
        self.corrections += 1
        logger.debug(
            f"Draft pin drifted to ({current_lat:.8f}, {current_lng:.8f}); "
            f"restored ({lat:.8f}, {lng:.8f})",
        )
        return True

    def _tick(self) -> None:
        self._timer = None
        if not self.armed:
            return
        self.correct()
        if self._scheduler.now() < self._deadline:
            self._timer = self._scheduler.call_later(self._interval_s, self._tick)
