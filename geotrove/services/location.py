"""Location Service — one-shot fixes and watch subscriptions over a LocationProvider.

Invariants:
    - Every fix leaving this service has validated (swap-corrected) coordinates
    - A one-shot request never outlives timeout_ms: the provider call is bounded
      by asyncio.wait_for even if the provider ignores its own timeout
    - Provider failures surface as typed errors:
        PERMISSION_DENIED    → LocationPermissionError
        POSITION_UNAVAILABLE → LocationUnavailableError(POSITION_UNAVAILABLE)
        TIMEOUT / wait_for   → LocationUnavailableError(TIMEOUT)
    - At most one active watch per service

Design Decisions:
    - Errors are raised, not notified: the map session decides whether a missing
      fix is worth a notice (it is) and keeps the map usable for manual pins
"""

import asyncio
import logging
from typing import Callable

from geotrove.core.boundary_protocols import LocationProvider, LocationProviderError
from geotrove.core.coordinates import validate_coordinates
from geotrove.core.domain_types import LocationErrorCode, UserPosition
from geotrove.core.errors import LocationPermissionError, LocationUnavailableError

logger = logging.getLogger(__name__)


def _normalize(position: UserPosition) -> UserPosition | None:
    result = validate_coordinates(position.latitude, position.longitude)
    if not result.valid:
        return None
    if result.corrected:
        logger.warning(
            f"Location fix had swapped coordinates ({position.latitude}, {position.longitude})",
            extra={"error_code": "INVALID_COORDINATES"},
        )
    return UserPosition(
        latitude=result.latitude, longitude=result.longitude,
        accuracy=position.accuracy, timestamp=position.timestamp,
    )


class LocationService:
    def __init__(
        self,
        provider: LocationProvider,
        high_accuracy: bool = True,
        timeout_ms: int = 10_000,
        max_age_ms: int = 300_000,
    ):
        self._provider = provider
        self._high_accuracy = high_accuracy
        self._timeout_ms = timeout_ms
        self._max_age_ms = max_age_ms
        self._watch_id: int | None = None

    @property
    def watching(self) -> bool:
        return self._watch_id is not None

    async def current_position(self) -> UserPosition:
        """Request one fix. Raises LocationPermissionError / LocationUnavailableError."""
        try:
            raw = await asyncio.wait_for(
                self._provider.get_current_position(
                    self._high_accuracy, self._timeout_ms, self._max_age_ms,
                ),
                timeout=self._timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Location request timed out after {self._timeout_ms}ms",
                extra={"error_code": LocationErrorCode.TIMEOUT},
            )
            raise LocationUnavailableError(LocationErrorCode.TIMEOUT) from e
        except LocationProviderError as e:
            logger.warning(
                f"Location provider failed: {e}", extra={"error_code": e.code},
            )
            if e.code == LocationErrorCode.PERMISSION_DENIED:
                raise LocationPermissionError() from e
            raise LocationUnavailableError(e.code) from e

        position = _normalize(raw)
        if position is None:
            logger.warning(
                f"Location provider returned invalid coordinates "
                f"({raw.latitude!r}, {raw.longitude!r})",
                extra={"error_code": "INVALID_COORDINATES"},
            )
            raise LocationUnavailableError(LocationErrorCode.POSITION_UNAVAILABLE)
        return position

    def start_watch(self, callback: Callable[[UserPosition], None]) -> None:
        """Subscribe to position updates. Invalid fixes are dropped."""
        self.stop_watch()

        def on_fix(raw: UserPosition) -> None:
            position = _normalize(raw)
            if position is None:
                logger.debug(
                    f"Dropping invalid watched fix ({raw.latitude!r}, {raw.longitude!r})",
                )
                return
            callback(position)

        self._watch_id = self._provider.watch_position(on_fix)
        logger.info(f"Location watch started (id {self._watch_id})")

    def stop_watch(self) -> None:
        if self._watch_id is None:
            return
        self._provider.clear_watch(self._watch_id)
        logger.info(f"Location watch stopped (id {self._watch_id})")
        self._watch_id = None
