"""Nearby Fetcher — rate-limited lookups of collectibles around the user.

Invariants:
    - At most one request in flight; overlapping calls return None immediately
    - A new request is refused within cooldown_ms of the previous one unless forced
    - Upstream records pass through normalize_collectibles: swapped anchors are
      corrected, invalid or duplicate ones are logged and dropped
    - A failed request still starts the cooldown (no hammering a failing directory)
"""

import logging

from geotrove.core.boundary_protocols import CollectibleDirectory, Scheduler
from geotrove.core.coordinates import normalize_collectibles
from geotrove.core.domain_types import Collectible, CoordinateReason, UserPosition

logger = logging.getLogger(__name__)


class NearbyFetcher:
    def __init__(
        self,
        directory: CollectibleDirectory,
        scheduler: Scheduler,
        cooldown_ms: float = 3_000,
        radius_meters: float = 1_000.0,
    ):
        self._directory = directory
        self._scheduler = scheduler
        self._cooldown_ms = cooldown_ms
        self._radius_meters = radius_meters
        self._in_flight = False
        self._last_fetch_ms: float | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def cooling_down(self) -> bool:
        if self._last_fetch_ms is None:
            return False
        return self._scheduler.now() * 1000 - self._last_fetch_ms < self._cooldown_ms

    async def fetch(
        self, position: UserPosition, force: bool = False,
    ) -> list[Collectible] | None:
        """Usable collectibles near `position`, or None when the call was skipped."""
        if self._in_flight:
            logger.debug("Nearby fetch skipped: request already in flight")
            return None
        if not force and self.cooling_down():
            logger.debug("Nearby fetch skipped: cooldown active")
            return None

        self._in_flight = True
        self._last_fetch_ms = self._scheduler.now() * 1000
        try:
            raw = await self._directory.list_nearby(
                position.latitude, position.longitude, self._radius_meters,
            )
        finally:
            self._in_flight = False

        usable, rejected = normalize_collectibles(raw)
        for item, reason in rejected:
            why = "duplicate id" if reason == CoordinateReason.OK else reason.value
            logger.warning(
                f"Dropping collectible at ({item.latitude!r}, {item.longitude!r}): {why}",
                extra={"collectible_id": item.id, "error_code": "INVALID_COORDINATES"},
            )
        logger.info(
            f"Fetched {len(usable)} nearby collectible(s)",
            extra={"outcome": "fetched"},
        )
        return usable
