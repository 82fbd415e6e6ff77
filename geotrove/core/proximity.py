"""Proximity Index — cached geofence results keyed by collectible id.

Invariants:
    - Results are recomputed for every collectible ONLY when the position changes
    - A re-render (update_collectibles with the same position) evaluates only ids
      that have no cached result yet or whose anchor moved
    - Ids absent from the latest collectible set are dropped from the cache

Design Decisions:
    - Dataclass with explicit update methods: pure, deterministic, testable without mocks
    - Position equality uses the same 1e-6° tolerance as drift detection
"""

from dataclasses import dataclass, field

from geotrove.core.coordinates import same_position
from geotrove.core.domain_types import Collectible, CollectibleId, UserPosition
from geotrove.core.geofence import GeofenceResult, check_collectible


def _anchor_of(collectible: Collectible) -> tuple[float, float, float]:
    return (collectible.latitude, collectible.longitude, collectible.radius_meters)


@dataclass
class ProximityIndex:
    position: UserPosition | None = None
    results: dict[CollectibleId, GeofenceResult] = field(default_factory=dict)
    anchors: dict[CollectibleId, tuple[float, float, float]] = field(default_factory=dict)
    evaluations: int = 0

    def _evaluate(self, position: UserPosition, collectible: Collectible) -> None:
        self.results[collectible.id] = check_collectible(position, collectible)
        self.anchors[collectible.id] = _anchor_of(collectible)
        self.evaluations += 1

    def update_position(
        self, position: UserPosition, collectibles: list[Collectible],
    ) -> bool:
        """Record a new fix. Returns True when results were recomputed."""
        if self.position is not None and same_position(
            self.position.latitude, self.position.longitude,
            position.latitude, position.longitude,
        ):
            self.position = position
            self.update_collectibles(collectibles)
            return False

        self.position = position
        self.results = {}
        self.anchors = {}
        for collectible in collectibles:
            self._evaluate(position, collectible)
        return True

    def update_collectibles(self, collectibles: list[Collectible]) -> None:
        """Sync the cache with a new collectible set without moving the user."""
        keep = {c.id for c in collectibles}
        self.results = {k: v for k, v in self.results.items() if k in keep}
        self.anchors = {k: v for k, v in self.anchors.items() if k in keep}
        position = self.position
        if position is None:
            return
        for collectible in collectibles:
            if self.anchors.get(collectible.id) != _anchor_of(collectible):
                self._evaluate(position, collectible)

    def result_for(self, collectible_id: CollectibleId) -> GeofenceResult | None:
        return self.results.get(collectible_id)

    @property
    def collectable_ids(self) -> list[CollectibleId]:
        return [cid for cid, r in self.results.items() if r.within_radius]
