"""Marker Registry — per-map-session record of every live render handle.

Invariants:
    - At most one live Marker per key (collectible id, draft key, or cluster key)
    - Marker.state is written ONLY by MarkerRegistry.apply via the transition table
    - apply() never raises for a rejected transition: it returns a
      ConcurrencyViolation for the caller to log and discard
    - REMOVED markers are dropped from the registry in the same call
    - teardown() empties the registry and hands every marker back for release

Design Decisions:
    - Explicit object owned by the map session, passed by reference: no module-level
      registries that outlive a view
    - Render handles are opaque (object): the registry never touches the surface
"""

from dataclasses import dataclass, field

from geotrove.core.domain_types import (
    DRAFT_MARKER_KEY, Collectible, MarkerEvent, MarkerKind, MarkerOwner, MarkerState,
)
from geotrove.core.errors import ConcurrencyViolation
from geotrove.core.marker_state import (
    is_dragging, is_live, is_locked, is_protected, next_state,
)


@dataclass
class Marker:
    """One render handle and its lifecycle state."""
    key: str
    kind: MarkerKind
    latitude: float
    longitude: float
    handle: object | None = None
    collectible: Collectible | None = None
    member_ids: tuple[str, ...] = ()
    last_updated_ms: float = 0.0
    _state: MarkerState = field(default=MarkerState.ABSENT, repr=False)

    @property
    def state(self) -> MarkerState:
        return self._state

    @property
    def is_draft(self) -> bool:
        return self.kind == MarkerKind.DRAFT

    @property
    def locked(self) -> bool:
        return is_locked(self._state)

    @property
    def protected(self) -> bool:
        return is_protected(self._state)

    @property
    def dragging(self) -> bool:
        return is_dragging(self._state)

    @property
    def live(self) -> bool:
        return is_live(self._state)

    @property
    def fingerprint(self) -> tuple | None:
        if self.collectible is not None:
            return self.collectible.fingerprint
        if self.kind == MarkerKind.CLUSTER:
            return self.member_ids
        return None


@dataclass
class MarkerRegistry:
    """Registry for one map instance. Owned by MapSession."""
    markers: dict[str, Marker] = field(default_factory=dict)

    def get(self, key: str) -> Marker | None:
        return self.markers.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.markers

    def __len__(self) -> int:
        return len(self.markers)

    def register(self, marker: Marker) -> None:
        """Add a marker in state ABSENT. A live marker with the same key must be removed first."""
        existing = self.markers.get(marker.key)
        if existing is not None and existing.live:
            raise ValueError(f"Live marker already registered for {marker.key}")
        self.markers[marker.key] = marker

    def apply(
        self, key: str, event: MarkerEvent, owner: MarkerOwner,
        now_ms: float | None = None,
    ) -> ConcurrencyViolation | None:
        """Drive one transition. Returns a violation instead of raising."""
        marker = self.markers.get(key)
        if marker is None:
            return ConcurrencyViolation(key, MarkerState.ABSENT, event, owner.value)
        target = next_state(
            marker.state, event, owner=owner, is_draft=marker.is_draft,
        )
        if target is None:
            return ConcurrencyViolation(key, marker.state, event, owner.value)
        marker._state = target
        if now_ms is not None:
            marker.last_updated_ms = now_ms
        if target == MarkerState.REMOVED:
            del self.markers[key]
        return None

    # --- Queries ----------------------------------------------------------

    @property
    def draft(self) -> Marker | None:
        return self.markers.get(DRAFT_MARKER_KEY)

    @property
    def any_protected(self) -> bool:
        return any(m.protected for m in self.markers.values())

    def of_kind(self, kind: MarkerKind) -> list[Marker]:
        return [m for m in self.markers.values() if m.kind == kind]

    def rendered_keys(self) -> list[str]:
        """Keys of collectible and cluster markers (the bulk-refresh domain)."""
        return [
            k for k, m in self.markers.items() if m.kind != MarkerKind.DRAFT
        ]

    def teardown(self) -> list[Marker]:
        """Empty the registry. Returns every marker so the shell can detach handles."""
        released = list(self.markers.values())
        for marker in released:
            marker._state = MarkerState.REMOVED
        self.markers.clear()
        return released
