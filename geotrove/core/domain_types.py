"""Domain Types — value objects and enums shared across the marker pipeline.

Invariants:
    - Collectible and UserPosition are frozen: markers hold references, never copies to mutate
    - All valid states encoded as Enums — no raw string matching
    - Collectible.fingerprint covers every field that changes what a marker renders

Design Decisions:
    - NewType for identifiers and units: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and log records without custom encoders
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType


# ─── Identity & Unit Types ───────────────────────────────────────

CollectibleId = NewType("CollectibleId", str)
Meters = NewType("Meters", float)
Degrees = NewType("Degrees", float)

DRAFT_MARKER_KEY = "__draft__"
CLUSTER_KEY_PREFIX = "cluster:"


# ─── Enums ───────────────────────────────────────────────────────

class RarityTier(str, Enum):
    """Collectible rarity — drives default collection radius and marker color."""
    COMMON = "common"
    RARE = "rare"
    LEGENDARY = "legendary"


class CoordinateReason(str, Enum):
    """Outcome of coordinate validation."""
    OK = "ok"
    NON_FINITE = "non_finite"
    SWAP_CORRECTED = "swap_corrected"
    OUT_OF_RANGE = "out_of_range"


class MarkerState(str, Enum):
    """Marker lifecycle states — the single source of truth for marker flags."""
    ABSENT = "absent"
    CREATING = "creating"
    STABLE = "stable"
    DRAGGING = "dragging"
    LOCKED = "locked"
    PROTECTED = "protected"
    REMOVED = "removed"


class MarkerEvent(str, Enum):
    """Inputs to the marker transition table."""
    CREATE = "create"
    SETTLE = "settle"
    GRAB = "grab"
    DROP = "drop"
    PROTECT = "protect"
    RELEASE = "release"
    REMOVE = "remove"


class MarkerOwner(str, Enum):
    """Components allowed to drive marker transitions."""
    LIFECYCLE = "lifecycle"
    PIN_PLACEMENT = "pin_placement"


class MarkerKind(str, Enum):
    """What a render handle stands for on the map."""
    COLLECTIBLE = "collectible"
    DRAFT = "draft"
    CLUSTER = "cluster"


class LocationErrorCode(str, Enum):
    """Failure codes reported by a Location Provider."""
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class RefreshOutcome(str, Enum):
    """Result of a bulk refresh request."""
    APPLIED = "applied"
    SKIPPED_PROTECTED = "skipped_protected"
    SKIPPED_DEBOUNCED = "skipped_debounced"
    SKIPPED_INTERACTING = "skipped_interacting"
    DEFERRED_NOT_READY = "deferred_not_ready"


# ─── Value Objects ───────────────────────────────────────────────

@dataclass(frozen=True)
class Collectible:
    """A location-anchored item as seen by the map core."""
    id: CollectibleId
    latitude: float
    longitude: float
    radius_meters: float = 10.0
    rarity: RarityTier = RarityTier.COMMON
    collection_id: str | None = None
    media_url: str | None = None
    name: str = ""

    @property
    def fingerprint(self) -> tuple:
        """Fields whose change makes an existing marker stale."""
        return (
            self.latitude, self.longitude, self.radius_meters,
            self.rarity, self.media_url, self.name,
        )


@dataclass(frozen=True)
class UserPosition:
    """A fix from the Location Provider."""
    latitude: float
    longitude: float
    accuracy: float = 0.0
    timestamp: float = 0.0
