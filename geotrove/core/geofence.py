"""Geofence Engine — haversine distance and collectability checks.

Invariants:
    - Earth radius is 6,371,000 m (spherical model)
    - haversine_distance is symmetric, never negative, and 0 for identical points
    - Boundary rule is INCLUSIVE: distance == radius is within the geofence
    - radius <= 0 is never within the geofence (exact-match authoring only)

Design Decisions:
    - Closed-form haversine over an iterative geodesic solver: deterministic and
      precise enough at pedestrian scale
    - atan2 form with the argument clamped to [0, 1]: floating error near
      antipodes never produces a math domain error
"""

import math
from dataclasses import dataclass

from geotrove.core.domain_types import Collectible, UserPosition


EARTH_RADIUS_METERS: float = 6_371_000.0
ACCURATE_FIX_METERS: float = 10.0


@dataclass(frozen=True)
class GeofenceResult:
    """Distance from the user to an anchor and whether it is collectable."""
    distance_meters: float
    within_radius: bool
    radius_meters: float

    @property
    def proximity_percent(self) -> int:
        """100 at the anchor, 0 at or beyond the radius."""
        if self.radius_meters <= 0:
            return 0
        return round((1 - min(self.distance_meters / self.radius_meters, 1)) * 100)


@dataclass(frozen=True)
class LocationConfidence:
    """How much a fix can be trusted, derived from its reported accuracy."""
    accuracy_meters: float
    is_accurate: bool
    confidence: float


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def is_within_radius(distance_meters: float, radius_meters: float) -> bool:
    """Inclusive boundary; a zero or negative radius never matches."""
    if radius_meters <= 0:
        return False
    return distance_meters <= radius_meters


def check_geofence(
    position: UserPosition, anchor_lat: float, anchor_lng: float,
    radius_meters: float,
) -> GeofenceResult:
    distance = haversine_distance(
        position.latitude, position.longitude, anchor_lat, anchor_lng,
    )
    return GeofenceResult(
        distance_meters=distance,
        within_radius=is_within_radius(distance, radius_meters),
        radius_meters=radius_meters,
    )


def check_collectible(position: UserPosition, collectible: Collectible) -> GeofenceResult:
    return check_geofence(
        position, collectible.latitude, collectible.longitude,
        collectible.radius_meters,
    )


def location_confidence(accuracy_meters: float) -> LocationConfidence:
    """Translate a provider accuracy (meters) into a 0–100 confidence."""
    accuracy = max(accuracy_meters, 0.0)
    return LocationConfidence(
        accuracy_meters=accuracy,
        is_accurate=accuracy <= ACCURATE_FIX_METERS,
        confidence=max(0.0, min(100.0, 100.0 - accuracy)),
    )
