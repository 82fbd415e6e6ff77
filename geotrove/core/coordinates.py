"""Coordinate Validator — parses, sanity-checks, and swap-corrects raw lat/lng pairs.

Invariants:
    - validate_coordinates is PURE: no logging, no exceptions, no clamping
    - A valid result always satisfies |lat| <= 90 and |lng| <= 180
    - The only correction applied is the lat/lng swap (|lng| <= 90 and |lat| > 90)
    - Non-finite or unparsable inputs report NON_FINITE with NaN coordinates

Design Decisions:
    - Result object over exceptions: malformed upstream data flows through the
      marker pipeline as a value; call sites decide whether to log or raise
    - bool rejected explicitly: True/False are ints in Python but never coordinates
"""

import math
from dataclasses import dataclass, replace

from geotrove.core.domain_types import Collectible, CoordinateReason
from geotrove.core.errors import CoordinateInputError


MAX_LATITUDE: float = 90.0
MAX_LONGITUDE: float = 180.0
POSITION_TOLERANCE: float = 0.000001


@dataclass(frozen=True)
class CoordinateResult:
    """Normalized coordinate pair plus the validation verdict."""
    latitude: float
    longitude: float
    valid: bool
    reason: CoordinateReason

    @property
    def corrected(self) -> bool:
        return self.reason == CoordinateReason.SWAP_CORRECTED


def parse_coordinate(raw: object) -> float:
    """Parse one coordinate component. Returns NaN when it cannot be parsed."""
    if isinstance(raw, bool) or raw is None:
        return math.nan
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return math.nan
    return math.nan


def _in_range(lat: float, lng: float) -> bool:
    return abs(lat) <= MAX_LATITUDE and abs(lng) <= MAX_LONGITUDE


def validate_coordinates(raw_lat: object, raw_lng: object) -> CoordinateResult:
    """Validate and normalize a raw (lat, lng) pair."""
    lat = parse_coordinate(raw_lat)
    lng = parse_coordinate(raw_lng)

    if not (math.isfinite(lat) and math.isfinite(lng)):
        return CoordinateResult(math.nan, math.nan, False, CoordinateReason.NON_FINITE)

    if abs(lng) <= MAX_LATITUDE and abs(lat) > MAX_LATITUDE:
        swapped_lat, swapped_lng = lng, lat
        if _in_range(swapped_lat, swapped_lng):
            return CoordinateResult(
                swapped_lat, swapped_lng, True, CoordinateReason.SWAP_CORRECTED,
            )
        return CoordinateResult(lat, lng, False, CoordinateReason.OUT_OF_RANGE)

    if not _in_range(lat, lng):
        return CoordinateResult(lat, lng, False, CoordinateReason.OUT_OF_RANGE)

    return CoordinateResult(lat, lng, True, CoordinateReason.OK)


def require_valid_coordinates(raw_lat: object, raw_lng: object) -> CoordinateResult:
    """Like validate_coordinates, but raises CoordinateInputError when invalid."""
    result = validate_coordinates(raw_lat, raw_lng)
    if not result.valid:
        raise CoordinateInputError(raw_lat, raw_lng, result.reason.value)
    return result


def same_position(
    lat_a: float, lng_a: float, lat_b: float, lng_b: float,
    tolerance: float = POSITION_TOLERANCE,
) -> bool:
    """Component-wise comparison used for drift detection and duplicate pins."""
    return abs(lat_a - lat_b) <= tolerance and abs(lng_a - lng_b) <= tolerance


def format_coordinates(lat: float, lng: float, precision: int = 6) -> str:
    return f"{lat:.{precision}f}, {lng:.{precision}f}"


def normalize_collectibles(
    items: list[Collectible],
) -> tuple[list[Collectible], list[tuple[Collectible, CoordinateReason]]]:
    """Split upstream collectibles into (usable, rejected).

    Swapped anchors are corrected in the returned copies. Duplicate ids keep the
    first occurrence; later ones are rejected with reason OK.
    """
    usable: list[Collectible] = []
    rejected: list[tuple[Collectible, CoordinateReason]] = []
    seen: set[str] = set()
    for item in items:
        result = validate_coordinates(item.latitude, item.longitude)
        if not result.valid:
            rejected.append((item, result.reason))
            continue
        if item.id in seen:
            rejected.append((item, CoordinateReason.OK))
            continue
        seen.add(item.id)
        if result.corrected:
            item = replace(item, latitude=result.latitude, longitude=result.longitude)
        usable.append(item)
    return usable, rejected
