"""Error Hierarchy — typed, categorized exceptions for every map-core failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Every error carries a canonical user_message; no internal details leak into it
    - ConcurrencyViolation is a record, not an exception: it is logged and discarded
    - to_notice() produces the payload handed to the UserNotifier

Design Decisions:
    - Single hierarchy with GeoTroveError base: the map session catches one type
      at its boundary and turns it into a non-fatal notice
    - ErrorContext as dataclass: rich observability without coupling to logging
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from geotrove.core.domain_types import LocationErrorCode, MarkerEvent, MarkerState


class ErrorSeverity(str, Enum):
    """Error severity for observability and notice styling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    INPUT = "input"
    BUSINESS_RULE = "business_rule"
    PERMISSION = "permission"
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"


# ─── Canonical user-facing messages ─────────────────────────────

MSG_LOCATION_UNAVAILABLE = "location unavailable"
MSG_LOCATION_DENIED = "location permission denied"
MSG_NEARBY_FAILED = "failed to fetch nearby collectibles"
MSG_PIN_ALREADY_PLACED = "pin already placed — remove it first"
MSG_INVALID_COORDINATES = "invalid coordinates"
MSG_INVALID_PIN_DETAILS = "invalid pin details"
MSG_MAP_NOT_READY = "map is not ready — continuing without markers"
MSG_MAP_TOKEN_MISSING = "map access token missing"
MSG_OUT_OF_RANGE = "you are too far away to collect this item"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    collectible_id: str | None = None
    attempt: int | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class GeoTroveError(Exception):
    """Base exception for all map-core errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.user_message = user_message or message

    @property
    def recoverable(self) -> bool:
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_notice(self) -> dict:
        """Convert to the payload shown to the user."""
        return {
            "code": self.code,
            "message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "collectible_id": self.context.collectible_id,
        }


# ─── Input Errors ───────────────────────────────────────────────

class CoordinateInputError(GeoTroveError):
    """Coordinates are non-finite or out of range after the swap attempt."""
    def __init__(
        self, raw_lat: object, raw_lng: object, reason: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Invalid coordinates ({raw_lat!r}, {raw_lng!r}): {reason}",
            "INVALID_COORDINATES", ErrorCategory.INPUT,
            ErrorSeverity.WARNING, context, MSG_INVALID_COORDINATES,
        )
        self.reason = reason


class PinDetailsError(GeoTroveError):
    """Authoring form fields (name, radius) cannot describe a collectible."""
    def __init__(
        self, field_name: str, reason: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Invalid pin {field_name}: {reason}",
            "INVALID_PIN_DETAILS", ErrorCategory.INPUT,
            ErrorSeverity.WARNING, context, f"{MSG_INVALID_PIN_DETAILS}: {field_name}",
        )
        self.field_name = field_name
        self.reason = reason


class PinAlreadyPlacedError(GeoTroveError):
    """A locked draft pin exists and is not being dragged."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Draft pin already placed and locked",
            "PIN_ALREADY_PLACED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, MSG_PIN_ALREADY_PLACED,
        )


class NoDraftPinError(GeoTroveError):
    """A drag or submit arrived with no draft pin on the map."""
    def __init__(self, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"No draft pin for {operation}",
            "NO_DRAFT_PIN", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, "place a pin on the map first",
        )
        self.operation = operation


class NotWithinGeofenceError(GeoTroveError):
    """Collect attempted from outside the collectible's geofence."""
    def __init__(
        self, distance_meters: float, radius_meters: float,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Position is {distance_meters:.1f} m away (radius {radius_meters:.1f} m)",
            "NOT_WITHIN_GEOFENCE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, MSG_OUT_OF_RANGE,
        )
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters


# ─── Location Errors ────────────────────────────────────────────

class LocationPermissionError(GeoTroveError):
    """The user denied location access."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Location permission denied",
            LocationErrorCode.PERMISSION_DENIED.value, ErrorCategory.PERMISSION,
            ErrorSeverity.WARNING, context, MSG_LOCATION_DENIED,
        )


class LocationUnavailableError(GeoTroveError):
    """The provider could not produce a fix (unavailable or timed out)."""
    def __init__(
        self, reason: LocationErrorCode, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Location unavailable ({reason.value})",
            reason.value, ErrorCategory.TRANSIENT,
            ErrorSeverity.WARNING, context, MSG_LOCATION_UNAVAILABLE,
        )
        self.reason = reason


# ─── Transient Errors ───────────────────────────────────────────

class TransientError(GeoTroveError):
    """Retryable failure — retried with bounded backoff, then surfaced."""
    def __init__(
        self, message: str, code: str, user_message: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.TRANSIENT,
            ErrorSeverity.WARNING, context, user_message,
        )


class RenderSurfaceNotReadyError(TransientError):
    """The rendering surface never became ready within the retry budget."""
    def __init__(self, attempts: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.attempt = attempts
        super().__init__(
            f"Render surface not ready after {attempts} attempt(s)",
            "RENDER_SURFACE_NOT_READY", MSG_MAP_NOT_READY, ctx,
        )
        self.attempts = attempts


class DirectoryUnavailableError(TransientError):
    """Collectible Directory call failed (network, timeout, 5xx)."""
    def __init__(
        self, message: str, operation: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Collectible directory {operation} failed: {message}",
            "DIRECTORY_UNAVAILABLE", MSG_NEARBY_FAILED, ctx,
        )
        self.operation = operation


class DirectoryRejectedError(GeoTroveError):
    """Collectible Directory refused the request (4xx)."""
    def __init__(
        self, message: str, operation: str, status_code: int,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Collectible directory rejected {operation} ({status_code}): {message}",
            "DIRECTORY_REJECTED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, message,
        )
        self.operation = operation
        self.status_code = status_code


# ─── Configuration Errors ───────────────────────────────────────

class ConfigurationError(GeoTroveError):
    """Required map configuration is missing — fatal to rendering only."""
    def __init__(self, setting: str, context: ErrorContext | None = None):
        super().__init__(
            f"Missing required setting: {setting}",
            "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, MSG_MAP_TOKEN_MISSING,
        )
        self.setting = setting


# ─── Concurrency Violations (logged, never raised) ──────────────

@dataclass(frozen=True)
class ConcurrencyViolation:
    """An attempted mutation of a protected or foreign-owned marker."""
    marker_key: str
    state: MarkerState
    attempted: MarkerEvent | str
    owner: str

    def describe(self) -> str:
        attempted = getattr(self.attempted, "value", self.attempted)
        return (
            f"{self.owner} attempted '{attempted}' on marker "
            f"{self.marker_key} in state '{self.state.value}' — discarded"
        )
