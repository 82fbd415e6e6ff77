"""Error hierarchy tests — codes, categories, canonical messages, notices."""

from geotrove.core.domain_types import LocationErrorCode, MarkerEvent, MarkerState
from geotrove.core.errors import (
    ConcurrencyViolation, ConfigurationError, CoordinateInputError,
    DirectoryRejectedError, DirectoryUnavailableError, ErrorCategory, ErrorContext,
    ErrorSeverity, GeoTroveError, LocationPermissionError, LocationUnavailableError,
    NotWithinGeofenceError, PinAlreadyPlacedError, PinDetailsError,
    RenderSurfaceNotReadyError, TransientError,
)


def test_every_error_is_a_geotrove_error():
    errors = [
        CoordinateInputError("a", "b", "non_finite"),
        PinAlreadyPlacedError(),
        PinDetailsError("name", "empty"),
        NotWithinGeofenceError(25.0, 10.0),
        LocationPermissionError(),
        LocationUnavailableError(LocationErrorCode.TIMEOUT),
        RenderSurfaceNotReadyError(5),
        DirectoryUnavailableError("boom", "list_nearby"),
        DirectoryRejectedError("bad", "pin", 400),
        ConfigurationError("map_access_token"),
    ]
    for error in errors:
        assert isinstance(error, GeoTroveError)
        assert error.code
        assert isinstance(error.category, ErrorCategory)


def test_canonical_user_messages():
    assert PinAlreadyPlacedError().user_message == "pin already placed — remove it first"
    assert LocationPermissionError().user_message == "location permission denied"
    assert LocationUnavailableError(
        LocationErrorCode.POSITION_UNAVAILABLE,
    ).user_message == "location unavailable"
    assert RenderSurfaceNotReadyError(5).user_message == (
        "map is not ready — continuing without markers"
    )
    assert DirectoryUnavailableError("x", "list_nearby").user_message == (
        "failed to fetch nearby collectibles"
    )
    assert ConfigurationError("map_access_token").user_message == "map access token missing"


def test_location_codes_follow_provider_codes():
    assert LocationPermissionError().code == "PERMISSION_DENIED"
    assert LocationUnavailableError(LocationErrorCode.TIMEOUT).code == "TIMEOUT"
    assert LocationPermissionError().category == ErrorCategory.PERMISSION


def test_transient_errors_share_a_base():
    assert isinstance(RenderSurfaceNotReadyError(3), TransientError)
    assert isinstance(DirectoryUnavailableError("x", "pin"), TransientError)
    assert RenderSurfaceNotReadyError(3).context.attempt == 3


def test_recoverable_by_severity():
    assert PinAlreadyPlacedError().recoverable
    assert not ConfigurationError("map_access_token").recoverable
    assert ConfigurationError("map_access_token").severity == ErrorSeverity.CRITICAL


def test_to_notice_hides_internal_message():
    error = NotWithinGeofenceError(
        25.0, 10.0, context=ErrorContext(collectible_id="nft-1"),
    )
    notice = error.to_notice()
    assert notice == {
        "code": "NOT_WITHIN_GEOFENCE",
        "message": "you are too far away to collect this item",
        "category": "business_rule",
        "severity": "warning",
        "collectible_id": "nft-1",
    }
    assert "25.0" in error.message


def test_rejected_error_surfaces_directory_message():
    error = DirectoryRejectedError("NFT already collected", "collect", 409)
    assert error.user_message == "NFT already collected"
    assert error.status_code == 409


def test_concurrency_violation_describes_itself():
    violation = ConcurrencyViolation(
        "__draft__", MarkerState.PROTECTED, MarkerEvent.REMOVE, "lifecycle",
    )
    text = violation.describe()
    assert "lifecycle" in text and "remove" in text and "protected" in text


def test_pin_details_error_names_the_field():
    error = PinDetailsError("radius", "-1.0 is not a radius")
    assert error.code == "INVALID_PIN_DETAILS"
    assert error.category == ErrorCategory.INPUT
    assert error.recoverable
    assert error.user_message == "invalid pin details: radius"
    assert "-1.0" not in error.to_notice()["message"]
