"""Pin Placement Controller — the singleton draft marker for authoring a collectible.

Invariants:
    - At most one draft marker exists at any time
    - place() is rejected (PinAlreadyPlacedError) while a draft exists, is locked,
      and is not being dragged
    - Drives only GRAB / DROP / PROTECT / RELEASE on the draft; creating and
      removing the draft handle goes through MarkerLifecycleManager
    - After drag_end the committed coordinates win over every other source
      (search/geocode results, stale form values)
    - Protection is released ONLY by submit() or cancel()

Design Decisions:
    - Built on the lifecycle manager's protection primitive: a protected draft makes
      every bulk refresh a no-op, so a refresh can never interleave with a drag
    - Live drag coordinates go to the form for feedback only; commit happens once
"""

import logging
import math
from dataclasses import dataclass, replace

from geotrove.core.boundary_protocols import (
    AuthoringForm, CollectibleDirectory, RenderSurface,
)
from geotrove.core.coordinates import (
    format_coordinates, require_valid_coordinates, same_position,
    validate_coordinates,
)
from geotrove.core.domain_types import (
    DRAFT_MARKER_KEY, Collectible, CollectibleId, MarkerEvent, MarkerOwner,
    RarityTier, UserPosition,
)
from geotrove.core.errors import (
    CoordinateInputError, NoDraftPinError, PinAlreadyPlacedError, PinDetailsError,
)
from geotrove.core.geofence import haversine_distance
from geotrove.core.marker_registry import Marker, MarkerRegistry
from geotrove.services.marker_lifecycle import MarkerLifecycleManager, log_violation
from geotrove.services.position_watchdog import PositionWatchdog

logger = logging.getLogger(__name__)

OWNER = MarkerOwner.PIN_PLACEMENT

MAX_PIN_NAME_LENGTH = 200


@dataclass(frozen=True)
class PinDetails:
    """Authoring form fields other than coordinates."""
    name: str
    radius_meters: float = 10.0
    rarity: RarityTier = RarityTier.COMMON
    collection_id: str | None = None
    media_url: str | None = None

    def validated(self) -> "PinDetails":
        """Stripped copy, or PinDetailsError. Radius 0 means exact-match collection only."""
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise PinDetailsError("name", "empty")
        if len(name) > MAX_PIN_NAME_LENGTH:
            raise PinDetailsError("name", f"longer than {MAX_PIN_NAME_LENGTH} characters")
        if not math.isfinite(self.radius_meters) or self.radius_meters < 0:
            raise PinDetailsError("radius", f"{self.radius_meters!r} is not a radius")
        return replace(self, name=name)


class PinPlacementController:
    def __init__(
        self,
        lifecycle: MarkerLifecycleManager,
        registry: MarkerRegistry,
        surface: RenderSurface,
        form: AuthoringForm,
        watchdog: PositionWatchdog,
    ):
        self._lifecycle = lifecycle
        self._registry = registry
        self._surface = surface
        self._form = form
        self._watchdog = watchdog
        self.user_position: UserPosition | None = None
        self.committed: tuple[float, float] | None = None

    @property
    def draft(self) -> Marker | None:
        return self._registry.draft

    # --- Placement --------------------------------------------------------

    def place(self, lat: object, lng: object) -> Marker:
        """Drop the draft pin. Replaces an unlocked draft; rejects a locked one.

        While the draft is being dragged the drag owns its position: the call
        is ignored and the dragged draft is returned unchanged, without a notice.
        """
        draft = self.draft
        if draft is not None and draft.dragging:
            logger.info("place() ignored while the draft pin is being dragged")
            return draft

        result = validate_coordinates(lat, lng)
        self._form.set_validation(result.valid, result.reason.value)
        if not result.valid:
            raise CoordinateInputError(lat, lng, result.reason.value)

        if draft is not None:
            if draft.locked:
                raise PinAlreadyPlacedError()
            if same_position(draft.latitude, draft.longitude, result.latitude, result.longitude):
                return draft
            self._lifecycle.remove_draft()

        marker = self._lifecycle.create_draft(result.latitude, result.longitude)
        self._form.show_live_coordinates(result.latitude, result.longitude)
        self._report_distance(result.latitude, result.longitude)
        logger.info(
            f"Draft pin placed at ({format_coordinates(result.latitude, result.longitude, 8)})",
            extra={"marker_key": DRAFT_MARKER_KEY},
        )
        return marker

    def apply_search_result(self, lat: object, lng: object) -> bool:
        """Coordinates from address search. Ignored once a drag has committed."""
        if self.committed is not None:
            logger.info("Search coordinates ignored: draft pin position is committed")
            self._form.commit_coordinates(*self.committed)
            return False
        self.place(lat, lng)
        return True

    # --- Dragging ---------------------------------------------------------

    def drag_start(self) -> bool:
        draft = self._require_draft("drag_start")
        violation = self._registry.apply(draft.key, MarkerEvent.GRAB, OWNER)
        if violation is not None:
            log_violation(violation)
            return False
        self._watchdog.stop()
        self._surface.set_emphasis(draft.handle, True)
        return True

    def drag(self, lat: float, lng: float) -> bool:
        """Live feedback only — nothing is committed."""
        draft = self._require_draft("drag")
        if not draft.dragging:
            return False
        result = validate_coordinates(lat, lng)
        if not result.valid:
            logger.debug(f"Ignoring invalid live drag position ({lat!r}, {lng!r})")
            return False
        self._form.show_live_coordinates(result.latitude, result.longitude)
        self._report_distance(result.latitude, result.longitude)
        return True

    def drag_end(self, lat: float, lng: float) -> tuple[float, float]:
        """Commit the final position and shield the draft from bulk refreshes."""
        draft = self._require_draft("drag_end")
        result = validate_coordinates(lat, lng)
        if result.valid:
            final = (result.latitude, result.longitude)
        else:
            logger.warning(
                f"Drag ended on invalid position ({lat!r}, {lng!r}); keeping last position",
                extra={"error_code": "INVALID_COORDINATES"},
            )
            final = (draft.latitude, draft.longitude)

        for event in (MarkerEvent.DROP, MarkerEvent.PROTECT):
            violation = self._registry.apply(
                draft.key, event, OWNER, now_ms=self._lifecycle.now_ms(),
            )
            if violation is not None:
                log_violation(violation)
                return (draft.latitude, draft.longitude)

        draft.latitude, draft.longitude = final
        self.committed = final
        self._surface.set_emphasis(draft.handle, False)
        self._surface.move_marker(draft.handle, *final)
        self._form.commit_coordinates(*final)
        self._form.set_validation(True, result.reason.value if result.valid else "ok")
        self._report_distance(*final)
        self._watchdog.start(draft.handle, *final)
        logger.info(
            f"Draft pin committed at ({format_coordinates(*final, precision=8)})",
            extra={"marker_key": DRAFT_MARKER_KEY, "marker_state": draft.state},
        )
        return final

    def notify_external_mutation(self) -> bool:
        return self._watchdog.notify_external_mutation()

    # --- Submission -------------------------------------------------------

    def submission_coordinates(
        self, form_lat: object = None, form_lng: object = None,
    ) -> tuple[float, float]:
        """Committed drag position, else the draft position, else the form values."""
        if self.committed is not None:
            return self.committed
        draft = self.draft
        if draft is not None:
            return (draft.latitude, draft.longitude)
        result = require_valid_coordinates(form_lat, form_lng)
        return (result.latitude, result.longitude)

    async def submit(
        self, details: PinDetails, directory: CollectibleDirectory,
    ) -> CollectibleId:
        """Pin the collectible at the authoritative coordinates, then release the draft."""
        self._require_draft("submit")
        details = details.validated()
        lat, lng = self.submission_coordinates()
        pending = Collectible(
            id=CollectibleId(""), latitude=lat, longitude=lng,
            radius_meters=details.radius_meters, rarity=details.rarity,
            collection_id=details.collection_id, media_url=details.media_url,
            name=details.name,
        )
        new_id = await directory.pin(pending)
        self._release_and_remove()
        logger.info(
            f"Collectible pinned at ({format_coordinates(lat, lng, 8)})",
            extra={"collectible_id": new_id},
        )
        return new_id

    def cancel(self) -> bool:
        if self.draft is None:
            return False
        self._release_and_remove()
        return True

    def shutdown(self) -> None:
        """Session teardown: stop timers; the lifecycle manager releases the handle."""
        self._watchdog.stop()
        self.committed = None

    # --- Internals --------------------------------------------------------

    def _require_draft(self, operation: str) -> Marker:
        draft = self.draft
        if draft is None:
            raise NoDraftPinError(operation)
        return draft

    def _release_and_remove(self) -> None:
        self._watchdog.stop()
        draft = self.draft
        if draft is not None and draft.protected:
            violation = self._registry.apply(draft.key, MarkerEvent.RELEASE, OWNER)
            if violation is not None:
                log_violation(violation)
        self._lifecycle.remove_draft()
        self.committed = None
        self._form.set_distance_to_target(None)

    def _report_distance(self, lat: float, lng: float) -> None:
        if self.user_position is None:
            self._form.set_distance_to_target(None)
            return
        self._form.set_distance_to_target(haversine_distance(
            self.user_position.latitude, self.user_position.longitude, lat, lng,
        ))
