"""Map Session — wires the marker pipeline for one map view and owns its lifetime.

Invariants:
    - One MarkerRegistry per session; nothing outlives close()
    - The session is the catch boundary: GeoTroveError raised by a user-driven
      operation becomes a UserNotifier notice and the map stays usable
    - A missing map access token disables rendering only — location, nearby
      lookups and proximity keep working
    - Location failure never blocks manual pin placement
    - A refresh skipped while the draft pin was protected is replayed with the
      latest collectible set once the pin is submitted or cancelled
    - A successful collect reconciles the markers, so a cluster never keeps
      counting a collected item
    - close() cancels every timer, clears the location watch, and releases every
      render handle

Design Decisions:
    - Explicit composition root over module-level singletons: tests build a session
      from fakes, production from AsyncioScheduler + HttpCollectibleDirectory
    - Async context manager: `async with MapSession(...)` guarantees teardown
"""

import asyncio
import logging
import uuid

from geotrove.config import Settings
from geotrove.core.boundary_protocols import (
    AuthoringForm, CollectibleDirectory, DetailView, LocationProvider,
    RenderSurface, Scheduler, UserNotifier,
)
from geotrove.core.domain_types import (
    Collectible, CollectibleId, RefreshOutcome, UserPosition,
)
from geotrove.core.coordinates import format_coordinates
from geotrove.core.errors import (
    ConfigurationError, ErrorContext, GeoTroveError, NotWithinGeofenceError,
)
from geotrove.core.geofence import (
    GeofenceResult, LocationConfidence, check_collectible, location_confidence,
)
from geotrove.core.marker_registry import Marker, MarkerRegistry
from geotrove.core.proximity import ProximityIndex
from geotrove.infrastructure.observability import session_logger
from geotrove.infrastructure.scheduler import AsyncioScheduler
from geotrove.services.debounce import Debouncer
from geotrove.services.location import LocationService
from geotrove.services.marker_lifecycle import MarkerLifecycleManager
from geotrove.services.nearby import NearbyFetcher
from geotrove.services.pin_placement import PinDetails, PinPlacementController
from geotrove.services.position_watchdog import PositionWatchdog
from geotrove.services.render_readiness import RenderReadinessGate

logger = logging.getLogger(__name__)


class MapSession:
    def __init__(
        self,
        settings: Settings,
        surface: RenderSurface,
        location_provider: LocationProvider,
        directory: CollectibleDirectory,
        form: AuthoringForm,
        notifier: UserNotifier,
        detail_view: DetailView | None = None,
        scheduler: Scheduler | None = None,
    ):
        self.session_id = uuid.uuid4().hex
        self.log = session_logger(logger, self.session_id)
        self.settings = settings
        self.scheduler = scheduler or AsyncioScheduler()
        self._surface = surface
        self._directory = directory
        self._notifier = notifier

        self.registry = MarkerRegistry()
        self.gate = RenderReadinessGate(
            surface, self.scheduler, settings.render_retry_policy,
            on_exhausted=self._notify,
        )
        self.lifecycle = MarkerLifecycleManager(
            surface, self.registry, self.scheduler, self.gate, settings,
            detail_view=detail_view,
        )
        self.watchdog = PositionWatchdog(
            surface, self.scheduler,
            settings.pin_watchdog_interval_ms, settings.pin_watchdog_window_ms,
        )
        self.pins = PinPlacementController(
            self.lifecycle, self.registry, surface, form, self.watchdog,
        )
        self.location = LocationService(
            location_provider,
            high_accuracy=settings.location_high_accuracy,
            timeout_ms=settings.location_timeout_ms,
            max_age_ms=settings.location_max_age_ms,
        )
        self.nearby = NearbyFetcher(
            directory, self.scheduler,
            cooldown_ms=settings.nearby_cooldown_ms,
            radius_meters=settings.nearby_radius_meters,
        )
        self.proximity = ProximityIndex()
        self.viewport_debouncer = Debouncer(
            self.scheduler, settings.viewport_refresh_debounce_ms,
            self.lifecycle.rerender,
        )

        self.rendering_enabled = True
        self.collectibles: list[Collectible] = []
        self.confidence: LocationConfidence | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def position(self) -> UserPosition | None:
        return self.proximity.position

    # --- Lifetime ---------------------------------------------------------

    async def start(self) -> bool:
        """Check map access, locate the user, and load nearby collectibles.

        Returns False when the user could not be located; the map remains
        usable for manual pin placement.
        """
        try:
            self.settings.require_map_token()
        except ConfigurationError as e:
            self.rendering_enabled = False
            self._notify(e)

        try:
            await self.locate()
        except GeoTroveError:
            return False
        await self.refresh_nearby(force=True)
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.viewport_debouncer.cancel()
        self.location.stop_watch()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.pins.shutdown()
        released = self.lifecycle.teardown()
        self.log.info(f"Map session closed ({released} marker(s) released)")

    async def __aenter__(self) -> "MapSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Location ---------------------------------------------------------

    async def locate(self) -> UserPosition:
        """One-shot fix. Notifies, then re-raises, on permission or availability failure."""
        try:
            position = await self.location.current_position()
        except GeoTroveError as e:
            self._notify(e)
            raise
        self.update_position(position)
        confidence = location_confidence(position.accuracy)
        self.log.info(
            f"Located at {format_coordinates(position.latitude, position.longitude)} "
            f"(±{confidence.accuracy_meters:.0f} m, confidence {confidence.confidence:.0f}"
            f"{'' if confidence.is_accurate else ', low accuracy'})",
        )
        if self.rendering_enabled:
            self._surface.ease_to(position.latitude, position.longitude)
        return position

    def update_position(self, position: UserPosition) -> bool:
        """Record a fix. Returns True when proximity results were recomputed."""
        self.pins.user_position = position
        self.confidence = location_confidence(position.accuracy)
        return self.proximity.update_position(position, self.collectibles)

    def start_watching(self) -> None:
        self.location.start_watch(self._on_watched_fix)

    def stop_watching(self) -> None:
        self.location.stop_watch()

    def _on_watched_fix(self, position: UserPosition) -> None:
        if not self.update_position(position) or self._closed:
            return
        task = asyncio.get_running_loop().create_task(self.refresh_nearby())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def proximity_of(self, collectible_id: CollectibleId) -> GeofenceResult | None:
        return self.proximity.result_for(collectible_id)

    # --- Nearby collectibles ----------------------------------------------

    async def refresh_nearby(self, force: bool = False) -> RefreshOutcome | None:
        """Fetch collectibles around the last fix and reconcile the markers.

        None when there is no fix yet, the fetch was rate-limited or failed, or
        rendering is disabled.
        """
        position = self.position
        if position is None:
            return None
        try:
            fetched = await self.nearby.fetch(position, force=force)
        except GeoTroveError as e:
            self._notify(e)
            return None
        if fetched is None or self._closed:
            return None

        self.collectibles = fetched
        self.proximity.update_collectibles(fetched)
        if not self.rendering_enabled:
            return None
        return self._settle(self.lifecycle.bulk_refresh(fetched, force_update=force))

    def _settle(self, outcome: RefreshOutcome | None) -> RefreshOutcome | None:
        """Hand a debounced or interaction-skipped pass to the trailing debouncer."""
        if outcome in (RefreshOutcome.SKIPPED_DEBOUNCED, RefreshOutcome.SKIPPED_INTERACTING):
            self.viewport_debouncer.trigger()
        return outcome

    def _replay(self) -> RefreshOutcome | None:
        """Re-apply the latest collectible set, e.g. one skipped while a pin was protected."""
        if not self.rendering_enabled:
            return None
        return self._settle(self.lifecycle.rerender())

    # --- Viewport ---------------------------------------------------------

    def on_move_start(self) -> None:
        self.viewport_debouncer.cancel()
        self.lifecycle.set_user_interacting(True)

    def on_move_end(self) -> None:
        self.lifecycle.set_user_interacting(False)
        self.viewport_debouncer.trigger()

    def on_zoom(self, zoom: float) -> RefreshOutcome | None:
        return self._settle(self.lifecycle.set_zoom(zoom))

    # --- Pin authoring ----------------------------------------------------

    def place_pin(self, lat: object, lng: object) -> Marker | None:
        if not self.rendering_enabled:
            self._notify(ConfigurationError("map_access_token"))
            return None
        try:
            return self.pins.place(lat, lng)
        except GeoTroveError as e:
            self._notify(e)
            return None

    async def submit_pin(self, details: PinDetails) -> CollectibleId | None:
        try:
            new_id = await self.pins.submit(details, self._directory)
        except GeoTroveError as e:
            self._notify(e)
            return None
        if await self.refresh_nearby(force=True) is None:
            self._replay()
        return new_id

    def cancel_pin(self) -> bool:
        if not self.pins.cancel():
            return False
        self._replay()
        return True

    # --- Collecting -------------------------------------------------------

    async def collect(self, collectible_id: CollectibleId) -> dict | None:
        """Collect from inside the geofence. None (with a notice) when refused."""
        collectible = next(
            (c for c in self.collectibles if c.id == collectible_id), None,
        )
        position = self.position
        if collectible is None or position is None:
            self.log.info(
                "Collect ignored: unknown collectible or no location fix",
                extra={"collectible_id": collectible_id},
            )
            return None

        fence = check_collectible(position, collectible)
        try:
            if not fence.within_radius:
                raise NotWithinGeofenceError(
                    fence.distance_meters, fence.radius_meters,
                    ErrorContext(debug_info={"proximity_percent": fence.proximity_percent}),
                )
            result = await self._directory.collect(
                collectible_id, position.latitude, position.longitude,
            )
        except GeoTroveError as e:
            e.context.collectible_id = collectible_id
            self._notify(e)
            return None

        self.collectibles = [c for c in self.collectibles if c.id != collectible_id]
        self.proximity.update_collectibles(self.collectibles)
        self.lifecycle.remove(collectible_id)
        if self.rendering_enabled:
            self._settle(self.lifecycle.bulk_refresh(self.collectibles))
        self.log.info(
            f"Collected at {fence.distance_meters:.1f} m from the anchor "
            f"(proximity {fence.proximity_percent}%)",
            extra={"collectible_id": collectible_id},
        )
        return result

    # --- Notices ----------------------------------------------------------

    def _notify(self, error: GeoTroveError) -> None:
        self.log.log(
            logging.WARNING if error.recoverable else logging.ERROR,
            f"{error.code}: {error.message}",
            extra={
                "error_code": error.code,
                "collectible_id": error.context.collectible_id,
            },
        )
        self._notifier.notify(error.to_notice())
