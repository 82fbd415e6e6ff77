"""Marker Lifecycle Manager — owns creation, refresh, and removal of map markers.

Invariants:
    - Exactly one render handle per live registry key at any instant: a handle is
      detached BEFORE its replacement is added
    - Drives only CREATE / SETTLE / REMOVE; drag-related states belong to the
      PinPlacementController
    - bulk_refresh is a strict no-op when any marker is protected, when the
      viewport is under direct user control, or within the debounce window of
      the previous effective refresh
    - Rejected transitions are logged as ConcurrencyViolation and discarded
    - Protection checks and the mutations they guard run in one synchronous
      call — no await between check and act

Design Decisions:
    - Diff-and-reconcile (core/reconcile.py) for every refresh: unchanged markers
      keep their handles, so a refresh never flickers markers that did not change
    - Render mode switch (cluster ↔ individual) ignores the grace window so a
      collectible is never shown twice
    - A marker drawing a collectible that a desired marker also draws is removed
      even inside the grace window
    - Surface-not-ready deferral goes through RenderReadinessGate
"""

import logging

from geotrove.config import Settings
from geotrove.core.boundary_protocols import (
    DetailView, MarkerSpec, RenderSurface, Scheduler,
)
from geotrove.core.clustering import (
    Cluster, crosses_threshold, expansion_zoom, plan_render, should_cluster,
)
from geotrove.core.domain_types import (
    DRAFT_MARKER_KEY, Collectible, MarkerEvent, MarkerKind, MarkerOwner,
    RefreshOutcome,
)
from geotrove.core.errors import ConcurrencyViolation
from geotrove.core.marker_registry import Marker, MarkerRegistry
from geotrove.core.rarity import profile_for
from geotrove.core.reconcile import plan_reconciliation
from geotrove.services.render_readiness import RenderReadinessGate

logger = logging.getLogger(__name__)

OWNER = MarkerOwner.LIFECYCLE


def log_violation(violation: ConcurrencyViolation) -> None:
    logger.warning(
        violation.describe(),
        extra={
            "marker_key": violation.marker_key,
            "marker_state": violation.state,
            "error_code": "CONCURRENCY_VIOLATION",
        },
    )


class MarkerLifecycleManager:
    """Creates, reconciles, and removes markers for one map instance."""

    def __init__(
        self,
        surface: RenderSurface,
        registry: MarkerRegistry,
        scheduler: Scheduler,
        gate: RenderReadinessGate,
        settings: Settings,
        detail_view: DetailView | None = None,
        zoom: float | None = None,
    ):
        self._surface = surface
        self._registry = registry
        self._scheduler = scheduler
        self._gate = gate
        self._detail_view = detail_view
        self._debounce_ms = settings.refresh_debounce_ms
        self._grace_ms = settings.marker_grace_window_ms
        self._threshold = settings.cluster_zoom_threshold
        self._tolerance = settings.cluster_merge_tolerance_deg
        self._focus_zoom = settings.focus_zoom

        self.zoom = zoom if zoom is not None else settings.cluster_zoom_threshold
        self.user_interacting = False
        self.render_passes = 0
        self._last_refresh_ms: float | None = None
        self._last_clustered: bool | None = None
        self._collectibles: list[Collectible] | None = None

    # --- Clock ------------------------------------------------------------

    def now_ms(self) -> float:
        return self._scheduler.now() * 1000

    # --- Single marker ----------------------------------------------------

    def create_or_update(
        self, collectible: Collectible, force_update: bool = False,
    ) -> Marker | None:
        """Ensure a stable marker for the collectible. None when deferred or refused."""
        if not self._surface.is_ready():
            self._gate.run_when_ready(
                f"create:{collectible.id}",
                lambda: self.create_or_update(collectible, force_update),
            )
            return None

        existing = self._registry.get(collectible.id)
        if existing is not None and existing.live:
            if existing.protected:
                log_violation(ConcurrencyViolation(
                    existing.key, existing.state, "create_or_update", OWNER.value,
                ))
                return existing
            if not force_update and existing.fingerprint == collectible.fingerprint:
                return existing
            if not self._detach(existing):
                return existing

        return self._render_collectible(collectible)

    def remove(self, key: str) -> bool:
        """Detach the handle and drop the registry entry. Refused for protected markers."""
        marker = self._registry.get(key)
        if marker is None:
            return False
        return self._detach(marker)

    def focus(self, key: str) -> bool:
        """Fly the camera onto a marker (double-click zoom)."""
        marker = self._registry.get(key)
        if marker is None:
            return False
        self._surface.fly_to(marker.latitude, marker.longitude, self._focus_zoom)
        return True

    # --- Bulk refresh -----------------------------------------------------

    def bulk_refresh(
        self, collectibles: list[Collectible], force_update: bool = False,
    ) -> RefreshOutcome:
        """Reconcile all non-draft markers against `collectibles`.

        The set is recorded even when the pass is skipped, so rerender() after
        a release or a debounce applies the latest data at the current zoom.
        """
        self._collectibles = list(collectibles)
        if self._registry.any_protected:
            logger.info(
                "Bulk refresh skipped: a protected marker is on the map",
                extra={"outcome": RefreshOutcome.SKIPPED_PROTECTED},
            )
            return RefreshOutcome.SKIPPED_PROTECTED

        if self.user_interacting:
            logger.debug("Bulk refresh skipped: viewport under user control")
            return RefreshOutcome.SKIPPED_INTERACTING

        now = self.now_ms()
        if (
            self._last_refresh_ms is not None
            and now - self._last_refresh_ms < self._debounce_ms
        ):
            logger.debug("Bulk refresh skipped: inside debounce window")
            return RefreshOutcome.SKIPPED_DEBOUNCED

        if not self._surface.is_ready():
            self._gate.run_when_ready(
                "bulk_refresh",
                lambda: self.bulk_refresh(self._collectibles or [], force_update),
            )
            return RefreshOutcome.DEFERRED_NOT_READY

        self._last_refresh_ms = now
        self._apply_refresh(self._collectibles, force_update, now)
        return RefreshOutcome.APPLIED

    def _apply_refresh(
        self, collectibles: list[Collectible], force_update: bool, now: float,
    ) -> None:
        plan = plan_render(collectibles, self.zoom, self._threshold, self._tolerance)
        clustered = should_cluster(self.zoom, self._threshold)
        mode_changed = self._last_clustered is not None and self._last_clustered != clustered
        self._last_clustered = clustered

        by_id = {c.id: c for c in plan.individual}
        clusters = {cl.key: cl for cl in plan.clusters}
        desired: dict[str, tuple | None] = {
            c.id: c.fingerprint for c in plan.individual
        }
        desired.update({k: tuple(cl.member_ids) for k, cl in clusters.items()})
        claimed = set(by_id)
        for cl in clusters.values():
            claimed.update(cl.member_ids)

        existing = [
            m for m in (self._registry.get(k) for k in self._registry.rendered_keys())
            if m is not None
        ]
        reconcile = plan_reconciliation(
            existing, desired,
            now_ms=now,
            grace_ms=0 if mode_changed else self._grace_ms,
            force=force_update,
            claimed=claimed,
        )

        for key in reconcile.remove:
            self.remove(key)
        for key in reconcile.replace:
            marker = self._registry.get(key)
            if marker is not None and self._detach(marker):
                self._render_key(key, by_id, clusters)
        for key in reconcile.create:
            self._render_key(key, by_id, clusters)

        self.render_passes += 1
        logger.info(
            f"Marker refresh: +{len(reconcile.create)} ~{len(reconcile.replace)} "
            f"-{len(reconcile.remove)} ={len(reconcile.keep)} "
            f"(zoom {self.zoom:.1f}, clusters {len(clusters)})",
            extra={"outcome": RefreshOutcome.APPLIED},
        )

    # --- Viewport ---------------------------------------------------------

    def set_user_interacting(self, interacting: bool) -> None:
        self.user_interacting = interacting

    def set_zoom(self, zoom: float) -> RefreshOutcome | None:
        """Record a zoom change; re-render when it crosses the cluster threshold."""
        previous = self.zoom
        self.zoom = zoom
        if self._collectibles is None:
            return None
        if not crosses_threshold(previous, zoom, self._threshold):
            return None
        return self.bulk_refresh(self._collectibles)

    def rerender(self) -> RefreshOutcome | None:
        if self._collectibles is None:
            return None
        return self.bulk_refresh(self._collectibles)

    # --- Draft primitives (used by PinPlacementController) ----------------

    def create_draft(self, lat: float, lng: float) -> Marker:
        marker = Marker(
            key=DRAFT_MARKER_KEY, kind=MarkerKind.DRAFT,
            latitude=lat, longitude=lng,
        )
        spec = MarkerSpec(
            key=DRAFT_MARKER_KEY, kind=MarkerKind.DRAFT,
            latitude=lat, longitude=lng, label="📍", draggable=True,
        )
        return self._render(marker, spec)

    def remove_draft(self) -> bool:
        draft = self._registry.draft
        if draft is None:
            return False
        return self._detach(draft)

    # --- Teardown ---------------------------------------------------------

    def teardown(self) -> int:
        """Release every handle. The owning session is closing, so protection does not apply."""
        self._gate.cancel_all()
        released = self._registry.teardown()
        for marker in released:
            if marker.handle is not None:
                self._surface.remove_marker(marker.handle)
        self._collectibles = None
        self._last_refresh_ms = None
        self._last_clustered = None
        logger.info(f"Map session teardown released {len(released)} marker(s)")
        return len(released)

    # --- Internals --------------------------------------------------------

    def _render_key(
        self, key: str, by_id: dict[str, Collectible], clusters: dict[str, Cluster],
    ) -> None:
        if key in clusters:
            self._render_cluster(clusters[key])
        else:
            self._render_collectible(by_id[key])

    def _render_collectible(self, collectible: Collectible) -> Marker:
        marker = Marker(
            key=collectible.id, kind=MarkerKind.COLLECTIBLE,
            latitude=collectible.latitude, longitude=collectible.longitude,
            collectible=collectible,
        )
        spec = MarkerSpec(
            key=collectible.id, kind=MarkerKind.COLLECTIBLE,
            latitude=collectible.latitude, longitude=collectible.longitude,
            label=collectible.name, media_url=collectible.media_url,
            color=profile_for(collectible.rarity).color,
            on_click=lambda: self._open_detail(collectible.id),
        )
        return self._render(marker, spec)

    def _render_cluster(self, cluster: Cluster) -> Marker:
        marker = Marker(
            key=cluster.key, kind=MarkerKind.CLUSTER,
            latitude=cluster.centroid_lat, longitude=cluster.centroid_lng,
            member_ids=tuple(cluster.member_ids),
        )
        target_zoom = expansion_zoom(self._threshold)
        spec = MarkerSpec(
            key=cluster.key, kind=MarkerKind.CLUSTER,
            latitude=cluster.centroid_lat, longitude=cluster.centroid_lng,
            label=cluster.label,
            on_click=lambda: self._surface.fly_to(
                cluster.centroid_lat, cluster.centroid_lng, target_zoom,
            ),
        )
        return self._render(marker, spec)

    def _render(self, marker: Marker, spec: MarkerSpec) -> Marker:
        self._registry.register(marker)
        self._registry.apply(marker.key, MarkerEvent.CREATE, OWNER)
        marker.handle = self._surface.add_marker(spec)
        self._registry.apply(marker.key, MarkerEvent.SETTLE, OWNER, now_ms=self.now_ms())
        return marker

    def _detach(self, marker: Marker) -> bool:
        violation = self._registry.apply(marker.key, MarkerEvent.REMOVE, OWNER)
        if violation is not None:
            log_violation(violation)
            return False
        if marker.handle is not None:
            self._surface.remove_marker(marker.handle)
            marker.handle = None
        return True

    def _open_detail(self, key: str) -> None:
        marker = self._registry.get(key)
        if marker is None or marker.collectible is None or self._detail_view is None:
            return
        self._detail_view.open(marker.collectible)
