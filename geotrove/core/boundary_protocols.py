"""Boundary Protocols — contracts between the map core and its collaborators.

Invariants:
    - Core NEVER imports a concrete collaborator — dependency arrows point inward only
    - Render surface, authoring form, detail view and notifier are synchronous
      (they are UI calls that complete within one callback turn)
    - Location Provider and Collectible Directory are async (they do IO)
    - Scheduler time is in seconds (asyncio convention); core functions take ms

Design Decisions:
    - Protocol over ABC: structural subtyping, fakes in tests need no inheritance
    - MarkerSpec is a plain dataclass: the surface receives everything it needs to
      draw a marker without reaching back into the registry
"""

from dataclasses import dataclass
from typing import Callable, Protocol

from geotrove.core.domain_types import (
    Collectible, CollectibleId, LocationErrorCode, MarkerKind, UserPosition,
)


@dataclass(frozen=True)
class MarkerSpec:
    """Everything the rendering surface needs to draw one marker."""
    key: str
    kind: MarkerKind
    latitude: float
    longitude: float
    label: str = ""
    media_url: str | None = None
    color: str | None = None
    draggable: bool = False
    on_click: Callable[[], None] | None = None


class LocationProviderError(Exception):
    """Raised by LocationProvider implementations."""

    def __init__(self, code: LocationErrorCode, message: str = ""):
        super().__init__(message or code.value)
        self.code = code


# ─── Timing ──────────────────────────────────────────────────────

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Injectable clock + timer source."""
    def now(self) -> float: ...
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


# ─── Consumed collaborators ──────────────────────────────────────

class LocationProvider(Protocol):
    async def get_current_position(
        self, high_accuracy: bool, timeout_ms: int, max_age_ms: int,
    ) -> UserPosition: ...
    def watch_position(self, callback: Callable[[UserPosition], None]) -> int: ...
    def clear_watch(self, watch_id: int) -> None: ...


class CollectibleDirectory(Protocol):
    async def list_nearby(
        self, lat: float, lng: float, radius_meters: float,
    ) -> list[Collectible]: ...
    async def pin(self, collectible: Collectible) -> CollectibleId: ...
    async def collect(
        self, collectible_id: CollectibleId, lat: float, lng: float,
    ) -> dict: ...


# ─── Driven collaborators ────────────────────────────────────────

class RenderSurface(Protocol):
    """Map Rendering Surface — only the lifecycle manager and pin controller call it."""
    def is_ready(self) -> bool: ...
    def add_marker(self, spec: MarkerSpec) -> object: ...
    def move_marker(self, handle: object, lat: float, lng: float) -> None: ...
    def marker_position(self, handle: object) -> tuple[float, float]: ...
    def remove_marker(self, handle: object) -> None: ...
    def set_emphasis(self, handle: object, emphasized: bool) -> None: ...
    def fly_to(self, lat: float, lng: float, zoom: float) -> None: ...
    def ease_to(self, lat: float, lng: float, zoom: float | None = None) -> None: ...


class AuthoringForm(Protocol):
    def show_live_coordinates(self, lat: float, lng: float) -> None: ...
    def commit_coordinates(self, lat: float, lng: float) -> None: ...
    def set_validation(self, valid: bool, reason: str) -> None: ...
    def set_distance_to_target(self, meters: float | None) -> None: ...


class DetailView(Protocol):
    def open(self, collectible: Collectible) -> None: ...


class UserNotifier(Protocol):
    def notify(self, notice: dict) -> None: ...
