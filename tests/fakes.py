"""In-memory fakes for every map-core boundary protocol.

Invariants:
    - ManualScheduler only moves when advance() is called; timers fire in due order,
      including timers scheduled by callbacks during the same advance()
    - FakeSurface hands out integer handles and keeps every add/remove for assertions
    - FakeLocationProvider can succeed, fail with a provider code, or hang forever

Design Decisions:
    - Flat fake classes (no inheritance): Protocols are structural, fakes stay explicit
    - Recorded calls as plain lists: assertions read like the behavior they check
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from geotrove.core.boundary_protocols import LocationProviderError, MarkerSpec
from geotrove.core.domain_types import (
    Collectible, CollectibleId, LocationErrorCode, MarkerKind, UserPosition,
)
from geotrove.core.errors import DirectoryUnavailableError


# -- Scheduler -----------------------------------------------------------------


@dataclass
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock: seconds, starting well above zero."""

    def __init__(self, start: float = 1_000.0):
        self._now = start
        self._seq = 0
        self._timers: list[_ManualTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _ManualTimer:
        self._seq += 1
        timer = _ManualTimer(self._now + max(delay_s, 0.0), self._seq, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._timers.remove(timer)
            self._now = max(self._now, timer.due)
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self._now = target

    def advance_ms(self, ms: float) -> None:
        self.advance(ms / 1000)


# -- Render surface ------------------------------------------------------------


class FakeSurface:
    def __init__(self, ready: bool = True):
        self.ready = ready
        self.specs: dict[int, MarkerSpec] = {}
        self.positions: dict[int, tuple[float, float]] = {}
        self.emphasis: dict[int, bool] = {}
        self.added: list[MarkerSpec] = []
        self.removed: list[int] = []
        self.moves: list[tuple[int, float, float]] = []
        self.flights: list[tuple[float, float, float]] = []
        self.eases: list[tuple[float, float, float | None]] = []
        self._next_handle = 0

    def is_ready(self) -> bool:
        return self.ready

    def add_marker(self, spec: MarkerSpec) -> int:
        self._next_handle += 1
        handle = self._next_handle
        self.specs[handle] = spec
        self.positions[handle] = (spec.latitude, spec.longitude)
        self.added.append(spec)
        return handle

    def move_marker(self, handle: int, lat: float, lng: float) -> None:
        self.positions[handle] = (lat, lng)
        self.moves.append((handle, lat, lng))

    def marker_position(self, handle: int) -> tuple[float, float]:
        return self.positions[handle]

    def remove_marker(self, handle: int) -> None:
        self.specs.pop(handle, None)
        self.positions.pop(handle, None)
        self.removed.append(handle)

    def set_emphasis(self, handle: int, emphasized: bool) -> None:
        self.emphasis[handle] = emphasized

    def fly_to(self, lat: float, lng: float, zoom: float) -> None:
        self.flights.append((lat, lng, zoom))

    def ease_to(self, lat: float, lng: float, zoom: float | None = None) -> None:
        self.eases.append((lat, lng, zoom))

    # --- Test helpers -----------------------------------------------------

    def drift(self, handle: int, lat: float, lng: float) -> None:
        """Simulate the surface moving a marker on its own."""
        self.positions[handle] = (lat, lng)

    def handles_for(self, key: str) -> list[int]:
        return [h for h, spec in self.specs.items() if spec.key == key]

    def live_of_kind(self, kind: MarkerKind) -> list[MarkerSpec]:
        return [spec for spec in self.specs.values() if spec.kind == kind]

    def click(self, key: str) -> None:
        (handle,) = self.handles_for(key)
        on_click = self.specs[handle].on_click
        assert on_click is not None
        on_click()


# -- UI collaborators ----------------------------------------------------------


@dataclass
class FakeForm:
    live: list[tuple[float, float]] = field(default_factory=list)
    committed: list[tuple[float, float]] = field(default_factory=list)
    validations: list[tuple[bool, str]] = field(default_factory=list)
    distances: list[float | None] = field(default_factory=list)

    def show_live_coordinates(self, lat: float, lng: float) -> None:
        self.live.append((lat, lng))

    def commit_coordinates(self, lat: float, lng: float) -> None:
        self.committed.append((lat, lng))

    def set_validation(self, valid: bool, reason: str) -> None:
        self.validations.append((valid, reason))

    def set_distance_to_target(self, meters: float | None) -> None:
        self.distances.append(meters)


@dataclass
class FakeDetailView:
    opened: list[Collectible] = field(default_factory=list)

    def open(self, collectible: Collectible) -> None:
        self.opened.append(collectible)


@dataclass
class FakeNotifier:
    notices: list[dict] = field(default_factory=list)

    def notify(self, notice: dict) -> None:
        self.notices.append(notice)

    @property
    def codes(self) -> list[str]:
        return [n["code"] for n in self.notices]

    @property
    def messages(self) -> list[str]:
        return [n["message"] for n in self.notices]


# -- IO collaborators ----------------------------------------------------------


class FakeLocationProvider:
    def __init__(
        self,
        position: UserPosition | None = None,
        error: LocationErrorCode | None = None,
        hang: bool = False,
    ):
        self.position = position
        self.error = error
        self.hang = hang
        self.requests: list[tuple[bool, int, int]] = []
        self.watches: dict[int, Callable[[UserPosition], None]] = {}
        self.cleared: list[int] = []
        self._next_watch = 0

    async def get_current_position(
        self, high_accuracy: bool, timeout_ms: int, max_age_ms: int,
    ) -> UserPosition:
        self.requests.append((high_accuracy, timeout_ms, max_age_ms))
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise LocationProviderError(self.error)
        assert self.position is not None
        return self.position

    def watch_position(self, callback: Callable[[UserPosition], None]) -> int:
        self._next_watch += 1
        self.watches[self._next_watch] = callback
        return self._next_watch

    def clear_watch(self, watch_id: int) -> None:
        self.watches.pop(watch_id, None)
        self.cleared.append(watch_id)

    def emit(self, position: UserPosition) -> None:
        for callback in list(self.watches.values()):
            callback(position)


class FakeDirectory:
    def __init__(self, nearby: list[Collectible] | None = None):
        self.nearby = list(nearby or [])
        self.fail_nearby = False
        self.nearby_calls: list[tuple[float, float, float]] = []
        self.pinned: list[Collectible] = []
        self.collected: list[tuple[str, float, float]] = []
        self.gate: asyncio.Event | None = None

    async def list_nearby(
        self, lat: float, lng: float, radius_meters: float,
    ) -> list[Collectible]:
        self.nearby_calls.append((lat, lng, radius_meters))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_nearby:
            raise DirectoryUnavailableError("connection refused", "list_nearby")
        return list(self.nearby)

    async def pin(self, collectible: Collectible) -> CollectibleId:
        self.pinned.append(collectible)
        return CollectibleId(f"pinned-{len(self.pinned)}")

    async def collect(
        self, collectible_id: CollectibleId, lat: float, lng: float,
    ) -> dict:
        self.collected.append((collectible_id, lat, lng))
        return {"success": True, "nft_id": collectible_id}


def make_collectible(cid: str, lat: float, lng: float, **kwargs) -> Collectible:
    return Collectible(id=CollectibleId(cid), latitude=lat, longitude=lng, **kwargs)
