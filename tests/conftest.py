"""Root conftest — shared fixtures wiring the marker pipeline from in-memory fakes.

Invariants:
    - Every test gets a fresh registry, scheduler, and surface
    - Settings never read the developer's .env or GEOTROVE_* environment
"""

import os

import pytest

from geotrove.config import Settings, get_settings
from geotrove.core.marker_registry import MarkerRegistry
from geotrove.services.marker_lifecycle import MarkerLifecycleManager
from geotrove.services.pin_placement import PinPlacementController
from geotrove.services.position_watchdog import PositionWatchdog
from geotrove.services.render_readiness import RenderReadinessGate

from tests.fakes import (
    FakeDetailView, FakeForm, FakeNotifier, FakeSurface, ManualScheduler,
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for key in list(os.environ):
        if key.startswith("GEOTROVE_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(map_access_token="pk.test-token", _env_file=None)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def registry():
    return MarkerRegistry()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def form():
    return FakeForm()


@pytest.fixture
def detail_view():
    return FakeDetailView()


@pytest.fixture
def gate(surface, scheduler, settings, notifier):
    return RenderReadinessGate(
        surface, scheduler, settings.render_retry_policy,
        on_exhausted=lambda e: notifier.notify(e.to_notice()),
    )


@pytest.fixture
def lifecycle(surface, registry, scheduler, gate, settings, detail_view):
    return MarkerLifecycleManager(
        surface, registry, scheduler, gate, settings, detail_view=detail_view,
    )


@pytest.fixture
def watchdog(surface, scheduler, settings):
    return PositionWatchdog(
        surface, scheduler,
        settings.pin_watchdog_interval_ms, settings.pin_watchdog_window_ms,
    )


@pytest.fixture
def pins(lifecycle, registry, surface, form, watchdog):
    return PinPlacementController(lifecycle, registry, surface, form, watchdog)
