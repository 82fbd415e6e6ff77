"""Marker registry tests — registration, transitions, violations, teardown."""

import pytest

from geotrove.core.domain_types import (
    DRAFT_MARKER_KEY, MarkerEvent, MarkerKind, MarkerOwner, MarkerState,
)
from geotrove.core.marker_registry import Marker, MarkerRegistry

from tests.fakes import make_collectible

LIFECYCLE = MarkerOwner.LIFECYCLE
PINS = MarkerOwner.PIN_PLACEMENT


def _stable(registry, key="a", kind=MarkerKind.COLLECTIBLE, now_ms=None):
    collectible = make_collectible(key, 1.0, 2.0) if kind == MarkerKind.COLLECTIBLE else None
    marker = Marker(key=key, kind=kind, latitude=1.0, longitude=2.0, collectible=collectible)
    registry.register(marker)
    registry.apply(key, MarkerEvent.CREATE, LIFECYCLE)
    registry.apply(key, MarkerEvent.SETTLE, LIFECYCLE, now_ms=now_ms)
    return marker


def test_register_and_settle():
    registry = MarkerRegistry()
    marker = _stable(registry, now_ms=500.0)
    assert registry.get("a") is marker
    assert marker.state == MarkerState.STABLE
    assert marker.last_updated_ms == 500.0
    assert "a" in registry and len(registry) == 1


def test_register_refuses_second_live_marker():
    registry = MarkerRegistry()
    _stable(registry)
    with pytest.raises(ValueError):
        registry.register(Marker(key="a", kind=MarkerKind.COLLECTIBLE, latitude=0, longitude=0))


def test_remove_drops_entry():
    registry = MarkerRegistry()
    _stable(registry)
    assert registry.apply("a", MarkerEvent.REMOVE, LIFECYCLE) is None
    assert registry.get("a") is None


def test_illegal_transition_returns_violation():
    registry = MarkerRegistry()
    _stable(registry)
    violation = registry.apply("a", MarkerEvent.SETTLE, LIFECYCLE)
    assert violation is not None
    assert violation.marker_key == "a"
    assert violation.state == MarkerState.STABLE
    assert "discarded" in violation.describe()
    assert registry.get("a").state == MarkerState.STABLE


def test_unknown_key_returns_violation():
    violation = MarkerRegistry().apply("ghost", MarkerEvent.REMOVE, LIFECYCLE)
    assert violation is not None
    assert violation.state == MarkerState.ABSENT


def test_protected_draft_blocks_remove_and_reports_protection():
    registry = MarkerRegistry()
    draft = _stable(registry, key=DRAFT_MARKER_KEY, kind=MarkerKind.DRAFT)
    for event in (MarkerEvent.GRAB, MarkerEvent.DROP, MarkerEvent.PROTECT):
        assert registry.apply(DRAFT_MARKER_KEY, event, PINS) is None
    assert registry.draft is draft
    assert registry.any_protected
    assert registry.apply(DRAFT_MARKER_KEY, MarkerEvent.REMOVE, LIFECYCLE) is not None
    assert registry.draft is draft


def test_rendered_keys_exclude_draft():
    registry = MarkerRegistry()
    _stable(registry, key="a")
    _stable(registry, key=DRAFT_MARKER_KEY, kind=MarkerKind.DRAFT)
    _stable(registry, key="cluster:b", kind=MarkerKind.CLUSTER)
    assert sorted(registry.rendered_keys()) == ["a", "cluster:b"]
    assert [m.key for m in registry.of_kind(MarkerKind.CLUSTER)] == ["cluster:b"]


def test_fingerprints():
    registry = MarkerRegistry()
    marker = _stable(registry)
    assert marker.fingerprint == marker.collectible.fingerprint
    cluster = Marker(
        key="cluster:x", kind=MarkerKind.CLUSTER, latitude=0, longitude=0,
        member_ids=("x", "y"),
    )
    assert cluster.fingerprint == ("x", "y")


def test_teardown_empties_registry_even_when_protected():
    registry = MarkerRegistry()
    _stable(registry, key="a")
    _stable(registry, key=DRAFT_MARKER_KEY, kind=MarkerKind.DRAFT)
    registry.apply(DRAFT_MARKER_KEY, MarkerEvent.GRAB, PINS)
    released = registry.teardown()
    assert len(released) == 2
    assert all(m.state == MarkerState.REMOVED for m in released)
    assert len(registry) == 0
