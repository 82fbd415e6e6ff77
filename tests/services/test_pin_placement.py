"""Pin placement tests — singleton draft, protected drag flow, authoritative commit.

Invariants:
    - At most one draft handle on the surface at any time
    - drag_end commits exactly the dropped coordinates and locks the draft
    - Only submit() and cancel() release protection
"""

import pytest

from geotrove.core.domain_types import (
    DRAFT_MARKER_KEY, MarkerState, RarityTier, UserPosition,
)
from geotrove.core.errors import (
    CoordinateInputError, NoDraftPinError, PinAlreadyPlacedError, PinDetailsError,
)
from geotrove.services.pin_placement import PinDetails

from tests.fakes import FakeDirectory


def _drop(pins, start=(10.0, 20.0), end=(10.001, 20.001)):
    pins.place(*start)
    pins.drag_start()
    return pins.drag_end(*end)


# --- place --------------------------------------------------------------------

def test_place_creates_single_draft(pins, surface, form):
    marker = pins.place(10.0, 20.0)
    assert marker.state == MarkerState.STABLE
    assert len(surface.handles_for(DRAFT_MARKER_KEY)) == 1
    assert surface.added[0].draggable
    assert form.live == [(10.0, 20.0)]
    assert form.validations[-1] == (True, "ok")


def test_place_again_moves_unlocked_draft(pins, surface):
    first = pins.place(10.0, 20.0)
    second = pins.place(11.0, 21.0)
    assert surface.removed == [first.handle]
    assert surface.handles_for(DRAFT_MARKER_KEY) == [second.handle]


def test_place_same_coordinates_is_noop(pins, surface):
    first = pins.place(10.0, 20.0)
    assert pins.place(10.0000001, 20.0) is first
    assert len(surface.added) == 1


def test_place_rejected_when_draft_is_locked(pins, surface):
    _drop(pins)
    with pytest.raises(PinAlreadyPlacedError) as exc:
        pins.place(30.0, 40.0)
    assert exc.value.user_message == "pin already placed — remove it first"
    assert len(surface.handles_for(DRAFT_MARKER_KEY)) == 1


def test_place_ignored_while_dragging(pins, surface):
    draft = pins.place(10.0, 20.0)
    pins.drag_start()
    assert pins.place(30.0, 40.0) is draft
    assert pins.place("north", 40.0) is draft
    assert len(surface.added) == 1


def test_place_invalid_coordinates_reports_to_form(pins, form, surface):
    with pytest.raises(CoordinateInputError):
        pins.place("abc", 20.0)
    assert form.validations == [(False, "non_finite")]
    assert surface.added == []


def test_place_swapped_coordinates_are_corrected(pins):
    marker = pins.place(120.0, 45.0)
    assert (marker.latitude, marker.longitude) == (45.0, 120.0)


# --- drag ---------------------------------------------------------------------

def test_drag_commits_exact_coordinates(pins, form, surface, registry):
    final = _drop(pins)
    draft = registry.draft
    assert final == (10.001, 20.001)
    assert form.committed == [(10.001, 20.001)]
    assert pins.submission_coordinates() == (10.001, 20.001)
    assert draft.state == MarkerState.PROTECTED
    assert draft.locked and draft.protected
    assert surface.positions[draft.handle] == (10.001, 20.001)


def test_drag_start_emphasizes_and_protects(pins, surface, registry):
    pins.place(10.0, 20.0)
    assert pins.drag_start()
    assert registry.draft.state == MarkerState.DRAGGING
    assert registry.any_protected
    assert surface.emphasis[registry.draft.handle] is True


def test_live_drag_reports_without_committing(pins, form):
    pins.user_position = UserPosition(10.0, 20.0)
    pins.place(10.0, 20.0)
    pins.drag_start()
    assert pins.drag(10.0005, 20.0)
    assert form.live[-1] == (10.0005, 20.0)
    assert form.distances[-1] == pytest.approx(55.6, rel=0.01)
    assert form.committed == []


def test_drag_end_on_invalid_position_keeps_last(pins, form):
    pins.place(10.0, 20.0)
    pins.drag_start()
    assert pins.drag_end(float("nan"), 20.0) == (10.0, 20.0)
    assert form.committed == [(10.0, 20.0)]


def test_drag_without_draft_raises(pins):
    with pytest.raises(NoDraftPinError):
        pins.drag_start()


def test_redrag_after_lock(pins, form):
    _drop(pins)
    assert pins.drag_start()
    assert pins.drag_end(10.002, 20.002) == (10.002, 20.002)
    assert form.committed[-1] == (10.002, 20.002)


def test_drift_after_drop_is_corrected(pins, surface, scheduler, registry):
    _drop(pins)
    handle = registry.draft.handle
    surface.drift(handle, 10.0, 20.0)
    scheduler.advance_ms(150)
    assert surface.positions[handle] == (10.001, 20.001)

    scheduler.advance(10)
    surface.drift(handle, 0.0, 0.0)
    assert pins.notify_external_mutation()
    assert surface.positions[handle] == (10.001, 20.001)


# --- Authoritative coordinates ------------------------------------------------

def test_search_result_ignored_after_commit(pins, form, registry):
    _drop(pins)
    assert not pins.apply_search_result(48.85, 2.35)
    assert (registry.draft.latitude, registry.draft.longitude) == (10.001, 20.001)
    assert form.committed[-1] == (10.001, 20.001)


def test_search_result_places_when_uncommitted(pins, registry):
    assert pins.apply_search_result(48.85, 2.35)
    assert registry.draft.latitude == 48.85


def test_committed_coordinates_beat_form_values(pins):
    _drop(pins)
    assert pins.submission_coordinates(48.85, 2.35) == (10.001, 20.001)


def test_form_values_used_without_draft(pins):
    assert pins.submission_coordinates("48.85", "2.35") == (48.85, 2.35)
    with pytest.raises(CoordinateInputError):
        pins.submission_coordinates("", "")


# --- submit / cancel ----------------------------------------------------------

async def test_submit_pins_committed_coordinates_and_releases(pins, surface, registry):
    directory = FakeDirectory()
    _drop(pins)
    new_id = await pins.submit(
        PinDetails(name="Golden Acorn", radius_meters=25.0, rarity=RarityTier.RARE),
        directory,
    )
    assert new_id == "pinned-1"
    (pinned,) = directory.pinned
    assert (pinned.latitude, pinned.longitude) == (10.001, 20.001)
    assert pinned.radius_meters == 25.0
    assert pinned.rarity == RarityTier.RARE
    assert registry.draft is None
    assert surface.handles_for(DRAFT_MARKER_KEY) == []
    assert not registry.any_protected
    assert pins.committed is None


async def test_submit_without_draft_raises(pins):
    with pytest.raises(NoDraftPinError):
        await pins.submit(PinDetails(name="x"), FakeDirectory())


@pytest.mark.parametrize("details, field_name", [
    (PinDetails(name="   "), "name"),
    (PinDetails(name="x" * 201), "name"),
    (PinDetails(name="Acorn", radius_meters=-1.0), "radius"),
    (PinDetails(name="Acorn", radius_meters=float("nan")), "radius"),
])
async def test_submit_rejects_unusable_details_and_keeps_draft(
    pins, registry, details, field_name,
):
    directory = FakeDirectory()
    _drop(pins)
    with pytest.raises(PinDetailsError) as exc:
        await pins.submit(details, directory)
    assert exc.value.field_name == field_name
    assert directory.pinned == []
    assert registry.draft.state == MarkerState.PROTECTED
    assert pins.committed == (10.001, 20.001)


async def test_submit_strips_name_and_accepts_zero_radius(pins):
    directory = FakeDirectory()
    _drop(pins)
    await pins.submit(PinDetails(name="  Acorn ", radius_meters=0.0), directory)
    (pinned,) = directory.pinned
    assert pinned.name == "Acorn"
    assert pinned.radius_meters == 0.0


def test_cancel_releases_and_allows_new_pin(pins, surface, registry):
    _drop(pins)
    assert pins.cancel()
    assert registry.draft is None
    assert surface.handles_for(DRAFT_MARKER_KEY) == []
    pins.place(30.0, 40.0)
    assert registry.draft.state == MarkerState.STABLE


def test_cancel_stops_watchdog(pins, watchdog):
    _drop(pins)
    assert watchdog.armed
    pins.cancel()
    assert not watchdog.armed
