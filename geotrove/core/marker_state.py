"""Marker State Machine — exhaustive transition table with per-event ownership.

Invariants:
    - next_state is PURE: returns the target state, or None when the transition
      is illegal, wrongly owned, or draft-only on a non-draft marker
    - Every MarkerEvent has exactly one owner:
        LIFECYCLE      → CREATE, SETTLE, REMOVE
        PIN_PLACEMENT  → GRAB, DROP, PROTECT, RELEASE
    - GRAB/DROP/PROTECT/RELEASE apply to the draft marker only
    - DRAGGING, LOCKED and PROTECTED are immune to REMOVE until RELEASE
    - Flags (locked/protected/dragging) are DERIVED from the state, never stored

Design Decisions:
    - One enum + table instead of independent booleans: impossible flag
      combinations cannot be represented
    - Caller (MarkerRegistry) turns a None into a logged ConcurrencyViolation
"""

from geotrove.core.domain_types import MarkerEvent, MarkerOwner, MarkerState


TRANSITIONS: dict[tuple[MarkerState, MarkerEvent], MarkerState] = {
    # Lifecycle Manager
    (MarkerState.ABSENT, MarkerEvent.CREATE): MarkerState.CREATING,
    (MarkerState.CREATING, MarkerEvent.SETTLE): MarkerState.STABLE,
    (MarkerState.CREATING, MarkerEvent.REMOVE): MarkerState.REMOVED,
    (MarkerState.STABLE, MarkerEvent.REMOVE): MarkerState.REMOVED,

    # Pin Placement Controller (draft only)
    (MarkerState.STABLE, MarkerEvent.GRAB): MarkerState.DRAGGING,
    (MarkerState.LOCKED, MarkerEvent.GRAB): MarkerState.DRAGGING,
    (MarkerState.PROTECTED, MarkerEvent.GRAB): MarkerState.DRAGGING,
    (MarkerState.DRAGGING, MarkerEvent.DROP): MarkerState.LOCKED,
    (MarkerState.LOCKED, MarkerEvent.PROTECT): MarkerState.PROTECTED,
    (MarkerState.DRAGGING, MarkerEvent.RELEASE): MarkerState.STABLE,
    (MarkerState.LOCKED, MarkerEvent.RELEASE): MarkerState.STABLE,
    (MarkerState.PROTECTED, MarkerEvent.RELEASE): MarkerState.STABLE,
}

EVENT_OWNERS: dict[MarkerEvent, MarkerOwner] = {
    MarkerEvent.CREATE: MarkerOwner.LIFECYCLE,
    MarkerEvent.SETTLE: MarkerOwner.LIFECYCLE,
    MarkerEvent.REMOVE: MarkerOwner.LIFECYCLE,
    MarkerEvent.GRAB: MarkerOwner.PIN_PLACEMENT,
    MarkerEvent.DROP: MarkerOwner.PIN_PLACEMENT,
    MarkerEvent.PROTECT: MarkerOwner.PIN_PLACEMENT,
    MarkerEvent.RELEASE: MarkerOwner.PIN_PLACEMENT,
}

DRAFT_ONLY_EVENTS = frozenset({
    MarkerEvent.GRAB, MarkerEvent.DROP, MarkerEvent.PROTECT, MarkerEvent.RELEASE,
})

PROTECTED_STATES = frozenset({
    MarkerState.DRAGGING, MarkerState.LOCKED, MarkerState.PROTECTED,
})
LOCKED_STATES = frozenset({MarkerState.LOCKED, MarkerState.PROTECTED})
DEAD_STATES = frozenset({MarkerState.ABSENT, MarkerState.REMOVED})


def next_state(
    state: MarkerState, event: MarkerEvent, *,
    owner: MarkerOwner, is_draft: bool,
) -> MarkerState | None:
    """Look up the transition. None means: reject and log."""
    if EVENT_OWNERS[event] != owner:
        return None
    if event in DRAFT_ONLY_EVENTS and not is_draft:
        return None
    return TRANSITIONS.get((state, event))


def is_protected(state: MarkerState) -> bool:
    return state in PROTECTED_STATES


def is_locked(state: MarkerState) -> bool:
    return state in LOCKED_STATES


def is_dragging(state: MarkerState) -> bool:
    return state == MarkerState.DRAGGING


def is_live(state: MarkerState) -> bool:
    return state not in DEAD_STATES
