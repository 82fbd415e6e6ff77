"""Reconcile Planner — single diff-and-reconcile policy for bulk marker refreshes.

Invariants:
    - plan_reconciliation is PURE: it partitions keys, it never touches markers
    - Every desired key lands in exactly one of create / replace / keep
    - Every existing key lands in exactly one of replace / remove / keep
    - Stale markers (fingerprint changed) are always replaced
    - Unchanged markers are kept unless the refresh is forced
    - Forced replacement and removal both spare markers updated within the grace window
    - Grace never keeps a marker that draws a collectible some desired marker
      already draws (individual vs. cluster member): one handle per collectible
    - Protected markers are always kept

Design Decisions:
    - One policy for both "markers already exist" and "data changed" paths:
      a forced refresh is the same diff with unchanged markers treated as stale
"""

from dataclasses import dataclass, field

from geotrove.core.marker_registry import Marker


@dataclass
class ReconcilePlan:
    create: list[str] = field(default_factory=list)
    replace: list[str] = field(default_factory=list)
    remove: list[str] = field(default_factory=list)
    keep: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.create or self.replace or self.remove)


def within_grace(marker: Marker, now_ms: float, grace_ms: float) -> bool:
    return marker.last_updated_ms > 0 and (now_ms - marker.last_updated_ms) < grace_ms


def _draws(marker: Marker) -> set[str]:
    return set(marker.member_ids) if marker.member_ids else {marker.key}


def plan_reconciliation(
    existing: list[Marker],
    desired: dict[str, tuple | None],
    *,
    now_ms: float,
    grace_ms: float,
    force: bool,
    claimed: set[str] | frozenset[str] = frozenset(),
) -> ReconcilePlan:
    """Diff live markers against the desired key → fingerprint map.

    `claimed` holds every collectible id the desired markers draw, cluster
    members included.
    """
    plan = ReconcilePlan()
    current = {m.key: m for m in existing}

    for key, fingerprint in desired.items():
        marker = current.get(key)
        if marker is None:
            plan.create.append(key)
        elif marker.protected:
            plan.keep.append(key)
        elif marker.fingerprint != fingerprint:
            plan.replace.append(key)
        elif force and not within_grace(marker, now_ms, grace_ms):
            plan.replace.append(key)
        else:
            plan.keep.append(key)

    for key, marker in current.items():
        if key in desired:
            continue
        if marker.protected:
            plan.keep.append(key)
        elif _draws(marker) & claimed:
            plan.remove.append(key)
        elif within_grace(marker, now_ms, grace_ms):
            plan.keep.append(key)
        else:
            plan.remove.append(key)

    return plan
