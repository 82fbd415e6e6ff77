"""Clustering Decision Logic — zoom-dependent aggregation of nearby collectibles.

Invariants:
    - zoom < threshold → cluster; zoom >= threshold → every collectible is individual
    - Greedy, input-ordered: a collectible joins the FIRST cluster whose running
      centroid is within the merge tolerance (Euclidean, degrees)
    - Centroids update incrementally: c_n = c_{n-1} + (p - c_{n-1}) / n
    - Only clusters with 2+ members render as cluster markers; singletons are individual
    - expansion_zoom always exceeds the threshold (unless capped by MAX_ZOOM)

Design Decisions:
    - Degree-space distance: clustering is a visual decision at low zoom where
      meters-level accuracy is irrelevant
"""

import math
from dataclasses import dataclass, field

from geotrove.core.domain_types import CLUSTER_KEY_PREFIX, Collectible


MAX_ZOOM: float = 22.0
EXPANSION_STEP: float = 2.0


@dataclass
class Cluster:
    """Aggregate of collectibles rendered as one marker labeled with its count."""
    centroid_lat: float
    centroid_lng: float
    member_ids: list[str] = field(default_factory=list)

    @classmethod
    def seed(cls, collectible: Collectible) -> "Cluster":
        return cls(collectible.latitude, collectible.longitude, [collectible.id])

    @property
    def count(self) -> int:
        return len(self.member_ids)

    @property
    def key(self) -> str:
        return f"{CLUSTER_KEY_PREFIX}{self.member_ids[0]}"

    @property
    def label(self) -> str:
        return str(self.count)

    def distance_to(self, lat: float, lng: float) -> float:
        return math.hypot(lat - self.centroid_lat, lng - self.centroid_lng)

    def add(self, collectible: Collectible) -> None:
        """Join a member and move the centroid incrementally."""
        self.member_ids.append(collectible.id)
        n = len(self.member_ids)
        self.centroid_lat += (collectible.latitude - self.centroid_lat) / n
        self.centroid_lng += (collectible.longitude - self.centroid_lng) / n


@dataclass
class RenderPlan:
    individual: list[Collectible] = field(default_factory=list)
    clusters: list[Cluster] = field(default_factory=list)

    @property
    def clustered(self) -> bool:
        return bool(self.clusters)


def should_cluster(zoom: float, threshold: float) -> bool:
    return zoom < threshold


def crosses_threshold(old_zoom: float | None, new_zoom: float, threshold: float) -> bool:
    """True when a zoom change flips between cluster and individual mode."""
    if old_zoom is None:
        return True
    return should_cluster(old_zoom, threshold) != should_cluster(new_zoom, threshold)


def build_clusters(collectibles: list[Collectible], tolerance_deg: float) -> list[Cluster]:
    """Greedy grouping in input order, including single-member clusters."""
    clusters: list[Cluster] = []
    for collectible in collectibles:
        for cluster in clusters:
            if cluster.distance_to(collectible.latitude, collectible.longitude) < tolerance_deg:
                cluster.add(collectible)
                break
        else:
            clusters.append(Cluster.seed(collectible))
    return clusters


def plan_render(
    collectibles: list[Collectible], zoom: float, threshold: float,
    tolerance_deg: float,
) -> RenderPlan:
    """Decide, for the current zoom, what gets a marker of its own."""
    if not should_cluster(zoom, threshold):
        return RenderPlan(individual=list(collectibles))

    by_id = {c.id: c for c in collectibles}
    plan = RenderPlan()
    for cluster in build_clusters(collectibles, tolerance_deg):
        if cluster.count >= 2:
            plan.clusters.append(cluster)
        else:
            plan.individual.append(by_id[cluster.member_ids[0]])
    return plan


def expansion_zoom(threshold: float, step: float = EXPANSION_STEP) -> float:
    """Zoom used when a cluster is clicked — past the threshold so it splits."""
    return min(threshold + step, MAX_ZOOM)
