"""Rarity Profiles — per-tier collection radius and marker styling.

Invariants:
    - Every RarityTier has exactly one profile
    - Unknown tier strings resolve to COMMON (never raise)
"""

from dataclasses import dataclass

from geotrove.core.domain_types import RarityTier


@dataclass(frozen=True)
class RarityProfile:
    tier: RarityTier
    collection_radius_meters: float
    color: str


RARITY_PROFILES: dict[RarityTier, RarityProfile] = {
    RarityTier.COMMON: RarityProfile(
        RarityTier.COMMON, 10.0, "#4CAF50",
    ),
    RarityTier.RARE: RarityProfile(
        RarityTier.RARE, 10.0, "#2196F3",
    ),
    RarityTier.LEGENDARY: RarityProfile(
        RarityTier.LEGENDARY, 10.0, "#9C27B0",
    ),
}


def parse_rarity(value: str | RarityTier | None) -> RarityTier:
    if isinstance(value, RarityTier):
        return value
    try:
        return RarityTier((value or "").strip().lower())
    except ValueError:
        return RarityTier.COMMON


def profile_for(value: str | RarityTier | None) -> RarityProfile:
    return RARITY_PROFILES[parse_rarity(value)]
