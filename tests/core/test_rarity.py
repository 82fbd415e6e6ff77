"""Rarity profile tests."""

import pytest

from geotrove.core.domain_types import RarityTier
from geotrove.core.rarity import RARITY_PROFILES, parse_rarity, profile_for


def test_every_tier_has_a_profile():
    assert set(RARITY_PROFILES) == set(RarityTier)


@pytest.mark.parametrize(
    "raw, tier",
    [("rare", RarityTier.RARE), (" LEGENDARY ", RarityTier.LEGENDARY),
     (RarityTier.COMMON, RarityTier.COMMON), ("mythic", RarityTier.COMMON),
     (None, RarityTier.COMMON)],
)
def test_parse_rarity(raw, tier):
    assert parse_rarity(raw) == tier


def test_profile_colors():
    assert profile_for("common").color == "#4CAF50"
    assert profile_for("rare").color == "#2196F3"
    assert profile_for("legendary").color == "#9C27B0"


def test_default_collection_radius():
    assert all(p.collection_radius_meters == 10.0 for p in RARITY_PROFILES.values())
