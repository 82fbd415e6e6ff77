"""Collectible Schemas — Pydantic models for the Collectible Directory wire format.

Invariants:
    - CollectiblePayload.id is always a string (numeric ids are coerced)
    - Coordinates arrive as numbers OR numeric strings; to_collectible() runs them
      through the coordinate validator and returns None when they are unusable
    - PinRequest enforces |lat| <= 90, |lng| <= 180 and radius >= 0
    - radius_meters 0 is kept as 0 (exact-match authoring only); absent radius
      falls back to the rarity profile
    - Media URL resolution: IPFS gateway URL from (server_url, ipfs_hash), then
      image_url, then full_ipfs_url, else None

Design Decisions:
    - extra="ignore": the directory returns more than the map needs
    - field_validator for side-effect-free transforms (coercion, strip) — keeps models pure
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geotrove.core.coordinates import validate_coordinates
from geotrove.core.domain_types import Collectible, CollectibleId
from geotrove.core.rarity import parse_rarity, profile_for


PUBLIC_IPFS_GATEWAY = "https://ipfs.io/ipfs/"

_IPFS_PATH = re.compile(r"/ipfs/.*$", re.IGNORECASE)
_TRAILING_SLASHES = re.compile(r"/+$")
_PROTOCOL = re.compile(r"^https?://", re.IGNORECASE)


def ipfs_gateway_url(server_url: str | None, ipfs_hash: str | None) -> str | None:
    """Build https://{gateway}/ipfs/{hash}, always trusting ipfs_hash over the URL path."""
    if not ipfs_hash:
        return None
    if not server_url:
        return f"{PUBLIC_IPFS_GATEWAY}{ipfs_hash}"
    base = _IPFS_PATH.sub("", server_url.strip())
    base = _TRAILING_SLASHES.sub("", base)
    base = _PROTOCOL.sub("", base)
    if not base:
        return f"{PUBLIC_IPFS_GATEWAY}{ipfs_hash}"
    return f"https://{base}/ipfs/{ipfs_hash}"


def ipfs_hash_of(media_url: str | None) -> str | None:
    """Content hash from a gateway URL (".../ipfs/<hash>"), else None."""
    if not media_url:
        return None
    _, sep, tail = media_url.partition("/ipfs/")
    if not sep:
        return None
    return tail.strip("/").split("/")[0] or None


class CollectiblePayload(BaseModel):
    """One collectible as returned by GET /nft/nearby."""
    model_config = ConfigDict(extra="ignore")

    id: str
    latitude: float | str | None = None
    longitude: float | str | None = None
    radius_meters: float | None = Field(None, ge=0)
    rarity_level: str | None = None
    collection_id: str | None = None
    name: str = ""
    ipfs_hash: str | None = None
    server_url: str | None = None
    image_url: str | None = None
    full_ipfs_url: str | None = None

    @field_validator("id", "collection_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: object) -> object:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("name", mode="before")
    @classmethod
    def name_or_empty(cls, v: object) -> object:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @property
    def media_url(self) -> str | None:
        return (
            ipfs_gateway_url(self.server_url, self.ipfs_hash)
            or self.image_url
            or self.full_ipfs_url
        )

    def to_collectible(self) -> Collectible | None:
        """Domain object with validated (swap-corrected) anchor, or None."""
        result = validate_coordinates(self.latitude, self.longitude)
        if not result.valid:
            return None
        rarity = parse_rarity(self.rarity_level)
        radius = (
            self.radius_meters if self.radius_meters is not None
            else profile_for(rarity).collection_radius_meters
        )
        return Collectible(
            id=CollectibleId(self.id),
            latitude=result.latitude,
            longitude=result.longitude,
            radius_meters=radius,
            rarity=rarity,
            collection_id=self.collection_id,
            media_url=self.media_url,
            name=self.name,
        )


class NearbyResponse(BaseModel):
    """GET /nft/nearby response envelope. Records are validated one by one."""
    nfts: list[Any] = Field(default_factory=list)


class PinRequest(BaseModel):
    """POST /nft/pin body."""
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_meters: float = Field(ge=0)
    rarity_level: str = "common"
    collection_id: str | None = None
    ipfs_hash: str | None = None
    image_url: str | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty or whitespace")
        return v

    @classmethod
    def from_collectible(cls, collectible: Collectible, description: str = "") -> "PinRequest":
        ipfs_hash = ipfs_hash_of(collectible.media_url)
        return cls(
            name=collectible.name,
            description=description,
            latitude=collectible.latitude,
            longitude=collectible.longitude,
            radius_meters=collectible.radius_meters,
            rarity_level=collectible.rarity.value,
            collection_id=collectible.collection_id,
            ipfs_hash=ipfs_hash,
            image_url=None if ipfs_hash else collectible.media_url,
        )


class PinResponse(BaseModel):
    """POST /nft/pin response — the directory may nest the record under "nft"."""
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    nft: CollectiblePayload | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: object) -> object:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def collectible_id(self) -> str | None:
        if self.id:
            return self.id
        return self.nft.id if self.nft is not None else None


class CollectRequest(BaseModel):
    """POST /nft/collect body."""
    nft_id: str
    user_latitude: float = Field(ge=-90, le=90)
    user_longitude: float = Field(ge=-180, le=180)
