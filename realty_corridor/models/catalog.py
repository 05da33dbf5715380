"""Catalog records: addresses, listings, consolidated objects and map areas."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class ListingStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class ObjectStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVE = "archive"


class ProcessingStatus(StrEnum):
    """Position of a listing in the address-resolution/dedup pipeline."""

    ADDRESS_NEEDED = "address_needed"
    DUPLICATE_CHECK_NEEDED = "duplicate_check_needed"
    PROCESSED = "processed"


class AddressMatchConfidence(StrEnum):
    NONE = "none"
    VERY_LOW = "very_low"
    LOW = "low"
    MANUAL = "manual"
    HIGH = "high"


REVIEW_CONFIDENCES = frozenset(
    {AddressMatchConfidence.VERY_LOW, AddressMatchConfidence.LOW}
)


class ItemKind(StrEnum):
    LISTING = "listing"
    OBJECT = "object"


class OwnerStatus(StrEnum):
    HAS_OWNER = "has_owner"
    HAD_OWNER = "had_owner"
    AGENTS_ONLY = "agents_only"


@dataclass(slots=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(slots=True)
class Address:
    """Reference address resolved outside the engine."""

    id: str
    coordinates: Coordinates | None = None
    address: str | None = None
    building_type: str | None = None
    floors_total: int | None = None


@dataclass(slots=True)
class Listing:
    """Single scraped advertisement."""

    id: str
    price: int | None = None
    address_id: str | None = None
    coordinates: Coordinates | None = None
    area_total: float | None = None
    floor: int | None = None
    floors_total: int | None = None
    rooms: int | None = None
    house_type: str | None = None
    property_type: str | None = None
    description: str | None = None
    seller_name: str | None = None
    seller_type: str | None = None
    phone: str | None = None
    status: ListingStatus = ListingStatus.ACTIVE
    processing_status: ProcessingStatus = ProcessingStatus.ADDRESS_NEEDED
    address_match_confidence: AddressMatchConfidence | None = None
    address_distance_m: float | None = None
    object_id: str | None = None
    created: datetime | None = None
    updated: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def needs_address_review(listing: Listing) -> bool:
    """Return whether a listing belongs in the address review queue.

    Manually confirmed addresses never need review again.
    """

    if listing.address_match_confidence == AddressMatchConfidence.MANUAL:
        return False
    if listing.processing_status == ProcessingStatus.ADDRESS_NEEDED:
        return True
    return listing.address_match_confidence in REVIEW_CONFIDENCES


@dataclass(slots=True)
class PriceHistoryEntry:
    date: datetime
    price: int
    listing_id: str | None = None
    price_per_meter: int | None = None


@dataclass(slots=True)
class RealEstateObject:
    """Consolidated unit formed by merging one or more listings."""

    id: str
    address_id: str | None = None
    property_type: str | None = None
    status: ObjectStatus = ObjectStatus.ACTIVE
    current_price: int | None = None
    price_per_meter: int | None = None
    price_history: list[PriceHistoryEntry] = field(default_factory=list)
    listings_count: int = 0
    active_listings_count: int = 0
    area_total: float | None = None
    floor: int | None = None
    floors_total: int | None = None
    rooms: int | None = None
    owner_status: OwnerStatus = OwnerStatus.AGENTS_ONLY
    created: datetime | None = None
    updated: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class MergeItem:
    """Tagged reference to a listing or an object selected for merging."""

    kind: ItemKind
    id: str


@dataclass(slots=True)
class MapArea:
    """Named polygon used to scope listing lookups and duplicate processing."""

    id: str
    name: str
    polygon: list[Coordinates] = field(default_factory=list)
