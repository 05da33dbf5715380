"""Domain records and SQLAlchemy ORM models."""

from realty_corridor.models.base import Base
from realty_corridor.models.catalog import (
    Address,
    AddressMatchConfidence,
    Coordinates,
    ItemKind,
    Listing,
    ListingStatus,
    MapArea,
    MergeItem,
    ObjectStatus,
    OwnerStatus,
    PriceHistoryEntry,
    ProcessingStatus,
    RealEstateObject,
    needs_address_review,
)
from realty_corridor.models.evaluation import (
    AnalysisSession,
    Confidence,
    Corridor,
    Corridors,
    EvaluationKind,
    EvaluationRecord,
)
from realty_corridor.models.record import CatalogRecord

__all__ = [
    "Address",
    "AddressMatchConfidence",
    "AnalysisSession",
    "Base",
    "CatalogRecord",
    "Confidence",
    "Coordinates",
    "Corridor",
    "Corridors",
    "EvaluationKind",
    "EvaluationRecord",
    "ItemKind",
    "Listing",
    "ListingStatus",
    "MapArea",
    "MergeItem",
    "ObjectStatus",
    "OwnerStatus",
    "PriceHistoryEntry",
    "ProcessingStatus",
    "RealEstateObject",
    "needs_address_review",
]
