"""Text and contact based duplicate detection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

from realty_corridor.detectors.base import BaseDuplicateDetector
from realty_corridor.detectors.similarity import (
    contact_similarity,
    extract_contacts,
    text_similarity,
)
from realty_corridor.models.catalog import Listing
from realty_corridor.services.price_history import as_utc

logger = logging.getLogger(__name__)

TEXT_WEIGHT: Final = 0.6
CONTACT_WEIGHT: Final = 0.4
HIGH_THRESHOLD: Final = 0.75
MEDIUM_THRESHOLD: Final = 0.55
LOW_THRESHOLD: Final = 0.35
AREA_TOLERANCE_M2: Final = 5.0

_NEVER = datetime.max.replace(tzinfo=UTC)


class MatchConfidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"
    INCOMPATIBLE = "incompatible"


def confidence_for(score: float) -> MatchConfidence:
    if score >= HIGH_THRESHOLD:
        return MatchConfidence.HIGH
    if score >= MEDIUM_THRESHOLD:
        return MatchConfidence.MEDIUM
    if score >= LOW_THRESHOLD:
        return MatchConfidence.LOW
    return MatchConfidence.VERY_LOW


@dataclass(slots=True)
class PairScore:
    text: float
    contacts: float
    final: float
    confidence: MatchConfidence

    @property
    def is_duplicate(self) -> bool:
        return self.final >= LOW_THRESHOLD


def listings_compatible(first: Listing, second: Listing) -> bool:
    """Same property type, same floor when both known, areas within 5 m²."""

    if first.property_type != second.property_type:
        return False
    if first.floor and second.floor and first.floor != second.floor:
        return False
    if first.area_total and second.area_total:
        if abs(first.area_total - second.area_total) > AREA_TOLERANCE_M2:
            return False
    return True


def compare_listings(first: Listing, second: Listing) -> PairScore:
    if not listings_compatible(first, second):
        return PairScore(
            text=0.0, contacts=0.0, final=0.0, confidence=MatchConfidence.INCOMPATIBLE
        )

    text = text_similarity(first.description, second.description).combined
    contacts = contact_similarity(extract_contacts(first), extract_contacts(second))
    final = text * TEXT_WEIGHT + contacts * CONTACT_WEIGHT
    return PairScore(
        text=text, contacts=contacts, final=final, confidence=confidence_for(final)
    )


def _creation_key(listing: Listing) -> datetime:
    moment = listing.created or listing.created_at
    return as_utc(moment) if moment is not None else _NEVER


class BasicDuplicateDetector(BaseDuplicateDetector):
    """Anchor-based grouping in creation order.

    Each unprocessed listing anchors a group with its later high-confidence
    duplicates. An anchor whose duplicates are all below ``high`` stays
    pending for manual review; an anchor with no duplicates becomes an object
    on its own.
    """

    strategy = "basic"

    async def cluster(self, listings: list[Listing]) -> list[list[Listing]]:
        ordered = sorted(listings, key=_creation_key)
        taken: set[str] = set()
        clusters: list[list[Listing]] = []

        for index, anchor in enumerate(ordered):
            if anchor.id in taken:
                continue
            await asyncio.sleep(0)

            candidates = [
                listing for listing in ordered[index + 1 :] if listing.id not in taken
            ]
            duplicates = sorted(
                (
                    (candidate, score)
                    for candidate in candidates
                    if (score := compare_listings(anchor, candidate)).is_duplicate
                ),
                key=lambda pair: pair[1].final,
                reverse=True,
            )

            if not duplicates:
                clusters.append([anchor])
                taken.add(anchor.id)
                continue

            confident = [
                candidate
                for candidate, score in duplicates
                if score.confidence == MatchConfidence.HIGH
            ]
            if not confident:
                logger.info(
                    "Listing %s has %s uncertain duplicates; left for manual review",
                    anchor.id,
                    len(duplicates),
                )
                continue

            clusters.append([anchor, *confident])
            taken.update(listing.id for listing in (anchor, *confident))

        return clusters
