"""Base duplicate detector definitions."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import ClassVar
from uuid import uuid4

from realty_corridor.detectors.address import AddressMatcher
from realty_corridor.models.catalog import (
    Listing,
    ProcessingStatus,
    RealEstateObject,
    needs_address_review,
)
from realty_corridor.services.object_service import build_object_from_listings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectionResult:
    """Outcome of one detector run; filled in place so partial runs stay visible."""

    processed: int = 0
    merged: int = 0
    updated_listings: list[Listing] = field(default_factory=list)
    new_objects: list[RealEstateObject] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timed_out: bool = False

    def track(self, listing: Listing) -> None:
        """Record a changed listing, replacing an earlier version of it."""

        for index, existing in enumerate(self.updated_listings):
            if existing.id == listing.id:
                self.updated_listings[index] = listing
                return
        self.updated_listings.append(listing)

    def to_dict(self) -> dict[str, object]:
        return {
            "processed": self.processed,
            "merged": self.merged,
            "updated_listings": [listing.id for listing in self.updated_listings],
            "new_objects": [obj.id for obj in self.new_objects],
            "errors": list(self.errors),
            "timed_out": self.timed_out,
        }


def group_by_address(listings: Sequence[Listing]) -> dict[str, list[Listing]]:
    groups: dict[str, list[Listing]] = {}
    for listing in listings:
        if listing.address_id:
            groups.setdefault(listing.address_id, []).append(listing)
    return groups


class BaseDuplicateDetector(ABC):
    """Shared pipeline: address suggestion, grouping by address, clustering.

    Subclasses decide which listings of one address describe the same unit.
    Detectors only compute; persisting the result is the caller's job.
    """

    strategy: ClassVar[str]

    def __init__(self, address_matcher: AddressMatcher | None = None) -> None:
        self._address_matcher = address_matcher

    @abstractmethod
    async def cluster(self, listings: list[Listing]) -> list[list[Listing]]:
        """Return the groups of one address to consolidate, one object each.

        Listings left out of every group stay pending for manual review.
        """

    async def process(
        self,
        listings: Sequence[Listing],
        area_id: str | None = None,
        result: DetectionResult | None = None,
    ) -> DetectionResult:
        result = result if result is not None else DetectionResult()
        candidates = [
            listing
            for listing in listings
            if listing.processing_status == ProcessingStatus.DUPLICATE_CHECK_NEEDED
        ]
        logger.info(
            "%s detector: %s of %s listings need a duplicate check (area=%s)",
            self.strategy,
            len(candidates),
            len(listings),
            area_id,
        )

        if self._address_matcher is not None:
            for listing in candidates:
                if listing.address_id:
                    continue
                if self._address_matcher.apply(listing):
                    result.track(listing)

        mergeable = [
            listing
            for listing in candidates
            if listing.address_id and not needs_address_review(listing)
        ]
        skipped = len(candidates) - len(mergeable)
        if skipped:
            logger.info("%s listings held back for address review", skipped)

        for address_id, group in group_by_address(mergeable).items():
            # Yield between groups so a caller-side timeout can interrupt the run.
            await asyncio.sleep(0)
            try:
                clusters = await self.cluster(group)
            except Exception as exc:
                logger.exception("Clustering failed for address %s", address_id)
                result.errors.append(f"address {address_id}: {exc}")
                continue

            for members in clusters:
                self._consolidate(members, address_id, result)
            result.processed += len(group)

        return result

    def _consolidate(
        self, members: list[Listing], address_id: str, result: DetectionResult
    ) -> None:
        try:
            obj = build_object_from_listings(
                members, object_id=uuid4().hex, address_id=address_id
            )
        except Exception as exc:
            ids = ", ".join(listing.id for listing in members)
            logger.exception("Building object failed for listings %s", ids)
            result.errors.append(f"listings {ids}: {exc}")
            return

        for listing in members:
            listing.object_id = obj.id
            listing.processing_status = ProcessingStatus.PROCESSED
            result.track(listing)
        result.new_objects.append(obj)
        result.merged += len(members)
