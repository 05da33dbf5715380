"""Duplicate detection runs: strategy selection, timeouts and persistence."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from realty_corridor.config import Settings, get_settings
from realty_corridor.db.store import CatalogStore, Collection
from realty_corridor.detectors import DetectionResult, get_detector
from realty_corridor.detectors.address import AddressMatcher
from realty_corridor.errors import (
    CatalogError,
    NotFoundError,
    OperationResult,
    PersistenceError,
)
from realty_corridor.models.catalog import Listing
from realty_corridor.services.listing_service import ListingService
from realty_corridor.services.object_service import WriteJournal

logger = logging.getLogger(__name__)


class DuplicateService:
    def __init__(
        self,
        store: CatalogStore,
        *,
        listing_service: ListingService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._listings = listing_service or ListingService(store)

    async def detect_duplicates(
        self,
        listings: Sequence[Listing],
        area_id: str | None = None,
        strategy: str | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> DetectionResult:
        """Run a detector over ``listings`` without persisting anything.

        On timeout the counts reached so far are returned with ``timed_out``.
        Raises ``InvalidArgumentError`` for an unknown strategy.
        """

        addresses = await self._store.get_all(Collection.ADDRESSES)
        detector = get_detector(
            strategy or self._settings.default_detector_strategy,
            AddressMatcher(addresses, self._settings.address_match_radii_m),
        )
        timeout = timeout_seconds or self._settings.detector_timeout_seconds

        result = DetectionResult()
        try:
            async with asyncio.timeout(timeout):
                await detector.process(listings, area_id, result)
        except TimeoutError:
            result.timed_out = True
            logger.warning(
                "Duplicate detection timed out after %ss (area=%s): %s processed, %s merged",
                timeout,
                area_id,
                result.processed,
                result.merged,
            )
        return result

    async def persist(self, result: DetectionResult) -> None:
        """Store new objects first, then the listings that reference them.

        A failed write undoes the records already written and raises
        ``PersistenceError``.
        """

        journal = WriteJournal(self._store)
        try:
            for obj in result.new_objects:
                await journal.add(Collection.OBJECTS, obj)
            for listing in result.updated_listings:
                original = await self._store.get(Collection.LISTINGS, listing.id)
                if original is None:
                    raise NotFoundError("listing not found", item_id=listing.id)
                await journal.update(Collection.LISTINGS, listing, original)
        except CatalogError as exc:
            logger.error("Persisting detection result failed, rolling back: %s", exc)
            await journal.rollback()
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(str(exc)) from exc

    async def process_area(
        self,
        area_id: str,
        strategy: str | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> OperationResult[DetectionResult]:
        found = await self._listings.find_listings_in_area(area_id, refresh=True)
        if found.error is not None:
            return OperationResult.failure(found.error)

        try:
            result = await self.detect_duplicates(
                found.unwrap(), area_id, strategy, timeout_seconds=timeout_seconds
            )
        except CatalogError as exc:
            return OperationResult.failure(exc)

        await self.persist(result)
        logger.info(
            "Area %s duplicate processing: %s processed, %s merged, %s objects",
            area_id,
            result.processed,
            result.merged,
            len(result.new_objects),
        )
        return OperationResult.success(result)
