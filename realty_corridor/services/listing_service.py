"""Listing lookups by polygon or stored area, and address resolution."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from realty_corridor.config import get_settings
from realty_corridor.db.store import CatalogStore, Collection
from realty_corridor.detectors.address import AddressMatcher
from realty_corridor.errors import NotFoundError, OperationResult
from realty_corridor.geo.polygon import (
    CoordinateExtractor,
    Predicate,
    compose_predicates,
    listing_coordinates,
)
from realty_corridor.geo.spatial_index import SpatialIndexManager
from realty_corridor.models.catalog import (
    Coordinates,
    Listing,
    MapArea,
    needs_address_review,
)

logger = logging.getLogger(__name__)

LISTINGS_INDEX = "listings"


class ListingService:
    """Service layer for listing searches over the record store."""

    def __init__(
        self,
        store: CatalogStore,
        index_manager: SpatialIndexManager | None = None,
        extractor: CoordinateExtractor = listing_coordinates,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._indexes = index_manager or SpatialIndexManager(
            get_settings().spatial_index_cell_degrees
        )

    async def refresh_index(self) -> int:
        """Rebuild the listings index from the store; returns indexed count."""

        listings = await self._store.get_all(Collection.LISTINGS)
        index = self._indexes.build(LISTINGS_INDEX, listings, self._extractor)
        if index.skipped_count:
            logger.info(
                "%s listings without coordinates left out of the index",
                index.skipped_count,
            )
        return index.data_count

    async def find_listings_in_polygon(
        self,
        polygon: Sequence[Coordinates],
        *predicates: Predicate[Listing],
        refresh: bool = False,
    ) -> list[Listing]:
        if refresh:
            await self.refresh_index()
        elif not self._indexes.built_with(LISTINGS_INDEX, self._extractor):
            listings = await self._store.get_all(Collection.LISTINGS)
            self._indexes.ensure(LISTINGS_INDEX, listings, self._extractor)
        found = self._indexes.find_in_area(LISTINGS_INDEX, polygon)
        if predicates:
            keep = compose_predicates(*predicates)
            found = [listing for listing in found if keep(listing)]
        return found

    async def find_listings_in_area(
        self, area_id: str, *predicates: Predicate[Listing], refresh: bool = False
    ) -> OperationResult[list[Listing]]:
        area: MapArea | None = await self._store.get(Collection.AREAS, area_id)
        if area is None:
            return OperationResult.failure(NotFoundError("area not found", item_id=area_id))
        listings = await self.find_listings_in_polygon(
            area.polygon, *predicates, refresh=refresh
        )
        return OperationResult.success(listings)

    async def resolve_addresses(
        self, listings: Sequence[Listing] | None = None
    ) -> list[Listing]:
        """Suggest addresses for ``address_needed`` listings and persist changes."""

        if listings is None:
            listings = await self._store.get_all(Collection.LISTINGS)
        addresses = await self._store.get_all(Collection.ADDRESSES)
        matcher = AddressMatcher(addresses, get_settings().address_match_radii_m)

        changed = matcher.resolve(listings)
        for listing in changed:
            await self._store.update(Collection.LISTINGS, listing)
        return changed

    async def address_review_queue(self) -> list[Listing]:
        listings = await self._store.get_all(Collection.LISTINGS)
        return [listing for listing in listings if needs_address_review(listing)]
