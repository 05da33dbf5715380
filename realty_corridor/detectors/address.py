"""Nearest-address suggestions for listings without a resolved address."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from realty_corridor.geo.polygon import haversine_m, listing_coordinates
from realty_corridor.models.catalog import (
    Address,
    AddressMatchConfidence,
    Listing,
    ProcessingStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_RADII_M = (30.0, 100.0, 300.0)

# An address already set with one of these is kept; None means unset.
TRUSTED_CONFIDENCES = frozenset(
    {AddressMatchConfidence.MANUAL, AddressMatchConfidence.HIGH, None}
)


@dataclass(slots=True)
class AddressSuggestion:
    address_id: str
    confidence: AddressMatchConfidence
    distance_m: float


class AddressMatcher:
    """Suggest the nearest known address, tiered by distance.

    Within the first radius the match is ``high``, within the second ``low``,
    within the third ``very_low``. Farther addresses are not suggested.
    """

    def __init__(
        self,
        addresses: Sequence[Address],
        radii_m: Sequence[float] = DEFAULT_RADII_M,
    ) -> None:
        if len(radii_m) != 3:
            raise ValueError("radii_m must list exactly three radii")
        self._points = [
            (address.id, address.coordinates)
            for address in addresses
            if address.coordinates is not None
        ]
        self._tiers = tuple(
            zip(
                radii_m,
                (
                    AddressMatchConfidence.HIGH,
                    AddressMatchConfidence.LOW,
                    AddressMatchConfidence.VERY_LOW,
                ),
                strict=True,
            )
        )

    def suggest(self, listing: Listing) -> AddressSuggestion | None:
        point = listing_coordinates(listing)
        if point is None or not self._points:
            return None

        best, nearest_id = min(
            (haversine_m(point, coordinates), address_id)
            for address_id, coordinates in self._points
        )
        for radius, confidence in self._tiers:
            if best <= radius:
                return AddressSuggestion(
                    address_id=nearest_id, confidence=confidence, distance_m=best
                )
        return None

    def apply(self, listing: Listing) -> bool:
        """Attach a suggestion to the listing; manual confirmations are kept."""

        if listing.address_match_confidence == AddressMatchConfidence.MANUAL:
            return False
        suggestion = self.suggest(listing)
        if suggestion is None:
            if listing.address_match_confidence is None:
                listing.address_match_confidence = AddressMatchConfidence.NONE
                return True
            return False

        listing.address_id = suggestion.address_id
        listing.address_match_confidence = suggestion.confidence
        listing.address_distance_m = round(suggestion.distance_m, 1)
        return True

    def resolve(self, listings: Sequence[Listing]) -> list[Listing]:
        """Suggest addresses for ``address_needed`` listings.

        Listings that received an address move on to duplicate checking. An
        address already set with high, manual or unset confidence is kept.
        Returns the listings that changed.
        """

        changed: list[Listing] = []
        for listing in listings:
            if listing.processing_status != ProcessingStatus.ADDRESS_NEEDED:
                continue
            if listing.address_id and listing.address_match_confidence in TRUSTED_CONFIDENCES:
                listing.processing_status = ProcessingStatus.DUPLICATE_CHECK_NEEDED
                changed.append(listing)
                continue
            if not self.apply(listing):
                continue
            if listing.address_id:
                listing.processing_status = ProcessingStatus.DUPLICATE_CHECK_NEEDED
            changed.append(listing)

        logger.info(
            "Address resolution: %s of %s listings changed", len(changed), len(listings)
        )
        return changed
