"""Tests for the grid spatial index manager."""

import random

import pytest

from realty_corridor.geo.polygon import filter_in_polygon, parse_coordinates
from realty_corridor.geo.spatial_index import SpatialIndexManager
from realty_corridor.models.catalog import Coordinates, Listing

AREA = [
    Coordinates(lat=55.70, lng=37.50),
    Coordinates(lat=55.80, lng=37.52),
    Coordinates(lat=55.78, lng=37.70),
    Coordinates(lat=55.71, lng=37.66),
]


def _random_listings(count: int) -> list[Listing]:
    rng = random.Random(7)
    return [
        Listing(
            id=f"l-{n}",
            coordinates=Coordinates(
                lat=rng.uniform(55.6, 55.9), lng=rng.uniform(37.4, 37.8)
            ),
        )
        for n in range(count)
    ]


def test_index_query_matches_linear_scan() -> None:
    listings = _random_listings(400)
    manager = SpatialIndexManager(cell_degrees=0.02)
    manager.build("listings", listings)

    indexed = {listing.id for listing in manager.find_in_area("listings", AREA)}
    scanned = {listing.id for listing in filter_in_polygon(listings, AREA)}

    assert indexed == scanned
    assert indexed


def test_missing_index_returns_empty() -> None:
    manager = SpatialIndexManager()
    assert manager.find_in_area("nope", AREA) == []


def test_stats_count_skipped_items() -> None:
    manager = SpatialIndexManager()
    manager.build(
        "listings",
        [Listing(id="a", coordinates=Coordinates(lat=55.75, lng=37.6)), Listing(id="b")],
    )

    stats = manager.stats()["listings"]

    assert stats["data_count"] == 1
    assert stats["skipped_count"] == 1
    assert stats["cell_count"] == 1
    assert stats["last_updated"] is not None


def test_ensure_rebuilds_only_when_extractor_changes() -> None:
    manager = SpatialIndexManager()
    listings = _random_listings(10)
    first = manager.ensure("listings", listings)

    assert manager.ensure("listings", []) is first

    def from_dict(row: dict[str, object]) -> Coordinates | None:
        return parse_coordinates(row.get("coords"))

    rebuilt = manager.ensure("listings", [{"coords": (55.75, 37.6)}], from_dict)
    assert rebuilt is not first
    assert rebuilt.data_count == 1


def test_remove_and_clear() -> None:
    manager = SpatialIndexManager()
    manager.build("a", [])
    manager.build("b", [])

    assert manager.remove("a")
    assert not manager.remove("a")
    manager.clear()
    assert not manager.has_index("b")


def test_non_positive_cell_size_rejected() -> None:
    with pytest.raises(ValueError):
        SpatialIndexManager(cell_degrees=0)
