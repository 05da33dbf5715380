"""Tests for polygon containment and listing predicates."""

import math

import pytest

from realty_corridor.geo.polygon import (
    compose_predicates,
    filter_in_polygon,
    haversine_m,
    parse_coordinates,
    point_in_polygon,
    polygon_predicate,
)
from realty_corridor.models.catalog import Coordinates, Listing

SQUARE = [
    Coordinates(lat=0.0, lng=0.0),
    Coordinates(lat=0.0, lng=10.0),
    Coordinates(lat=10.0, lng=10.0),
    Coordinates(lat=10.0, lng=0.0),
]


def test_point_inside_square() -> None:
    assert point_in_polygon(Coordinates(lat=5.0, lng=5.0), SQUARE)


def test_point_outside_square() -> None:
    assert not point_in_polygon(Coordinates(lat=15.0, lng=5.0), SQUARE)
    assert not point_in_polygon(Coordinates(lat=5.0, lng=-1.0), SQUARE)


def test_polygon_with_fewer_than_three_vertices_contains_nothing() -> None:
    assert not point_in_polygon(Coordinates(lat=0.0, lng=0.0), SQUARE[:2])
    assert not point_in_polygon(Coordinates(lat=0.0, lng=0.0), [])


def test_concave_polygon_excludes_notch() -> None:
    # U shape opening to the north
    u_shape = [
        Coordinates(lat=0, lng=0),
        Coordinates(lat=0, lng=3),
        Coordinates(lat=3, lng=3),
        Coordinates(lat=3, lng=2),
        Coordinates(lat=1, lng=2),
        Coordinates(lat=1, lng=1),
        Coordinates(lat=3, lng=1),
        Coordinates(lat=3, lng=0),
    ]

    assert point_in_polygon(Coordinates(lat=2, lng=0.5), u_shape)
    assert not point_in_polygon(Coordinates(lat=2, lng=1.5), u_shape)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"lat": "55.1", "lng": 37.2}, Coordinates(lat=55.1, lng=37.2)),
        ({"lat": 55.1, "lon": 37.2}, Coordinates(lat=55.1, lng=37.2)),
        ((55.1, 37.2), Coordinates(lat=55.1, lng=37.2)),
        ({"lat": "north", "lng": 37.2}, None),
        ({"lat": math.nan, "lng": 37.2}, None),
        ((55.1,), None),
        ("55.1,37.2", None),
        (None, None),
    ],
)
def test_parse_coordinates(raw: object, expected: Coordinates | None) -> None:
    assert parse_coordinates(raw) == expected


def test_filter_skips_items_without_coordinates() -> None:
    listings = [
        Listing(id="in", coordinates=Coordinates(lat=1.0, lng=1.0)),
        Listing(id="out", coordinates=Coordinates(lat=20.0, lng=1.0)),
        Listing(id="missing"),
    ]

    found = filter_in_polygon(listings, SQUARE)

    assert [listing.id for listing in found] == ["in"]


def test_filter_with_custom_extractor() -> None:
    rows = [{"id": "a", "point": (2.0, 2.0)}, {"id": "b", "point": (30.0, 2.0)}]

    found = filter_in_polygon(rows, SQUARE, lambda row: parse_coordinates(row["point"]))

    assert [row["id"] for row in found] == ["a"]


def test_compose_predicates_requires_all() -> None:
    inside = polygon_predicate(SQUARE)
    cheap = compose_predicates(inside, lambda listing: (listing.price or 0) < 100)

    assert cheap(Listing(id="1", price=50, coordinates=Coordinates(lat=1, lng=1)))
    assert not cheap(Listing(id="2", price=500, coordinates=Coordinates(lat=1, lng=1)))
    assert compose_predicates()(Listing(id="3"))


def test_haversine_one_degree_of_latitude() -> None:
    distance = haversine_m(Coordinates(lat=0, lng=0), Coordinates(lat=1, lng=0))
    assert distance == pytest.approx(111_195, rel=1e-3)
