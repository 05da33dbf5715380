"""Point-in-polygon tests and composable listing predicates."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from realty_corridor.models.catalog import Coordinates

T = TypeVar("T")

Predicate = Callable[[T], bool]
CoordinateExtractor = Callable[[Any], Coordinates | None]

EARTH_RADIUS_M = 6_371_000.0


def _to_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_coordinates(value: object) -> Coordinates | None:
    """Coerce a coordinate-like value into ``Coordinates``.

    Accepts ``Coordinates``, mappings with ``lat`` and ``lng``/``lon`` keys, and
    ``(lat, lng)`` pairs. Anything unparsable yields ``None``.
    """

    if value is None:
        return None
    if isinstance(value, Coordinates):
        lat, lng = _to_float(value.lat), _to_float(value.lng)
    elif isinstance(value, Mapping):
        lat = _to_float(value.get("lat"))
        lng = _to_float(value.get("lng", value.get("lon")))
    elif isinstance(value, Sequence) and not isinstance(value, str | bytes):
        if len(value) != 2:
            return None
        lat, lng = _to_float(value[0]), _to_float(value[1])
    else:
        return None

    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)


def listing_coordinates(item: Any) -> Coordinates | None:
    """Default extractor: the item's own ``coordinates`` attribute."""

    return parse_coordinates(getattr(item, "coordinates", None))


def point_in_polygon(point: Coordinates, polygon: Sequence[Coordinates]) -> bool:
    """Ray-casting parity test with x = longitude and y = latitude.

    The polygon is implicitly closed. Self-intersecting or degenerate polygons
    are not rejected; the result is whatever the parity rule yields.
    """

    if len(polygon) < 3:
        return False

    x, y = point.lng, point.lat
    inside = False
    j = len(polygon) - 1
    for i, vertex in enumerate(polygon):
        xi, yi = vertex.lng, vertex.lat
        xj, yj = polygon[j].lng, polygon[j].lat
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def bounding_box(
    polygon: Iterable[Coordinates],
) -> tuple[float, float, float, float] | None:
    """Return ``(min_lat, min_lng, max_lat, max_lng)`` or ``None`` when empty."""

    points = list(polygon)
    if not points:
        return None
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return min(lats), min(lngs), max(lats), max(lngs)


def haversine_m(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters."""

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def polygon_predicate(
    polygon: Sequence[Coordinates],
    extractor: CoordinateExtractor = listing_coordinates,
) -> Predicate[Any]:
    """Build a predicate matching items whose coordinates fall inside ``polygon``."""

    vertices = list(polygon)

    def predicate(item: Any) -> bool:
        point = extractor(item)
        return point is not None and point_in_polygon(point, vertices)

    return predicate


def compose_predicates(*predicates: Predicate[T]) -> Predicate[T]:
    """AND-combine predicates; no predicates matches everything."""

    def combined(item: T) -> bool:
        return all(predicate(item) for predicate in predicates)

    return combined


def filter_in_polygon(
    items: Iterable[T],
    polygon: Sequence[Coordinates],
    extractor: CoordinateExtractor = listing_coordinates,
) -> list[T]:
    predicate = polygon_predicate(polygon, extractor)
    return [item for item in items if predicate(item)]
