"""Geographic predicates and spatial indexes."""

from realty_corridor.geo.polygon import (
    compose_predicates,
    filter_in_polygon,
    haversine_m,
    listing_coordinates,
    parse_coordinates,
    point_in_polygon,
    polygon_predicate,
)
from realty_corridor.geo.spatial_index import SpatialIndexManager

__all__ = [
    "SpatialIndexManager",
    "compose_predicates",
    "filter_in_polygon",
    "haversine_m",
    "listing_coordinates",
    "parse_coordinates",
    "point_in_polygon",
    "polygon_predicate",
]
