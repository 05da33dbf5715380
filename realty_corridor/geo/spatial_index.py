"""Named grid indexes for repeated polygon queries over listing sets."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from realty_corridor.geo.polygon import (
    CoordinateExtractor,
    bounding_box,
    listing_coordinates,
    point_in_polygon,
)
from realty_corridor.models.catalog import Coordinates

logger = logging.getLogger(__name__)

Cell = tuple[int, int]


@dataclass(slots=True)
class _Entry:
    item: Any
    point: Coordinates


@dataclass(slots=True)
class GridIndex:
    """Uniform lat/lng grid; each cell holds the entries whose point falls in it."""

    cell_degrees: float
    extractor: CoordinateExtractor
    cells: dict[Cell, list[_Entry]] = field(default_factory=dict)
    data_count: int = 0
    skipped_count: int = 0
    last_updated: datetime | None = None

    def cell_of(self, lat: float, lng: float) -> Cell:
        return (
            math.floor(lat / self.cell_degrees),
            math.floor(lng / self.cell_degrees),
        )

    def load(self, items: Iterable[Any]) -> None:
        cells: dict[Cell, list[_Entry]] = defaultdict(list)
        indexed = skipped = 0
        for item in items:
            point = self.extractor(item)
            if point is None:
                skipped += 1
                continue
            cells[self.cell_of(point.lat, point.lng)].append(_Entry(item, point))
            indexed += 1
        self.cells = dict(cells)
        self.data_count = indexed
        self.skipped_count = skipped
        self.last_updated = datetime.now(UTC)

    def query(self, polygon: Sequence[Coordinates]) -> list[Any]:
        box = bounding_box(polygon)
        if box is None:
            return []
        min_lat, min_lng, max_lat, max_lng = box
        low = self.cell_of(min_lat, min_lng)
        high = self.cell_of(max_lat, max_lng)

        found: list[Any] = []
        for cell, entries in self.cells.items():
            if not (low[0] <= cell[0] <= high[0] and low[1] <= cell[1] <= high[1]):
                continue
            for entry in entries:
                point = entry.point
                if not (min_lat <= point.lat <= max_lat and min_lng <= point.lng <= max_lng):
                    continue
                if point_in_polygon(point, polygon):
                    found.append(entry.item)
        return found


class SpatialIndexManager:
    """Registry of grid indexes keyed by logical name (e.g. ``"listings"``).

    Building is replace-on-build. Callers must await a build before querying the
    same name.
    """

    def __init__(self, cell_degrees: float = 0.01) -> None:
        if cell_degrees <= 0:
            raise ValueError("cell_degrees must be positive")
        self._cell_degrees = cell_degrees
        self._indexes: dict[str, GridIndex] = {}

    def build(
        self,
        name: str,
        items: Iterable[Any],
        extractor: CoordinateExtractor = listing_coordinates,
    ) -> GridIndex:
        index = GridIndex(cell_degrees=self._cell_degrees, extractor=extractor)
        index.load(items)
        self._indexes[name] = index
        logger.debug(
            "Built spatial index %s: %s items, %s skipped",
            name,
            index.data_count,
            index.skipped_count,
        )
        return index

    def ensure(
        self,
        name: str,
        items: Iterable[Any],
        extractor: CoordinateExtractor = listing_coordinates,
    ) -> GridIndex:
        """Return the named index, rebuilding it when the extraction rule changed."""

        index = self._indexes.get(name)
        if index is not None and index.extractor is extractor:
            return index
        if index is not None:
            logger.info("Rebuilding spatial index %s: coordinate extractor changed", name)
        return self.build(name, items, extractor)

    def built_with(self, name: str, extractor: CoordinateExtractor) -> bool:
        index = self._indexes.get(name)
        return index is not None and index.extractor is extractor

    def find_in_area(self, name: str, polygon: Sequence[Coordinates]) -> list[Any]:
        index = self._indexes.get(name)
        if index is None:
            logger.warning("Spatial index %s not found", name)
            return []
        return index.query(polygon)

    def has_index(self, name: str) -> bool:
        return name in self._indexes

    def remove(self, name: str) -> bool:
        return self._indexes.pop(name, None) is not None

    def clear(self) -> None:
        self._indexes.clear()

    def stats(self) -> dict[str, dict[str, object]]:
        return {
            name: {
                "data_count": index.data_count,
                "skipped_count": index.skipped_count,
                "cell_count": len(index.cells),
                "last_updated": index.last_updated.isoformat()
                if index.last_updated
                else None,
            }
            for name, index in self._indexes.items()
        }
