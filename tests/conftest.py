"""Test fixtures for Taskiq, the async runtime and catalog data."""

import os
import sys
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

os.environ["TASKIQ_TESTING"] = "1"

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest

from realty_corridor.models.catalog import (
    Address,
    Coordinates,
    Listing,
    MapArea,
    ProcessingStatus,
)
from realty_corridor.taskiq_app.broker import broker
from realty_corridor.taskiq_app.dedup import _MEMORY_LOCKS


@pytest.fixture(scope="function", autouse=True)
async def init_taskiq(anyio_backend: str) -> AsyncIterator[None]:
    """Initialize broker per test when using InMemoryBroker."""

    _MEMORY_LOCKS.clear()
    await broker.startup()
    yield
    await broker.shutdown()
    _MEMORY_LOCKS.clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_listing(listing_id: str, **overrides: object) -> Listing:
    """Listing at a central Moscow address, ready for duplicate checking."""

    values: dict[str, object] = {
        "price": 10_000_000,
        "address_id": "addr-1",
        "coordinates": Coordinates(lat=55.7558, lng=37.6173),
        "area_total": 54.0,
        "floor": 5,
        "floors_total": 12,
        "rooms": 2,
        "property_type": "2k",
        "house_type": "panel",
        "processing_status": ProcessingStatus.DUPLICATE_CHECK_NEEDED,
        "created": datetime(2024, 1, 10, tzinfo=UTC),
        "updated": datetime(2024, 1, 20, tzinfo=UTC),
    }
    values.update(overrides)
    return Listing(id=listing_id, **values)  # type: ignore[arg-type]


@pytest.fixture
def square_area() -> MapArea:
    return MapArea(
        id="area-1",
        name="Center",
        polygon=[
            Coordinates(lat=55.75, lng=37.61),
            Coordinates(lat=55.76, lng=37.61),
            Coordinates(lat=55.76, lng=37.63),
            Coordinates(lat=55.75, lng=37.63),
        ],
    )


@pytest.fixture
def center_address() -> Address:
    return Address(
        id="addr-1",
        coordinates=Coordinates(lat=55.7558, lng=37.6173),
        address="Tverskaya 1",
    )
