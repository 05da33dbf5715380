"""Tests for merging listings into objects and splitting them back."""

from datetime import UTC, datetime

import pytest

from conftest import make_listing
from realty_corridor.db.store import Collection, InMemoryStore
from realty_corridor.errors import (
    InvalidArgumentError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from realty_corridor.models.catalog import (
    Address,
    ItemKind,
    Listing,
    ListingStatus,
    MergeItem,
    ObjectStatus,
    OwnerStatus,
    PriceHistoryEntry,
    ProcessingStatus,
    RealEstateObject,
)
from realty_corridor.services.object_service import (
    ObjectService,
    build_object_from_listings,
)


def _listing_item(listing_id: str) -> MergeItem:
    return MergeItem(kind=ItemKind.LISTING, id=listing_id)


def _object_item(object_id: str) -> MergeItem:
    return MergeItem(kind=ItemKind.OBJECT, id=object_id)


def _owned(listing_id: str, object_id: str, **overrides: object) -> Listing:
    return make_listing(
        listing_id,
        object_id=object_id,
        processing_status=ProcessingStatus.PROCESSED,
        **overrides,
    )


def test_build_object_aggregates_listings() -> None:
    listings = [
        make_listing("a", area_total=55.0, floor=7, price=9_000_000),
        make_listing(
            "b",
            area_total=53.5,
            floor=3,
            price=9_500_000,
            seller_type="owner",
            updated=datetime(2024, 2, 1, tzinfo=UTC),
        ),
    ]

    obj = build_object_from_listings(listings, object_id="obj-1", address_id="addr-1")

    assert obj.area_total == 53.5
    assert obj.floor == 3
    assert obj.rooms == 2
    assert obj.listings_count == obj.active_listings_count == 2
    assert obj.status == ObjectStatus.ACTIVE
    assert obj.owner_status == OwnerStatus.HAS_OWNER
    assert [entry.price for entry in obj.price_history] == [9_000_000, 9_500_000]
    assert obj.current_price == 9_500_000
    assert obj.price_per_meter == round(9_500_000 / 53.5)
    assert obj.created == datetime(2024, 1, 10, tzinfo=UTC)
    assert obj.updated == datetime(2024, 2, 1, tzinfo=UTC)


def test_build_object_studio_has_zero_rooms_and_archived_status() -> None:
    listings = [
        make_listing("a", property_type="studio", rooms=1, status=ListingStatus.ARCHIVED),
        make_listing(
            "b",
            property_type="studio",
            rooms=1,
            status=ListingStatus.ARCHIVED,
            seller_type="private",
        ),
    ]

    obj = build_object_from_listings(listings)

    assert obj.rooms == 0
    assert obj.status == ObjectStatus.ARCHIVE
    assert obj.active_listings_count == 0
    assert obj.owner_status == OwnerStatus.HAD_OWNER


def test_build_object_requires_listings() -> None:
    with pytest.raises(InvalidArgumentError):
        build_object_from_listings([])


@pytest.mark.anyio
async def test_merge_listings_into_new_object() -> None:
    store = InMemoryStore({"listings": [make_listing("l-1"), make_listing("l-2")]})

    result = await ObjectService(store).merge_into_object(
        [_listing_item("l-1"), _listing_item("l-2")]
    )

    obj = result.unwrap()
    assert obj.address_id == "addr-1"
    assert obj.listings_count == 2
    stored = await store.get_all(Collection.LISTINGS)
    assert {listing.object_id for listing in stored} == {obj.id}
    assert all(
        listing.processing_status == ProcessingStatus.PROCESSED for listing in stored
    )


@pytest.mark.anyio
async def test_merge_rejects_differing_addresses_without_writing() -> None:
    store = InMemoryStore(
        {"listings": [make_listing("l-1"), make_listing("l-2", address_id="addr-2")]}
    )

    result = await ObjectService(store).merge_into_object(
        [_listing_item("l-1"), _listing_item("l-2")]
    )

    assert isinstance(result.error, ValidationError)
    assert await store.get_all(Collection.OBJECTS) == []
    assert all(listing.object_id is None for listing in await store.get_all("listings"))


@pytest.mark.anyio
async def test_merge_error_cases() -> None:
    store = InMemoryStore({"listings": [make_listing("l-1")]})
    service = ObjectService(store)

    assert isinstance((await service.merge_into_object([])).error, InvalidArgumentError)
    missing = await service.merge_into_object([_listing_item("l-1"), _listing_item("x")])
    assert isinstance(missing.error, NotFoundError)
    assert missing.error.item_id == "x"
    bad_kind = await service.merge_into_object([MergeItem(kind="house", id="l-1")])  # type: ignore[arg-type]
    assert isinstance(bad_kind.error, ValidationError)


@pytest.mark.anyio
async def test_merge_absorbs_objects_and_their_history() -> None:
    history = [PriceHistoryEntry(date=datetime(2023, 6, 1, tzinfo=UTC), price=11_000_000)]
    existing = RealEstateObject(id="obj-a", address_id="addr-1", price_history=history)
    store = InMemoryStore(
        {
            "objects": [existing],
            "listings": [
                _owned("l-1", "obj-a"),
                _owned("l-2", "obj-a"),
                make_listing("l-3"),
            ],
        }
    )

    result = await ObjectService(store).merge_into_object(
        [_object_item("obj-a"), _listing_item("l-3")]
    )

    obj = result.unwrap()
    assert obj.id != "obj-a"
    assert obj.listings_count == 3
    assert obj.price_history[0].price == 11_000_000
    assert await store.get(Collection.OBJECTS, "obj-a") is None


@pytest.mark.anyio
async def test_merge_recalculates_object_losing_a_listing() -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-b", address_id="addr-1", listings_count=2)],
            "listings": [
                _owned("l-4", "obj-b"),
                _owned("l-5", "obj-b", price=12_000_000),
                make_listing("l-6"),
            ],
        }
    )

    await ObjectService(store).merge_into_object([_listing_item("l-4"), _listing_item("l-6")])

    remaining = await store.get(Collection.OBJECTS, "obj-b")
    assert remaining is not None
    assert remaining.listings_count == 1
    assert remaining.current_price == 12_000_000


@pytest.mark.anyio
async def test_object_losing_newest_listing_takes_price_from_remaining_ones() -> None:
    store = InMemoryStore(
        {
            "listings": [
                make_listing("l-4", updated=datetime(2024, 2, 1, tzinfo=UTC)),
                make_listing("l-5", price=12_000_000),
                make_listing("l-6"),
            ]
        }
    )
    service = ObjectService(store)
    first = (
        await service.merge_into_object([_listing_item("l-4"), _listing_item("l-5")])
    ).unwrap()
    assert first.current_price == 10_000_000

    await service.merge_into_object([_listing_item("l-4"), _listing_item("l-6")])

    remaining = await store.get(Collection.OBJECTS, first.id)
    assert remaining.listings_count == 1
    assert remaining.current_price == 12_000_000
    assert remaining.price_per_meter == round(12_000_000 / 54.0)
    assert [entry.price for entry in remaining.price_history] == [
        entry.price for entry in first.price_history
    ]


class _SecondListingWriteFails(InMemoryStore):
    def __init__(self, seed: dict[str, list[object]]) -> None:
        super().__init__(seed)
        self.listing_writes = 0

    async def update(self, collection: str, record: object) -> object:
        if collection == Collection.LISTINGS:
            self.listing_writes += 1
            if self.listing_writes == 2:
                raise PersistenceError("disk full")
        return await super().update(collection, record)


@pytest.mark.anyio
async def test_split_failure_leaves_object_untouched() -> None:
    store = _SecondListingWriteFails(
        {
            "objects": [RealEstateObject(id="obj-a")],
            "listings": [_owned("l-1", "obj-a"), _owned("l-2", "obj-a")],
        }
    )

    result = await ObjectService(store).split_objects_to_listings(["obj-a"])

    assert result.deleted_objects_count == 0
    assert result.updated_listings_count == 0
    assert isinstance(result.errors[0], PersistenceError)
    assert result.errors[0].item_id == "obj-a"
    assert await store.get(Collection.OBJECTS, "obj-a") is not None
    for listing in await store.get_all(Collection.LISTINGS):
        assert listing.object_id == "obj-a"
        assert listing.processing_status == ProcessingStatus.PROCESSED


@pytest.mark.anyio
async def test_exclude_failure_rolls_back_detached_listings() -> None:
    store = _SecondListingWriteFails(
        {
            "objects": [RealEstateObject(id="obj-a", listings_count=3)],
            "listings": [
                _owned("l-1", "obj-a"),
                _owned("l-2", "obj-a"),
                _owned("l-3", "obj-a"),
            ],
        }
    )

    with pytest.raises(PersistenceError):
        await ObjectService(store).exclude_listings_from_object("obj-a", ["l-1", "l-2"])

    assert {listing.object_id for listing in await store.get_all(Collection.LISTINGS)} == {
        "obj-a"
    }
    stored = await store.get(Collection.OBJECTS, "obj-a")
    assert stored.listings_count == 3


class _ListingWritesFail(InMemoryStore):
    async def update(self, collection: str, record: object) -> object:
        if collection == Collection.LISTINGS:
            raise PersistenceError("disk full")
        return await super().update(collection, record)


@pytest.mark.anyio
async def test_merge_rolls_back_when_a_write_fails() -> None:
    store = _ListingWritesFail({"listings": [make_listing("l-1"), make_listing("l-2")]})

    with pytest.raises(PersistenceError):
        await ObjectService(store).merge_into_object(
            [_listing_item("l-1"), _listing_item("l-2")]
        )

    assert await store.get_all(Collection.OBJECTS) == []


@pytest.mark.anyio
async def test_split_returns_listings_to_duplicate_check() -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-a")],
            "listings": [_owned("l-1", "obj-a"), _owned("l-2", "obj-a")],
        }
    )

    result = await ObjectService(store).split_objects_to_listings(["obj-a", "missing"])

    assert result.deleted_objects_count == 1
    assert result.updated_listings_count == 2
    assert [error.item_id for error in result.errors] == ["missing"]
    for listing in await store.get_all(Collection.LISTINGS):
        assert listing.object_id is None
        assert listing.processing_status == ProcessingStatus.DUPLICATE_CHECK_NEEDED
    assert result.to_dict()["deletedObjectsCount"] == 1


@pytest.mark.anyio
async def test_split_without_ids_reports_invalid_argument() -> None:
    result = await ObjectService(InMemoryStore()).split_objects_to_listings([])
    assert isinstance(result.errors[0], InvalidArgumentError)


@pytest.mark.anyio
async def test_exclude_listings_and_delete_empty_object() -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-a", address_id="addr-1")],
            "listings": [_owned("l-1", "obj-a"), _owned("l-2", "obj-a")],
        }
    )
    service = ObjectService(store)

    partial = (await service.exclude_listings_from_object("obj-a", ["l-1"])).unwrap()
    assert not partial.object_deleted
    assert partial.remaining_listings == 1

    emptied = (await service.exclude_listings_from_object("obj-a", ["l-2"])).unwrap()
    assert emptied.object_deleted
    assert await store.get(Collection.OBJECTS, "obj-a") is None


@pytest.mark.anyio
async def test_add_listings_rejects_foreign_address() -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-a", address_id="addr-1")],
            "listings": [_owned("l-1", "obj-a"), make_listing("l-2", address_id="addr-9")],
        }
    )

    result = await ObjectService(store).add_listings_to_object("obj-a", ["l-2"])

    assert isinstance(result.error, ValidationError)


@pytest.mark.anyio
async def test_add_listings_recalculates_object() -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-a", address_id="addr-1")],
            "listings": [_owned("l-1", "obj-a"), make_listing("l-2")],
        }
    )

    obj = (await ObjectService(store).add_listings_to_object("obj-a", ["l-2"])).unwrap()

    assert obj.id == "obj-a"
    assert obj.listings_count == 2
    added = await store.get(Collection.LISTINGS, "l-2")
    assert added.object_id == "obj-a"


@pytest.mark.anyio
async def test_refresh_deletes_object_without_listings() -> None:
    store = InMemoryStore({"objects": [RealEstateObject(id="obj-a")]})
    service = ObjectService(store)

    assert await service.refresh_object("obj-a") is None
    assert await store.get(Collection.OBJECTS, "obj-a") is None
    assert await service.refresh_object("obj-a") is None


@pytest.mark.anyio
async def test_get_object_with_listings_includes_address(center_address: Address) -> None:
    store = InMemoryStore(
        {
            "objects": [RealEstateObject(id="obj-a", address_id="addr-1")],
            "listings": [_owned("l-1", "obj-a")],
            "addresses": [center_address],
        }
    )

    view = (await ObjectService(store).get_object_with_listings("obj-a")).unwrap()

    assert [listing.id for listing in view.listings] == ["l-1"]
    assert view.address == center_address
