"""Consolidation of listings into real-estate objects and back."""

from __future__ import annotations

import copy
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar
from uuid import uuid4

from realty_corridor.db.store import CatalogStore, Collection
from realty_corridor.errors import (
    CatalogError,
    InvalidArgumentError,
    NotFoundError,
    OperationResult,
    PersistenceError,
    SplitResult,
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
from realty_corridor.services.price_history import (
    append_price_observation,
    as_utc,
    price_per_meter,
)

logger = logging.getLogger(__name__)

ROOMS_BY_PROPERTY_TYPE = {"studio": 0, "1k": 1, "2k": 2, "3k": 3, "4k+": 4}
OWNER_SELLER_TYPES = frozenset({"owner", "private"})

V = TypeVar("V")


def _dominant(values: Iterable[V | None]) -> V | None:
    """Most frequent non-empty value; ties go to the first one seen."""

    counts = Counter(value for value in values if value is not None and value != "")
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def _dominant_floor(listings: Sequence[Listing]) -> int | None:
    counts = Counter(
        listing.floor for listing in listings if listing.floor and listing.floor > 0
    )
    if not counts:
        return None
    top = max(counts.values())
    return min(floor for floor, count in counts.items() if count == top)


def _listing_observations(
    listings: Sequence[Listing], area_total: float | None
) -> list[PriceHistoryEntry]:
    """One observation per priced listing, at ``updated`` (or ``created``)."""

    observations: list[PriceHistoryEntry] = []
    for listing in listings:
        observed_at = listing.updated or listing.created
        if not listing.price or listing.price <= 0 or observed_at is None:
            continue
        observations.append(
            PriceHistoryEntry(
                date=as_utc(observed_at),
                price=listing.price,
                listing_id=listing.id,
                price_per_meter=price_per_meter(listing.price, area_total),
            )
        )
    return observations


def _latest_own_price(
    entries: Sequence[PriceHistoryEntry], listing_ids: set[str]
) -> int | None:
    """Newest price observed for one of ``listing_ids``.

    Entries without a listing belong to the object itself and count too.
    """

    latest: tuple[datetime, int, int] | None = None
    for position, entry in enumerate(entries):
        if entry.listing_id is not None and entry.listing_id not in listing_ids:
            continue
        key = (as_utc(entry.date), position, entry.price)
        if latest is None or key[:2] > latest[:2]:
            latest = key
    return latest[2] if latest else None


def merge_price_history(
    listings: Sequence[Listing],
    extra: Iterable[PriceHistoryEntry] = (),
    *,
    area_total: float | None = None,
) -> list[PriceHistoryEntry]:
    """Combine prior history with one observation per priced listing.

    Each listing contributes its price at ``updated`` (or ``created``). Entries
    repeating the same price for the same listing on the same day are dropped.
    """

    entries: list[PriceHistoryEntry] = [
        PriceHistoryEntry(
            date=as_utc(entry.date),
            price=entry.price,
            listing_id=entry.listing_id,
            price_per_meter=entry.price_per_meter,
        )
        for entry in extra
    ]
    entries.extend(_listing_observations(listings, area_total))

    entries.sort(key=lambda entry: entry.date)
    seen: set[tuple[object, int, str | None]] = set()
    unique: list[PriceHistoryEntry] = []
    for entry in entries:
        key = (entry.date.date(), entry.price, entry.listing_id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    return unique


def _owner_status(listings: Sequence[Listing]) -> OwnerStatus:
    owners = [
        listing
        for listing in listings
        if (listing.seller_type or "").strip().lower() in OWNER_SELLER_TYPES
    ]
    if not owners:
        return OwnerStatus.AGENTS_ONLY
    if any(listing.status == ListingStatus.ACTIVE for listing in owners):
        return OwnerStatus.HAS_OWNER
    return OwnerStatus.HAD_OWNER


def _released(listing: Listing) -> Listing:
    """Copy of ``listing`` detached from its object and due for duplicate checks."""

    released = copy.deepcopy(listing)
    released.object_id = None
    released.processing_status = ProcessingStatus.DUPLICATE_CHECK_NEEDED
    return released


def build_object_from_listings(
    listings: Sequence[Listing],
    *,
    object_id: str = "",
    address_id: str | None = None,
    base: RealEstateObject | None = None,
    extra_history: Iterable[PriceHistoryEntry] = (),
) -> RealEstateObject:
    """Aggregate constituent listings into an object without touching storage.

    ``base`` keeps identity and record timestamps of an object being
    recalculated. Its history is kept as is and only appended to; listing
    observations older than its last entry are not inserted. The current
    price always comes from listings still in the object.
    """

    if not listings:
        raise InvalidArgumentError("cannot build an object without listings")

    obj = RealEstateObject(id=base.id if base else object_id)
    if base is not None:
        obj.created_at = base.created_at
        obj.updated_at = base.updated_at
    obj.address_id = address_id
    if address_id is None and base is not None:
        obj.address_id = base.address_id

    obj.property_type = _dominant(listing.property_type for listing in listings)
    areas = [l.area_total for l in listings if l.area_total and l.area_total > 0]
    obj.area_total = min(areas) if areas else None
    obj.floor = _dominant_floor(listings)
    obj.floors_total = listings[0].floors_total
    if obj.property_type in ROOMS_BY_PROPERTY_TYPE:
        obj.rooms = ROOMS_BY_PROPERTY_TYPE[obj.property_type]
    else:
        obj.rooms = _dominant(listing.rooms for listing in listings)

    created = [as_utc(l.created) for l in listings if l.created is not None]
    updated = [as_utc(l.updated) for l in listings if l.updated is not None]
    obj.created = min(created) if created else None
    obj.updated = max(updated) if updated else None

    if base is None:
        obj.price_history = merge_price_history(
            listings, extra_history, area_total=obj.area_total
        )
        observed = obj.price_history
    else:
        incoming = sorted(
            [*extra_history, *_listing_observations(listings, obj.area_total)],
            key=lambda entry: as_utc(entry.date),
        )
        obj.price_history = list(base.price_history)
        for entry in incoming:
            history = obj.price_history
            if history and as_utc(entry.date) < as_utc(history[-1].date):
                continue
            append_price_observation(
                obj, entry.price, entry.date, listing_id=entry.listing_id
            )
        observed = [*base.price_history, *incoming]

    active = [l for l in listings if l.status == ListingStatus.ACTIVE]
    obj.current_price = _latest_own_price(observed, {l.id for l in listings})
    if obj.current_price is None:
        obj.current_price = next(
            (l.price for l in (active or listings) if l.price and l.price > 0), None
        )
    obj.price_per_meter = price_per_meter(obj.current_price, obj.area_total)

    obj.listings_count = len(listings)
    obj.active_listings_count = len(active)
    obj.status = ObjectStatus.ACTIVE if active else ObjectStatus.ARCHIVE
    obj.owner_status = _owner_status(listings)
    return obj


@dataclass(slots=True)
class MergeValidation:
    can_merge: bool
    address_count: int
    addresses: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExcludeResult:
    object_deleted: bool
    remaining_listings: int


@dataclass(slots=True)
class ObjectWithListings:
    object: RealEstateObject
    listings: list[Listing]
    address: Address | None = None


UndoStep = Callable[[], Awaitable[object]]


class WriteJournal:
    """Undo log for multi-record writes; rollback is best effort."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store
        self._undo: list[UndoStep] = []

    async def add(self, collection: Collection, record: Any) -> Any:
        saved = await self._store.add(collection, record)
        self._undo.append(lambda: self._store.delete(collection, saved.id))
        return saved

    async def update(self, collection: Collection, record: Any, original: Any) -> Any:
        saved = await self._store.update(collection, record)
        self._undo.append(lambda: self._store.update(collection, original))
        return saved

    async def delete(self, collection: Collection, original: Any) -> None:
        await self._store.delete(collection, original.id)
        self._undo.append(lambda: self._store.add(collection, original))

    async def rollback(self) -> None:
        for step in reversed(self._undo):
            try:
                await step()
            except CatalogError:
                logger.exception("Rollback step failed")
        self._undo.clear()


class ObjectService:
    """Merge, split and maintain objects through the record store."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    async def _listings_by_object(self) -> dict[str, list[Listing]]:
        grouped: dict[str, list[Listing]] = {}
        for listing in await self._store.get_all(Collection.LISTINGS):
            if listing.object_id:
                grouped.setdefault(listing.object_id, []).append(listing)
        return grouped

    async def _resolve_items(
        self, items: Sequence[MergeItem]
    ) -> tuple[list[Listing], list[RealEstateObject]]:
        listings: list[Listing] = []
        objects: list[RealEstateObject] = []
        for item in items:
            if not isinstance(item, MergeItem) or not item.id:
                raise ValidationError("malformed merge item", item_id=getattr(item, "id", None))
            try:
                kind = ItemKind(item.kind)
            except ValueError as exc:
                raise ValidationError(
                    f"unknown merge item kind: {item.kind}", item_id=item.id
                ) from exc
            if kind == ItemKind.LISTING:
                listing = await self._store.get(Collection.LISTINGS, item.id)
                if listing is None:
                    raise NotFoundError("listing not found", item_id=item.id)
                if all(existing.id != listing.id for existing in listings):
                    listings.append(listing)
            else:
                obj = await self._store.get(Collection.OBJECTS, item.id)
                if obj is None:
                    raise NotFoundError("object not found", item_id=item.id)
                if all(existing.id != obj.id for existing in objects):
                    objects.append(obj)
        return listings, objects

    async def validate_merge_by_address(self, items: Sequence[MergeItem]) -> MergeValidation:
        """Report the distinct concrete addresses the items resolve to."""

        addresses: list[str] = []
        for item in items:
            collection = (
                Collection.LISTINGS if item.kind == ItemKind.LISTING else Collection.OBJECTS
            )
            record = await self._store.get(collection, item.id)
            if record is not None and record.address_id and record.address_id not in addresses:
                addresses.append(record.address_id)
        return MergeValidation(
            can_merge=len(addresses) <= 1,
            address_count=len(addresses),
            addresses=addresses,
        )

    async def _detach_plan(
        self,
        moving: Sequence[Listing],
        keep_object_ids: set[str],
        by_object: dict[str, list[Listing]],
    ) -> list[tuple[RealEstateObject, list[Listing]]]:
        """Objects losing listings to a merge, paired with what they keep."""

        moving_ids = {listing.id for listing in moving}
        plan: list[tuple[RealEstateObject, list[Listing]]] = []
        touched = {
            listing.object_id
            for listing in moving
            if listing.object_id and listing.object_id not in keep_object_ids
        }
        for object_id in sorted(touched):
            obj = await self._store.get(Collection.OBJECTS, object_id)
            if obj is None:
                continue
            remaining = [
                listing
                for listing in by_object.get(object_id, [])
                if listing.id not in moving_ids
            ]
            plan.append((obj, remaining))
        return plan

    async def _apply_detach_plan(
        self,
        journal: WriteJournal,
        plan: Sequence[tuple[RealEstateObject, list[Listing]]],
    ) -> None:
        for obj, remaining in plan:
            if remaining:
                rebuilt = build_object_from_listings(remaining, base=obj)
                await journal.update(Collection.OBJECTS, rebuilt, obj)
            else:
                await journal.delete(Collection.OBJECTS, obj)

    async def merge_into_object(
        self, items: Sequence[MergeItem], address_id: str | None = None
    ) -> OperationResult[RealEstateObject]:
        """Create one object from the selected listings and objects.

        Nothing is written unless every item resolves and shares one address.
        A failed write undoes the records already written and re-raises
        ``PersistenceError``.
        """

        if not items:
            return OperationResult.failure(InvalidArgumentError("nothing selected to merge"))

        try:
            listings, objects = await self._resolve_items(items)
        except (NotFoundError, ValidationError) as exc:
            return OperationResult.failure(exc)

        addresses = {r.address_id for r in [*listings, *objects] if r.address_id}
        if address_id:
            addresses.add(address_id)
        if len(addresses) > 1:
            return OperationResult.failure(
                ValidationError(f"addresses differ: {', '.join(sorted(addresses))}")
            )
        target_address = address_id or next(
            (r.address_id for r in [*listings, *objects] if r.address_id), None
        )

        by_object = await self._listings_by_object()
        merged_object_ids = {obj.id for obj in objects}
        constituents: dict[str, Listing] = {listing.id: listing for listing in listings}
        for obj in objects:
            for listing in by_object.get(obj.id, []):
                constituents.setdefault(listing.id, listing)
        if not constituents:
            return OperationResult.failure(
                InvalidArgumentError("selected items contain no listings")
            )

        members = list(constituents.values())
        detach = await self._detach_plan(members, merged_object_ids, by_object)
        new_object = build_object_from_listings(
            members,
            object_id=uuid4().hex,
            address_id=target_address,
            extra_history=[entry for obj in objects for entry in obj.price_history],
        )

        journal = WriteJournal(self._store)
        try:
            saved = await journal.add(Collection.OBJECTS, new_object)
            for listing in members:
                original = copy.deepcopy(listing)
                listing.object_id = saved.id
                listing.processing_status = ProcessingStatus.PROCESSED
                await journal.update(Collection.LISTINGS, listing, original)
            for obj in objects:
                await journal.delete(Collection.OBJECTS, obj)
            await self._apply_detach_plan(journal, detach)
        except CatalogError as exc:
            logger.error("Merge failed, rolling back: %s", exc)
            await journal.rollback()
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(str(exc)) from exc

        logger.info(
            "Merged %s listings into object %s (address=%s)",
            len(members),
            saved.id,
            target_address,
        )
        return OperationResult.success(saved)

    async def split_objects_to_listings(self, object_ids: Sequence[str]) -> SplitResult:
        """Delete each object and return its listings to duplicate checking.

        Failures are recorded per id; other ids still proceed. A failed write
        undoes whatever was already written for that id.
        """

        result = SplitResult()
        if not object_ids:
            result.errors.append(InvalidArgumentError("no objects selected to split"))
            return result

        by_object = await self._listings_by_object()
        for object_id in object_ids:
            obj = await self._store.get(Collection.OBJECTS, object_id)
            if obj is None:
                result.errors.append(NotFoundError("object not found", item_id=object_id))
                continue

            listings = by_object.get(object_id, [])
            journal = WriteJournal(self._store)
            try:
                for listing in listings:
                    await journal.update(
                        Collection.LISTINGS, _released(listing), listing
                    )
                await journal.delete(Collection.OBJECTS, obj)
            except CatalogError as exc:
                logger.error("Split of object %s failed, rolling back: %s", object_id, exc)
                await journal.rollback()
                result.errors.append(PersistenceError(exc.message, item_id=object_id))
                continue
            result.updated_listings_count += len(listings)
            result.deleted_objects_count += 1

        logger.info(
            "Split %s objects, released %s listings",
            result.deleted_objects_count,
            result.updated_listings_count,
        )
        return result

    async def add_listings_to_object(
        self, object_id: str, listing_ids: Sequence[str]
    ) -> OperationResult[RealEstateObject]:
        if not listing_ids:
            return OperationResult.failure(InvalidArgumentError("no listings selected"))
        obj = await self._store.get(Collection.OBJECTS, object_id)
        if obj is None:
            return OperationResult.failure(NotFoundError("object not found", item_id=object_id))

        try:
            new_listings, _ = await self._resolve_items(
                [MergeItem(kind=ItemKind.LISTING, id=listing_id) for listing_id in listing_ids]
            )
        except (NotFoundError, ValidationError) as exc:
            return OperationResult.failure(exc)

        foreign = {l.address_id for l in new_listings if l.address_id} - {obj.address_id}
        if obj.address_id and foreign:
            return OperationResult.failure(ValidationError("addresses differ"))

        by_object = await self._listings_by_object()
        new_ids = {listing.id for listing in new_listings}
        existing = [l for l in by_object.get(object_id, []) if l.id not in new_ids]
        detach = await self._detach_plan(new_listings, {object_id}, by_object)
        rebuilt = build_object_from_listings([*existing, *new_listings], base=obj)

        journal = WriteJournal(self._store)
        try:
            saved = await journal.update(Collection.OBJECTS, rebuilt, obj)
            for listing in new_listings:
                original = copy.deepcopy(listing)
                listing.object_id = object_id
                listing.processing_status = ProcessingStatus.PROCESSED
                await journal.update(Collection.LISTINGS, listing, original)
            await self._apply_detach_plan(journal, detach)
        except CatalogError as exc:
            logger.error("Adding listings to object %s failed: %s", object_id, exc)
            await journal.rollback()
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(str(exc)) from exc
        return OperationResult.success(saved)

    async def exclude_listings_from_object(
        self, object_id: str, listing_ids: Sequence[str]
    ) -> OperationResult[ExcludeResult]:
        if not listing_ids:
            return OperationResult.failure(InvalidArgumentError("no listings selected"))
        obj = await self._store.get(Collection.OBJECTS, object_id)
        if obj is None:
            return OperationResult.failure(NotFoundError("object not found", item_id=object_id))

        excluded = set(listing_ids)
        remaining: list[Listing] = []
        leaving: list[Listing] = []
        for listing in (await self._listings_by_object()).get(object_id, []):
            (leaving if listing.id in excluded else remaining).append(listing)

        journal = WriteJournal(self._store)
        try:
            for listing in leaving:
                await journal.update(Collection.LISTINGS, _released(listing), listing)
            if remaining:
                rebuilt = build_object_from_listings(remaining, base=obj)
                await journal.update(Collection.OBJECTS, rebuilt, obj)
            else:
                await journal.delete(Collection.OBJECTS, obj)
        except CatalogError as exc:
            logger.error("Excluding listings from object %s failed: %s", object_id, exc)
            await journal.rollback()
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(str(exc)) from exc

        return OperationResult.success(
            ExcludeResult(object_deleted=not remaining, remaining_listings=len(remaining))
        )

    async def refresh_object(self, object_id: str) -> RealEstateObject | None:
        """Recalculate an object after a constituent listing changed.

        Returns ``None`` when the object is unknown or was deleted because no
        listings reference it any more.
        """

        obj = await self._store.get(Collection.OBJECTS, object_id)
        if obj is None:
            logger.warning("Object %s not found for refresh", object_id)
            return None

        listings = (await self._listings_by_object()).get(object_id, [])
        if not listings:
            await self._store.delete(Collection.OBJECTS, object_id)
            logger.info("Deleted object %s with no remaining listings", object_id)
            return None
        return await self._store.update(
            Collection.OBJECTS, build_object_from_listings(listings, base=obj)
        )

    async def get_object_with_listings(
        self, object_id: str
    ) -> OperationResult[ObjectWithListings]:
        obj = await self._store.get(Collection.OBJECTS, object_id)
        if obj is None:
            return OperationResult.failure(NotFoundError("object not found", item_id=object_id))

        listings = (await self._listings_by_object()).get(object_id, [])
        address = None
        if obj.address_id:
            address = await self._store.get(Collection.ADDRESSES, obj.address_id)
        return OperationResult.success(
            ObjectWithListings(object=obj, listings=listings, address=address)
        )
