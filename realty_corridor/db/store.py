"""Key/value record store used by the catalog services.

Records are the domain dataclasses from ``realty_corridor.models``. Every store
exposes the same five async calls (``get_all``, ``get``, ``add``, ``update``,
``delete``) with single-record atomicity and no transaction spanning calls.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, NoReturn, Protocol
from uuid import uuid4

from pydantic import TypeAdapter
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from realty_corridor.errors import InvalidArgumentError, NotFoundError, PersistenceError
from realty_corridor.models.catalog import Address, Listing, MapArea, RealEstateObject
from realty_corridor.models.evaluation import AnalysisSession
from realty_corridor.models.record import CatalogRecord

logger = logging.getLogger(__name__)


class Collection(StrEnum):
    LISTINGS = "listings"
    OBJECTS = "objects"
    ADDRESSES = "addresses"
    AREAS = "areas"
    ANALYSIS_SESSIONS = "analysis_sessions"


RECORD_TYPES: dict[Collection, type] = {
    Collection.LISTINGS: Listing,
    Collection.OBJECTS: RealEstateObject,
    Collection.ADDRESSES: Address,
    Collection.AREAS: MapArea,
    Collection.ANALYSIS_SESSIONS: AnalysisSession,
}


class CatalogStore(Protocol):
    async def get_all(self, collection: str) -> list[Any]: ...

    async def get(self, collection: str, record_id: str) -> Any | None: ...

    async def add(self, collection: str, record: Any) -> Any: ...

    async def update(self, collection: str, record: Any) -> Any: ...

    async def delete(self, collection: str, record_id: str) -> bool: ...


def resolve_collection(collection: str) -> Collection:
    try:
        return Collection(collection)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown collection: {collection}") from exc


def _check_record_type(collection: Collection, record: Any) -> None:
    expected = RECORD_TYPES[collection]
    if not isinstance(record, expected):
        raise InvalidArgumentError(
            f"{collection} stores {expected.__name__}, got {type(record).__name__}"
        )


def _stamp(record: Any, *, created: bool) -> None:
    """Set record timestamps where the record type carries them."""

    now = datetime.now(UTC)
    if created and hasattr(record, "created_at") and record.created_at is None:
        record.created_at = now
    if hasattr(record, "updated_at"):
        record.updated_at = now


class InMemoryStore:
    """Process-local store; callers always receive copies of stored records."""

    def __init__(self, seed: dict[str, Sequence[Any]] | None = None) -> None:
        self._data: dict[Collection, dict[str, Any]] = {
            collection: {} for collection in Collection
        }
        for collection, records in (seed or {}).items():
            bucket = self._data[resolve_collection(collection)]
            for record in records:
                bucket[record.id] = copy.deepcopy(record)

    async def get_all(self, collection: str) -> list[Any]:
        bucket = self._data[resolve_collection(collection)]
        return [copy.deepcopy(record) for record in bucket.values()]

    async def get(self, collection: str, record_id: str) -> Any | None:
        record = self._data[resolve_collection(collection)].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def add(self, collection: str, record: Any) -> Any:
        resolved = resolve_collection(collection)
        _check_record_type(resolved, record)
        stored = copy.deepcopy(record)
        if not stored.id:
            stored.id = uuid4().hex
        bucket = self._data[resolved]
        if stored.id in bucket:
            raise PersistenceError(
                f"{resolved} record already exists", item_id=stored.id
            )
        _stamp(stored, created=True)
        bucket[stored.id] = stored
        return copy.deepcopy(stored)

    async def update(self, collection: str, record: Any) -> Any:
        resolved = resolve_collection(collection)
        _check_record_type(resolved, record)
        bucket = self._data[resolved]
        if record.id not in bucket:
            raise NotFoundError(f"{resolved} record not found", item_id=record.id)
        stored = copy.deepcopy(record)
        _stamp(stored, created=False)
        bucket[stored.id] = stored
        return copy.deepcopy(stored)

    async def delete(self, collection: str, record_id: str) -> bool:
        bucket = self._data[resolve_collection(collection)]
        return bucket.pop(record_id, None) is not None


@dataclass(slots=True)
class _Codec:
    adapter: TypeAdapter[Any]

    def dump(self, record: Any) -> dict[str, Any]:
        return self.adapter.dump_python(record, mode="json")

    def load(self, payload: dict[str, Any]) -> Any:
        return self.adapter.validate_python(payload)


_CODECS: dict[Collection, _Codec] = {
    collection: _Codec(TypeAdapter(record_type))
    for collection, record_type in RECORD_TYPES.items()
}


class SqlAlchemyStore:
    """Store backed by the ``catalog_records`` table; one commit per call."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _row(self, collection: Collection, record_id: str) -> CatalogRecord | None:
        stmt = select(CatalogRecord).where(
            CatalogRecord.collection == collection.value,
            CatalogRecord.record_id == record_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _fail(
        self, action: str, collection: Collection, exc: Exception
    ) -> NoReturn:
        logger.exception("Store %s failed for collection %s", action, collection)
        await self._session.rollback()
        raise PersistenceError(f"Failed to {action} {collection} record") from exc

    async def get_all(self, collection: str) -> list[Any]:
        resolved = resolve_collection(collection)
        stmt = (
            select(CatalogRecord)
            .where(CatalogRecord.collection == resolved.value)
            .order_by(CatalogRecord.id)
        )
        try:
            result = await self._session.execute(stmt)
            rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            await self._fail("read", resolved, exc)
        codec = _CODECS[resolved]
        return [codec.load(row.payload) for row in rows]

    async def get(self, collection: str, record_id: str) -> Any | None:
        resolved = resolve_collection(collection)
        try:
            row = await self._row(resolved, record_id)
        except SQLAlchemyError as exc:
            await self._fail("read", resolved, exc)
        if row is None:
            return None
        return _CODECS[resolved].load(row.payload)

    async def add(self, collection: str, record: Any) -> Any:
        resolved = resolve_collection(collection)
        _check_record_type(resolved, record)
        stored = copy.deepcopy(record)
        if not stored.id:
            stored.id = uuid4().hex
        _stamp(stored, created=True)
        self._session.add(
            CatalogRecord(
                collection=resolved.value,
                record_id=stored.id,
                payload=_CODECS[resolved].dump(stored),
            )
        )
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._fail("add", resolved, exc)
        return stored

    async def update(self, collection: str, record: Any) -> Any:
        resolved = resolve_collection(collection)
        _check_record_type(resolved, record)
        try:
            row = await self._row(resolved, record.id)
        except SQLAlchemyError as exc:
            await self._fail("read", resolved, exc)
        if row is None:
            raise NotFoundError(f"{resolved} record not found", item_id=record.id)

        stored = copy.deepcopy(record)
        _stamp(stored, created=False)
        row.payload = _CODECS[resolved].dump(stored)
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._fail("update", resolved, exc)
        return stored

    async def delete(self, collection: str, record_id: str) -> bool:
        resolved = resolve_collection(collection)
        stmt = (
            delete(CatalogRecord)
            .where(
                CatalogRecord.collection == resolved.value,
                CatalogRecord.record_id == record_id,
            )
            .returning(CatalogRecord.id)
        )
        try:
            result = await self._session.execute(stmt)
            deleted = result.scalars().all()
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._fail("delete", resolved, exc)
        return len(deleted) > 0
