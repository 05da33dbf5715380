"""JSON API for listing search, object consolidation and price corridors."""

from datetime import UTC, datetime
from typing import Any, NoReturn, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from realty_corridor.db.session import get_store
from realty_corridor.db.store import CatalogStore, Collection
from realty_corridor.errors import CatalogError, NotFoundError, OperationResult
from realty_corridor.models.catalog import (
    Coordinates,
    ItemKind,
    Listing,
    ListingStatus,
    MergeItem,
)
from realty_corridor.models.evaluation import EvaluationKind
from realty_corridor.services.corridor_service import AnalysisSessionService
from realty_corridor.services.duplicate_service import DuplicateService
from realty_corridor.services.listing_service import ListingService
from realty_corridor.services.object_service import ObjectService
from realty_corridor.services.price_history import (
    get_price_at_date,
    get_price_per_meter_at_date,
    price_series,
)
from realty_corridor.taskiq_app.tasks import enqueue_process_area_duplicates

T = TypeVar("T")

router = APIRouter(prefix="/api", tags=["api"])


class CoordinatesIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class PolygonSearchRequest(BaseModel):
    polygon: list[CoordinatesIn] = Field(min_length=3)
    status: ListingStatus | None = None


class DuplicateRunRequest(BaseModel):
    area_id: str
    strategy: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)


class EnqueueRequest(BaseModel):
    area_id: str
    strategy: str | None = None
    force: bool = False


class MergeItemIn(BaseModel):
    kind: ItemKind
    id: str


class MergeRequest(BaseModel):
    items: list[MergeItemIn]
    address_id: str | None = None


class SplitRequest(BaseModel):
    object_ids: list[str]


class ListingIdsRequest(BaseModel):
    listing_ids: list[str]


class SessionCreateRequest(BaseModel):
    name: str


class EvaluationRequest(BaseModel):
    object_id: str
    evaluation: EvaluationKind


def _raise_http(error: CatalogError) -> NoReturn:
    status_code = 404 if isinstance(error, NotFoundError) else 422
    raise HTTPException(status_code=status_code, detail=error.to_dict())


def _unwrap(result: OperationResult[T]) -> T:
    if result.error is not None:
        _raise_http(result.error)
    return result.unwrap()


def _merge_items(items: list[MergeItemIn]) -> list[MergeItem]:
    return [MergeItem(kind=item.kind, id=item.id) for item in items]


@router.post("/listings/search")
async def search_listings(
    payload: PolygonSearchRequest,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    polygon = [Coordinates(lat=point.lat, lng=point.lng) for point in payload.polygon]
    predicates = []
    if payload.status is not None:
        wanted = payload.status

        def has_status(listing: Listing) -> bool:
            return listing.status == wanted

        predicates.append(has_status)

    listings = await ListingService(store).find_listings_in_polygon(
        polygon, *predicates, refresh=True
    )
    return {"count": len(listings), "listings": listings}


@router.get("/areas/{area_id}/listings")
async def area_listings(
    area_id: str, store: CatalogStore = Depends(get_store)
) -> dict[str, Any]:
    listings = _unwrap(
        await ListingService(store).find_listings_in_area(area_id, refresh=True)
    )
    return {"count": len(listings), "listings": listings}


@router.get("/listings/address-review")
async def address_review(store: CatalogStore = Depends(get_store)) -> dict[str, Any]:
    listings = await ListingService(store).address_review_queue()
    return {"count": len(listings), "listings": listings}


@router.post("/duplicates/run")
async def run_duplicates(
    payload: DuplicateRunRequest,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    """Process an area synchronously and persist the detected objects."""

    try:
        outcome = await DuplicateService(store).process_area(
            payload.area_id, payload.strategy, timeout_seconds=payload.timeout_seconds
        )
    except CatalogError as exc:
        _raise_http(exc)
    return _unwrap(outcome).to_dict()


@router.post("/duplicates/enqueue")
async def enqueue_duplicates(payload: EnqueueRequest) -> dict[str, Any]:
    fingerprint = "manual"
    if payload.force:
        fingerprint = f"force-{datetime.now(UTC).isoformat()}"
    return await enqueue_process_area_duplicates(
        payload.area_id, payload.strategy, fingerprint=fingerprint
    )


@router.post("/objects/validate-merge")
async def validate_merge(
    payload: MergeRequest, store: CatalogStore = Depends(get_store)
) -> dict[str, Any]:
    validation = await ObjectService(store).validate_merge_by_address(
        _merge_items(payload.items)
    )
    return {
        "can_merge": validation.can_merge,
        "address_count": validation.address_count,
        "addresses": validation.addresses,
    }


@router.post("/objects/merge")
async def merge_objects(
    payload: MergeRequest, store: CatalogStore = Depends(get_store)
) -> Any:
    result = await ObjectService(store).merge_into_object(
        _merge_items(payload.items), payload.address_id
    )
    return _unwrap(result)


@router.post("/objects/split")
async def split_objects(
    payload: SplitRequest, store: CatalogStore = Depends(get_store)
) -> dict[str, Any]:
    result = await ObjectService(store).split_objects_to_listings(payload.object_ids)
    return result.to_dict()


@router.get("/objects/{object_id}")
async def get_object(object_id: str, store: CatalogStore = Depends(get_store)) -> Any:
    return _unwrap(await ObjectService(store).get_object_with_listings(object_id))


@router.post("/objects/{object_id}/listings")
async def add_object_listings(
    object_id: str,
    payload: ListingIdsRequest,
    store: CatalogStore = Depends(get_store),
) -> Any:
    return _unwrap(
        await ObjectService(store).add_listings_to_object(object_id, payload.listing_ids)
    )


@router.post("/objects/{object_id}/listings/exclude")
async def exclude_object_listings(
    object_id: str,
    payload: ListingIdsRequest,
    store: CatalogStore = Depends(get_store),
) -> Any:
    return _unwrap(
        await ObjectService(store).exclude_listings_from_object(
            object_id, payload.listing_ids
        )
    )


@router.get("/objects/{object_id}/price")
async def object_price(
    object_id: str,
    at: datetime | None = None,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    obj = await store.get(Collection.OBJECTS, object_id)
    if obj is None:
        _raise_http(NotFoundError("object not found", item_id=object_id))
    at = at or datetime.now(UTC)
    return {
        "object_id": object_id,
        "at": at,
        "price": get_price_at_date(obj, at),
        "price_per_meter": get_price_per_meter_at_date(obj, at),
    }


@router.get("/objects/{object_id}/price-series")
async def object_price_series(
    object_id: str,
    dates: list[datetime] = Query(min_length=1),
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    """Prices at each requested date, e.g. for chart time slices."""

    obj = await store.get(Collection.OBJECTS, object_id)
    if obj is None:
        _raise_http(NotFoundError("object not found", item_id=object_id))
    series = price_series(obj, dates)
    return {
        "object_id": object_id,
        "series": [{"at": at, "price": price} for at, price in series],
    }


@router.get("/sessions")
async def list_sessions(store: CatalogStore = Depends(get_store)) -> list[Any]:
    return list(await AnalysisSessionService(store).list_sessions())


@router.post("/sessions", status_code=201)
async def create_session(
    payload: SessionCreateRequest, store: CatalogStore = Depends(get_store)
) -> Any:
    return _unwrap(await AnalysisSessionService(store).create(payload.name))


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str, store: CatalogStore = Depends(get_store)
) -> dict[str, Any]:
    deleted = _unwrap(await AnalysisSessionService(store).delete(session_id))
    return {"deleted": deleted}


@router.post("/sessions/{session_id}/evaluations")
async def evaluate_object(
    session_id: str,
    payload: EvaluationRequest,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    """Record an evaluation, then run a debounced corridor recompute."""

    sessions = AnalysisSessionService(store)
    _unwrap(
        await sessions.record_evaluation(
            session_id, payload.object_id, payload.evaluation
        )
    )
    engine = _unwrap(await sessions.schedule_recompute(session_id))
    return {
        "evaluations": {key: str(kind) for key, kind in engine.evaluations.items()},
        "corridors": engine.get_corridors().to_dict(),
        "confidence": engine.get_confidence().to_dict(),
    }


@router.delete("/sessions/{session_id}/evaluations/{object_id}")
async def clear_evaluation(
    session_id: str,
    object_id: str,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    sessions = AnalysisSessionService(store)
    engine = _unwrap(await sessions.open_engine(session_id))
    removed = engine.clear_evaluation(object_id)
    if removed:
        _unwrap(await sessions.save(session_id, engine))
    return {"removed": removed}


@router.get("/sessions/{session_id}/corridors")
async def session_corridors(
    session_id: str,
    as_of: datetime | None = None,
    store: CatalogStore = Depends(get_store),
) -> dict[str, Any]:
    engine = _unwrap(
        await AnalysisSessionService(store).open_engine(session_id, as_of=as_of)
    )
    return engine.get_corridors().to_dict()


@router.get("/sessions/{session_id}/confidence")
async def session_confidence(
    session_id: str, store: CatalogStore = Depends(get_store)
) -> dict[str, Any]:
    engine = _unwrap(await AnalysisSessionService(store).open_engine(session_id))
    return engine.get_confidence().to_dict()
