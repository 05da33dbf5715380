from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, cast

import pytest

from conftest import make_listing
from realty_corridor.db.store import Collection, InMemoryStore
from realty_corridor.models.catalog import MapArea, ProcessingStatus
from realty_corridor.taskiq_app.dedup import acquire_dedup_lock, build_dedup_key
from realty_corridor.taskiq_app.tasks import (
    enqueue_process_area_duplicates,
    process_area_duplicates,
    resolve_listing_addresses,
)


def _patch_store(monkeypatch: pytest.MonkeyPatch, store: InMemoryStore) -> None:
    @asynccontextmanager
    async def fake_store_context():
        yield store

    monkeypatch.setattr(
        "realty_corridor.taskiq_app.tasks.store_context", fake_store_context
    )


@pytest.mark.anyio
async def test_process_area_duplicates_task_success(
    monkeypatch: pytest.MonkeyPatch, square_area: MapArea
) -> None:
    store = InMemoryStore({"areas": [square_area], "listings": [make_listing("l-1")]})
    _patch_store(monkeypatch, store)

    result = await process_area_duplicates("area-1")

    assert result["status"] == "ok"
    assert result["processed"] == 1
    assert len(await store.get_all(Collection.OBJECTS)) == 1


@pytest.mark.anyio
async def test_process_area_duplicates_reports_missing_area(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _patch_store(monkeypatch, InMemoryStore())

    result = await process_area_duplicates("missing")

    assert result["status"] == "error"
    assert cast(dict[str, Any], result["error"])["code"] == "not_found"


@pytest.mark.anyio
async def test_process_area_duplicates_skips_when_locked(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _patch_store(monkeypatch, InMemoryStore())
    key = build_dedup_key(
        scope="execution", task_name="process_area_duplicates", fingerprint="area-1"
    )
    assert await acquire_dedup_lock(key, 60)

    result = await process_area_duplicates("area-1")

    assert result == {"area_id": "area-1", "status": "skipped_duplicate_execution"}


@pytest.mark.anyio
async def test_process_area_duplicates_releases_lock_on_failure(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    released: list[str] = []

    @asynccontextmanager
    async def broken_store_context():
        raise RuntimeError("database unavailable")
        yield

    async def fake_release(key: str) -> None:
        released.append(key)

    monkeypatch.setattr(
        "realty_corridor.taskiq_app.tasks.store_context", broken_store_context
    )
    monkeypatch.setattr("realty_corridor.taskiq_app.tasks.release_dedup_lock", fake_release)

    with pytest.raises(RuntimeError):
        await process_area_duplicates("area-1")

    assert released == ["realty:dedup:execution:process_area_duplicates:area-1"]


@pytest.mark.anyio
async def test_enqueue_process_area_duplicates_dedup(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    class DummyTask:
        task_id: str = "area-task-1"

    kicked: list[tuple[object, ...]] = []

    async def fake_kiq(*args: object, **kwargs: object):  # noqa: ARG001
        kicked.append(args)
        return DummyTask()

    monkeypatch.setattr(cast(Any, process_area_duplicates), "kiq", fake_kiq)

    first = await enqueue_process_area_duplicates("area-1", "advanced")
    second = await enqueue_process_area_duplicates("area-1", "advanced")
    other = await enqueue_process_area_duplicates("area-2")

    assert first == {"enqueued": True, "task_id": "area-task-1"}
    assert second == {"enqueued": False, "reason": "duplicate_enqueue"}
    assert other["enqueued"] is True
    assert kicked == [("area-1", "advanced"), ("area-2", None)]


@pytest.mark.anyio
async def test_resolve_listing_addresses_task(
    monkeypatch: pytest.MonkeyPatch, center_address: object
) -> None:
    store = InMemoryStore(
        {
            "addresses": [center_address],
            "listings": [
                make_listing(
                    "l-1", address_id=None, processing_status=ProcessingStatus.ADDRESS_NEEDED
                )
            ],
        }
    )
    _patch_store(monkeypatch, store)

    result = await resolve_listing_addresses()

    assert result == {"status": "ok", "resolved": 1}
