"""Taskiq tasks for area duplicate processing and address resolution."""

import logging
from typing import Any, cast

from realty_corridor.config import get_settings
from realty_corridor.db.session import store_context
from realty_corridor.services.duplicate_service import DuplicateService
from realty_corridor.services.listing_service import ListingService
from realty_corridor.taskiq_app.broker import broker
from realty_corridor.taskiq_app.dedup import (
    acquire_dedup_lock,
    build_dedup_key,
    release_dedup_lock,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@broker.task(
    task_name="process_area_duplicates",
    retry_on_error=True,
    max_retries=3,
)
async def process_area_duplicates(
    area_id: str, strategy: str | None = None
) -> dict[str, object]:
    dedup_key = build_dedup_key(
        scope="execution", task_name="process_area_duplicates", fingerprint=area_id
    )
    if not await acquire_dedup_lock(dedup_key, settings.dedup_ttl_seconds):
        logger.info("process_area_duplicates skipped for %s due to dedup lock", area_id)
        return {"area_id": area_id, "status": "skipped_duplicate_execution"}

    try:
        async with store_context() as store:
            outcome = await DuplicateService(store).process_area(area_id, strategy)

        if outcome.error is not None:
            logger.warning(
                "process_area_duplicates failed for %s: %s", area_id, outcome.error
            )
            return {
                "area_id": area_id,
                "status": "error",
                "error": outcome.error.to_dict(),
            }

        result = outcome.unwrap()
        return {
            "area_id": area_id,
            "status": "timed_out" if result.timed_out else "ok",
            **result.to_dict(),
        }
    finally:
        await release_dedup_lock(dedup_key)


async def enqueue_process_area_duplicates(
    area_id: str,
    strategy: str | None = None,
    *,
    fingerprint: str = "manual",
) -> dict[str, object]:
    """Enqueue duplicate processing for an area once per dedup window."""

    dedup_key = build_dedup_key(
        scope="enqueue",
        task_name="process_area_duplicates",
        fingerprint=f"{area_id}:{fingerprint}",
    )
    if not await acquire_dedup_lock(dedup_key, settings.dedup_ttl_seconds):
        return {"enqueued": False, "reason": "duplicate_enqueue"}

    task = await cast(Any, process_area_duplicates).kiq(area_id, strategy)
    return {"enqueued": True, "task_id": task.task_id}


@broker.task(
    task_name="resolve_listing_addresses",
    schedule=[{"cron": "*/30 * * * *"}],
    retry_on_error=True,
    max_retries=3,
)
async def resolve_listing_addresses() -> dict[str, object]:
    dedup_key = build_dedup_key(
        scope="execution", task_name="resolve_listing_addresses", fingerprint="default"
    )
    if not await acquire_dedup_lock(dedup_key, settings.dedup_ttl_seconds):
        logger.info("resolve_listing_addresses skipped due to dedup lock")
        return {"status": "skipped_duplicate_execution", "resolved": 0}

    try:
        async with store_context() as store:
            changed = await ListingService(store).resolve_addresses()
        logger.info("Address resolution updated %s listings", len(changed))
        return {"status": "ok", "resolved": len(changed)}
    finally:
        await release_dedup_lock(dedup_key)
