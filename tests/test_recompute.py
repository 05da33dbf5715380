"""Tests for debounced corridor recomputation."""

import asyncio

import pytest

from realty_corridor.services.recompute import RecomputeScheduler


@pytest.mark.anyio
async def test_burst_of_requests_runs_once() -> None:
    calls: list[int] = []

    def compute() -> int:
        calls.append(1)
        return len(calls)

    scheduler = RecomputeScheduler(compute, delay_seconds=0.01)
    for _ in range(5):
        scheduler.request()

    assert await scheduler.flush() == 1
    assert calls == [1]
    assert scheduler.runs == 1
    assert not scheduler.pending


@pytest.mark.anyio
async def test_superseded_async_computation_is_discarded() -> None:
    started = asyncio.Event()
    release = asyncio.Event()
    results = iter(["stale", "fresh"])

    async def compute() -> str:
        value = next(results)
        if value == "stale":
            started.set()
            await release.wait()
        return value

    scheduler = RecomputeScheduler(compute, delay_seconds=0)
    scheduler.request()
    await started.wait()

    # A newer request cancels the running one.
    scheduler.request()
    release.set()

    assert await scheduler.flush() == "fresh"
    assert scheduler.runs == 1


@pytest.mark.anyio
async def test_cancel_drops_pending_request() -> None:
    scheduler = RecomputeScheduler(lambda: 42, delay_seconds=0.05)
    scheduler.request()
    scheduler.cancel()

    assert await scheduler.flush() is None
    assert scheduler.runs == 0


def test_negative_delay_rejected() -> None:
    with pytest.raises(ValueError):
        RecomputeScheduler(lambda: None, delay_seconds=-1)


@pytest.mark.anyio
async def test_waiter_on_superseded_request_gets_latest_result() -> None:
    values = iter(["first", "second"])
    scheduler = RecomputeScheduler(lambda: "unused", delay_seconds=0.01)

    scheduler.request(lambda: next(values))
    early = asyncio.create_task(scheduler.flush())
    await asyncio.sleep(0)
    scheduler.request(lambda: "latest")

    assert await early == "latest"
    assert scheduler.runs == 1
    assert next(values) == "first"
