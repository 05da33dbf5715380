"""Debounced recomputation where only the latest request wins."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from realty_corridor.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecomputeScheduler(Generic[T]):
    """Coalesce bursts of recompute requests into one computation.

    Each ``request`` cancels the pending run and schedules a new one after the
    debounce delay, using the compute function of the latest request. A
    generation token discards results of superseded runs that were already
    computing when a newer request arrived.
    """

    def __init__(
        self,
        compute: Callable[[], T | Awaitable[T]],
        delay_seconds: float | None = None,
    ) -> None:
        if delay_seconds is None:
            delay_seconds = get_settings().corridor_debounce_seconds
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self._compute = compute
        self._delay = delay_seconds
        self._generation = 0
        self._task: asyncio.Task[T | None] | None = None
        self._latest: T | None = None
        self.runs = 0

    @property
    def latest(self) -> T | None:
        return self._latest

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(
        self, compute: Callable[[], T | Awaitable[T]] | None = None
    ) -> asyncio.Task[T | None]:
        self.cancel()
        if compute is not None:
            self._compute = compute
        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def flush(self) -> T | None:
        """Wait for the most recent request and return the latest result.

        A waiter whose run is superseded keeps waiting for the newer one.
        Cancelling the waiter does not cancel the shared run.
        """

        while self._task is not None:
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
            if task is self._task:
                break
        return self._latest

    async def _run(self, generation: int) -> T | None:
        await asyncio.sleep(self._delay)
        if generation != self._generation:
            return None

        result = self._compute()
        if inspect.isawaitable(result):
            result = await result
        if generation != self._generation:
            logger.debug("Discarding superseded recompute %s", generation)
            return None

        self.runs += 1
        self._latest = result  # type: ignore[assignment]
        return result  # type: ignore[return-value]
