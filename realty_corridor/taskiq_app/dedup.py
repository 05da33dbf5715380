"""Dedup locks so one area is never processed by two jobs at once."""

from __future__ import annotations

from time import monotonic

from redis.asyncio import Redis

from realty_corridor.config import get_settings

# Used instead of Redis while TASKIQ_TESTING is set.
_MEMORY_LOCKS: dict[str, float] = {}


def build_dedup_key(*, scope: str, task_name: str, fingerprint: str) -> str:
    return f"realty:dedup:{scope}:{task_name}:{fingerprint}"


def _memory_acquire(key: str, ttl_seconds: int) -> bool:
    now = monotonic()
    for stale in [k for k, expires_at in _MEMORY_LOCKS.items() if expires_at <= now]:
        del _MEMORY_LOCKS[stale]
    if key in _MEMORY_LOCKS:
        return False
    _MEMORY_LOCKS[key] = now + ttl_seconds
    return True


def _client() -> Redis:
    return Redis.from_url(
        get_settings().redis_url, encoding="utf-8", decode_responses=True
    )


async def acquire_dedup_lock(key: str, ttl_seconds: int) -> bool:
    """SET NX EX on ``key``; False when another holder has it."""

    if get_settings().taskiq_testing:
        return _memory_acquire(key, ttl_seconds)

    client = _client()
    try:
        return bool(await client.set(key, "1", nx=True, ex=ttl_seconds))
    finally:
        await client.aclose()


async def release_dedup_lock(key: str) -> None:
    if get_settings().taskiq_testing:
        _MEMORY_LOCKS.pop(key, None)
        return

    client = _client()
    try:
        await client.delete(key)
    finally:
        await client.aclose()
