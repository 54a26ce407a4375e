import pytest

from helpers.interaction_guard import InteractionGuard
from helpers.ttl_cache import ChannelScopedCache


def test_get_set_and_expiry(clock) -> None:
    cache = ChannelScopedCache(ttl_seconds=10, clock=clock)
    cache.set(1, "k", "v")
    assert cache.get(1, "k") == "v"
    clock.advance(10)
    assert cache.get(1, "k") is None
    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1


def test_invalidate_channel_only_drops_that_scope(clock) -> None:
    cache = ChannelScopedCache(clock=clock)
    cache.set(1, "a", 1)
    cache.set(1, "b", 2)
    cache.set(2, "a", 3)
    assert cache.invalidate_channel(1) == 2
    assert cache.get(2, "a") == 3
    assert len(cache) == 1


def test_cleanup_removes_expired(clock) -> None:
    cache = ChannelScopedCache(ttl_seconds=10, clock=clock)
    cache.set(1, "a", 1)
    cache.set(1, "b", 2, ttl=100)
    clock.advance(20)
    assert cache.cleanup() == 1
    assert cache.stats() == {"entries": 1, "channels": 1, "hits": 0, "misses": 0}


@pytest.mark.asyncio
async def test_get_or_load_caches_non_none(clock) -> None:
    cache = ChannelScopedCache(clock=clock)
    calls = []

    async def loader():
        calls.append(1)
        return "member"

    assert await cache.get_or_load(1, "m", loader) == "member"
    assert await cache.get_or_load(1, "m", loader) == "member"
    assert len(calls) == 1

    async def missing():
        return None

    assert await cache.get_or_load(1, "x", missing) is None
    assert cache.get(1, "x", "absent") == "absent"


def test_guard_one_flow_per_user(clock) -> None:
    guard = InteractionGuard(timeout_seconds=30, clock=clock)
    assert guard.acquire(1, "privacy")
    assert not guard.acquire(1, "region")
    assert guard.active_flow(1) == "privacy"
    assert guard.acquire(2, "region")
    guard.release(1)
    assert guard.acquire(1, "region")


def test_guard_entry_expires(clock) -> None:
    guard = InteractionGuard(timeout_seconds=30, clock=clock)
    guard.acquire(1, "privacy")
    clock.advance(30)
    assert not guard.is_active(1)
    assert guard.acquire(1, "bitrate")


def test_guard_cleanup(clock) -> None:
    guard = InteractionGuard(timeout_seconds=30, clock=clock)
    guard.acquire(1, "a")
    guard.acquire(2, "b")
    clock.advance(31)
    assert guard.cleanup() == 2
    assert len(guard) == 0
