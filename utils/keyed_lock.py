"""
Per-key asyncio locks.

Used to serialize every owner-gated operation and the create/delete paths on a
single channel id while leaving other channels free to proceed.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    """Registry of ``asyncio.Lock`` objects created lazily per key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._last_used: dict[Hashable, float] = {}
        # Holders plus waiters; a key with pending users is never evicted
        self._users: dict[Hashable, int] = {}
        self._clock = clock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        self._last_used[key] = self._clock()
        try:
            async with lock:
                yield
        finally:
            remaining = self._users.get(key, 1) - 1
            if remaining <= 0:
                self._users.pop(key, None)
            else:
                self._users[key] = remaining
            self._last_used[key] = self._clock()

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def cleanup_stale(self, max_age_seconds: float = 300) -> int:
        """Drop idle locks not used for ``max_age_seconds``. Returns how many were removed."""
        cutoff = self._clock() - max_age_seconds
        removed = 0
        for key in list(self._last_used):
            if self._last_used[key] >= cutoff or self._users.get(key):
                continue
            lock = self._locks.get(key)
            if lock and lock.locked():
                continue
            self._locks.pop(key, None)
            self._last_used.pop(key, None)
            removed += 1
        return removed

    def discard(self, key: Hashable) -> None:
        """Forget an idle key right away (used once a channel is gone)."""
        if self._users.get(key):
            return
        self._locks.pop(key, None)
        self._last_used.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
