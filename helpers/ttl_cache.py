"""
TTL cache partitioned per channel.

Every entry lives in the sub-cache of the channel it describes, so dropping a
channel's entries is a single dict pop instead of a scan over all keys.
"""

import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

_MISSING = object()


class ChannelScopedCache:
    def __init__(
        self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._scopes: dict[int, dict[Hashable, tuple[Any, float]]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, channel_id: int, key: Hashable, default: Any = None) -> Any:
        scope = self._scopes.get(channel_id)
        entry = scope.get(key) if scope else None
        if entry is None:
            self.misses += 1
            return default
        value, expires = entry
        if expires <= self._clock():
            del scope[key]  # type: ignore[union-attr]
            if not scope:
                self._scopes.pop(channel_id, None)
            self.misses += 1
            return default
        self.hits += 1
        return value

    def set(self, channel_id: int, key: Hashable, value: Any, ttl: float | None = None) -> None:
        expires = self._clock() + (self.ttl_seconds if ttl is None else ttl)
        self._scopes.setdefault(channel_id, {})[key] = (value, expires)

    async def get_or_load(
        self, channel_id: int, key: Hashable, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        value = self.get(channel_id, key, _MISSING)
        if value is not _MISSING:
            return value
        value = await loader()
        if value is not None:
            self.set(channel_id, key, value)
        return value

    def invalidate(self, channel_id: int, key: Hashable) -> None:
        scope = self._scopes.get(channel_id)
        if scope:
            scope.pop(key, None)

    def invalidate_channel(self, channel_id: int) -> int:
        """Drop every entry scoped to ``channel_id``; returns how many were removed."""
        return len(self._scopes.pop(channel_id, {}))

    def cleanup(self) -> int:
        now = self._clock()
        removed = 0
        for channel_id in list(self._scopes):
            scope = self._scopes[channel_id]
            for key in [k for k, (_, exp) in scope.items() if exp <= now]:
                del scope[key]
                removed += 1
            if not scope:
                del self._scopes[channel_id]
        return removed

    def clear(self) -> None:
        self._scopes.clear()

    def __len__(self) -> int:
        return sum(len(s) for s in self._scopes.values())

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self),
            "channels": len(self._scopes),
            "hits": self.hits,
            "misses": self.misses,
        }
