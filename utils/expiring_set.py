"""Short-lived membership markers with a bounded time-to-live."""

import time
from collections.abc import Callable, Hashable


class ExpiringSet:
    """
    A set whose members disappear ``ttl_seconds`` after being added.

    Expiry is checked lazily on access, so no background task is needed.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._expires: dict[Hashable, float] = {}

    def add(self, key: Hashable) -> bool:
        """Mark ``key``. Returns False if it was already marked and still live."""
        now = self._clock()
        expires = self._expires.get(key)
        if expires is not None and expires > now:
            return False
        self._expires[key] = now + self.ttl_seconds
        return True

    def __contains__(self, key: object) -> bool:
        expires = self._expires.get(key)  # type: ignore[arg-type]
        if expires is None:
            return False
        if expires <= self._clock():
            self._expires.pop(key, None)  # type: ignore[arg-type]
            return False
        return True

    def discard(self, key: Hashable) -> None:
        self._expires.pop(key, None)

    def purge(self) -> int:
        now = self._clock()
        stale = [k for k, exp in self._expires.items() if exp <= now]
        for k in stale:
            del self._expires[k]
        return len(stale)

    def __len__(self) -> int:
        self.purge()
        return len(self._expires)
