"""
In-memory rate limiting for channel operations.

Buckets are fixed windows keyed by (subject, action). A request is checked
against its per-action user bucket, then the channel tier, then the global
tier; it only counts against any bucket once all of them accept it.
"""

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from utils.logging import get_logger
from utils.types import RateLimitResult

logger = get_logger(__name__)

# (max_attempts, window_seconds) per action
DEFAULT_ACTION_LIMITS: dict[str, tuple[int, int]] = {
    "trust": (10, 60),
    "untrust": (10, 60),
    "block": (10, 60),
    "unblock": (10, 60),
    "invite": (5, 60),
    "kick": (8, 60),
    "transfer": (3, 300),
    "claim": (3, 60),
    "bitrate": (5, 60),
    "region": (5, 60),
    "limit": (5, 60),
    "name": (3, 60),
    "privacy": (5, 60),
    "preset": (3, 60),
    "dnd": (3, 30),
    "delete": (3, 60),
    "interaction": (10, 60),
}

USER_TIER = (10, 60)
CHANNEL_TIER = (50, 60)
GLOBAL_TIER = (200, 60)
STRICT_TIER = (3, 300)
STRICT_AFTER_VIOLATIONS = 5
VIOLATION_TTL_SECONDS = 3600


@dataclass
class _Bucket:
    count: int
    reset_at: float


@dataclass
class _Violation:
    count: int
    last_at: float


def format_wait_time(seconds: float) -> str:
    """Human readable wait hint: '12 seconds', '1 second', '3 minutes'."""
    secs = max(1, math.ceil(seconds))
    if secs < 60:
        return f"{secs} second{'s' if secs != 1 else ''}"
    minutes = math.ceil(secs / 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


class RateLimiter:
    """Multi-tier fixed-window limiter with escalation for repeat offenders."""

    def __init__(
        self,
        action_limits: Mapping[str, tuple[int, int]] | None = None,
        *,
        user_tier: tuple[int, int] = USER_TIER,
        channel_tier: tuple[int, int] = CHANNEL_TIER,
        global_tier: tuple[int, int] = GLOBAL_TIER,
        strict_tier: tuple[int, int] = STRICT_TIER,
        strict_after: int = STRICT_AFTER_VIOLATIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.action_limits = dict(DEFAULT_ACTION_LIMITS)
        if action_limits:
            self.action_limits.update(action_limits)
        self.user_tier = user_tier
        self.channel_tier = channel_tier
        self.global_tier = global_tier
        self.strict_tier = strict_tier
        self.strict_after = strict_after
        self._clock = clock

        self._user: dict[tuple[int, str], _Bucket] = {}
        self._strict: dict[tuple[int, str], _Bucket] = {}
        self._channel: dict[tuple[int, str], _Bucket] = {}
        self._global: dict[str, _Bucket] = {}
        self._violations: dict[tuple[int, str], _Violation] = {}
        self._rejections = 0

    @classmethod
    def from_config(cls, config: Mapping, *, window: int, max_requests: int) -> "RateLimiter":
        """Build from the ``rate_limits.actions`` YAML section plus the env-driven user tier."""
        overrides: dict[str, tuple[int, int]] = {}
        for action, spec in ((config or {}).get("actions") or {}).items():
            try:
                overrides[action] = (int(spec["max_attempts"]), int(spec["window_seconds"]))
            except (KeyError, TypeError, ValueError):
                logger.warning("Ignoring malformed rate limit for action %s: %r", action, spec)
        return cls(overrides, user_tier=(max_requests, window))

    def limit_for(self, action: str) -> tuple[int, int]:
        return self.action_limits.get(action, self.user_tier)

    # ------------------------------------------------------------------

    def _retry_after(self, bucket: _Bucket | None, max_attempts: int, now: float) -> float | None:
        if bucket is None or now >= bucket.reset_at:
            return None
        if bucket.count >= max_attempts:
            return bucket.reset_at - now
        return None

    @staticmethod
    def _consume(store: dict, key, window: int, now: float) -> None:
        bucket = store.get(key)
        if bucket is None or now >= bucket.reset_at:
            store[key] = _Bucket(count=1, reset_at=now + window)
        else:
            bucket.count += 1

    def _is_strict(self, key: tuple[int, str], now: float) -> bool:
        violation = self._violations.get(key)
        if violation is None:
            return False
        if now - violation.last_at > VIOLATION_TTL_SECONDS:
            del self._violations[key]
            return False
        return violation.count > self.strict_after

    def _record_violation(self, key: tuple[int, str], now: float) -> None:
        violation = self._violations.get(key)
        if violation is None or now - violation.last_at > VIOLATION_TTL_SECONDS:
            self._violations[key] = _Violation(count=1, last_at=now)
        else:
            violation.count += 1
            violation.last_at = now

    def check(self, user_id: int, action: str, channel_id: int | None = None) -> RateLimitResult:
        """Check and, when allowed, count one attempt of ``action`` by ``user_id``."""
        now = self._clock()
        user_key = (user_id, action)
        max_attempts, window = self.limit_for(action)

        wait = self._retry_after(self._user.get(user_key), max_attempts, now)
        if wait is not None:
            self._record_violation(user_key, now)
            return self._reject(user_id, action, wait, "action")

        strict = self._is_strict(user_key, now)
        if strict:
            wait = self._retry_after(self._strict.get(user_key), self.strict_tier[0], now)
            if wait is not None:
                self._record_violation(user_key, now)
                return self._reject(user_id, action, wait, "strict")

        if channel_id is not None:
            wait = self._retry_after(
                self._channel.get((channel_id, action)), self.channel_tier[0], now
            )
            if wait is not None:
                return self._reject(user_id, action, wait, "channel")

        wait = self._retry_after(self._global.get(action), self.global_tier[0], now)
        if wait is not None:
            return self._reject(user_id, action, wait, "global")

        self._consume(self._user, user_key, window, now)
        if strict:
            self._consume(self._strict, user_key, self.strict_tier[1], now)
        if channel_id is not None:
            self._consume(self._channel, (channel_id, action), self.channel_tier[1], now)
        self._consume(self._global, action, self.global_tier[1], now)
        return RateLimitResult(allowed=True)

    def _reject(self, user_id: int, action: str, wait: float, scope: str) -> RateLimitResult:
        self._rejections += 1
        logger.debug(
            "Rate limited %s (%s scope, retry in %.1fs)",
            action,
            scope,
            wait,
            extra={"user_id": user_id, "action": action},
        )
        return RateLimitResult(allowed=False, retry_after=wait, scope=scope)

    # ------------------------------------------------------------------

    def reset(self, user_id: int, action: str | None = None) -> int:
        """Forget a user's buckets and violations (all actions when ``action`` is None)."""
        removed = 0
        for store in (self._user, self._strict, self._violations):
            for key in list(store):
                if key[0] == user_id and (action is None or key[1] == action):
                    del store[key]
                    removed += 1
        return removed

    def status(self, user_id: int, action: str) -> dict:
        now = self._clock()
        bucket = self._user.get((user_id, action))
        if bucket is None or now >= bucket.reset_at:
            return {"active": False}
        max_attempts, _ = self.limit_for(action)
        return {
            "active": True,
            "count": bucket.count,
            "remaining": max(0, max_attempts - bucket.count),
            "reset_in": bucket.reset_at - now,
        }

    def cleanup(self) -> int:
        """Drop expired buckets and stale violation history."""
        now = self._clock()
        cleaned = 0
        for store in (self._user, self._strict, self._channel, self._global):
            for key in [k for k, b in store.items() if now >= b.reset_at]:
                del store[key]
                cleaned += 1
        for key in [
            k for k, v in self._violations.items() if now - v.last_at > VIOLATION_TTL_SECONDS
        ]:
            del self._violations[key]
            cleaned += 1
        if cleaned:
            logger.debug("Cleaned up %s expired rate limit entries", cleaned)
        return cleaned

    def stats(self) -> dict[str, int]:
        return {
            "user_buckets": len(self._user),
            "strict_buckets": len(self._strict),
            "channel_buckets": len(self._channel),
            "global_buckets": len(self._global),
            "violations": len(self._violations),
            "rejections": self._rejections,
        }
