"""
Analytics service.

Metric writes are fire-and-forget: a failed write is logged and dropped, it
never affects the operation that produced it. Queries read the ``metrics``,
``channels`` and ``channel_permissions`` tables.
"""

import asyncio
import sqlite3
import time
from collections import Counter
from collections.abc import Callable
from typing import Any

from services.db.channel_repository import ChannelRepository
from utils.errors import DatabaseError

from .base import BaseService

DAY_SECONDS = 86400
METRIC_TYPES = ("channel_created", "channel_deleted", "interaction", "rate_limited", "error")


class AnalyticsService(BaseService):
    def __init__(
        self,
        repository: ChannelRepository | None = None,
        *,
        retention_days: int = 30,
        live_channels: Callable[[], int] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__("analytics")
        self.repository = repository or ChannelRepository()
        self.retention_days = retention_days
        self._live_channels = live_channels or (lambda: 0)
        self._clock = clock
        self._pending: set[asyncio.Task] = set()
        self.dropped = 0

    async def _initialize_impl(self) -> None:
        pass

    async def _shutdown_impl(self) -> None:
        await self.flush()

    def health_details(self) -> dict[str, Any]:
        return {"pending_writes": len(self._pending), "dropped_writes": self.dropped}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, metric_type: str, value: dict[str, Any] | None = None) -> None:
        """Queue one metric row without waiting for the write."""
        task = asyncio.create_task(
            self._write(metric_type, dict(value or {}), int(self._clock())),
            name=f"metric_{metric_type}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, metric_type: str, value: dict[str, Any], recorded_at: int) -> None:
        try:
            await self.repository.record_metric(metric_type, value, recorded_at)
        except (sqlite3.Error, DatabaseError) as e:
            self.dropped += 1
            self.logger.debug("Dropped %s metric: %s", metric_type, e)

    async def flush(self) -> None:
        """Wait for queued writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def purge_old_metrics(self) -> int:
        removed = await self.repository.cleanup_old_metrics(
            self.retention_days, now=int(self._clock())
        )
        if removed:
            self.logger.info("Purged %s metric rows older than %s days", removed, self.retention_days)
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _since(self, since: int | None) -> int:
        return int(self._clock()) - DAY_SECONDS if since is None else since

    async def channel_stats(self, guild_id: int | None = None) -> dict[str, Any]:
        created = await self.repository.get_metrics("channel_created")
        if guild_id is not None:
            created = [m for m in created if m[1].get("guild_id") == str(guild_id)]
        by_guild = await self.repository.count_by_guild()
        if guild_id is not None:
            by_guild = {g: n for g, n in by_guild.items() if g == guild_id}
        return {
            "active": self._live_channels(),
            "stored": sum(by_guild.values()),
            "total_created": len(created),
            "by_guild": {str(g): n for g, n in by_guild.items()},
            "top_owners": [
                {"user_id": str(uid), "channels": n}
                for uid, n in await self.repository.top_owners()
            ],
        }

    async def user_stats(self, user_id: int | None = None) -> dict[str, Any]:
        if user_id is not None:
            created = [
                m
                for m in await self.repository.get_metrics("channel_created")
                if m[1].get("owner_id") == str(user_id)
            ]
            owned = await self.repository.get_channels_by_owner(user_id)
            return {
                "user_id": str(user_id),
                "channels_created": len(created),
                "currently_owned": len(owned),
                "permissions": await self.repository.permission_counts_for_user(user_id),
            }

        return {
            "top_creators": [
                {"user_id": str(uid), "channels": n}
                for uid, n in await self.repository.top_owners()
            ],
            "most_trusted": [
                {"user_id": str(uid), "count": n}
                for uid, n in await self.repository.top_permission_targets("trust")
            ],
            "most_blocked": [
                {"user_id": str(uid), "count": n}
                for uid, n in await self.repository.top_permission_targets("block")
            ],
        }

    async def interaction_stats(self, since: int | None = None) -> dict[str, Any]:
        since = self._since(since)
        rows = await self.repository.get_metrics("interaction", since)
        by_action: Counter[str] = Counter()
        failures = 0
        for _, value, _ in rows:
            by_action[value.get("action", "unknown")] += 1
            if not value.get("success", True):
                failures += 1
        errors = await self.repository.get_metrics("error", since)
        limited = await self.repository.get_metrics("rate_limited", since)
        return {
            "since": since,
            "total": len(rows),
            "failed": failures,
            "by_action": dict(by_action),
            "errors": len(errors),
            "rate_limited": len(limited),
        }

    async def timeline(
        self, since: int | None = None, bucket_seconds: int = 3600
    ) -> list[dict[str, int]]:
        """Per-bucket counts of each metric type from ``since`` until now."""
        since = self._since(since)
        bucket_seconds = max(1, int(bucket_seconds))
        now = int(self._clock())
        buckets = max(0, now - since) // bucket_seconds + 1
        timeline = [
            {"timestamp": since + i * bucket_seconds, **{t: 0 for t in METRIC_TYPES}}
            for i in range(buckets)
        ]
        for metric_type, _, recorded_at in await self.repository.get_metrics(since=since):
            index = (recorded_at - since) // bucket_seconds
            if 0 <= index < buckets and metric_type in METRIC_TYPES:
                timeline[index][metric_type] += 1
        return timeline

    async def dashboard(self, since: int | None = None) -> dict[str, Any]:
        since = self._since(since)
        return {
            "timestamp": int(self._clock()),
            "since": since,
            "channels": await self.channel_stats(),
            "users": await self.user_stats(),
            "interactions": await self.interaction_stats(since),
            "storage": await self.repository.counts(),
        }
