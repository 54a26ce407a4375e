"""
Durable store for temp voice channels, trust/block audit rows and metrics.
"""

from __future__ import annotations

import time
from typing import Any

from utils.types import ChannelRecord

from .repository import BaseRepository, encode_json, parse_json_dict, parse_snowflake

PERMISSION_TYPES = ("trust", "block")


def _row_to_record(row) -> ChannelRecord:
    return ChannelRecord(
        channel_id=int(row["channel_id"]),
        guild_id=int(row["guild_id"]),
        owner_id=int(row["owner_id"]),
        created_at=int(row["created_at"]),
        settings=parse_json_dict(row["settings"]),
    )


class ChannelRepository(BaseRepository):
    """Record-level access to the ``channels``, ``channel_permissions`` and ``metrics`` tables."""

    # ------------------------------------------------------------------
    # channels
    # ------------------------------------------------------------------

    async def get_channel(self, channel_id: int) -> ChannelRecord | None:
        row = await self.fetch_one(
            "SELECT * FROM channels WHERE channel_id = ?", (str(channel_id),)
        )
        return _row_to_record(row) if row else None

    async def get_all_channels(self) -> list[ChannelRecord]:
        rows = await self.fetch_all("SELECT * FROM channels ORDER BY created_at")
        return [_row_to_record(r) for r in rows]

    async def get_channels_by_guild(self, guild_id: int) -> list[ChannelRecord]:
        rows = await self.fetch_all(
            "SELECT * FROM channels WHERE guild_id = ? ORDER BY created_at",
            (str(guild_id),),
        )
        return [_row_to_record(r) for r in rows]

    async def get_channels_by_owner(self, owner_id: int) -> list[ChannelRecord]:
        rows = await self.fetch_all(
            "SELECT * FROM channels WHERE owner_id = ?", (str(owner_id),)
        )
        return [_row_to_record(r) for r in rows]

    async def save_channel(
        self,
        channel_id: int,
        guild_id: int,
        owner_id: int,
        settings: dict[str, Any] | None = None,
        created_at: int | None = None,
    ) -> None:
        """Insert or replace the owner/settings of a channel; ``created_at`` is kept on update."""
        await self.execute(
            """
            INSERT INTO channels (channel_id, guild_id, owner_id, created_at, settings)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(channel_id) DO UPDATE SET
                guild_id = excluded.guild_id,
                owner_id = excluded.owner_id,
                settings = excluded.settings
            """,
            (
                str(channel_id),
                str(guild_id),
                str(owner_id),
                created_at if created_at is not None else int(time.time()),
                encode_json(settings or {}),
            ),
        )

    async def delete_channel(self, channel_id: int) -> bool:
        deleted = await self.execute(
            "DELETE FROM channels WHERE channel_id = ?", (str(channel_id),)
        )
        return deleted > 0

    async def update_owner(self, channel_id: int, owner_id: int) -> bool:
        updated = await self.execute(
            "UPDATE channels SET owner_id = ? WHERE channel_id = ?",
            (str(owner_id), str(channel_id)),
        )
        return updated > 0

    async def update_settings(self, channel_id: int, changes: dict[str, Any]) -> bool:
        """Merge ``changes`` into the advisory settings blob."""
        async with self.transaction() as db:
            cursor = await db.execute(
                "SELECT settings FROM channels WHERE channel_id = ?", (str(channel_id),)
            )
            row = await cursor.fetchone()
            if row is None:
                return False
            merged = parse_json_dict(row["settings"])
            merged.update(changes)
            await db.execute(
                "UPDATE channels SET settings = ? WHERE channel_id = ?",
                (encode_json(merged), str(channel_id)),
            )
            return True

    # ------------------------------------------------------------------
    # channel_permissions
    # ------------------------------------------------------------------

    async def add_permission(self, channel_id: int, user_id: int, permission_type: str) -> None:
        if permission_type not in PERMISSION_TYPES:
            raise ValueError(f"Unknown permission type: {permission_type!r}")
        await self.execute(
            """
            INSERT OR IGNORE INTO channel_permissions
                (channel_id, user_id, permission_type, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (str(channel_id), str(user_id), permission_type, int(time.time())),
        )

    async def remove_permission(
        self, channel_id: int, user_id: int, permission_type: str | None = None
    ) -> int:
        if permission_type is None:
            return await self.execute(
                "DELETE FROM channel_permissions WHERE channel_id = ? AND user_id = ?",
                (str(channel_id), str(user_id)),
            )
        return await self.execute(
            """
            DELETE FROM channel_permissions
            WHERE channel_id = ? AND user_id = ? AND permission_type = ?
            """,
            (str(channel_id), str(user_id), permission_type),
        )

    async def get_permissions(
        self, channel_id: int, permission_type: str | None = None
    ) -> list[int]:
        """User ids holding a trust/block row on ``channel_id``."""
        if permission_type is None:
            rows = await self.fetch_all(
                "SELECT user_id FROM channel_permissions WHERE channel_id = ?",
                (str(channel_id),),
            )
        else:
            rows = await self.fetch_all(
                """
                SELECT user_id FROM channel_permissions
                WHERE channel_id = ? AND permission_type = ?
                """,
                (str(channel_id), permission_type),
            )
        return [uid for uid in (parse_snowflake(r["user_id"]) for r in rows) if uid]

    # ------------------------------------------------------------------
    # metrics
    # ------------------------------------------------------------------

    async def record_metric(
        self, metric_type: str, value: dict[str, Any], recorded_at: int | None = None
    ) -> None:
        await self.execute(
            "INSERT INTO metrics (metric_type, metric_value, recorded_at) VALUES (?, ?, ?)",
            (
                metric_type,
                encode_json(value),
                recorded_at if recorded_at is not None else int(time.time()),
            ),
        )

    async def get_metrics(
        self, metric_type: str | None = None, since: int = 0
    ) -> list[tuple[str, dict[str, Any], int]]:
        if metric_type is None:
            rows = await self.fetch_all(
                """
                SELECT metric_type, metric_value, recorded_at FROM metrics
                WHERE recorded_at >= ? ORDER BY recorded_at
                """,
                (since,),
            )
        else:
            rows = await self.fetch_all(
                """
                SELECT metric_type, metric_value, recorded_at FROM metrics
                WHERE metric_type = ? AND recorded_at >= ? ORDER BY recorded_at
                """,
                (metric_type, since),
            )
        return [
            (r["metric_type"], parse_json_dict(r["metric_value"]), int(r["recorded_at"]))
            for r in rows
        ]

    async def cleanup_old_metrics(self, days: int = 30, now: int | None = None) -> int:
        cutoff = (now if now is not None else int(time.time())) - days * 86400
        return await self.execute("DELETE FROM metrics WHERE recorded_at < ?", (cutoff,))

    # ------------------------------------------------------------------
    # aggregates
    # ------------------------------------------------------------------

    async def counts(self) -> dict[str, int]:
        return {
            "channels": int(await self.fetch_value("SELECT COUNT(*) FROM channels", default=0)),
            "permissions": int(
                await self.fetch_value("SELECT COUNT(*) FROM channel_permissions", default=0)
            ),
            "metrics": int(await self.fetch_value("SELECT COUNT(*) FROM metrics", default=0)),
        }

    async def count_by_guild(self) -> dict[int, int]:
        rows = await self.fetch_all(
            "SELECT guild_id, COUNT(*) AS n FROM channels GROUP BY guild_id"
        )
        return {int(r["guild_id"]): int(r["n"]) for r in rows}

    async def top_owners(self, limit: int = 10) -> list[tuple[int, int]]:
        rows = await self.fetch_all(
            """
            SELECT owner_id, COUNT(*) AS n FROM channels
            GROUP BY owner_id ORDER BY n DESC LIMIT ?
            """,
            (limit,),
        )
        return [(int(r["owner_id"]), int(r["n"])) for r in rows]

    async def top_permission_targets(
        self, permission_type: str, limit: int = 10
    ) -> list[tuple[int, int]]:
        rows = await self.fetch_all(
            """
            SELECT user_id, COUNT(*) AS n FROM channel_permissions
            WHERE permission_type = ?
            GROUP BY user_id ORDER BY n DESC LIMIT ?
            """,
            (permission_type, limit),
        )
        return [(int(r["user_id"]), int(r["n"])) for r in rows]

    async def permission_counts_for_user(self, user_id: int) -> dict[str, int]:
        rows = await self.fetch_all(
            """
            SELECT permission_type, COUNT(*) AS n FROM channel_permissions
            WHERE user_id = ? GROUP BY permission_type
            """,
            (str(user_id),),
        )
        return {r["permission_type"]: int(r["n"]) for r in rows}
