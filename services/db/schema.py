"""
Canonical schema definition (version=1).

Three tables back the temp voice bot: live channel records, trust/block audit
rows and append-only metrics. Snowflake ids are stored as TEXT.
"""

import aiosqlite

from utils.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1


async def init_schema(db: aiosqlite.Connection) -> None:
    """
    Initialize the database schema with all required tables.

    Args:
        db: An open database connection
    """
    await db.execute("PRAGMA foreign_keys=ON")

    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER DEFAULT (strftime('%s','now'))
        )
        """
    )

    # One row per live temp channel; deleted together with the channel
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS channels (
            channel_id TEXT PRIMARY KEY,
            guild_id TEXT NOT NULL,
            owner_id TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            settings TEXT NOT NULL DEFAULT '{}'
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_channels_guild ON channels(guild_id)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_channels_owner ON channels(owner_id)"
    )

    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS channel_permissions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            channel_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            permission_type TEXT NOT NULL CHECK (permission_type IN ('trust', 'block')),
            created_at INTEGER NOT NULL,
            UNIQUE (channel_id, user_id, permission_type),
            FOREIGN KEY (channel_id) REFERENCES channels(channel_id) ON DELETE CASCADE
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_permissions_user ON channel_permissions(user_id)"
    )

    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS metrics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            metric_type TEXT NOT NULL,
            metric_value TEXT NOT NULL,
            recorded_at INTEGER NOT NULL
        )
        """
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_metrics_type_time ON metrics(metric_type, recorded_at)"
    )
    await db.execute(
        "CREATE INDEX IF NOT EXISTS idx_metrics_time ON metrics(recorded_at)"
    )

    await db.execute(
        "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, strftime('%s','now'))",
        (SCHEMA_VERSION,),
    )

    await db.commit()

    logger.info("Schema initialization complete")
