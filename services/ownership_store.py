"""
Ownership Store

Single source of truth for "who owns channel X". An in-memory map answers
every decision made during this process's lifetime; the ``channels`` table
mirrors it so the map can be rebuilt after a restart.

The store does not queue work itself. Callers wrap each
check -> mutate -> commit sequence in ``async with store.lock(channel_id)``.
"""

import sqlite3
from typing import Any

from helpers.ttl_cache import ChannelScopedCache
from services.db.channel_repository import ChannelRepository
from utils.errors import DatabaseError, InvalidTransferError
from utils.keyed_lock import KeyedLock
from utils.logging import get_logger
from utils.types import ChannelRecord, TransferResult

logger = get_logger("services.ownership")

_STORE_ERRORS = (sqlite3.Error, DatabaseError)


def _valid_owner_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class OwnershipStore:
    def __init__(
        self,
        repository: ChannelRepository | None = None,
        cache: ChannelScopedCache | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.repository = repository or ChannelRepository()
        self.cache = cache or ChannelScopedCache()
        self.locks = locks or KeyedLock()
        self._owners: dict[int, int] = {}
        self._guilds: dict[int, int] = {}
        self.fallback_hits = 0

    def lock(self, channel_id: int) -> Any:
        """Per-channel mutual exclusion for owner-gated sequences."""
        return self.locks.hold(channel_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def cached_owner(self, channel_id: int) -> int | None:
        """In-memory owner only; never touches the durable store."""
        return self._owners.get(channel_id)

    async def owner_of(self, channel_id: int) -> int | None:
        """
        Current owner of ``channel_id``.

        Falls back to the durable store on a miss and repopulates the map, so
        only the first lookup after a restart pays for the query.
        """
        owner = self._owners.get(channel_id)
        if owner is not None:
            return owner
        try:
            record = await self.repository.get_channel(channel_id)
        except _STORE_ERRORS:
            logger.warning(
                "Durable owner lookup failed", exc_info=True, extra={"channel_id": channel_id}
            )
            return None
        if record is None:
            return None
        self.fallback_hits += 1
        self._owners[channel_id] = record.owner_id
        self._guilds[channel_id] = record.guild_id
        logger.debug(
            "Owner restored from durable store",
            extra={"channel_id": channel_id, "user_id": record.owner_id},
        )
        return record.owner_id

    async def check(self, channel_id: int, user_id: int) -> bool:
        owner = await self.owner_of(channel_id)
        return owner is not None and owner == user_id

    async def is_managed(self, channel_id: int) -> bool:
        return await self.owner_of(channel_id) is not None

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def active_channels(self) -> dict[int, int]:
        """Snapshot of channel_id -> owner_id."""
        return dict(self._owners)

    def guild_of(self, channel_id: int) -> int | None:
        return self._guilds.get(channel_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def register(
        self,
        channel_id: int,
        owner_id: int,
        guild_id: int,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self._owners[channel_id] = owner_id
        self._guilds[channel_id] = guild_id
        try:
            await self.repository.save_channel(channel_id, guild_id, owner_id, settings)
        except _STORE_ERRORS:
            logger.warning(
                "Failed to persist new channel; in-memory owner kept",
                exc_info=True,
                extra={"channel_id": channel_id, "user_id": owner_id},
            )
        logger.info(
            "Registered channel owner",
            extra={"channel_id": channel_id, "user_id": owner_id, "guild_id": guild_id},
        )

    async def transfer(self, channel_id: int, new_owner_id: int) -> TransferResult:
        """
        Hand ``channel_id`` to ``new_owner_id``.

        Raises:
            InvalidTransferError: channel not registered in memory, or a malformed owner id.
        """
        if channel_id not in self._owners:
            raise InvalidTransferError(channel_id, new_owner_id, "channel is not registered")
        if not _valid_owner_id(new_owner_id):
            raise InvalidTransferError(channel_id, new_owner_id, "invalid owner id")

        old_owner_id = self._owners[channel_id]
        self._owners[channel_id] = new_owner_id
        try:
            updated = await self.repository.update_owner(channel_id, new_owner_id)
            if not updated:
                guild_id = self._guilds.get(channel_id)
                if guild_id is not None:
                    await self.repository.save_channel(channel_id, guild_id, new_owner_id)
        except _STORE_ERRORS:
            logger.warning(
                "Failed to persist ownership transfer; in-memory owner updated",
                exc_info=True,
                extra={"channel_id": channel_id, "user_id": new_owner_id},
            )
        logger.info(
            "Ownership transferred from %s to %s",
            old_owner_id,
            new_owner_id,
            extra={"channel_id": channel_id, "user_id": new_owner_id},
        )
        return TransferResult(old_owner_id=old_owner_id, new_owner_id=new_owner_id)

    async def cleanup(self, channel_id: int) -> bool:
        """Forget ``channel_id`` everywhere. Returns True if it was known in memory."""
        known = self._owners.pop(channel_id, None) is not None
        self._guilds.pop(channel_id, None)
        self.cache.invalidate_channel(channel_id)
        try:
            await self.repository.delete_channel(channel_id)
        except _STORE_ERRORS:
            logger.warning(
                "Failed to delete durable channel record",
                exc_info=True,
                extra={"channel_id": channel_id},
            )
        self.locks.discard(channel_id)
        return known

    async def restore_from_store(self) -> list[ChannelRecord]:
        """Repopulate the in-memory map from every durable record."""
        try:
            records = await self.repository.get_all_channels()
        except _STORE_ERRORS:
            logger.exception("Failed to load channel records for restore")
            return []
        for record in records:
            self._owners[record.channel_id] = record.owner_id
            self._guilds[record.channel_id] = record.guild_id
        logger.info("Restored %s channel owners from durable store", len(records))
        return records

    def clear_memory(self) -> None:
        """Drop the in-memory map (admin cache reset); durable rows stay."""
        self._owners.clear()
        self._guilds.clear()
