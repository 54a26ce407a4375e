"""
Admin overrides for temp voice channels.

Every method checks the caller first and logs a WARNING audit line when the
override runs. Results use the same OperationResult codes as channel
operations so the cog can format them the same way.
"""

import time
from typing import Any

from helpers.discord_api import DiscordVoiceAPI
from helpers.rate_limiter import RateLimiter
from helpers.voice_permissions import (
    BASELINE_PERMISSIONS,
    TRANSFER_OWNER_PERMISSIONS,
    can_administer,
    merged,
    template,
)
from utils.errors import InvalidTransferError
from utils.types import OperationResult

from .base import BaseService
from .channel_operations import API_FAILURE_CODES
from .ownership_store import OwnershipStore
from .voice_service import VoiceService


class AdminService(BaseService):
    def __init__(
        self,
        store: OwnershipStore,
        api: DiscordVoiceAPI,
        limiter: RateLimiter,
        voice: VoiceService,
    ) -> None:
        super().__init__("admin")
        self.store = store
        self.api = api
        self.limiter = limiter
        self.voice = voice
        self._started_at = time.time()

    async def _initialize_impl(self) -> None:
        pass

    def _audit(self, admin: Any, message: str, **fields: Any) -> None:
        self.logger.warning(
            "Admin override: %s",
            message,
            extra={"user_id": admin.id, "action": message, **fields},
        )

    async def force_delete(self, admin: Any, channel: Any) -> OperationResult:
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")
        owner_id = await self.store.owner_of(channel.id)
        if owner_id is None:
            return OperationResult.fail("NOT_MANAGED")

        self._audit(admin, "force_delete", channel_id=channel.id, target_id=owner_id)
        deleted = await self.voice.delete_channel(channel, reason="admin")
        if not deleted and channel.id in self.store:
            return OperationResult.fail("API_FAILED")
        return OperationResult.ok(
            "ADMIN_DELETED", {"owner_id": owner_id}, channel=channel.name
        )

    async def force_transfer(self, admin: Any, channel: Any, member: Any) -> OperationResult:
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")
        if getattr(member, "bot", False):
            return OperationResult.fail("TARGET_BOT")

        async with self.store.lock(channel.id):
            old_owner_id = await self.store.owner_of(channel.id)
            if old_owner_id is None:
                return OperationResult.fail("NOT_MANAGED")
            if old_owner_id == member.id:
                return OperationResult.fail("ALREADY_OWNER")

            outcome = await self.api.set_overwrite(
                channel,
                member,
                merged(channel.overwrites_for(member), TRANSFER_OWNER_PERMISSIONS),
            )
            if not outcome.ok:
                return OperationResult.fail(API_FAILURE_CODES.get(outcome, "API_FAILED"))

            try:
                result = await self.store.transfer(channel.id, member.id)
            except InvalidTransferError:
                self.logger.exception("Forced transfer rejected", extra={"channel_id": channel.id})
                return OperationResult.fail("API_FAILED")

            previous = channel.guild.get_member(result.old_owner_id)
            if previous is not None:
                await self.api.set_overwrite(channel, previous, template(BASELINE_PERMISSIONS))

        self._audit(
            admin,
            "force_transfer",
            channel_id=channel.id,
            target_id=member.id,
        )
        return OperationResult.ok(
            "TRANSFERRED",
            {"old_owner_id": result.old_owner_id, "new_owner_id": result.new_owner_id},
            user=member.mention,
        )

    def reset_user_limits(self, admin: Any, user_id: int) -> OperationResult:
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")
        removed = self.limiter.reset(user_id)
        self._audit(admin, "reset_user_limits", target_id=user_id)
        return OperationResult.ok("LIMITS_RESET", {"removed": removed}, user=f"<@{user_id}>")

    async def cleanup_orphans(self, admin: Any, guild: Any) -> OperationResult:
        """Delete registered channels under the category that nobody is in."""
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")

        deleted: list[int] = []
        for channel in self.voice.category_channels(guild):
            if channel.members or channel.id not in self.store:
                continue
            if await self.voice.delete_channel(channel, reason="admin_cleanup"):
                deleted.append(channel.id)

        self._audit(admin, "cleanup_orphans", guild_id=guild.id)
        return OperationResult.ok(
            "ORPHANS_CLEANED", {"channels": deleted}, count=len(deleted)
        )

    async def stats(self, admin: Any) -> OperationResult:
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")
        counts = await self.store.repository.counts()
        data = {
            "uptime_seconds": int(time.time() - self._started_at),
            "active_channels": len(self.store),
            "stored_channels": counts["channels"],
            "permission_rows": counts["permissions"],
            "metric_rows": counts["metrics"],
            "cache": self.store.cache.stats(),
            "locks": len(self.store.locks),
            "rate_limits": self.limiter.stats(),
            "lifecycle": dict(self.voice.counters),
        }
        self.logger.info("Admin requested stats", extra={"user_id": admin.id})
        return OperationResult.ok("STATS", data)

    def clear_caches(self, admin: Any) -> OperationResult:
        if not can_administer(admin):
            return OperationResult.fail("PERMISSION")
        entries = len(self.store.cache)
        self.store.cache.clear()
        self._audit(admin, "clear_caches")
        return OperationResult.ok("CACHES_CLEARED", {"entries": entries}, count=entries)
