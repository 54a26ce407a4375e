"""
Voice service: the temp channel lifecycle.

Turns voice presence transitions into channel create/delete actions and keeps
the OwnershipStore consistent with what exists on Discord.
"""

import asyncio
from collections.abc import Coroutine, Iterable
from typing import TYPE_CHECKING, Any, Optional

import discord

from config.config_loader import VoiceSettings
from helpers.discord_api import DiscordVoiceAPI
from helpers.voice_permissions import OWNER_PERMISSIONS, template
from utils.expiring_set import ExpiringSet
from utils.types import ApiOutcome

from .base import BaseService
from .ownership_store import OwnershipStore

if TYPE_CHECKING:
    from .analytics_service import AnalyticsService


class VoiceService(BaseService):
    """
    Lifecycle controller for temp voice channels.

    Join lobby -> create + register + move. Owner leaves an empty channel ->
    delete. Deletion is idempotent and may be reached from several paths
    (leave, explicit delete, admin override, sweep, external delete).
    """

    # How long a channel counts as "deletion already handled"
    DELETED_MARKER_TTL = 30.0

    def __init__(
        self,
        settings: VoiceSettings,
        store: OwnershipStore,
        api: DiscordVoiceAPI,
        analytics: Optional["AnalyticsService"] = None,
        bot: Optional["discord.Client"] = None,
    ) -> None:
        super().__init__("voice")
        self.settings = settings
        self.store = store
        self.api = api
        self.analytics = analytics
        self.bot = bot
        self._background_tasks: set[asyncio.Task] = set()
        # Channels whose deletion an explicit delete action has claimed
        self.deleted_by_interaction = ExpiringSet(self.DELETED_MARKER_TTL)
        # Channels already deleted and announced
        self._recently_deleted = ExpiringSet(self.DELETED_MARKER_TTL)
        self._users_creating: set[tuple[int, int]] = set()
        self.counters = {"created": 0, "deleted": 0, "delete_failures": 0, "swept": 0}

    def _spawn_background_task(
        self, coro: Coroutine[Any, Any, Any], *, name: str
    ) -> asyncio.Task:
        """Create and track a background task with exception logging."""

        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)

        def _discard_and_log(t: asyncio.Task) -> None:
            self._background_tasks.discard(t)
            if t.cancelled():
                self.logger.debug("Background task %s cancelled", name)
                return
            exc = t.exception()
            if exc:
                self.logger.error("Background task %s failed", name, exc_info=exc)

        task.add_done_callback(_discard_and_log)
        return task

    async def drain_background_tasks(self) -> None:
        """Wait for every pending background task (shutdown and tests)."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _initialize_impl(self) -> None:
        await self.store.restore_from_store()

    async def _shutdown_impl(self) -> None:
        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_lobby(self, channel: Any) -> bool:
        return (
            self.settings.lobby_channel_id is not None
            and channel.id == self.settings.lobby_channel_id
        )

    def in_managed_category(self, channel: Any) -> bool:
        return (
            self.settings.category_id is not None
            and getattr(channel, "category_id", None) == self.settings.category_id
        )

    def channel_name_for(self, member: Any) -> str:
        return f"{member.name}{self.settings.channel_name_suffix}"

    # ------------------------------------------------------------------
    # Presence transitions
    # ------------------------------------------------------------------

    async def handle_voice_state_change(
        self,
        member: discord.Member,
        before_channel: discord.VoiceChannel | None,
        after_channel: discord.VoiceChannel | None,
    ) -> None:
        """
        Route a presence transition.

        A switch A -> B runs the join logic for B first and the leave check
        for A second, so A's member count is read after the user left it.
        """
        if (
            before_channel is not None
            and after_channel is not None
            and before_channel.id == after_channel.id
        ):
            # Mute/deafen/stream toggles
            return

        if after_channel is not None:
            await self._handle_join(member, after_channel)
        if before_channel is not None:
            await self._handle_leave(member, before_channel)

    async def _handle_join(self, member: discord.Member, channel: discord.VoiceChannel) -> None:
        if not self.is_lobby(channel):
            self.logger.debug(
                "Member joined voice channel",
                extra={"user_id": member.id, "channel_id": channel.id},
            )
            return
        await self.create_channel_for(member)

    async def _handle_leave(self, member: discord.Member, channel: discord.VoiceChannel) -> None:
        if self.is_lobby(channel) or not self.in_managed_category(channel):
            return
        owner_id = await self.store.owner_of(channel.id)
        if owner_id is None:
            return

        if channel.id in self.deleted_by_interaction:
            self.logger.debug(
                "Leave ignored; explicit delete pending",
                extra={"channel_id": channel.id, "user_id": member.id},
            )
            return

        remaining = [m for m in channel.members if m.id != member.id]
        if remaining:
            self.logger.info(
                "Member left temp channel; %s member(s) remain",
                len(remaining),
                extra={"channel_id": channel.id, "user_id": member.id},
            )
            return

        if owner_id != member.id:
            # Ownership stays put until the owner returns, someone claims, or the sweep runs
            self.logger.info(
                "Non-owner left empty temp channel; keeping it",
                extra={"channel_id": channel.id, "user_id": member.id},
            )
            return

        await self.delete_channel(
            channel, reason="owner_left", require_empty=True, expected_owner_id=member.id
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_channel_for(self, member: discord.Member) -> discord.VoiceChannel | None:
        guild = member.guild
        creating_key = (guild.id, member.id)
        if creating_key in self._users_creating:
            self.logger.debug("Creation already in progress", extra={"user_id": member.id})
            return None

        self._users_creating.add(creating_key)
        try:
            category = (
                guild.get_channel(self.settings.category_id)
                if self.settings.category_id is not None
                else None
            )
            name = self.channel_name_for(member)
            outcome, channel = await self.api.create_channel(
                guild, category, name, {member: template(OWNER_PERMISSIONS)}
            )
            if not outcome.ok or channel is None:
                self.logger.warning(
                    "Failed to create temp channel (%s)",
                    outcome.value,
                    extra={"user_id": member.id, "guild_id": guild.id},
                )
                self._record("error", {"where": "create_channel", "outcome": outcome.value})
                return None

            async with self.store.lock(channel.id):
                await self.store.register(
                    channel.id, member.id, guild.id, {"name": name, "created_by": member.id}
                )

            moved = await self.api.move_member(member, channel)
            if not moved.ok:
                # The creator left the lobby before we could move them
                self.logger.info(
                    "Creator could not be moved (%s); removing new channel",
                    moved.value,
                    extra={"user_id": member.id, "channel_id": channel.id},
                )
                await self.delete_channel(channel, reason="creator_gone")
                return None

            self.counters["created"] += 1
            self._record(
                "channel_created",
                {"channel_id": str(channel.id), "guild_id": str(guild.id), "owner_id": str(member.id)},
            )
            self.logger.info(
                "Created temp channel %s",
                name,
                extra={"user_id": member.id, "channel_id": channel.id, "guild_id": guild.id},
            )
            return channel
        finally:
            self._users_creating.discard(creating_key)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_channel(
        self,
        channel: Any,
        *,
        reason: str,
        require_empty: bool = False,
        expected_owner_id: int | None = None,
    ) -> bool:
        """
        Delete a temp channel and forget it.

        Idempotent: a channel deleted moments ago is a no-op, and a channel
        already gone on Discord still has its local state cleared. Any other
        failure keeps local state so the next event or sweep can retry.

        ``require_empty`` and ``expected_owner_id`` are re-checked once the
        channel lock is held; the deletion is skipped if someone joined or
        ownership moved while this call was waiting.

        Returns:
            True if this call removed the channel.
        """
        channel_id = channel.id
        async with self.store.lock(channel_id):
            if channel_id in self._recently_deleted:
                self.logger.debug(
                    "Deletion already handled", extra={"channel_id": channel_id}
                )
                return False

            if require_empty and channel.members:
                self.logger.info(
                    "Deletion skipped; %s member(s) joined meanwhile",
                    len(channel.members),
                    extra={"channel_id": channel_id},
                )
                return False
            if (
                expected_owner_id is not None
                and await self.store.owner_of(channel_id) != expected_owner_id
            ):
                self.logger.info(
                    "Deletion skipped; ownership changed", extra={"channel_id": channel_id}
                )
                return False

            outcome = await self.api.delete_channel(channel)
            if outcome not in (ApiOutcome.OK, ApiOutcome.NOT_FOUND):
                self.counters["delete_failures"] += 1
                self.logger.warning(
                    "Failed to delete temp channel (%s); will retry later",
                    outcome.value,
                    extra={"channel_id": channel_id},
                )
                self._record("error", {"where": "delete_channel", "outcome": outcome.value})
                return False

            await self.store.cleanup(channel_id)
            self._recently_deleted.add(channel_id)
            self.deleted_by_interaction.discard(channel_id)

        self._announce_deleted(channel, reason)
        return True

    def purge_markers(self) -> int:
        """Drop expired deletion markers."""
        return self.deleted_by_interaction.purge() + self._recently_deleted.purge()

    def schedule_interaction_delete(self, channel: Any) -> asyncio.Task:
        """
        Mark ``channel`` as deleted by an explicit action and delete it after
        the grace delay, so the acknowledgement reaches the user first.
        """
        self.deleted_by_interaction.add(channel.id)

        async def _delete_later() -> None:
            await asyncio.sleep(self.settings.delete_grace_seconds)
            await self.delete_channel(channel, reason="interaction")

        return self._spawn_background_task(_delete_later(), name=f"delete_{channel.id}")

    async def handle_channel_deleted(self, guild_id: int, channel_id: int) -> None:
        """A channel vanished on Discord (our delete, a moderator, or an outage)."""
        if channel_id in self._recently_deleted:
            return
        if await self.store.owner_of(channel_id) is None:
            self.logger.debug("Deleted channel was not managed", extra={"channel_id": channel_id})
            return
        async with self.store.lock(channel_id):
            await self.store.cleanup(channel_id)
            self._recently_deleted.add(channel_id)
        self.logger.info(
            "Temp channel deleted externally; records cleared",
            extra={"channel_id": channel_id, "guild_id": guild_id},
        )

    def _announce_deleted(self, channel: Any, reason: str) -> None:
        self.counters["deleted"] += 1
        self.logger.info(
            "Temp channel deleted (%s)",
            reason,
            extra={"channel_id": channel.id},
        )
        self._record("channel_deleted", {"channel_id": str(channel.id), "reason": reason})

        log_channel_id = self.settings.log_channel_id
        guild = getattr(channel, "guild", None)
        if log_channel_id and guild is not None:
            log_channel = guild.get_channel(log_channel_id)
            if log_channel is not None:
                self._spawn_background_task(
                    self.api.send_message(
                        log_channel, f"🗑️ Temp channel **{channel.name}** deleted ({reason})."
                    ),
                    name=f"announce_delete_{channel.id}",
                )

    # ------------------------------------------------------------------
    # Sweep / reconcile
    # ------------------------------------------------------------------

    def category_channels(self, guild: Any) -> Iterable[Any]:
        if self.settings.category_id is None:
            return []
        category = guild.get_channel(self.settings.category_id)
        if category is None:
            return []
        return list(getattr(category, "voice_channels", None) or getattr(category, "channels", []))

    async def sweep(self, guild: Any) -> int:
        """Delete empty temp channels under the category; recovers from dropped events."""
        suffix = self.settings.channel_name_suffix
        removed = 0
        for channel in self.category_channels(guild):
            if channel.members or not channel.name.endswith(suffix):
                continue
            if channel.id in self.deleted_by_interaction:
                continue
            try:
                if await self.delete_channel(channel, reason="sweep", require_empty=True):
                    removed += 1
            except Exception as e:
                self.logger.exception(
                    "Sweep failed for channel", exc_info=e, extra={"channel_id": channel.id}
                )
        if removed:
            self.counters["swept"] += removed
            self.logger.info("Sweep removed %s empty temp channel(s)", removed, extra={"guild_id": guild.id})
        return removed

    async def reconcile(self, guilds: Iterable[Any]) -> int:
        """Drop records whose channel is gone, then sweep. Run once the gateway is ready."""
        guild_map = {g.id: g for g in guilds}
        stale = 0
        for channel_id, _owner_id in self.store.active_channels().items():
            guild = guild_map.get(self.store.guild_of(channel_id))
            if guild is None:
                continue
            if guild.get_channel(channel_id) is None:
                await self.store.cleanup(channel_id)
                stale += 1
        if stale:
            self.logger.info("Removed %s stale channel record(s)", stale)
        for guild in guild_map.values():
            await self.sweep(guild)
        return stale

    async def sweep_all(self) -> int:
        if self.bot is None:
            return 0
        total = 0
        for guild in list(self.bot.guilds):
            total += await self.sweep(guild)
        return total

    # ------------------------------------------------------------------

    def _record(self, metric_type: str, value: dict[str, Any]) -> None:
        if self.analytics is not None:
            self.analytics.record(metric_type, value)

    def health_details(self) -> dict[str, Any]:
        return {
            "active_channels": len(self.store),
            "background_tasks": len(self._background_tasks),
            "locks": len(self.store.locks),
            **self.counters,
        }
