"""
Centralized module for all Discord API calls made on temp voice channels.

Every call passes through one shared AsyncLimiter. Calls are never retried;
discord.py exceptions are translated into ApiOutcome values so callers decide
what the user sees.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import discord  # type: ignore[import-not-found]
from aiolimiter import AsyncLimiter

from utils.logging import get_logger
from utils.types import ApiOutcome

logger = get_logger(__name__)

T = TypeVar("T")

# Discord error code for "Cannot send messages to this user"
CANNOT_DM_USER = 50007


class DiscordVoiceAPI:
    """Capability surface for channel, overwrite and member operations."""

    def __init__(self, limiter: AsyncLimiter | None = None) -> None:
        self.limiter = limiter or AsyncLimiter(max_rate=45, time_period=1)

    async def _call(
        self,
        label: str,
        func: Callable[[], Awaitable[T]],
        **extra: Any,
    ) -> tuple[ApiOutcome, T | None]:
        async with self.limiter:
            try:
                return ApiOutcome.OK, await func()
            except discord.NotFound:
                logger.warning(f"{label}: target not found", extra=extra)
                return ApiOutcome.NOT_FOUND, None
            except discord.Forbidden as e:
                if getattr(e, "code", None) == CANNOT_DM_USER:
                    logger.info(f"{label}: user does not accept DMs", extra=extra)
                    return ApiOutcome.UNREACHABLE, None
                logger.warning(f"{label}: forbidden", extra=extra)
                return ApiOutcome.FORBIDDEN, None
            except discord.HTTPException:
                logger.exception(f"{label}: HTTP error", extra=extra)
                return ApiOutcome.FAILED, None

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def create_channel(
        self,
        guild: discord.Guild,
        category: discord.CategoryChannel | None,
        name: str,
        overwrites: Mapping[Any, discord.PermissionOverwrite],
    ) -> tuple[ApiOutcome, discord.VoiceChannel | None]:
        return await self._call(
            "create_channel",
            lambda: guild.create_voice_channel(
                name, category=category, overwrites=dict(overwrites), reason="Temp voice channel"
            ),
            guild_id=guild.id,
        )

    async def delete_channel(self, channel: discord.abc.GuildChannel) -> ApiOutcome:
        outcome, _ = await self._call(
            "delete_channel", lambda: channel.delete(reason="Temp voice channel cleanup"),
            channel_id=channel.id,
        )
        return outcome

    async def edit_channel(self, channel: discord.VoiceChannel, **changes: Any) -> ApiOutcome:
        """Apply name / user_limit / bitrate / rtc_region changes."""
        outcome, _ = await self._call(
            "edit_channel", lambda: channel.edit(**changes), channel_id=channel.id
        )
        return outcome

    # ------------------------------------------------------------------
    # Overwrites
    # ------------------------------------------------------------------

    async def set_overwrite(
        self,
        channel: discord.VoiceChannel,
        target: discord.Member | discord.Role,
        overwrite: discord.PermissionOverwrite,
    ) -> ApiOutcome:
        outcome, _ = await self._call(
            "set_overwrite",
            lambda: channel.set_permissions(target, overwrite=overwrite),
            channel_id=channel.id,
            target_id=target.id,
        )
        return outcome

    async def clear_overwrite(
        self, channel: discord.VoiceChannel, target: discord.Member | discord.Role
    ) -> ApiOutcome:
        outcome, _ = await self._call(
            "clear_overwrite",
            lambda: channel.set_permissions(target, overwrite=None),
            channel_id=channel.id,
            target_id=target.id,
        )
        return outcome

    async def set_overwrites(
        self,
        channel: discord.VoiceChannel,
        overwrites: Mapping[Any, discord.PermissionOverwrite],
    ) -> ApiOutcome:
        """Replace the channel's overwrites in a single request."""
        outcome, _ = await self._call(
            "set_overwrites",
            lambda: channel.edit(overwrites=dict(overwrites)),
            channel_id=channel.id,
        )
        return outcome

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def disconnect_member(self, member: discord.Member) -> ApiOutcome:
        outcome, _ = await self._call(
            "disconnect_member", lambda: member.move_to(None), user_id=member.id
        )
        return outcome

    async def move_member(self, member: discord.Member, channel: discord.VoiceChannel) -> ApiOutcome:
        outcome, _ = await self._call(
            "move_member",
            lambda: member.move_to(channel),
            user_id=member.id,
            channel_id=channel.id,
        )
        return outcome

    async def fetch_member(self, guild: discord.Guild, user_id: int) -> discord.Member | None:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        _, fetched = await self._call(
            "fetch_member", lambda: guild.fetch_member(user_id), user_id=user_id
        )
        return fetched

    # ------------------------------------------------------------------
    # Invites / DMs
    # ------------------------------------------------------------------

    async def create_invite(
        self, channel: discord.VoiceChannel, *, max_age: int = 86400, max_uses: int = 1
    ) -> tuple[ApiOutcome, str | None]:
        outcome, invite = await self._call(
            "create_invite",
            lambda: channel.create_invite(max_age=max_age, max_uses=max_uses, unique=True),
            channel_id=channel.id,
        )
        return outcome, (invite.url if invite is not None else None)

    async def send_dm(
        self,
        user: discord.abc.User,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
    ) -> ApiOutcome:
        outcome, _ = await self._call(
            "send_dm", lambda: user.send(content, embed=embed), user_id=user.id
        )
        # Forbidden on a DM always means the user is unreachable
        if outcome is ApiOutcome.FORBIDDEN:
            return ApiOutcome.UNREACHABLE
        return outcome

    async def send_message(
        self, channel: discord.abc.Messageable, content: str | None = None, **kwargs: Any
    ) -> tuple[ApiOutcome, discord.Message | None]:
        return await self._call(
            "send_message", lambda: channel.send(content, **kwargs),
            channel_id=getattr(channel, "id", None),
        )
