"""
Voice Events Cog

Feeds Discord gateway events into the VoiceService lifecycle controller.
"""

import discord
from discord.ext import commands

from utils.logging import get_logger

logger = get_logger(__name__)


class VoiceEvents(commands.Cog):
    """Join, leave, switch and external-delete events for temp channels."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def voice_service(self):
        """Get the voice service from the bot's service container."""
        if getattr(self.bot, "services", None) is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.voice

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        """A switch arrives as one event; the service handles join before leave."""
        if before.channel == after.channel:
            return
        try:
            await self.voice_service.handle_voice_state_change(
                member=member,
                before_channel=before.channel,
                after_channel=after.channel,
            )
        except Exception as e:
            logger.exception(
                "Voice state update failed",
                exc_info=e,
                extra={"user_id": member.id, "guild_id": member.guild.id},
            )
            reporter = getattr(self.bot, "error_reporter", None)
            if reporter is not None:
                await reporter.report(e, context="on_voice_state_update")

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        """Drop state for a temp channel deleted outside the bot."""
        if not isinstance(channel, discord.VoiceChannel):
            return
        await self.voice_service.handle_channel_deleted(
            guild_id=channel.guild.id, channel_id=channel.id
        )


async def setup(bot: commands.Bot) -> None:
    """Set up the Voice Events cog."""
    await bot.add_cog(VoiceEvents(bot))
