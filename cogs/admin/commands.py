"""
Admin override commands for temp voice channels.
"""

import discord
from discord import app_commands
from discord.ext import commands

from helpers.discord_reply import respond, send_result
from helpers.embeds import create_stats_embed
from utils.logging import get_logger

logger = get_logger(__name__)


class AdminCog(commands.GroupCog, name="tempvoice-admin"):
    """
    Administrative overrides.

    Discord hides the group from members without Manage Channels; the
    AdminService re-checks the caller on every call.
    """

    def __init__(self, bot) -> None:
        super().__init__()
        self.bot = bot

    @property
    def admin(self):
        if getattr(self.bot, "services", None) is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.admin

    @app_commands.command(name="delete", description="Force-delete a temp voice channel.")
    @app_commands.describe(channel="The temp channel to delete")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def delete(
        self, interaction: discord.Interaction, channel: discord.VoiceChannel
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await self.admin.force_delete(interaction.user, channel)
        await send_result(interaction, result)

    @app_commands.command(name="transfer", description="Force-transfer a temp channel.")
    @app_commands.describe(channel="The temp channel", member="The new owner")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def transfer(
        self,
        interaction: discord.Interaction,
        channel: discord.VoiceChannel,
        member: discord.Member,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await self.admin.force_transfer(interaction.user, channel, member)
        await send_result(interaction, result)

    @app_commands.command(
        name="reset-limits", description="Clear a member's rate-limit history."
    )
    @app_commands.describe(member="The member whose limits you want to reset")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def reset_limits(
        self, interaction: discord.Interaction, member: discord.Member
    ) -> None:
        result = self.admin.reset_user_limits(interaction.user, member.id)
        await send_result(interaction, result)

    @app_commands.command(
        name="cleanup", description="Delete empty temp channels left behind."
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def cleanup(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await self.admin.cleanup_orphans(interaction.user, interaction.guild)
        await send_result(interaction, result)

    @app_commands.command(name="stats", description="Show temp voice statistics.")
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def stats(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await self.admin.stats(interaction.user)
        if not result.success:
            await send_result(interaction, result)
            return
        await respond(interaction, embed=create_stats_embed(result.metadata))

    @app_commands.command(
        name="clear-cache", description="Drop cached members and channel lookups."
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_channels=True)
    async def clear_cache(self, interaction: discord.Interaction) -> None:
        result = self.admin.clear_caches(interaction.user)
        await send_result(interaction, result)


async def setup(bot: commands.Bot) -> None:
    """Set up the admin cog."""
    await bot.add_cog(AdminCog(bot))
