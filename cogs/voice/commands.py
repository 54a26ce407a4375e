"""
Voice Commands Cog

Slash-command mirror of the control panel. Every command builds one
OperationRequest; all business logic lives in ChannelOperations.
"""

import discord
from discord import app_commands
from discord.ext import commands

from helpers.discord_reply import send_result
from helpers.views import PRIVACY_OPTIONS
from helpers.voice_validation import VALID_REGIONS
from services.presets import PRESETS
from utils.logging import get_logger
from utils.types import OperationKind, OperationRequest

logger = get_logger(__name__)

PRIVACY_CHOICES = [
    app_commands.Choice(name=label, value=mode.value) for mode, label, _, _ in PRIVACY_OPTIONS
]
REGION_CHOICES = [app_commands.Choice(name=region, value=region) for region in VALID_REGIONS]
PRESET_CHOICES = [
    app_commands.Choice(name=preset.name, value=preset.key) for preset in PRESETS.values()
]


class VoiceCommands(commands.GroupCog, name="voice"):
    """Manage the temp voice channel you are in."""

    def __init__(self, bot: commands.Bot) -> None:
        super().__init__()
        self.bot = bot

    @property
    def operations(self):
        if getattr(self.bot, "services", None) is None:
            raise RuntimeError("Bot services not initialized")
        return self.bot.services.operations

    async def _run(
        self,
        interaction: discord.Interaction,
        kind: OperationKind,
        *,
        value=None,
        target: discord.Member | None = None,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await self.operations.execute(
            OperationRequest(
                kind=kind,
                actor=interaction.user,
                target=target,
                value=value,
                interaction_id=interaction.id,
            )
        )
        await send_result(interaction, result)

    @app_commands.command(name="name", description="Rename your voice channel")
    @app_commands.describe(name="New channel name")
    @app_commands.guild_only()
    async def name(self, interaction: discord.Interaction, name: str) -> None:
        await self._run(interaction, OperationKind.RENAME, value=name)

    @app_commands.command(name="limit", description="Set the user limit (0 = unlimited)")
    @app_commands.describe(limit="0 to 99")
    @app_commands.guild_only()
    async def limit(self, interaction: discord.Interaction, limit: int) -> None:
        await self._run(interaction, OperationKind.LIMIT, value=limit)

    @app_commands.command(name="bitrate", description="Set the audio bitrate in kbps")
    @app_commands.describe(kbps="8 to 384; capped at the server's maximum")
    @app_commands.guild_only()
    async def bitrate(self, interaction: discord.Interaction, kbps: int) -> None:
        await self._run(interaction, OperationKind.BITRATE, value=kbps)

    @app_commands.command(name="region", description="Set the voice region")
    @app_commands.choices(region=REGION_CHOICES)
    @app_commands.guild_only()
    async def region(
        self, interaction: discord.Interaction, region: app_commands.Choice[str]
    ) -> None:
        await self._run(interaction, OperationKind.REGION, value=region.value)

    @app_commands.command(name="privacy", description="Lock, hide or close chat for your channel")
    @app_commands.choices(mode=PRIVACY_CHOICES)
    @app_commands.guild_only()
    async def privacy(
        self, interaction: discord.Interaction, mode: app_commands.Choice[str]
    ) -> None:
        await self._run(interaction, OperationKind.PRIVACY, value=mode.value)

    @app_commands.command(name="trust", description="Let a member always join your channel")
    @app_commands.guild_only()
    async def trust(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.TRUST, target=member)

    @app_commands.command(name="untrust", description="Remove a member from your trusted list")
    @app_commands.guild_only()
    async def untrust(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.UNTRUST, target=member)

    @app_commands.command(name="block", description="Block a member from your channel")
    @app_commands.guild_only()
    async def block(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.BLOCK, target=member)

    @app_commands.command(name="unblock", description="Unblock a member")
    @app_commands.guild_only()
    async def unblock(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.UNBLOCK, target=member)

    @app_commands.command(name="invite", description="DM a member a single-use invite")
    @app_commands.guild_only()
    async def invite(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.INVITE, target=member)

    @app_commands.command(name="kick", description="Disconnect a member from your channel")
    @app_commands.guild_only()
    async def kick(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.KICK, target=member)

    @app_commands.command(
        name="claim", description="Claim the channel you're in if its owner has left"
    )
    @app_commands.guild_only()
    async def claim(self, interaction: discord.Interaction) -> None:
        await self._run(interaction, OperationKind.CLAIM)

    @app_commands.command(name="transfer", description="Give your channel to another member")
    @app_commands.describe(member="Who should be the new channel owner?")
    @app_commands.guild_only()
    async def transfer(self, interaction: discord.Interaction, member: discord.Member) -> None:
        await self._run(interaction, OperationKind.TRANSFER, target=member)

    @app_commands.command(name="delete", description="Delete your channel")
    @app_commands.guild_only()
    async def delete(self, interaction: discord.Interaction) -> None:
        await self._run(interaction, OperationKind.DELETE)

    @app_commands.command(name="preset", description="Apply a settings preset")
    @app_commands.choices(preset=PRESET_CHOICES)
    @app_commands.guild_only()
    async def preset(
        self, interaction: discord.Interaction, preset: app_commands.Choice[str]
    ) -> None:
        await self._run(interaction, OperationKind.PRESET, value=preset.value)

    @app_commands.command(name="dnd", description="Toggle do-not-disturb for your channel")
    @app_commands.guild_only()
    async def dnd(self, interaction: discord.Interaction) -> None:
        await self._run(interaction, OperationKind.DND)


async def setup(bot: commands.Bot) -> None:
    """Set up the Voice Commands cog."""
    await bot.add_cog(VoiceCommands(bot))
