"""
Embed Helper Module

Provides utility functions for creating and formatting Discord embeds with
consistent styling for the temp voice control panel and admin replies.
"""

from typing import Any

import discord

from services.presets import PRESETS, preset_summary
from utils.logging import get_logger

logger = get_logger(__name__)

PANEL_COLOR = 0x5865F2
STATS_COLOR = 0x3498DB
PANEL_TITLE = "🔊 Temp Voice Control Panel"


def create_embed(title: str, description: str, color: int = 0x00FF00) -> discord.Embed:
    """
    Creates a Discord embed with the given parameters.

    Args:
        title (str): The title of the embed.
        description (str): The description/content of the embed.
        color (int, optional): The color of the embed in hexadecimal. Defaults to green.

    Returns:
        discord.Embed: The created embed object.
    """
    return discord.Embed(title=title, description=description, color=color)


def create_panel_embed(lobby_channel_id: int | None = None) -> discord.Embed:
    """Control panel posted in the panel channel."""
    lobby = f"<#{lobby_channel_id}>" if lobby_channel_id else "the lobby channel"
    description = (
        f"Join {lobby} to get your own voice channel.\n"
        "Use the buttons below while you're in it to manage it.\n\n"
        "✏️ **Name** · 👥 **Limit** · 🔒 **Privacy** · 🌍 **Region** · 🎵 **Bitrate**\n"
        "🤝 **Trust** · 🚫 **Untrust** · ⛔ **Block** · ✅ **Unblock** · 📨 **Invite**\n"
        "👢 **Kick** · 👑 **Claim** · 🔄 **Transfer** · 🎛️ **Preset** · 🔕 **DND** · 🗑️ **Delete**"
    )
    embed = create_embed(PANEL_TITLE, description, PANEL_COLOR)
    embed.set_footer(text="Only the channel owner can change settings. Anyone can claim an abandoned channel.")
    return embed


def create_preset_embed() -> discord.Embed:
    embed = create_embed("🎛️ Channel Presets", "Apply a bundle of settings in one go.", PANEL_COLOR)
    for preset in PRESETS.values():
        embed.add_field(
            name=f"{preset.icon} {preset.name}",
            value=preset_summary(preset),
            inline=False,
        )
    return embed


def create_stats_embed(stats: dict[str, Any]) -> discord.Embed:
    """Admin stats reply."""
    embed = create_embed("📊 Temp Voice Stats", "Live state and storage counters.", STATS_COLOR)
    embed.add_field(name="Active channels", value=str(stats.get("active_channels", 0)))
    embed.add_field(name="Stored channels", value=str(stats.get("stored_channels", 0)))
    embed.add_field(name="Uptime", value=f"{stats.get('uptime_seconds', 0) // 60} min")

    cache = stats.get("cache", {})
    embed.add_field(
        name="Cache",
        value=f"{cache.get('entries', 0)} entries · {cache.get('hits', 0)} hits",
    )
    limits = stats.get("rate_limits", {})
    embed.add_field(
        name="Rate limits",
        value=f"{limits.get('user_buckets', 0)} buckets · {limits.get('rejections', 0)} rejections",
    )
    lifecycle = stats.get("lifecycle", {})
    embed.add_field(
        name="Lifecycle",
        value=(
            f"{lifecycle.get('created', 0)} created · {lifecycle.get('deleted', 0)} deleted · "
            f"{lifecycle.get('delete_failures', 0)} failed deletes"
        ),
        inline=False,
    )
    return embed
