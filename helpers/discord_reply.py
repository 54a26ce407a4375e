"""
Centralized Discord reply helpers for consistent message delivery.

Every reply to a panel button, select flow, modal or slash command is
ephemeral and goes through these helpers, so an expired interaction or a
Discord hiccup is logged once here instead of at each call site.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord

from helpers.error_messages import format_result
from utils.logging import get_logger
from utils.types import OperationResult

if TYPE_CHECKING:
    from discord import Embed, Interaction, Message

logger = get_logger(__name__)


async def respond(
    interaction: Interaction,
    content: str | None = None,
    *,
    embed: Embed | None = None,
    ephemeral: bool = True,
    view: discord.ui.View | None = None,
) -> Message | None:
    """
    Unified response helper that handles all interaction response patterns.

    Uses the initial response when it is still available and a followup
    otherwise, so callers never need to know whether the interaction was
    deferred.

    Example:
        await respond(interaction, "✅ Done!")
        await respond(interaction, embed=my_embed, view=my_view)
    """
    try:
        kwargs: dict = {"ephemeral": ephemeral}
        if content:
            kwargs["content"] = content
        if embed:
            kwargs["embed"] = embed
        if view:
            kwargs["view"] = view

        if interaction.response.is_done():
            return await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)
            return None  # response.send_message doesn't return Message

    except discord.NotFound:
        logger.warning("Interaction expired before response could be sent")
        return None
    except discord.HTTPException as e:
        logger.exception(f"Failed to send response: {e}")
        return None


async def send_user_error(
    interaction: discord.Interaction, text: str, ephemeral: bool = True
) -> None:
    """
    Send an error message to the user via interaction response or followup.

    Example:
        await send_user_error(interaction, format_user_error("NOT_OWNER"))
    """
    if not text.startswith(("❌", "⚠️", "⌛", "ℹ️")):
        text = f"❌ {text}"
    await respond(interaction, text, ephemeral=ephemeral)


async def send_result(interaction: discord.Interaction, result: OperationResult) -> None:
    """Reply with the formatted message for an operation result."""
    await respond(interaction, format_result(result))


async def replace_flow_message(
    interaction: discord.Interaction, content: str
) -> None:
    """
    Replace a select-flow message with ``content`` and drop its components.

    Falls back to a followup when the message can no longer be edited.
    """
    try:
        if not interaction.response.is_done():
            await interaction.response.edit_message(content=content, view=None)
            return
        await interaction.edit_original_response(content=content, view=None)
    except discord.NotFound:
        logger.debug("Flow message gone; sending result as followup")
        await respond(interaction, content)
    except discord.HTTPException as e:
        logger.warning(f"Failed to update flow message: {e}")
        await respond(interaction, content)


__all__ = [
    "replace_flow_message",
    "respond",
    "send_result",
    "send_user_error",
]
