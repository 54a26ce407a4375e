"""
Top-level handler for errors nothing else caught.

The bot's ``on_error``, the app-command tree and every view/modal route
uncaught exceptions here: the error is logged with its traceback, optionally
forwarded to an error webhook, and the user gets a generic apology if their
interaction is still waiting for a response.
"""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING, Any

import aiohttp
import discord

from helpers.error_messages import format_user_error
from utils.logging import get_logger

if TYPE_CHECKING:
    from discord import Interaction

logger = get_logger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 5
_MAX_TRACE_CHARS = 1500


class ErrorReporter:
    def __init__(self, webhook_url: str | None = None) -> None:
        self.webhook_url = webhook_url or None
        self._session: aiohttp.ClientSession | None = None
        self.reported = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT_SECONDS)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def report(
        self,
        error: BaseException,
        *,
        interaction: Interaction | None = None,
        context: str | None = None,
    ) -> None:
        """Log ``error``, forward it to the webhook and apologize to the user."""
        self.reported += 1
        extra: dict[str, Any] = {}
        if interaction is not None:
            extra["user_id"] = getattr(interaction.user, "id", None)
            extra["guild_id"] = getattr(interaction.guild, "id", None)
            command = getattr(interaction, "command", None)
            if command is not None:
                extra["command_name"] = getattr(command, "qualified_name", str(command))

        logger.error(
            f"Unhandled error in {context or 'bot'}: {error}",
            exc_info=(type(error), error, error.__traceback__),
            extra=extra,
        )

        if self.webhook_url:
            await self._post_webhook(error, context, extra)

        if interaction is not None:
            await self._apologize(interaction)

    async def _post_webhook(
        self, error: BaseException, context: str | None, extra: dict[str, Any]
    ) -> None:
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        fields = "\n".join(f"{k}: {v}" for k, v in extra.items() if v is not None)
        content = (
            f"**{type(error).__name__}** in `{context or 'bot'}`\n"
            f"{fields}\n```{trace[-_MAX_TRACE_CHARS:]}```"
        )
        try:
            session = await self._get_session()
            async with session.post(self.webhook_url, json={"content": content[:2000]}) as resp:
                if resp.status not in (200, 204):
                    logger.warning(f"Error webhook returned HTTP {resp.status}")
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning(f"Failed to post to error webhook: {e}")

    async def _apologize(self, interaction: Interaction) -> None:
        if interaction.response.is_done():
            return
        try:
            await interaction.response.send_message(
                format_user_error("UNKNOWN"), ephemeral=True
            )
        except discord.HTTPException as e:
            logger.debug(f"Could not send error reply: {e}")
