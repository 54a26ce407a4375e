"""
Modal dialogs for the temp voice control panel.

Each modal is one step of a UI flow: it holds the user's interaction guard
while open and releases it on submit, error or timeout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord.ui import Modal, TextInput

from helpers.discord_reply import respond, send_user_error
from helpers.error_messages import format_result, format_user_error
from helpers.interaction_guard import FLOW_TIMEOUT_SECONDS
from helpers.voice_validation import NAME_MAX_LENGTH
from utils.logging import get_logger
from utils.types import OperationKind, OperationRequest

if TYPE_CHECKING:
    from discord.ext.commands import Bot

logger = get_logger(__name__)


class FlowModal(Modal):
    """Base for modals that end in a single channel operation."""

    kind: OperationKind

    def __init__(self, bot: Bot, user_id: int, *, title: str) -> None:
        super().__init__(title=title, timeout=FLOW_TIMEOUT_SECONDS)
        self.bot = bot
        self.user_id = user_id

    def _release(self) -> None:
        self.bot.services.guard.release(self.user_id)

    async def execute(
        self, interaction: discord.Interaction, *, value=None, target=None
    ) -> None:
        """Run the operation and reply with its result."""
        result = await self.bot.services.operations.execute(
            OperationRequest(
                kind=self.kind,
                actor=interaction.user,
                target=target,
                value=value,
                interaction_id=interaction.id,
            )
        )
        await respond(interaction, format_result(result))

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            await self.submit(interaction)
        finally:
            self._release()

    async def submit(self, interaction: discord.Interaction) -> None:
        raise NotImplementedError

    async def on_timeout(self) -> None:
        self._release()
        logger.debug(
            f"{type(self).__name__} timed out", extra={"user_id": self.user_id}
        )

    async def on_error(
        self, interaction: discord.Interaction, error: Exception
    ) -> None:
        self._release()
        reporter = getattr(self.bot, "error_reporter", None)
        if reporter is not None:
            await reporter.report(error, interaction=interaction, context=type(self).__name__)
        else:
            logger.exception("Modal error", exc_info=error)
            await send_user_error(interaction, format_user_error("UNKNOWN"))


class NameModal(FlowModal):
    """Rename the owner's channel."""

    kind = OperationKind.RENAME

    def __init__(self, bot: Bot, user_id: int) -> None:
        super().__init__(bot, user_id, title="Rename Channel")
        self.name_input = TextInput(
            label="New Channel Name",
            placeholder="Enter a new name for your channel",
            min_length=1,
            max_length=NAME_MAX_LENGTH,
        )
        self.add_item(self.name_input)

    async def submit(self, interaction: discord.Interaction) -> None:
        await self.execute(interaction, value=self.name_input.value)


class LimitModal(FlowModal):
    """Set the channel user limit; 0 means unlimited."""

    kind = OperationKind.LIMIT

    def __init__(self, bot: Bot, user_id: int) -> None:
        super().__init__(bot, user_id, title="Set User Limit")
        self.limit_input = TextInput(
            label="User Limit",
            placeholder="0 for unlimited, up to 99",
            min_length=1,
            max_length=2,
        )
        self.add_item(self.limit_input)

    async def submit(self, interaction: discord.Interaction) -> None:
        await self.execute(interaction, value=self.limit_input.value)


class UserIdModal(FlowModal):
    """
    Pick the target of a member-targeted operation by typing an id or mention.

    Opened from a member select flow when the target is hard to find in the
    dropdown (e.g. not in the channel or the member list is large).
    """

    def __init__(self, bot: Bot, user_id: int, kind: OperationKind) -> None:
        super().__init__(bot, user_id, title=f"{kind.value.capitalize()} by User ID")
        self.kind = kind
        self.user_input = TextInput(
            label="User ID or mention",
            placeholder="e.g. 123456789012345678",
            min_length=1,
            max_length=40,
        )
        self.add_item(self.user_input)

    async def submit(self, interaction: discord.Interaction) -> None:
        operations = self.bot.services.operations
        channel = operations.voice_channel_of(interaction.user)
        target, error = await operations.resolve_member(
            interaction.guild,
            self.user_input.value,
            channel_id=channel.id if channel else None,
        )
        if error is not None:
            await send_user_error(interaction, format_user_error(error))
            return
        await self.execute(interaction, target=target)
