# Helpers/views.py
"""
Interactive Views Module

The persistent control panel posted in the panel channel, and the short-lived
select-menu flows it opens. Every flow ends in one ChannelOperations request;
this module only gathers input and renders the result.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import discord
from discord import Interaction, SelectOption
from discord.ui import Button, Item, Select, UserSelect, View

from helpers.discord_reply import replace_flow_message, respond, send_result, send_user_error
from helpers.embeds import create_preset_embed
from helpers.error_messages import format_result, format_user_error
from helpers.interaction_guard import FLOW_TIMEOUT_SECONDS
from helpers.modals import LimitModal, NameModal, UserIdModal
from helpers.rate_limiter import format_wait_time
from helpers.voice_validation import BITRATE_MENU_KBPS, VALID_REGIONS
from services.presets import PRESETS
from utils.logging import get_logger
from utils.types import OperationKind, OperationRequest, PrivacyMode

if TYPE_CHECKING:
    from discord.ext.commands import Bot

logger = get_logger(__name__)

PANEL_CUSTOM_ID_PREFIX = "tempvoice:"

# (kind, label, emoji, style, row)
PANEL_BUTTONS = (
    (OperationKind.RENAME, "Name", "✏️", discord.ButtonStyle.secondary, 0),
    (OperationKind.LIMIT, "Limit", "👥", discord.ButtonStyle.secondary, 0),
    (OperationKind.PRIVACY, "Privacy", "🔒", discord.ButtonStyle.secondary, 0),
    (OperationKind.REGION, "Region", "🌍", discord.ButtonStyle.secondary, 0),
    (OperationKind.BITRATE, "Bitrate", "🎵", discord.ButtonStyle.secondary, 0),
    (OperationKind.TRUST, "Trust", "🤝", discord.ButtonStyle.success, 1),
    (OperationKind.UNTRUST, "Untrust", "🚫", discord.ButtonStyle.secondary, 1),
    (OperationKind.BLOCK, "Block", "⛔", discord.ButtonStyle.danger, 1),
    (OperationKind.UNBLOCK, "Unblock", "✅", discord.ButtonStyle.secondary, 1),
    (OperationKind.INVITE, "Invite", "📨", discord.ButtonStyle.primary, 1),
    (OperationKind.KICK, "Kick", "👢", discord.ButtonStyle.danger, 2),
    (OperationKind.CLAIM, "Claim", "👑", discord.ButtonStyle.primary, 2),
    (OperationKind.TRANSFER, "Transfer", "🔄", discord.ButtonStyle.secondary, 2),
    (OperationKind.PRESET, "Preset", "🎛️", discord.ButtonStyle.secondary, 2),
    (OperationKind.DND, "DND", "🔕", discord.ButtonStyle.secondary, 3),
    (OperationKind.DELETE, "Delete", "🗑️", discord.ButtonStyle.danger, 3),
)

PRIVACY_OPTIONS = (
    (PrivacyMode.LOCK, "Lock", "Only trusted members can join", "🔒"),
    (PrivacyMode.UNLOCK, "Unlock", "Everyone can join", "🔓"),
    (PrivacyMode.INVISIBLE, "Invisible", "Hide the channel from everyone else", "👻"),
    (PrivacyMode.VISIBLE, "Visible", "Show the channel to everyone", "👁️"),
    (PrivacyMode.CLOSE_CHAT, "Close chat", "Only trusted members can type", "🤐"),
    (PrivacyMode.OPEN_CHAT, "Open chat", "Everyone can type", "💬"),
)

_DIRECT_KINDS = frozenset({OperationKind.CLAIM, OperationKind.DND, OperationKind.DELETE})


async def report_view_error(
    bot: Bot, error: Exception, interaction: Interaction, context: str
) -> None:
    reporter = getattr(bot, "error_reporter", None)
    if reporter is not None:
        await reporter.report(error, interaction=interaction, context=context)
        return
    logger.exception(f"Unhandled error in {context}", exc_info=error)
    await send_user_error(interaction, format_user_error("UNKNOWN"))


class ControlPanelView(View):
    """
    Persistent control panel with one button per channel operation.

    This view survives restarts (timeout=None) and every button carries a
    stable custom_id so ``bot.add_view`` can rebind it on startup. Buttons
    either dispatch straight away (claim, dnd, delete) or open a modal or a
    select flow that gathers the missing input.
    """

    def __init__(self, bot: Bot) -> None:
        super().__init__(timeout=None)
        self.bot = bot
        for kind, label, emoji, style, row in PANEL_BUTTONS:
            button = Button(
                label=label,
                emoji=emoji,
                style=style,
                row=row,
                custom_id=f"{PANEL_CUSTOM_ID_PREFIX}{kind.value}",
            )
            button.callback = self._make_callback(kind)
            self.add_item(button)

    def _make_callback(self, kind: OperationKind):
        async def callback(interaction: Interaction) -> None:
            await self.handle_button(interaction, kind)

        return callback

    async def handle_button(self, interaction: Interaction, kind: OperationKind) -> None:
        if interaction.guild is None or not isinstance(interaction.user, discord.Member):
            await send_user_error(interaction, "This only works inside a server.")
            return

        limit = self.bot.services.limiter.check(interaction.user.id, "interaction")
        if not limit.allowed:
            await send_user_error(
                interaction,
                format_user_error("RATE_LIMITED", wait=format_wait_time(limit.retry_after)),
            )
            return

        if kind in _DIRECT_KINDS:
            await interaction.response.defer(ephemeral=True, thinking=True)
            result = await self.bot.services.operations.execute(
                OperationRequest(kind=kind, actor=interaction.user, interaction_id=interaction.id)
            )
            await send_result(interaction, result)
            return

        await open_flow(self.bot, interaction, kind)

    async def on_error(self, interaction: Interaction, error: Exception, item: Item) -> None:
        await report_view_error(self.bot, error, interaction, "ControlPanelView")


async def open_flow(bot: Bot, interaction: Interaction, kind: OperationKind) -> None:
    """Open the modal or select flow for ``kind``, one flow per user at a time."""
    guard = bot.services.guard
    user_id = interaction.user.id
    if not guard.acquire(user_id, kind.value):
        await send_user_error(interaction, format_user_error("FLOW_ACTIVE"))
        return

    try:
        if kind is OperationKind.RENAME:
            await interaction.response.send_modal(NameModal(bot, user_id))
            return
        if kind is OperationKind.LIMIT:
            await interaction.response.send_modal(LimitModal(bot, user_id))
            return

        if kind is OperationKind.PRIVACY:
            view: FlowView = PrivacySelectView(bot, interaction)
        elif kind is OperationKind.REGION:
            view = RegionSelectView(bot, interaction)
        elif kind is OperationKind.BITRATE:
            view = BitrateSelectView(bot, interaction)
        elif kind is OperationKind.PRESET:
            view = PresetSelectView(bot, interaction)
        elif kind.targets_member:
            view = MemberSelectView(bot, interaction, kind)
        else:
            raise ValueError(f"No flow for operation {kind!r}")
        await respond(interaction, view.prompt, embed=view.embed, view=view)
    except Exception:
        guard.release(user_id)
        raise


class FlowView(View):
    """
    Base for the temporary select flows opened from the control panel.

    Temporary helper view -> finite timeout. Only the member who opened the
    flow can use it; when it expires the guard is released and the menu is
    disabled in place.
    """

    kind: OperationKind
    prompt = "Choose an option:"
    embed: discord.Embed | None = None

    def __init__(self, bot: Bot, origin: Interaction) -> None:
        super().__init__(timeout=FLOW_TIMEOUT_SECONDS)
        self.bot = bot
        self.origin = origin
        self.user_id = origin.user.id

    async def interaction_check(self, interaction: Interaction) -> bool:
        if interaction.user.id != self.user_id:
            await send_user_error(interaction, "This menu isn't yours.")
            return False
        return True

    def release(self) -> None:
        self.bot.services.guard.release(self.user_id)

    async def finish(self, interaction: Interaction, *, value=None, target=None) -> None:
        """Run the flow's operation and replace the menu with the result."""
        self.stop()
        try:
            result = await self.bot.services.operations.execute(
                OperationRequest(
                    kind=self.kind,
                    actor=interaction.user,
                    target=target,
                    value=value,
                    interaction_id=self.origin.id,
                )
            )
        finally:
            self.release()
        await replace_flow_message(interaction, format_result(result))

    async def on_timeout(self) -> None:
        self.release()
        for item in self.children:
            item.disabled = True
        with contextlib.suppress(discord.HTTPException):
            await self.origin.edit_original_response(
                content=format_user_error("FLOW_TIMEOUT"), view=self
            )
        logger.debug(
            f"{type(self).__name__} timed out",
            extra={"user_id": self.user_id, "action": self.kind.value},
        )

    async def on_error(self, interaction: Interaction, error: Exception, item: Item) -> None:
        self.release()
        self.stop()
        await report_view_error(self.bot, error, interaction, type(self).__name__)


class PrivacySelectView(FlowView):
    kind = OperationKind.PRIVACY
    prompt = "🔒 Choose a privacy setting for your channel:"

    def __init__(self, bot: Bot, origin: Interaction) -> None:
        super().__init__(bot, origin)
        self.privacy_select = Select(
            placeholder="Privacy",
            min_values=1,
            max_values=1,
            options=[
                SelectOption(label=label, value=mode.value, description=desc, emoji=emoji)
                for mode, label, desc, emoji in PRIVACY_OPTIONS
            ],
        )
        self.privacy_select.callback = self.privacy_callback
        self.add_item(self.privacy_select)

    async def privacy_callback(self, interaction: Interaction) -> None:
        await self.finish(interaction, value=self.privacy_select.values[0])


class RegionSelectView(FlowView):
    kind = OperationKind.REGION
    prompt = "🌍 Choose a voice region:"

    def __init__(self, bot: Bot, origin: Interaction) -> None:
        super().__init__(bot, origin)
        self.region_select = Select(
            placeholder="Region",
            min_values=1,
            max_values=1,
            options=[
                SelectOption(
                    label="Automatic" if region == "auto" else region,
                    value=region,
                )
                for region in VALID_REGIONS
            ],
        )
        self.region_select.callback = self.region_callback
        self.add_item(self.region_select)

    async def region_callback(self, interaction: Interaction) -> None:
        await self.finish(interaction, value=self.region_select.values[0])


class BitrateSelectView(FlowView):
    kind = OperationKind.BITRATE
    prompt = "🎵 Choose the audio bitrate:"

    def __init__(self, bot: Bot, origin: Interaction) -> None:
        super().__init__(bot, origin)
        self.bitrate_select = Select(
            placeholder="Bitrate",
            min_values=1,
            max_values=1,
            options=[
                SelectOption(label=f"{kbps} kbps", value=str(kbps))
                for kbps in BITRATE_MENU_KBPS
            ],
        )
        self.bitrate_select.callback = self.bitrate_callback
        self.add_item(self.bitrate_select)

    async def bitrate_callback(self, interaction: Interaction) -> None:
        await self.finish(interaction, value=int(self.bitrate_select.values[0]))


class PresetSelectView(FlowView):
    kind = OperationKind.PRESET
    prompt = "🎛️ Choose a preset to apply:"

    def __init__(self, bot: Bot, origin: Interaction) -> None:
        super().__init__(bot, origin)
        self.embed = create_preset_embed()
        self.preset_select = Select(
            placeholder="Preset",
            min_values=1,
            max_values=1,
            options=[
                SelectOption(
                    label=preset.name,
                    value=preset.key,
                    description=preset.description[:100],
                    emoji=preset.icon,
                )
                for preset in PRESETS.values()
            ],
        )
        self.preset_select.callback = self.preset_callback
        self.add_item(self.preset_select)

    async def preset_callback(self, interaction: Interaction) -> None:
        await self.finish(interaction, value=self.preset_select.values[0])


class MemberSelectView(FlowView):
    """
    Member picker for trust, untrust, block, unblock, invite, kick and transfer.

    The dropdown covers members the client can list; the "Enter ID" button
    hands the flow over to a modal for everyone else.
    """

    def __init__(self, bot: Bot, origin: Interaction, kind: OperationKind) -> None:
        super().__init__(bot, origin)
        self.kind = kind
        self.prompt = f"Select a member to {kind.value}:"

        self.user_select = UserSelect(
            placeholder=f"Select member to {kind.value}", min_values=1, max_values=1
        )
        self.user_select.callback = self.user_select_callback
        self.add_item(self.user_select)

        self.by_id_button = Button(label="Enter ID", style=discord.ButtonStyle.secondary)
        self.by_id_button.callback = self.by_id_callback
        self.add_item(self.by_id_button)

    async def user_select_callback(self, interaction: Interaction) -> None:
        if not self.user_select.values:
            await send_user_error(interaction, format_user_error("INVALID_USER"))
            return
        selected = self.user_select.values[0]
        # UserSelect yields a plain User when the member isn't cached
        target = selected if isinstance(selected, discord.Member) else None
        if target is None and interaction.guild is not None:
            target = interaction.guild.get_member(selected.id)
        await self.finish(interaction, target=target)

    async def by_id_callback(self, interaction: Interaction) -> None:
        # The modal takes over the guard; this view must not release it
        self.stop()
        await interaction.response.send_modal(UserIdModal(self.bot, self.user_id, self.kind))
        with contextlib.suppress(discord.HTTPException):
            await self.origin.edit_original_response(view=None)
