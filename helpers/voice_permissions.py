"""
Permission templates and overwrite introspection for temp voice channels.

Templates are plain ``{flag: bool | None}`` dicts so they can be merged into an
existing ``discord.PermissionOverwrite`` without clobbering unrelated flags.
"""

from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

import discord

from utils.types import PrivacyMode

Flags = Mapping[str, bool | None]

OWNER_PERMISSIONS: dict[str, bool] = {
    "manage_channels": True,
    "manage_roles": True,
    "connect": True,
    "mute_members": True,
    "deafen_members": True,
    "move_members": True,
    "view_channel": True,
}

# A transferred owner also gets priority speaker
TRANSFER_OWNER_PERMISSIONS: dict[str, bool] = {**OWNER_PERMISSIONS, "priority_speaker": True}

# What a previous owner keeps after a transfer
BASELINE_PERMISSIONS: dict[str, bool] = {
    "manage_channels": False,
    "manage_roles": False,
    "connect": True,
    "view_channel": True,
    "speak": True,
}

TRUST_PERMISSIONS: dict[str, bool] = {
    "connect": True,
    "view_channel": True,
    "speak": True,
    "stream": True,
    "use_voice_activation": True,
}

BLOCK_PERMISSIONS: dict[str, bool] = {
    "view_channel": False,
    "connect": False,
    "speak": False,
    "stream": False,
    "use_voice_activation": False,
    "send_messages": False,
    "read_message_history": False,
}

DND_FLAGS = (
    "speak",
    "stream",
    "use_voice_activation",
    "priority_speaker",
    "use_soundboard",
    "use_embedded_activities",
)


class PrivacyPlan(NamedTuple):
    """Flags to write on @everyone and on each trusted member for one privacy mode."""

    everyone: dict[str, bool | None]
    trusted: dict[str, bool]


def privacy_plan(mode: PrivacyMode) -> PrivacyPlan:
    if mode is PrivacyMode.UNLOCK:
        return PrivacyPlan({"view_channel": True, "connect": True}, {})
    if mode is PrivacyMode.LOCK:
        return PrivacyPlan(
            {"view_channel": True, "connect": False},
            {"view_channel": True, "connect": True},
        )
    if mode is PrivacyMode.INVISIBLE:
        return PrivacyPlan(
            {"view_channel": False, "connect": False},
            {"view_channel": True, "connect": True},
        )
    if mode is PrivacyMode.VISIBLE:
        return PrivacyPlan({"view_channel": True}, {})
    if mode is PrivacyMode.CLOSE_CHAT:
        return PrivacyPlan({"send_messages": False}, {"send_messages": True})
    if mode is PrivacyMode.OPEN_CHAT:
        return PrivacyPlan({"send_messages": True}, {})
    raise ValueError(f"Unhandled privacy mode: {mode!r}")


def merged(overwrite: discord.PermissionOverwrite | None, flags: Flags) -> discord.PermissionOverwrite:
    """Copy ``overwrite`` and apply ``flags`` on top; flags not named stay as they were."""
    result = discord.PermissionOverwrite(**dict(overwrite)) if overwrite else discord.PermissionOverwrite()
    result.update(**flags)
    return result


def template(flags: Flags) -> discord.PermissionOverwrite:
    return discord.PermissionOverwrite(**flags)


def _is_role(target: Any) -> bool:
    return isinstance(target, discord.Role) or hasattr(target, "is_default")


def everyone_overwrite(channel: Any) -> discord.PermissionOverwrite:
    return channel.overwrites_for(channel.guild.default_role)


def is_locked(channel: Any) -> bool:
    return everyone_overwrite(channel).connect is False


def is_dnd(channel: Any) -> bool:
    return everyone_overwrite(channel).speak is False


def is_blocked(channel: Any, member: Any) -> bool:
    return channel.overwrites_for(member).view_channel is False


def is_trusted(channel: Any, member: Any) -> bool:
    overwrite = channel.overwrites_for(member)
    return overwrite.connect is True and overwrite.view_channel is not False


def trusted_member_ids(channel: Any, exclude: Iterable[int] = ()) -> list[int]:
    """Members holding an explicit connect allow, minus ``exclude`` (owner, bot)."""
    skip = set(exclude)
    return [
        target.id
        for target, overwrite in channel.overwrites.items()
        if not _is_role(target) and overwrite.connect is True and target.id not in skip
    ]


def is_admin(member: Any) -> bool:
    perms = getattr(member, "guild_permissions", None)
    return bool(perms and perms.administrator)


def can_administer(member: Any) -> bool:
    """Who may use the admin overrides."""
    perms = getattr(member, "guild_permissions", None)
    if perms is None:
        return False
    return bool(perms.administrator or perms.manage_guild or perms.manage_channels)


def outranks(member: Any, other: Any) -> bool:
    """True when ``member``'s highest role sits at or above ``other``'s."""
    mine = getattr(getattr(member, "top_role", None), "position", 0)
    theirs = getattr(getattr(other, "top_role", None), "position", 0)
    return mine >= theirs


def member_ids(channel: Any) -> set[int]:
    return {m.id for m in getattr(channel, "members", [])}
