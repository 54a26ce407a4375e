"""
Channel preset templates for quick setup.
"""

from dataclasses import dataclass
from typing import Any

from helpers.voice_validation import AUTO_REGION


@dataclass(frozen=True)
class Preset:
    key: str
    name: str
    description: str
    icon: str
    bitrate_kbps: int
    user_limit: int
    region: str = AUTO_REGION
    locked: bool = False
    hidden: bool = False
    chat_closed: bool = False
    requires_role: bool = False

    def everyone_flags(self) -> dict[str, bool]:
        """Allow/deny set written on @everyone when this preset is applied."""
        return {
            "connect": not self.locked,
            "view_channel": not self.hidden,
            "send_messages": not self.chat_closed,
        }


PRESETS: dict[str, Preset] = {
    p.key: p
    for p in (
        Preset("default", "Default", "Standard voice channel settings", "📢", 64, 0),
        Preset(
            "vip",
            "VIP Room",
            "Exclusive high-quality room for VIP members",
            "👑",
            128,
            5,
            locked=True,
            hidden=True,
            chat_closed=True,
            requires_role=True,
        ),
        Preset("gaming", "Gaming", "Optimized for gaming with good audio quality", "🎮", 96, 5),
        Preset("music", "Music Studio", "High-quality audio for music and streaming", "🎵", 256, 5),
        Preset("study", "Study Room", "Quiet focused environment for studying", "📚", 64, 10),
        Preset("party", "Party Room", "Large room for social gatherings", "🎉", 96, 25),
        Preset("meeting", "Meeting Room", "Professional setting for meetings", "💼", 128, 10, locked=True),
        Preset(
            "private",
            "Private Room",
            "Locked and hidden from others",
            "🔒",
            96,
            5,
            locked=True,
            hidden=True,
            chat_closed=True,
        ),
        Preset("open", "Open Hall", "Public space for everyone", "🌐", 64, 0),
        Preset(
            "podcast",
            "Podcast Studio",
            "Professional audio for recording",
            "🎙️",
            384,
            5,
            locked=True,
            chat_closed=True,
        ),
    )
}

_VIP_ROLE_MARKERS = ("vip", "premium")


def get_preset(key: str | None) -> Preset | None:
    if not key:
        return None
    return PRESETS.get(key.strip().lower())


def can_use_preset(member: Any, preset: Preset) -> bool:
    """Role-gated presets need a VIP/premium role or a role that can manage channels."""
    if not preset.requires_role:
        return True
    for role in getattr(member, "roles", []):
        name = role.name.lower()
        if any(marker in name for marker in _VIP_ROLE_MARKERS):
            return True
        perms = getattr(role, "permissions", None)
        if perms is not None and perms.manage_channels:
            return True
    return False


def preset_summary(preset: Preset) -> str:
    limit = "Unlimited" if preset.user_limit == 0 else f"{preset.user_limit} users"
    privacy = [
        label
        for flag, label in (
            (preset.locked, "🔒 Locked"),
            (preset.hidden, "👻 Hidden"),
            (preset.chat_closed, "💬 Chat Closed"),
        )
        if flag
    ] or ["🌐 Public"]
    return f"{preset.bitrate_kbps} kbps · {limit} · {', '.join(privacy)}"
