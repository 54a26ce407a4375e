"""
Discord Mock Factories

Provides fake classes for the Discord objects the temp voice services touch.
The fakes keep just enough state (overwrites, members, voice presence) for
the real DiscordVoiceAPI to drive them, so tests assert on the resulting
channel state instead of on mocks.
"""

from __future__ import annotations

import itertools
from types import SimpleNamespace
from typing import Any

import discord
from aiolimiter import AsyncLimiter

from helpers.discord_api import DiscordVoiceAPI
from utils.types import ApiOutcome

GUILD_ID = 900000000000000001
CATEGORY_ID = 900000000000000002
LOBBY_ID = 900000000000000003
PANEL_ID = 900000000000000004
BOT_ID = 900000000000000099

_ids = itertools.count(910000000000000000)


def next_id() -> int:
    return next(_ids)


class FakeRole:
    """Fake Discord Role for testing."""

    def __init__(
        self,
        role_id: int | None = None,
        name: str = "TestRole",
        position: int = 1,
        *,
        default: bool = False,
        manage_channels: bool = False,
    ) -> None:
        self.id = role_id or next_id()
        self.name = name
        self.position = position
        self.permissions = SimpleNamespace(manage_channels=manage_channels, administrator=False)
        self.mention = f"<@&{self.id}>"
        self._default = default

    def is_default(self) -> bool:
        return self._default

    def __repr__(self) -> str:
        return f"<FakeRole id={self.id} name={self.name!r}>"


class FakeMember:
    """Fake Discord Member with voice presence and DM capture."""

    def __init__(
        self,
        user_id: int | None = None,
        name: str = "member",
        *,
        guild: FakeGuild | None = None,
        bot: bool = False,
        administrator: bool = False,
        manage_channels: bool = False,
        top_position: int = 1,
        roles: list[FakeRole] | None = None,
    ) -> None:
        self.id = user_id or next_id()
        self.name = name
        self.display_name = name.title()
        self.mention = f"<@{self.id}>"
        self.bot = bot
        self.guild = guild
        self.guild_permissions = SimpleNamespace(
            administrator=administrator,
            manage_guild=False,
            manage_channels=manage_channels,
        )
        self.top_role = FakeRole(name=f"{name}-top", position=top_position)
        self.roles = roles or []
        self.voice: SimpleNamespace | None = None
        self.dms: list[dict[str, Any]] = []

    async def send(self, content: str | None = None, **kwargs: Any) -> None:
        self.dms.append({"content": content, **kwargs})

    async def move_to(self, channel: FakeVoiceChannel | None, **kwargs: Any) -> None:
        leave_voice(self)
        if channel is not None:
            join_voice(self, channel)

    def __repr__(self) -> str:
        return f"<FakeMember id={self.id} name={self.name!r}>"


class FakeVoiceChannel:
    """Fake voice channel whose overwrites are real ``discord.PermissionOverwrite`` objects."""

    def __init__(
        self,
        channel_id: int | None = None,
        name: str = "voice",
        *,
        guild: FakeGuild | None = None,
        category_id: int | None = None,
    ) -> None:
        self.id = channel_id or next_id()
        self.name = name
        self.guild = guild
        self.category_id = category_id
        self.overwrites: dict[Any, discord.PermissionOverwrite] = {}
        self.members: list[FakeMember] = []
        self.user_limit = 0
        self.bitrate = 64000
        self.rtc_region: str | None = None
        self.deleted = False
        self.messages: list[dict[str, Any]] = []

    def overwrites_for(self, target: Any) -> discord.PermissionOverwrite:
        current = self.overwrites.get(target)
        if current is None:
            return discord.PermissionOverwrite()
        return discord.PermissionOverwrite(**dict(current))

    async def set_permissions(
        self, target: Any, *, overwrite: discord.PermissionOverwrite | None = None, **kwargs: Any
    ) -> None:
        if overwrite is None:
            self.overwrites.pop(target, None)
        else:
            self.overwrites[target] = overwrite

    async def edit(self, **changes: Any) -> None:
        changes.pop("reason", None)
        if "overwrites" in changes:
            self.overwrites = dict(changes.pop("overwrites"))
        for key, value in changes.items():
            setattr(self, key, value)

    async def delete(self, **kwargs: Any) -> None:
        self.deleted = True
        if self.guild is not None:
            self.guild.remove_channel(self)

    async def create_invite(self, **kwargs: Any) -> SimpleNamespace:
        return SimpleNamespace(url=f"https://discord.gg/fake{self.id}")

    async def send(self, content: str | None = None, **kwargs: Any) -> SimpleNamespace:
        self.messages.append({"content": content, **kwargs})
        return SimpleNamespace(id=next_id(), content=content)

    def __repr__(self) -> str:
        return f"<FakeVoiceChannel id={self.id} name={self.name!r}>"


class FakeCategory:
    def __init__(self, category_id: int, guild: FakeGuild) -> None:
        self.id = category_id
        self.guild = guild
        self.name = "Temp Voice"

    @property
    def voice_channels(self) -> list[FakeVoiceChannel]:
        return [
            c
            for c in self.guild.channels
            if isinstance(c, FakeVoiceChannel) and c.category_id == self.id
        ]


class FakeGuild:
    """Fake guild with a temp voice category, a lobby and the bot member."""

    def __init__(self, guild_id: int = GUILD_ID, name: str = "TestGuild") -> None:
        self.id = guild_id
        self.name = name
        self.bitrate_limit = 96000
        self.default_role = FakeRole(guild_id, "@everyone", position=0, default=True)
        self.me = FakeMember(BOT_ID, "tempvoice", guild=self, bot=True, top_position=50)
        self._channels: dict[int, Any] = {}
        self._members: dict[int, FakeMember] = {self.me.id: self.me}
        self.category = FakeCategory(CATEGORY_ID, self)
        self._channels[CATEGORY_ID] = self.category
        self.lobby = FakeVoiceChannel(LOBBY_ID, "➕ Create", guild=self, category_id=CATEGORY_ID)
        self._channels[LOBBY_ID] = self.lobby

    @property
    def channels(self) -> list[Any]:
        return list(self._channels.values())

    def get_channel(self, channel_id: int) -> Any:
        return self._channels.get(channel_id)

    def get_member(self, user_id: int) -> FakeMember | None:
        return self._members.get(user_id)

    async def fetch_member(self, user_id: int) -> FakeMember | None:
        return self._members.get(user_id)

    def add_member(self, member: FakeMember) -> FakeMember:
        member.guild = self
        self._members[member.id] = member
        return member

    def add_channel(self, channel: FakeVoiceChannel) -> FakeVoiceChannel:
        channel.guild = self
        self._channels[channel.id] = channel
        return channel

    def remove_channel(self, channel: Any) -> None:
        self._channels.pop(channel.id, None)

    async def create_voice_channel(
        self,
        name: str,
        *,
        category: FakeCategory | None = None,
        overwrites: dict | None = None,
        **kwargs: Any,
    ) -> FakeVoiceChannel:
        channel = FakeVoiceChannel(
            name=name, guild=self, category_id=category.id if category else None
        )
        channel.overwrites = dict(overwrites or {})
        return self.add_channel(channel)


def join_voice(member: FakeMember, channel: FakeVoiceChannel) -> None:
    """Put ``member`` in ``channel`` without going through the API."""
    leave_voice(member)
    channel.members.append(member)
    member.voice = SimpleNamespace(channel=channel)


def leave_voice(member: FakeMember) -> None:
    if member.voice is not None and member in member.voice.channel.members:
        member.voice.channel.members.remove(member)
    member.voice = None


def make_member(guild: FakeGuild, name: str = "member", **kwargs: Any) -> FakeMember:
    return guild.add_member(FakeMember(name=name, **kwargs))


def make_temp_channel(guild: FakeGuild, name: str = "owner - room") -> FakeVoiceChannel:
    return guild.add_channel(FakeVoiceChannel(name=name, category_id=CATEGORY_ID))


class RecordingVoiceAPI(DiscordVoiceAPI):
    """
    DiscordVoiceAPI that records every call label.

    ``failures`` maps a call label to the outcome to return instead of
    touching the fake object.
    """

    def __init__(self) -> None:
        super().__init__(AsyncLimiter(max_rate=1000, time_period=1))
        self.calls: list[str] = []
        self.failures: dict[str, ApiOutcome] = {}

    async def _call(self, label, func, **extra):
        self.calls.append(label)
        outcome = self.failures.get(label)
        if outcome is not None:
            return outcome, None
        return await super()._call(label, func, **extra)

    def count(self, label: str) -> int:
        return self.calls.count(label)


class FakeResponse:
    def __init__(self) -> None:
        self._is_done = False
        self.sent: list[dict[str, Any]] = []
        self.sent_modal = None
        self.deferred = False

    def is_done(self) -> bool:
        return self._is_done

    async def send_message(self, content: str | None = None, **kwargs: Any) -> None:
        self._is_done = True
        self.sent.append({"content": content, **kwargs})

    async def defer(self, *args: Any, **kwargs: Any) -> None:
        self._is_done = True
        self.deferred = True

    async def send_modal(self, modal: Any) -> None:
        self._is_done = True
        self.sent_modal = modal

    async def edit_message(self, **kwargs: Any) -> None:
        self._is_done = True
        self.sent.append(kwargs)


class FakeFollowup:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, content: str | None = None, **kwargs: Any) -> None:
        self.sent.append({"content": content, **kwargs})


class FakeInteraction:
    def __init__(self, user: Any, guild: FakeGuild | None = None) -> None:
        self.id = next_id()
        self.user = user
        self.guild = guild
        self.response = FakeResponse()
        self.followup = FakeFollowup()
        self.edits: list[dict[str, Any]] = []

    async def edit_original_response(self, **kwargs: Any) -> None:
        self.edits.append(kwargs)

    @property
    def messages(self) -> list[str | None]:
        """Every content string sent back to the user, in order."""
        return [m.get("content") for m in self.response.sent + self.followup.sent]


class FakeBot:
    """Bot stand-in exposing ``services`` the way MyBot does."""

    def __init__(self, services: Any = None, guilds: list[FakeGuild] | None = None) -> None:
        self.services = services
        self.guilds = guilds or []
        self.error_reporter = None
