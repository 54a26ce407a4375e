"""
Test Factories Module

Fake Discord objects and a recording API surface shared by the test suite.
"""

from .discord_factories import (
    BOT_ID,
    CATEGORY_ID,
    GUILD_ID,
    LOBBY_ID,
    PANEL_ID,
    FakeBot,
    FakeCategory,
    FakeGuild,
    FakeInteraction,
    FakeMember,
    FakeRole,
    FakeVoiceChannel,
    RecordingVoiceAPI,
    join_voice,
    leave_voice,
    make_member,
    make_temp_channel,
    next_id,
)

__all__ = [
    "BOT_ID",
    "CATEGORY_ID",
    "GUILD_ID",
    "LOBBY_ID",
    "PANEL_ID",
    "FakeBot",
    "FakeCategory",
    "FakeGuild",
    "FakeInteraction",
    "FakeMember",
    "FakeRole",
    "FakeVoiceChannel",
    "RecordingVoiceAPI",
    "join_voice",
    "leave_voice",
    "make_member",
    "make_temp_channel",
    "next_id",
]
