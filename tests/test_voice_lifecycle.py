"""
Temp channel lifecycle: lobby join creates, owner leaving an empty channel
deletes, and every deletion path is idempotent.
"""

import asyncio

import pytest

from helpers.voice_permissions import OWNER_PERMISSIONS
from tests.factories import (
    CATEGORY_ID,
    FakeVoiceChannel,
    join_voice,
    leave_voice,
    make_member,
    make_temp_channel,
)
from utils.expiring_set import ExpiringSet
from utils.types import ApiOutcome


async def enter_lobby(services, guild, member):
    """Simulate the gateway event for ``member`` joining the lobby."""
    before = member.voice.channel if member.voice else None
    join_voice(member, guild.lobby)
    await services.voice.handle_voice_state_change(member, before, guild.lobby)
    return member.voice.channel


async def leave(services, member):
    channel = member.voice.channel
    leave_voice(member)
    await services.voice.handle_voice_state_change(member, channel, None)


@pytest.mark.asyncio
async def test_join_lobby_creates_channel_and_moves_member(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)

    assert channel is not guild.lobby
    assert channel.name == "alice - room"
    assert channel.category_id == CATEGORY_ID
    assert alice in channel.members
    assert await services.store.owner_of(channel.id) == alice.id
    assert channel.overwrites[alice].manage_channels is True
    assert set(OWNER_PERMISSIONS) <= {k for k, v in channel.overwrites[alice] if v}
    assert api.calls == ["create_channel", "move_member"]
    assert services.voice.counters["created"] == 1


@pytest.mark.asyncio
async def test_owner_leaving_empty_channel_deletes_it(services, guild) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)

    await leave(services, alice)

    assert channel.deleted
    assert channel.id not in services.store
    assert await services.store.repository.get_channel(channel.id) is None
    assert services.voice.counters["deleted"] == 1


@pytest.mark.asyncio
async def test_owner_leaving_with_members_keeps_channel(services, guild) -> None:
    alice = make_member(guild, "alice")
    bob = make_member(guild, "bob")
    channel = await enter_lobby(services, guild, alice)
    join_voice(bob, channel)

    await leave(services, alice)

    assert not channel.deleted
    assert await services.store.owner_of(channel.id) == alice.id


@pytest.mark.asyncio
async def test_non_owner_leaving_empty_channel_keeps_it(services, guild) -> None:
    alice = make_member(guild, "alice")
    bob = make_member(guild, "bob")
    channel = await enter_lobby(services, guild, alice)
    join_voice(bob, channel)
    await leave(services, alice)

    await leave(services, bob)

    assert not channel.deleted
    assert await services.store.owner_of(channel.id) == alice.id


@pytest.mark.asyncio
async def test_switch_from_own_channel_to_lobby(services, guild) -> None:
    alice = make_member(guild, "alice")
    first = await enter_lobby(services, guild, alice)

    second = await enter_lobby(services, guild, alice)

    assert second is not first
    assert first.deleted
    assert await services.store.owner_of(second.id) == alice.id
    assert len(services.store) == 1


@pytest.mark.asyncio
async def test_same_channel_state_change_is_ignored(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)
    api.calls.clear()

    await services.voice.handle_voice_state_change(alice, channel, channel)
    assert api.calls == []


@pytest.mark.asyncio
async def test_failed_create_registers_nothing(services, guild, api) -> None:
    api.failures["create_channel"] = ApiOutcome.FORBIDDEN
    alice = make_member(guild, "alice")

    await enter_lobby(services, guild, alice)

    assert len(services.store) == 0
    assert alice.voice.channel is guild.lobby


@pytest.mark.asyncio
async def test_creator_gone_before_move_removes_channel(services, guild, api) -> None:
    api.failures["move_member"] = ApiOutcome.FAILED
    alice = make_member(guild, "alice")

    await enter_lobby(services, guild, alice)

    assert len(services.store) == 0
    assert api.count("delete_channel") == 1
    assert services.voice.counters["created"] == 0


@pytest.mark.asyncio
async def test_delete_is_idempotent(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)
    leave_voice(alice)

    results = await asyncio.gather(
        services.voice.delete_channel(channel, reason="owner_left"),
        services.voice.delete_channel(channel, reason="sweep"),
        services.voice.delete_channel(channel, reason="admin"),
    )

    assert results.count(True) == 1
    assert api.count("delete_channel") == 1
    assert services.voice.counters["deleted"] == 1


@pytest.mark.asyncio
async def test_delete_already_gone_still_clears_state(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)
    api.failures["delete_channel"] = ApiOutcome.NOT_FOUND

    assert await services.voice.delete_channel(channel, reason="sweep")
    assert channel.id not in services.store


@pytest.mark.asyncio
async def test_failed_delete_keeps_state_for_retry(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)
    api.failures["delete_channel"] = ApiOutcome.FAILED

    assert not await services.voice.delete_channel(channel, reason="sweep")
    assert channel.id in services.store
    assert services.voice.counters["delete_failures"] == 1

    del api.failures["delete_channel"]
    assert await services.voice.delete_channel(channel, reason="sweep")


@pytest.mark.asyncio
async def test_interaction_delete_suppresses_leave_path(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)

    task = services.voice.schedule_interaction_delete(channel)
    await leave(services, alice)
    await task

    assert channel.deleted
    assert api.count("delete_channel") == 1
    assert services.voice.counters["deleted"] == 1


@pytest.mark.asyncio
async def test_external_delete_clears_records(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)

    await services.voice.handle_channel_deleted(guild.id, channel.id)

    assert channel.id not in services.store
    assert api.count("delete_channel") == 0


@pytest.mark.asyncio
async def test_sweep_removes_only_empty_suffixed_channels(services, guild) -> None:
    alice = make_member(guild, "alice")
    busy = make_temp_channel(guild, "busy - room")
    join_voice(alice, busy)
    empty = make_temp_channel(guild, "empty - room")
    other = make_temp_channel(guild, "Staff Lounge")

    removed = await services.voice.sweep(guild)

    assert removed == 1
    assert empty.deleted
    assert not busy.deleted
    assert not other.deleted
    assert not guild.lobby.deleted
    assert services.voice.counters["swept"] == 1


@pytest.mark.asyncio
async def test_reconcile_drops_records_for_missing_channels(services, guild) -> None:
    gone = FakeVoiceChannel(name="gone - room", category_id=CATEGORY_ID)
    await services.store.register(gone.id, 1234, guild.id)
    alice = make_member(guild, "alice")
    kept = make_temp_channel(guild, "alice - room")
    join_voice(alice, kept)
    await services.store.register(kept.id, alice.id, guild.id)

    stale = await services.voice.reconcile([guild])

    assert stale == 1
    assert gone.id not in services.store
    assert kept.id in services.store


@pytest.mark.asyncio
async def test_restart_restores_owners(services, guild, voice_settings, api) -> None:
    from services.service_container import ServiceContainer

    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)

    fresh = ServiceContainer(settings=voice_settings, api=api)
    await fresh.initialize()
    try:
        assert fresh.store.cached_owner(channel.id) == alice.id
    finally:
        await fresh.cleanup()


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_owner_leave_rechecks_members_under_lock(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    bob = make_member(guild, "bob")
    channel = await enter_lobby(services, guild, alice)

    async with services.store.lock(channel.id):
        leave_voice(alice)
        pending = asyncio.create_task(
            services.voice.handle_voice_state_change(alice, channel, None)
        )
        await settle()
        join_voice(bob, channel)
    await pending

    assert not channel.deleted
    assert api.count("delete_channel") == 0
    assert await services.store.owner_of(channel.id) == alice.id


@pytest.mark.asyncio
async def test_owner_leave_skips_delete_when_ownership_moved(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    bob = make_member(guild, "bob")
    channel = await enter_lobby(services, guild, alice)

    async with services.store.lock(channel.id):
        leave_voice(alice)
        pending = asyncio.create_task(
            services.voice.handle_voice_state_change(alice, channel, None)
        )
        await settle()
        await services.store.transfer(channel.id, bob.id)
    await pending

    assert not channel.deleted
    assert await services.store.owner_of(channel.id) == bob.id


@pytest.mark.asyncio
async def test_sweep_rechecks_members_under_lock(services, guild, api) -> None:
    alice = make_member(guild, "alice")
    channel = make_temp_channel(guild, "quiet - room")

    async with services.store.lock(channel.id):
        pending = asyncio.create_task(services.voice.sweep(guild))
        await settle()
        join_voice(alice, channel)
    removed = await pending

    assert removed == 0
    assert not channel.deleted


@pytest.mark.asyncio
async def test_purge_markers_drops_expired_deletions(services, guild) -> None:
    services.voice._recently_deleted = ExpiringSet(0.0)
    services.voice.deleted_by_interaction = ExpiringSet(0.0)
    alice = make_member(guild, "alice")
    channel = await enter_lobby(services, guild, alice)
    await leave(services, alice)
    assert channel.deleted

    assert services.voice.purge_markers() == 1
    assert services.voice.purge_markers() == 0


@pytest.mark.asyncio
async def test_leave_outside_managed_category_skips_owner_lookup(
    services, guild, monkeypatch
) -> None:
    alice = make_member(guild, "alice")
    lounge = guild.add_channel(FakeVoiceChannel(name="Lounge", category_id=None))

    async def owner_of(channel_id):
        raise AssertionError(f"unexpected owner lookup for {channel_id}")

    monkeypatch.setattr(services.store, "owner_of", owner_of)

    await services.voice.handle_voice_state_change(alice, lounge, None)
    await services.voice.handle_voice_state_change(alice, guild.lobby, None)

    assert not lounge.deleted
