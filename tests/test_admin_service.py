import pytest

from tests.factories import join_voice, leave_voice, make_member, make_temp_channel
from utils.types import OperationKind, OperationRequest


async def registered_channel(services, guild, owner):
    channel = make_temp_channel(guild, f"{owner.name} - room")
    await services.store.register(channel.id, owner.id, guild.id)
    return channel


@pytest.mark.asyncio
async def test_non_admin_is_refused_everywhere(services, guild) -> None:
    pleb = make_member(guild, "pleb")
    channel = await registered_channel(services, guild, pleb)
    admin = services.admin

    assert (await admin.force_delete(pleb, channel)).code == "PERMISSION"
    assert (await admin.force_transfer(pleb, channel, pleb)).code == "PERMISSION"
    assert admin.reset_user_limits(pleb, pleb.id).code == "PERMISSION"
    assert (await admin.cleanup_orphans(pleb, guild)).code == "PERMISSION"
    assert (await admin.stats(pleb)).code == "PERMISSION"
    assert admin.clear_caches(pleb).code == "PERMISSION"
    assert not channel.deleted


@pytest.mark.asyncio
async def test_force_delete(services, guild) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    owner = make_member(guild, "owner")
    channel = await registered_channel(services, guild, owner)
    join_voice(owner, channel)

    result = await services.admin.force_delete(mod, channel)

    assert result.code == "ADMIN_DELETED"
    assert result.metadata["owner_id"] == owner.id
    assert channel.deleted
    assert channel.id not in services.store


@pytest.mark.asyncio
async def test_force_delete_unmanaged(services, guild) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    assert (await services.admin.force_delete(mod, guild.lobby)).code == "NOT_MANAGED"
    assert not guild.lobby.deleted


@pytest.mark.asyncio
async def test_force_transfer_without_presence(services, guild) -> None:
    mod = make_member(guild, "mod", administrator=True)
    owner = make_member(guild, "owner")
    heir = make_member(guild, "heir")
    channel = await registered_channel(services, guild, owner)

    result = await services.admin.force_transfer(mod, channel, heir)

    assert result.code == "TRANSFERRED"
    assert await services.store.owner_of(channel.id) == heir.id
    assert channel.overwrites[heir].manage_channels is True
    assert channel.overwrites[owner].manage_channels is False
    assert (await services.admin.force_transfer(mod, channel, heir)).code == "ALREADY_OWNER"


@pytest.mark.asyncio
async def test_force_transfer_refuses_bots(services, guild) -> None:
    mod = make_member(guild, "mod", administrator=True)
    owner = make_member(guild, "owner")
    robot = make_member(guild, "robot", bot=True)
    channel = await registered_channel(services, guild, owner)

    assert (await services.admin.force_transfer(mod, channel, robot)).code == "TARGET_BOT"
    assert await services.store.owner_of(channel.id) == owner.id


@pytest.mark.asyncio
async def test_reset_user_limits(services, guild) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    alice = make_member(guild, "alice")
    channel = await registered_channel(services, guild, alice)
    join_voice(alice, channel)
    for i in range(4):
        await services.operations.execute(
            OperationRequest(kind=OperationKind.RENAME, actor=alice, value=f"Room {i}")
        )

    result = services.admin.reset_user_limits(mod, alice.id)

    assert result.code == "LIMITS_RESET"
    retry = await services.operations.execute(
        OperationRequest(kind=OperationKind.RENAME, actor=alice, value="Room again")
    )
    assert retry.success


@pytest.mark.asyncio
async def test_cleanup_orphans_only_touches_registered_empty(services, guild) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    alice = make_member(guild, "alice")
    bob = make_member(guild, "bob")
    empty = await registered_channel(services, guild, alice)
    busy = await registered_channel(services, guild, bob)
    join_voice(bob, busy)
    stray = make_temp_channel(guild, "stray - room")

    result = await services.admin.cleanup_orphans(mod, guild)

    assert result.metadata["channels"] == [empty.id]
    assert result.message_kwargs["count"] == 1
    assert empty.deleted
    assert not busy.deleted
    assert not stray.deleted


@pytest.mark.asyncio
async def test_stats_and_clear_caches(services, guild) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    alice = make_member(guild, "alice")
    channel = await registered_channel(services, guild, alice)
    services.store.cache.set(channel.id, "k", "v")

    stats = await services.admin.stats(mod)
    assert stats.code == "STATS"
    assert stats.metadata["active_channels"] == 1
    assert stats.metadata["stored_channels"] == 1
    assert stats.metadata["cache"]["entries"] == 1

    cleared = services.admin.clear_caches(mod)
    assert cleared.metadata["entries"] == 1
    assert len(services.store.cache) == 0
    # Ownership is not a cache
    assert services.store.cached_owner(channel.id) == alice.id


@pytest.mark.asyncio
async def test_force_delete_then_leave_event_is_quiet(services, guild, api) -> None:
    mod = make_member(guild, "mod", manage_channels=True)
    owner = make_member(guild, "owner")
    channel = await registered_channel(services, guild, owner)
    join_voice(owner, channel)

    await services.admin.force_delete(mod, channel)
    leave_voice(owner)
    await services.voice.handle_voice_state_change(owner, channel, None)

    assert api.count("delete_channel") == 1
    assert services.voice.counters["deleted"] == 1
