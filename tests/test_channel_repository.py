import pytest

from services.db.channel_repository import ChannelRepository
from services.db.database import Database


@pytest.mark.asyncio
async def test_save_and_get_channel(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100, {"name": "room"}, created_at=1234)

    record = await repo.get_channel(10)
    assert record.channel_id == 10
    assert record.guild_id == 1
    assert record.owner_id == 100
    assert record.created_at == 1234
    assert record.settings == {"name": "room"}
    assert await repo.get_channel(11) is None


@pytest.mark.asyncio
async def test_save_twice_keeps_created_at(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100, created_at=1)
    await repo.save_channel(10, 1, 200, created_at=999)
    record = await repo.get_channel(10)
    assert record.owner_id == 200
    assert record.created_at == 1


@pytest.mark.asyncio
async def test_update_owner_and_settings(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100, {"name": "room"})
    assert await repo.update_owner(10, 200)
    assert not await repo.update_owner(11, 200)

    assert await repo.update_settings(10, {"user_limit": 5})
    record = await repo.get_channel(10)
    assert record.owner_id == 200
    assert record.settings == {"name": "room", "user_limit": 5}
    assert not await repo.update_settings(11, {"user_limit": 5})


@pytest.mark.asyncio
async def test_lookups_by_guild_and_owner(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100, created_at=1)
    await repo.save_channel(11, 1, 101, created_at=2)
    await repo.save_channel(12, 2, 100, created_at=3)

    assert [r.channel_id for r in await repo.get_channels_by_guild(1)] == [10, 11]
    assert {r.channel_id for r in await repo.get_channels_by_owner(100)} == {10, 12}
    assert [r.channel_id for r in await repo.get_all_channels()] == [10, 11, 12]
    assert await repo.count_by_guild() == {1: 2, 2: 1}
    assert (await repo.top_owners())[0] == (100, 2)


@pytest.mark.asyncio
async def test_permissions_rows(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100)
    await repo.add_permission(10, 5, "trust")
    await repo.add_permission(10, 5, "trust")
    await repo.add_permission(10, 6, "block")

    assert await repo.get_permissions(10, "trust") == [5]
    assert set(await repo.get_permissions(10)) == {5, 6}
    assert await repo.permission_counts_for_user(5) == {"trust": 1}
    assert await repo.top_permission_targets("block") == [(6, 1)]

    assert await repo.remove_permission(10, 5, "trust") == 1
    assert await repo.get_permissions(10, "trust") == []

    with pytest.raises(ValueError):
        await repo.add_permission(10, 5, "admin")


@pytest.mark.asyncio
async def test_delete_channel_cascades_permissions(temp_db) -> None:
    repo = ChannelRepository()
    await repo.save_channel(10, 1, 100)
    await repo.add_permission(10, 5, "trust")

    assert await repo.delete_channel(10)
    assert not await repo.delete_channel(10)
    assert await repo.get_permissions(10) == []


@pytest.mark.asyncio
async def test_metrics_and_retention(temp_db) -> None:
    repo = ChannelRepository()
    now = 100 * 86400
    await repo.record_metric("interaction", {"action": "name"}, now - 40 * 86400)
    await repo.record_metric("interaction", {"action": "kick"}, now)
    await repo.record_metric("error", {"where": "x"}, now)

    assert len(await repo.get_metrics()) == 3
    interactions = await repo.get_metrics("interaction", since=now)
    assert [value["action"] for _, value, _ in interactions] == ["kick"]

    removed = await repo.cleanup_old_metrics(days=30, now=now)
    assert removed == 1
    assert (await repo.counts())["metrics"] == 2


@pytest.mark.asyncio
async def test_ping(temp_db) -> None:
    assert await Database.ping()
