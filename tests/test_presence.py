import asyncio

import pytest
import pytest_asyncio
from fakeredis import aioredis

from reviewhub.utils.presence import InMemoryPresenceTracker, RedisPresenceTracker


@pytest_asyncio.fixture(params=["memory", "redis"])
async def tracker(request):
    if request.param == "memory":
        tracker = InMemoryPresenceTracker()
    else:
        tracker = RedisPresenceTracker(aioredis.FakeRedis(decode_responses=True))
    yield tracker
    await tracker.close()


@pytest.mark.asyncio
async def test_online_while_any_connection_remains(tracker):
    await tracker.mark_online("u1", "c1")
    await tracker.mark_online("u1", "c2")
    assert await tracker.is_online("u1")
    assert await tracker.connections_for("u1") == {"c1", "c2"}

    assert await tracker.mark_offline("u1", "c1") is True
    assert await tracker.is_online("u1")

    assert await tracker.mark_offline("u1", "c2") is False
    assert not await tracker.is_online("u1")
    assert await tracker.size() == 0


@pytest.mark.asyncio
async def test_mark_online_is_idempotent(tracker):
    await tracker.mark_online("u1", "c1")
    await tracker.mark_online("u1", "c1")
    assert await tracker.connections_for("u1") == {"c1"}
    assert await tracker.mark_offline("u1", "c1") is False


@pytest.mark.asyncio
async def test_unknown_connection_offline_is_harmless(tracker):
    assert await tracker.mark_offline("ghost", "c1") is False
    await tracker.mark_online("u1", "c1")
    assert await tracker.mark_offline("u1", "other") is True
    assert await tracker.size() == 1


@pytest.mark.asyncio
async def test_force_offline_drops_every_connection(tracker):
    await tracker.mark_online("u1", "c1")
    await tracker.mark_online("u1", "c2")
    await tracker.mark_online("u2", "c3")
    await tracker.force_offline("u1")
    assert not await tracker.is_online("u1")
    assert sorted(await tracker.online_ids()) == ["u2"]


@pytest.mark.asyncio
async def test_concurrent_connects_and_disconnects(tracker):
    await asyncio.gather(*(tracker.mark_online("u1", f"c{i}") for i in range(20)))
    assert len(await tracker.connections_for("u1")) == 20
    await asyncio.gather(*(tracker.mark_offline("u1", f"c{i}") for i in range(20)))
    assert not await tracker.is_online("u1")
    assert await tracker.size() == 0


@pytest.mark.asyncio
async def test_blank_ids_are_ignored():
    tracker = InMemoryPresenceTracker()
    await tracker.mark_online("", "c1")
    await tracker.mark_online("u1", "")
    assert await tracker.size() == 0
