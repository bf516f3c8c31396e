"""Tests for the Redis-backed open-applications cache and status feed"""

import json

import pytest

from gatekeeper.db.models import utcnow
from gatekeeper.review.cache import OpenApplicationsCache
from gatekeeper.review.events import RedisStatusFeed, StatusNotifier
from gatekeeper.review.types import OpenApplication, StatusChange

GUILD = "guild-1"

def make_change(n: int, guild_id: str = GUILD) -> StatusChange:
    return StatusChange(
        application_id=f"app-{n}",
        guild_id=guild_id,
        user_id=f"user-{n}",
        status="approved",
        action="approve",
        actor_id="mod-1",
        reason=None,
        review_action_id=n,
        occurred_at=utcnow()
    )

def open_row(n: int) -> OpenApplication:
    return OpenApplication(
        application_id=f"app-{n}",
        short_code="ABCDEF",
        user_id=f"user-{n}",
        status="submitted",
        created_at=utcnow().isoformat()
    )

class TestOpenApplicationsCache:
    @pytest.mark.asyncio
    async def test_miss_loads_and_stores_with_ttl(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis, ttl=60)
        row = open_row(1)
        calls = []

        async def loader():
            calls.append(1)
            return [row]

        first = await cache.get_or_load(GUILD, loader)
        second = await cache.get_or_load(GUILD, loader)

        assert first == second == [row]
        assert len(calls) == 1
        assert fake_redis.ttls[cache.key(GUILD)] == 60

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis)
        calls = []

        async def loader():
            calls.append(1)
            return []

        await cache.get_or_load(GUILD, loader)
        await cache.invalidate(GUILD)
        await cache.get_or_load(GUILD, loader)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate_moves_to_next_generation(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis)

        async def loader():
            return [open_row(1)]

        await cache.get_or_load(GUILD, loader)
        await cache.invalidate(GUILD)

        assert await cache.generation(GUILD) == 1
        assert cache.key(GUILD, 0) not in fake_redis.store
        assert cache.key(GUILD, 1) not in fake_redis.store

    @pytest.mark.asyncio
    async def test_list_loaded_before_a_decision_is_not_served_after_it(self, service, make_app):
        app = await make_app("submitted")

        async def slow_loader():
            # The decision commits between the database read and the cache write
            rows = await service._load_open(GUILD)
            await service.decisions.approve(GUILD, app.id, "mod-1")
            return rows

        stale = await service.cache.get_or_load(GUILD, slow_loader)

        assert [row.status for row in stale] == ["submitted"]
        assert await service.list_open(GUILD) == []

    @pytest.mark.asyncio
    async def test_list_loaded_before_a_claim_is_not_served_after_it(self, service, make_app):
        app = await make_app("submitted")

        async def slow_loader():
            rows = await service._load_open(GUILD)
            await service.claims.claim(GUILD, app.id, "mod-1")
            return rows

        await service.cache.get_or_load(GUILD, slow_loader)

        rows = await service.list_open(GUILD)
        assert rows[0].reviewer_id == "mod-1"

    @pytest.mark.asyncio
    async def test_generation_read_failure_loads_from_database(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis)
        fake_redis.fail = True

        async def loader():
            return [open_row(3)]

        rows = await cache.get_or_load(GUILD, loader)
        assert rows[0].application_id == "app-3"

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_reloaded(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis)
        fake_redis.store[cache.key(GUILD)] = "{not json"

        async def loader():
            return [open_row(2)]

        rows = await cache.get_or_load(GUILD, loader)

        assert rows[0].application_id == "app-2"
        assert json.loads(fake_redis.store[cache.key(GUILD)])[0]["application_id"] == "app-2"

    @pytest.mark.asyncio
    async def test_without_redis_always_loads(self):
        cache = OpenApplicationsCache(None)
        calls = []

        async def loader():
            calls.append(1)
            return []

        await cache.get_or_load(GUILD, loader)
        await cache.get_or_load(GUILD, loader)
        await cache.invalidate(GUILD)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate_survives_redis_outage(self, fake_redis):
        cache = OpenApplicationsCache(fake_redis)
        fake_redis.fail = True
        await cache.invalidate(GUILD)

class TestStatusFeed:
    @pytest.mark.asyncio
    async def test_feed_keeps_newest_entries(self, fake_redis):
        feed = RedisStatusFeed(fake_redis, max_length=3)

        for n in range(5):
            await feed(make_change(n))

        recent = await feed.recent(GUILD, limit=None)
        assert [entry["application_id"] for entry in recent] == ["app-4", "app-3", "app-2"]
        assert (await feed.recent(GUILD, limit=1))[0]["review_action_id"] == 4

    @pytest.mark.asyncio
    async def test_feed_is_per_guild(self, fake_redis):
        feed = RedisStatusFeed(fake_redis)
        await feed(make_change(1, guild_id="guild-2"))
        assert await feed.recent(GUILD) == []

    @pytest.mark.asyncio
    async def test_decisions_reach_the_feed(self, service, make_app, fake_redis):
        feed = RedisStatusFeed(fake_redis)
        service.notifier.add_listener(feed)
        app = await make_app("submitted")

        await service.decisions.kick(GUILD, app.id, "mod-1", "Spamming")

        entries = await feed.recent(GUILD)
        assert entries[0]["application_id"] == app.id
        assert entries[0]["status"] == "kicked"
        assert entries[0]["reason"] == "Spamming"

class TestStatusNotifier:
    @pytest.mark.asyncio
    async def test_remove_listener(self):
        notifier = StatusNotifier()
        received = []

        async def listener(change):
            received.append(change)

        notifier.add_listener(listener)
        notifier.remove_listener(listener)
        notifier.remove_listener(listener)
        await notifier.publish(make_change(1))

        assert received == []

    @pytest.mark.asyncio
    async def test_later_listeners_run_after_failure(self):
        notifier = StatusNotifier()
        received = []

        async def broken(change):
            raise RuntimeError("boom")

        async def listener(change):
            received.append(change.application_id)

        notifier.add_listener(broken)
        notifier.add_listener(listener)
        await notifier.publish(make_change(7))

        assert received == ["app-7"]
