"""Shared fixtures for the review tests"""

from datetime import datetime, timedelta
from typing import Optional

import pytest
import redis.asyncio as redis
from sqlalchemy import select

from gatekeeper.db.database import create_engine, create_session_factory, init_schema
from gatekeeper.db.models import Application, ReviewAction, ReviewClaim, utcnow
from gatekeeper.review.service import ReviewService
from gatekeeper.utils.ids import new_application_id, short_code

GUILD = "guild-1"
OTHER_GUILD = "guild-2"

class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls the review code makes"""

    def __init__(self):
        self.store = {}
        self.lists = {}
        self.ttls = {}
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("fake redis is down")

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def incr(self, key):
        self._check()
        self.store[key] = int(self.store.get(key) or 0) + 1
        return self.store[key]

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            removed += int(self.store.pop(key, None) is not None)
            removed += int(self.lists.pop(key, None) is not None)
        return removed

    async def lpush(self, key, *values):
        self._check()
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        self.lists[key] = items[start:] if end == -1 else items[start:end + 1]
        return True

    async def lrange(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def aclose(self):
        self.closed = True

@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'review.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)

@pytest.fixture
def fake_redis():
    return FakeRedis()

@pytest.fixture
def service(session_factory, fake_redis):
    return ReviewService(session_factory, fake_redis, cooldown_hours=24, cache_ttl=300)

@pytest.fixture
def make_app(session_factory):
    """Insert an application row directly, bypassing the review components"""
    async def _make(status: str = "submitted",
                    guild_id: str = GUILD,
                    user_id: str = "user-1",
                    created_at: Optional[datetime] = None,
                    decided_at: Optional[datetime] = None,
                    permanently_rejected: bool = False,
                    application_id: Optional[str] = None) -> Application:
        application_id = application_id or new_application_id()
        created_at = created_at or utcnow()
        app = Application(
            id=application_id,
            short_code=short_code(application_id),
            guild_id=guild_id,
            user_id=user_id,
            status=status,
            created_at=created_at,
            submitted_at=None if status == "draft" else created_at + timedelta(minutes=1),
            decided_at=decided_at,
            permanently_rejected=permanently_rejected,
            permanent_reject_at=decided_at if permanently_rejected else None
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(app)
        return app
    return _make

@pytest.fixture
def fetch(session_factory):
    """Helpers that read rows straight from the database"""
    class Fetch:
        async def app(self, application_id):
            async with session_factory() as session:
                return await session.get(Application, application_id)

        async def claim(self, application_id):
            async with session_factory() as session:
                return await session.get(ReviewClaim, application_id)

        async def actions(self, application_id, action=None):
            async with session_factory() as session:
                query = select(ReviewAction).where(ReviewAction.application_id == application_id)
                if action is not None:
                    query = query.where(ReviewAction.action == action)
                result = await session.execute(query.order_by(ReviewAction.id))
                return list(result.scalars().all())
    return Fetch()
