import asyncio
import fnmatch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listing_intake import models  # noqa: F401  registers tables on Base.metadata
from listing_intake.database import Base


class FakeRedis:
    """In-process stand-in for the redis.asyncio commands the dedup store uses.

    Every command yields to the event loop before running, so concurrent
    callers interleave between commands; each command itself is atomic.
    """

    def __init__(self):
        self.values = {}
        self.lists = {}
        self.expiries = {}
        self.down = False

    async def _tick(self):
        await asyncio.sleep(0)
        if self.down:
            raise ConnectionError("redis unavailable")

    async def set(self, key, value, ex=None, nx=False):
        await self._tick()
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex:
            self.expiries[key] = ex
        return True

    async def get(self, key):
        await self._tick()
        return self.values.get(key)

    async def rpush(self, key, *values):
        await self._tick()
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def expire(self, key, seconds):
        await self._tick()
        self.expiries[key] = seconds
        return True

    async def llen(self, key):
        await self._tick()
        return len(self.lists.get(key, []))

    async def lrange(self, key, start, end):
        await self._tick()
        return self._lrange(key, start, end)

    async def delete(self, *keys):
        await self._tick()
        return self._delete(*keys)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def _lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start : end + 1])

    def _delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            if self.lists.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed

    async def scan_iter(self, match=None):
        await self._tick()
        for key in list(self.values) + list(self.lists):
            if match is None or fnmatch.fnmatch(key, match):
                yield key


class FakePipeline:
    """Buffers commands and runs them back to back on ``execute``, like MULTI/EXEC."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.commands = []

    def lrange(self, key, start, end):
        self.commands.append((self.redis._lrange, (key, start, end)))
        return self

    def delete(self, *keys):
        self.commands.append((self.redis._delete, keys))
        return self

    async def execute(self):
        await self.redis._tick()
        results = [command(*args) for command, args in self.commands]
        self.commands = []
        return results


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def db_session():
    """SQLite in-memory session with every table created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("WHATSAPP_ACCESS_TOKEN", "test-token")
    monkeypatch.setenv("WHATSAPP_PHONE_NUMBER_ID", "123456")
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "verify-me")
    monkeypatch.setenv("COMMERCE_STORE_DOMAIN", "test-shop.myshopify.com")
    monkeypatch.setenv("COMMERCE_ACCESS_TOKEN", "shpat_test")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
