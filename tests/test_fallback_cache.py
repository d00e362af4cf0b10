"""Redis hash mirror of appointments."""

from typing import Dict

import pytest
import redis

from conftest import make_appointment

from clinic_sync.errors import CacheWriteError
from clinic_sync.services.cache import RedisFallbackCache

pytestmark = pytest.mark.anyio

KEY = "clinic:appointments"


class FakeRedis:
    def __init__(self) -> None:
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.down = False

    def _guard(self) -> None:
        if self.down:
            raise redis.ConnectionError("connection refused")

    def hset(self, key, field, value):
        self._guard()
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hdel(self, key, field):
        self._guard()
        return 1 if self.hashes.get(key, {}).pop(field, None) is not None else 0

    def hgetall(self, key):
        self._guard()
        return dict(self.hashes.get(key, {}))


@pytest.fixture
def client() -> FakeRedis:
    return FakeRedis()


async def test_upsert_then_all_returns_sorted(client):
    cache = RedisFallbackCache(client, KEY)
    await cache.upsert(make_appointment(id="late", time="15:00"))
    await cache.upsert(make_appointment(id="early", time="08:00"))

    cached = await cache.all()

    assert [item.id for item in cached] == ["early", "late"]


async def test_remove(client):
    cache = RedisFallbackCache(client, KEY)
    await cache.upsert(make_appointment(id="a1"))

    await cache.remove("a1")

    assert await cache.all() == []


async def test_unreadable_entries_are_skipped(client):
    cache = RedisFallbackCache(client, KEY)
    await cache.upsert(make_appointment(id="a1"))
    client.hashes[KEY]["junk"] = "{not json"

    assert [item.id for item in await cache.all()] == ["a1"]


async def test_redis_errors_become_cache_write_errors(client):
    cache = RedisFallbackCache(client, KEY)
    client.down = True

    with pytest.raises(CacheWriteError):
        await cache.upsert(make_appointment(id="a1"))
    with pytest.raises(CacheWriteError):
        await cache.remove("a1")
