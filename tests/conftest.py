"""Shared test fixtures."""

from __future__ import annotations

import fnmatch

import pytest
from redis.exceptions import ResponseError, WatchError

from avatar_worker.infra.redis_infra import RedisWorkUnitStore


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis the store uses."""

    def __init__(self) -> None:
        self.data: dict = {}
        self.expiry: dict[str, int | None] = {}
        self.fail_with: Exception | None = None
        self.watch_conflicts: list = []

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def rpush(self, name, *values):
        self._check()
        items = self.data.setdefault(name, [])
        items.extend(str(v) for v in values)
        return len(items)

    async def lmove(self, first_list, second_list, src="LEFT", dest="RIGHT"):
        self._check()
        items = self.data.get(first_list)
        if not items:
            return None
        value = items.pop(0) if src == "LEFT" else items.pop()
        if not items:
            del self.data[first_list]
        target = self.data.setdefault(second_list, [])
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def lrem(self, name, count, value):
        self._check()
        items = self.data.get(name, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        if name in self.data and not items:
            del self.data[name]
        return removed

    async def delete(self, *names):
        self._check()
        return sum(1 for name in names if self.data.pop(name, None) is not None)

    async def sadd(self, name, *values):
        self._check()
        members = self.data.setdefault(name, set())
        added = {str(v) for v in values} - members
        members.update(added)
        return len(added)

    async def srem(self, name, *values):
        self._check()
        members = self.data.get(name, set())
        removed = {str(v) for v in values} & members
        members.difference_update(removed)
        return len(removed)

    async def scard(self, name):
        self._check()
        return len(self.data.get(name, set()))

    async def incrby(self, name, amount=1):
        self._check()
        value = int(self.data.get(name, 0)) + amount
        self.data[name] = str(value)
        return value

    async def get(self, name):
        self._check()
        value = self.data.get(name)
        return None if value is None else str(value)

    async def set(self, name, value, ex=None):
        self._check()
        self.data[name] = str(value)
        self.expiry[name] = ex
        return True

    async def hget(self, name, key):
        self._check()
        return self.data.get(name, {}).get(key)

    async def hset(self, name, key, value):
        self._check()
        fields = self.data.setdefault(name, {})
        created = key not in fields
        fields[key] = str(value)
        return int(created)

    async def rename(self, src, dst):
        self._check()
        if src not in self.data:
            raise ResponseError("no such key")
        self.data[dst] = self.data.pop(src)
        return True

    async def scan_iter(self, match=None):
        self._check()
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def lpush(self, name, *values):
        self._check()
        items = self.data.setdefault(name, [])
        for value in values:
            items.insert(0, str(value))
        return len(items)

    async def exists(self, *names):
        self._check()
        return sum(1 for name in names if name in self.data)

    async def hincrby(self, name, key, amount=1):
        self._check()
        fields = self.data.setdefault(name, {})
        value = int(fields.get(key, 0)) + amount
        fields[key] = str(value)
        return value

    def pipeline(self, transaction=True):  # noqa: ARG002
        return FakePipeline(self)

    async def aclose(self):
        return None


class FakePipeline:
    """Buffers commands like redis.asyncio's Pipeline; immediate while watching.

    Callables queued in ``redis.watch_conflicts`` run before ``execute`` raises
    WatchError, standing in for a concurrent writer touching a watched key.
    """

    def __init__(self, redis: FakeRedis) -> None:
        self.redis = redis
        self.watching = False
        self.in_multi = False
        self.commands: list = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.commands.clear()
        self.watching = False
        self.in_multi = False

    async def watch(self, *names):  # noqa: ARG002
        self.redis._check()
        self.watching = True

    def multi(self):
        self.in_multi = True

    def __getattr__(self, name):
        command = getattr(self.redis, name)
        if self.watching and not self.in_multi:
            return command

        def queue(*args, **kwargs):
            self.commands.append((command, args, kwargs))
            return self

        return queue

    async def execute(self):
        self.redis._check()
        if self.watching and self.redis.watch_conflicts:
            await self.redis.watch_conflicts.pop(0)()
            self.commands.clear()
            raise WatchError("Watched variable changed.")
        return [await command(*args, **kwargs) for command, args, kwargs in self.commands]


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def redis_store(fake_redis) -> RedisWorkUnitStore:
    return RedisWorkUnitStore(
        fake_redis,
        thumbnail_queue="queue:thumbs",
        processing_queue="queue:thumbs:processing",
        serve_key_prefix="avatar_serve_",
        thumb_cache_ttl=60,
    )
