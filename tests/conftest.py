"""Pytest configuration and shared fixtures."""

# Ensure project root on sys.path for imports
import fnmatch
import os
import sys

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

root = os.path.dirname(os.path.abspath(__file__))
proj = os.path.abspath(os.path.join(root, ".."))
if proj not in sys.path:
    sys.path.insert(0, proj)


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRedis:
    """The subset of the redis-py client the Tier-2 cache uses, kept in a dict.

    Values are str (the real client runs with decode_responses=True). Setting
    ``available = False`` makes every call raise like an unreachable server.
    """

    def __init__(self, clock=None):
        self.clock = clock or ManualClock()
        self.available = True
        self.calls = []
        self._data = {}

    def _check(self, op):
        self.calls.append(op)
        if not self.available:
            raise RedisConnectionError("Connection refused")

    def _live(self, key):
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def get(self, key):
        self._check("get")
        return self._live(key)

    def set(self, key, value, ex=None):
        self._check("set")
        self._data[key] = (value, self.clock() + ex if ex else None)
        return True

    def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    def scan_iter(self, match="*", count=None):
        self._check("scan")
        return iter([k for k in list(self._data) if fnmatch.fnmatchcase(k, match) and self._live(k) is not None])

    def mget(self, keys):
        self._check("mget")
        return [self._live(k) for k in keys]

    def ttl(self, key):
        item = self._data.get(key)
        if item is None or item[1] is None:
            return -1
        return int(item[1] - self.clock())

    def ping(self):
        self._check("ping")
        return True

    def close(self):
        pass

    # direct access for assertions, bypassing availability
    def raw(self, key):
        return self._live(key)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fake_redis(clock):
    return InMemoryRedis(clock)
