import sys
from pathlib import Path

import pytest
from redis.exceptions import ResponseError

# Ensure the `pizzeria_search` package is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pizzeria_search.models import CanonicalRecord, Coordinates  # noqa: E402


@pytest.fixture
def make_record():
    def factory(name="Joe's Pizza", source="google", external_id="g-1", lat=None, lng=None, **kwargs):
        coordinates = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
        return CanonicalRecord(name=name, source=source, external_id=external_id, coordinates=coordinates, **kwargs)

    return factory


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class DummyRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with expiring keys."""

    def __init__(self, clock=None):
        self.clock = clock or FakeClock()
        self.store = {}
        self.fail_with = None
        self.closed = False

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self.store[key]
            return None
        return value

    async def setex(self, key, ttl, value):
        self._check()
        if ttl <= 0:
            raise ResponseError("invalid expire time in 'setex' command")
        self.store[key] = (value, self.clock() + ttl)
        return True

    async def delete(self, key):
        self._check()
        return 1 if self.store.pop(key, None) else 0

    async def flushall(self):
        self._check()
        self.store.clear()
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def redis_client(fake_clock):
    return DummyRedis(fake_clock)
