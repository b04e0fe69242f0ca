import json
import re
from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cache_engine.cache import backends
from cache_engine.cache.backends import METRICS_KEY, RedisRowBackend
from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.errors import RemoteBackendError


def _glob_to_regex(pattern: str) -> "re.Pattern":
    out, i = [], 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        out.append(".*" if c == "*" else "." if c == "?" else re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


class FakeRedis:
    """The slice of redis.asyncio.Redis the row backend uses."""

    def __init__(self, fail: bool = False):
        self.strings = {}
        self.expiry = {}
        self.hashes = {}
        self.fail = fail
        self.closed = False
        self.after_get = None

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, name):
        self._check()
        value = self.strings.get(name)
        if self.after_get is not None:
            self.after_get(name)
        return value

    async def set(self, name, value, pxat=None):
        self._check()
        self.strings[name] = value
        self.expiry[name] = pxat
        return True

    async def delete(self, *names):
        self._check()
        removed = 0
        for name in names:
            if self.strings.pop(name, None) is not None:
                removed += 1
            self.expiry.pop(name, None)
        return removed

    async def eval(self, script, numkeys, *args):
        # only the compare-and-delete script is used
        self._check()
        keys, argv = args[:numkeys], args[numkeys:]
        if self.strings.get(keys[0]) == argv[0]:
            return await self.delete(keys[0])
        return 0

    async def scan_iter(self, match=None):
        self._check()
        regex = _glob_to_regex(match or "*")
        for name in list(self.strings):
            if regex.match(name):
                yield name

    async def hincrby(self, name, key, amount=1):
        self._check()
        h = self.hashes.setdefault(name, {})
        h[key] = str(int(h.get(key, 0)) + amount)
        return int(h[key])

    async def hgetall(self, name):
        self._check()
        return dict(self.hashes.get(name, {}))

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def redis_remote(fake):
    return RemoteSharedCache(RedisRowBackend(fake))


async def test_rows_live_under_prefix_with_native_expiry(redis_remote, fake):
    before = datetime.now(timezone.utc)
    await redis_remote.set_cached("global_news", {"all": []}, ttl_minutes=5)

    assert list(fake.strings) == ["api_cache:global_news"]
    row = json.loads(fake.strings["api_cache:global_news"])
    assert row["cache_key"] == "global_news"
    expires_ms = fake.expiry["api_cache:global_news"]
    assert expires_ms >= int((before + timedelta(minutes=5)).timestamp() * 1000) - 1

    assert await redis_remote.get_cached("global_news") == {"all": []}


async def test_prefix_invalidation_escapes_glob(redis_remote, fake):
    await redis_remote.set_cached("api:stock_news?symbol=AAPL", 1)
    await redis_remote.set_cached("api:stock_newsXsymbol=AAPL", 2)
    await redis_remote.set_cached("api:crypto_news", 3)

    assert await redis_remote.invalidate_prefix("api:stock_news?") == 1
    assert set(fake.strings) == {
        "api_cache:api:stock_newsXsymbol=AAPL",
        "api_cache:api:crypto_news",
    }


async def test_delete_expired(fake):
    backend = RedisRowBackend(fake)
    now = datetime.now(timezone.utc)
    for key, delta in (("old", -60), ("new", 600)):
        fake.strings[f"api_cache:{key}"] = json.dumps({
            "cache_key":  key,
            "data":       key,
            "expires_at": (now + timedelta(seconds=delta)).isoformat(),
            "updated_at": now.isoformat(),
        })
    fake.strings["api_cache:junk"] = "{broken"

    assert await backend.delete_expired(now) == 2
    assert list(fake.strings) == ["api_cache:new"]


async def test_already_expired_write_deletes(fake):
    backend = RedisRowBackend(fake)
    fake.strings["api_cache:k"] = "{}"
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    await backend.upsert_row({
        "cache_key":  "k",
        "data":       1,
        "expires_at": past.isoformat(),
        "updated_at": past.isoformat(),
    })
    assert fake.strings == {}


async def test_metrics_hash(redis_remote, fake):
    await redis_remote.record_api_call()
    await redis_remote.record_api_call()
    assert fake.hashes[METRICS_KEY] == {"total_api_calls": "2"}
    assert await redis_remote.get_metrics() == {"total_api_calls": 2}


async def test_connection_errors_become_backend_errors():
    backend = RedisRowBackend(FakeRedis(fail=True))
    with pytest.raises(RemoteBackendError):
        await backend.fetch_row("k")
    with pytest.raises(RemoteBackendError):
        await backend.delete_prefix("api:")
    assert await backend.ping() is False

    remote = RemoteSharedCache(backend)
    assert await remote.get_cached("k") is None


async def test_corrupt_row_is_backend_error(fake):
    fake.strings["api_cache:k"] = "not json"
    with pytest.raises(RemoteBackendError):
        await RedisRowBackend(fake).fetch_row("k")


async def test_connect_returns_none_when_unreachable(monkeypatch):
    fake = FakeRedis(fail=True)
    monkeypatch.setattr(backends.aioredis, "from_url", lambda url, **kw: fake)
    assert await RedisRowBackend.connect("redis://nowhere:6379") is None
    assert fake.closed


async def test_connect_and_close(monkeypatch, fake):
    monkeypatch.setattr(backends.aioredis, "from_url", lambda url, **kw: fake)
    backend = await RedisRowBackend.connect("redis://localhost:6379")
    assert isinstance(backend, RedisRowBackend)
    await backend.close()
    assert fake.closed


async def test_sweep_keeps_row_rewritten_after_it_was_read(fake):
    backend = RedisRowBackend(fake)
    now = datetime.now(timezone.utc)

    def row(expires_at):
        return json.dumps({
            "cache_key":  "global_news",
            "data":       [],
            "expires_at": expires_at.isoformat(),
            "updated_at": now.isoformat(),
        })

    fake.strings["api_cache:global_news"] = row(now - timedelta(seconds=1))
    fresh = row(now + timedelta(minutes=5))

    def concurrent_writer(name):
        fake.strings[name] = fresh
        fake.after_get = None

    fake.after_get = concurrent_writer

    assert await backend.delete_expired(now) == 0
    assert fake.strings["api_cache:global_news"] == fresh
