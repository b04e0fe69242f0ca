from datetime import datetime, timedelta, timezone

import pytest

from cache_engine.cache.backends import MemoryRowBackend, RowBackend
from cache_engine.cache.durable import MemoryDurableStore
from cache_engine.cache.local_store import LocalCacheStore
from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.errors import DurableStoreError, RemoteBackendError


class FakeClock:
    """Epoch-seconds clock moved by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Aware-datetime clock moved by hand."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class CountingDurableStore(MemoryDurableStore):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.reads = 0

    def get(self, key):
        self.reads += 1
        return super().get(key)


class BrokenDurableStore(MemoryDurableStore):
    """Every operation fails, like a disabled or corrupted localStorage."""

    def get(self, key):
        raise DurableStoreError("storage disabled")

    def set(self, key, value):
        raise DurableStoreError("storage disabled")

    def remove(self, key):
        raise DurableStoreError("storage disabled")

    def keys(self):
        raise DurableStoreError("storage disabled")


class BrokenRowBackend(RowBackend):
    """Every operation fails, like an unreachable database."""

    name = "broken"

    async def fetch_row(self, key):
        raise RemoteBackendError("connection refused")

    async def upsert_row(self, row):
        raise RemoteBackendError("connection refused")

    async def delete_row(self, key):
        raise RemoteBackendError("connection refused")

    async def delete_prefix(self, prefix):
        raise RemoteBackendError("connection refused")

    async def delete_expired(self, now):
        raise RemoteBackendError("connection refused")

    async def incr_metric(self, metric, amount=1):
        raise RemoteBackendError("connection refused")

    async def read_metrics(self):
        raise RemoteBackendError("connection refused")

    async def ping(self):
        return False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def utc_clock():
    return FakeUtcClock()


@pytest.fixture
def durable():
    return CountingDurableStore()


@pytest.fixture
def local(durable, clock):
    return LocalCacheStore(durable, clock=clock)


@pytest.fixture
def backend():
    return MemoryRowBackend()


@pytest.fixture
def remote(backend, utc_clock):
    return RemoteSharedCache(backend, clock=utc_clock)
