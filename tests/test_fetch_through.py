from dataclasses import asdict, dataclass

import pytest

from cache_engine.cache.fetch_through import fetch_through, with_cache
from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.cache.tiers import LocalTier
from cache_engine.errors import ProducerError

from conftest import BrokenRowBackend


class CountingProducer:

    def __init__(self, value="fresh"):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


@pytest.fixture
def tier(local):
    return LocalTier(local)


async def test_miss_calls_producer_and_stores(tier, local):
    producer = CountingProducer({"n": 1})
    assert await with_cache("k", producer, 60, tier) == {"n": 1}
    assert producer.calls == 1
    assert local.get("k") == {"n": 1}


async def test_hit_skips_producer(tier, local):
    local.set("k", "cached", ttl=60)
    producer = CountingProducer()
    fetched = await fetch_through("k", producer, 60, tier)
    assert fetched.value == "cached"
    assert fetched.from_cache is True
    assert producer.calls == 0


async def test_invalidate_forces_producer(remote):
    await remote.set_cached("k", "old")
    await remote.invalidate("k")
    producer = CountingProducer("new")
    assert await with_cache("k", producer, 60, remote) == "new"
    assert producer.calls == 1


async def test_expiry_forces_producer(tier, clock):
    producer = CountingProducer()
    await with_cache("k", producer, 10, tier)
    clock.advance(9)
    await with_cache("k", producer, 10, tier)
    assert producer.calls == 1
    clock.advance(1)
    await with_cache("k", producer, 10, tier)
    assert producer.calls == 2


async def test_producer_error_propagates_and_nothing_stored(tier, local):
    async def failing():
        raise ProducerError("newsapi", "HTTP 429")

    with pytest.raises(ProducerError, match="HTTP 429"):
        await with_cache("k", failing, 60, tier)
    assert local.get("k") is None


async def test_backend_fault_is_a_miss(utc_clock):
    remote = RemoteSharedCache(BrokenRowBackend(), clock=utc_clock)
    producer = CountingProducer("live")
    fetched = await fetch_through("k", producer, 60, remote)
    assert fetched.value == "live"
    assert fetched.from_cache is False


@dataclass
class Quote:
    symbol: str
    price:  float


async def test_encode_decode_bind_payload_type(remote):
    async def produce():
        return Quote("AAPL", 190.5)

    kwargs = dict(decode=lambda d: Quote(**d), encode=asdict)
    first = await with_cache("api:quote?symbol=AAPL", produce, 60, remote, **kwargs)
    second = await with_cache("api:quote?symbol=AAPL", produce, 60, remote, **kwargs)

    assert first == second == Quote("AAPL", 190.5)
    assert isinstance(second, Quote)
    assert await remote.get_cached("api:quote?symbol=AAPL") == {"symbol": "AAPL", "price": 190.5}
