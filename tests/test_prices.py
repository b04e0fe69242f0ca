import httpx
import pytest

from cache_engine.cache.durable import MemoryDurableStore
from cache_engine.cache.local_store import LocalCacheStore
from cache_engine.cache.tiers import LocalTier
from cache_engine.prices import PriceLookup
from cache_engine.producers.market import MarketProducer


class Quotes:
    """Alpha Vantage and CoinGecko stand-in that counts requests."""

    def __init__(self):
        self.requests = []
        self.unknown = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/coins/markets"):
            ids = request.url.params["ids"].split(",")
            return httpx.Response(200, json=[
                {"symbol": i[:3], "name": i.title(), "current_price": 1.0} for i in ids
            ])
        symbol = request.url.params["symbol"]
        if symbol in self.unknown:
            return httpx.Response(200, json={"Note": "Invalid API call"})
        return httpx.Response(200, json={"Global Quote": {
            "01. symbol": symbol, "05. price": "187.5", "06. volume": "1000",
        }})


@pytest.fixture
def upstream():
    return Quotes()


@pytest.fixture
def market(upstream):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return MarketProducer(client, [], [])


@pytest.fixture
def prices(market, local, remote):
    return PriceLookup(market, LocalTier(local), remote)


async def test_quote_cached_in_both_layers(prices, upstream, local, remote):
    first = await prices.stock_quote("aapl")
    assert first["symbol"] == "AAPL"
    assert first["price"] == 187.5

    assert local.get("stock_data?symbol=AAPL") == first
    assert await remote.get_cached("api:stock_prices:symbol=AAPL") == first

    assert await prices.stock_quote("AAPL ") == first
    assert len(upstream.requests) == 1


async def test_new_session_reads_shared_cache(prices, market, upstream, remote, clock):
    await prices.stock_quote("MSFT")

    other = PriceLookup(market, LocalTier(LocalCacheStore(MemoryDurableStore(), clock=clock)), remote)
    quote = await other.stock_quote("MSFT")

    assert quote["symbol"] == "MSFT"
    assert len(upstream.requests) == 1


async def test_expired_local_quote_falls_through_to_remote(prices, upstream, clock, utc_clock):
    await prices.stock_quote("AAPL")
    clock.advance(2 * 60)            # local copy gone, shared row still valid
    await prices.stock_quote("AAPL")
    assert len(upstream.requests) == 1

    clock.advance(2 * 60)
    utc_clock.advance(minutes=1)
    await prices.stock_quote("AAPL")
    assert len(upstream.requests) == 2


async def test_upstream_calls_are_counted(prices, remote):
    await prices.stock_quote("AAPL")
    await prices.stock_quote("AAPL")
    await prices.stock_quote("TSLA")
    assert (await remote.get_metrics())["total_api_calls"] == 2


async def test_quotes_report_failures_per_symbol(prices, upstream):
    upstream.unknown = {"NOPE"}
    result = await prices.stock_quotes(["aapl", "nope", "AAPL", ""])

    assert [q["symbol"] for q in result["stocks"]] == ["AAPL"]
    assert list(result["errors"]) == ["NOPE"]
    assert "Invalid API call" in result["errors"]["NOPE"]


async def test_crypto_ids_are_order_insensitive(prices, upstream, local):
    first = await prices.crypto_prices(["ethereum", "Bitcoin"])
    second = await prices.crypto_prices(["bitcoin", "ethereum"])

    assert first == second
    assert len(upstream.requests) == 1
    assert upstream.requests[0].url.params["ids"] == "bitcoin,ethereum"
    assert local.get("crypto_data?ids=bitcoin,ethereum") == first


async def test_no_crypto_ids_means_no_request(prices, upstream):
    assert await prices.crypto_prices([" "]) == []
    assert upstream.requests == []
