"""
Market Mage — Price Lookups
────────────────────────────
Per-symbol quotes outside the dashboard categories (watchlists, the
add-stock box). Two cache layers sit in front of the upstream APIs:

  local store     stock_data?symbol=AAPL               2 min
  remote cache    api:stock_prices:symbol=AAPL         1 min
  upstream        Alpha Vantage / CoinGecko

A local miss falls through to the shared cache, which only calls upstream
when no other session has fetched the symbol recently.
"""

import asyncio
import logging
from typing import Dict, Iterable, List

from cache_engine.cache.fetch_through import with_cache
from cache_engine.cache.keys import CACHE_KEYS, build_key, endpoint_key
from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.cache.tiers import CacheTier
from cache_engine.cache.ttl_config import LOCAL_PRICE_TTL, REMOTE_TTL_MINUTES
from cache_engine.producers.market import MarketProducer

log = logging.getLogger("mc.prices")


class PriceLookup:

    def __init__(self, market: MarketProducer, local: CacheTier, remote: RemoteSharedCache):
        self.market = market
        self.local  = local
        self.remote = remote

    # ── Stocks ────────────────────────────────────────────────
    async def stock_quote(self, symbol: str) -> dict:
        symbol = symbol.strip().upper()

        async def from_remote() -> dict:
            return await with_cache(
                endpoint_key("stock_prices", {"symbol": symbol}),
                lambda: self._upstream(self.market.quote(symbol)),
                REMOTE_TTL_MINUTES["stock_prices"] * 60,
                self.remote,
            )

        return await with_cache(
            build_key(CACHE_KEYS["stock_prices"], {"symbol": symbol}),
            from_remote, LOCAL_PRICE_TTL, self.local,
        )

    async def stock_quotes(self, symbols: Iterable[str]) -> Dict[str, object]:
        """Quotes for every symbol that resolved, plus the reason for each that did not."""
        symbols = _normalise(symbols, upper=True)
        results = await asyncio.gather(
            *[self.stock_quote(s) for s in symbols], return_exceptions=True,
        )
        quotes: List[dict] = []
        errors: Dict[str, str] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                log.warning(f"Quote for {symbol} unavailable: {result}")
                errors[symbol] = str(result)
            else:
                quotes.append(result)
        return {"stocks": quotes, "errors": errors}

    # ── Crypto ────────────────────────────────────────────────
    async def crypto_prices(self, ids: Iterable[str]) -> List[dict]:
        ids = _normalise(ids, upper=False)
        if not ids:
            return []
        params = {"ids": ",".join(ids)}

        async def from_remote() -> List[dict]:
            return await with_cache(
                endpoint_key("crypto_prices", params),
                lambda: self._upstream(self.market.coins(ids)),
                REMOTE_TTL_MINUTES["crypto_prices"] * 60,
                self.remote,
            )

        return await with_cache(
            build_key(CACHE_KEYS["crypto_prices"], params),
            from_remote, LOCAL_PRICE_TTL, self.local,
        )

    async def _upstream(self, call):
        await self.remote.record_api_call()
        return await call


def _normalise(values: Iterable[str], upper: bool) -> List[str]:
    cleaned = {v.strip().upper() if upper else v.strip().lower() for v in values}
    return sorted(v for v in cleaned if v)
