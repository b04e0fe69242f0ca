"""
Market Mage — Market Snapshot Producer
───────────────────────────────────────
Crypto prices from CoinGecko (one request for all ids) and stock quotes
from Alpha Vantage GLOBAL_QUOTE (one request per symbol).

Produces:
  { "crypto": [...], "stocks": [...] }

Per-symbol failures are dropped. Only a snapshot with nothing in it at
all is a failure.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from cache_engine.errors import ProducerError
from cache_engine.producers.base import HttpProducer

log = logging.getLogger("mc.producers.market")

COINGECKO_MARKETS_URL = "https://api.coingecko.com/api/v3/coins/markets"
ALPHA_VANTAGE_URL     = "https://www.alphavantage.co/query"


def _float(value: Any) -> Optional[float]:
    try:
        return float(str(value).replace("%", ""))
    except (TypeError, ValueError):
        return None


def parse_global_quote(data: Dict[str, Any]) -> Dict[str, Any]:
    quote = data.get("Global Quote") or {}
    if not quote:
        raise ProducerError("alpha_vantage", data.get("Note") or data.get("Information") or "empty quote")
    volume = _float(quote.get("06. volume"))
    return {
        "symbol":         quote.get("01. symbol"),
        "price":          _float(quote.get("05. price")),
        "change":         _float(quote.get("09. change")),
        "change_percent": _float(quote.get("10. change percent")),
        "volume":         int(volume) if volume is not None else None,
        "timestamp":      int(time.time()),
        "source":         "alpha_vantage",
    }


def parse_coin(coin: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "symbol":         (coin.get("symbol") or "").upper(),
        "name":           coin.get("name"),
        "price":          coin.get("current_price"),
        "change":         coin.get("price_change_24h"),
        "change_percent": coin.get("price_change_percentage_24h"),
        "volume":         coin.get("total_volume"),
        "market_cap":     coin.get("market_cap"),
        "timestamp":      int(time.time()),
        "source":         "coingecko",
    }


class MarketProducer(HttpProducer):

    def __init__(
        self,
        client: httpx.AsyncClient,
        symbols: List[str],
        crypto_ids: List[str],
        api_key: str = "demo",
        timeout: float = 8.0,
        on_call=None,
    ):
        super().__init__(client, timeout=timeout, on_call=on_call)
        self.symbols = [s.upper() for s in symbols]
        self.crypto_ids = list(crypto_ids)
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "market"

    async def coins(self, ids: Optional[List[str]] = None) -> List[dict]:
        """CoinGecko market rows for ids (default: the configured watchlist)."""
        ids = self.crypto_ids if ids is None else list(ids)
        if not ids:
            return []
        data = await self._get_json(COINGECKO_MARKETS_URL, params={
            "vs_currency": "usd",
            "ids":         ",".join(ids),
        }, source="coingecko")
        return [parse_coin(c) for c in data or []]

    async def quote(self, symbol: str) -> dict:
        """Alpha Vantage GLOBAL_QUOTE for one symbol."""
        data = await self._get_json(ALPHA_VANTAGE_URL, params={
            "function": "GLOBAL_QUOTE",
            "symbol":   symbol,
            "apikey":   self.api_key,
        }, source="alpha_vantage")
        return parse_global_quote(data)

    async def _fetch(self) -> Dict[str, List[dict]]:
        results = await asyncio.gather(
            self.coins(),
            *[self.quote(s) for s in self.symbols],
            return_exceptions=True,
        )
        crypto_result, stock_results = results[0], results[1:]

        crypto: List[dict] = []
        if isinstance(crypto_result, Exception):
            log.warning(f"Crypto prices unavailable: {crypto_result}")
        else:
            crypto = crypto_result

        stocks: List[dict] = []
        for symbol, item in zip(self.symbols, stock_results):
            if isinstance(item, Exception):
                log.warning(f"Quote for {symbol} unavailable: {item}")
                continue
            stocks.append(item)

        if not crypto and not stocks:
            raise ProducerError("market", "no prices from any source")

        log.info(f"Market snapshot — crypto={len(crypto)} stocks={len(stocks)}")
        return {"crypto": crypto, "stocks": stocks}
