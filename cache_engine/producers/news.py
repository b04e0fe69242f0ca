"""
Market Mage — News Producer
────────────────────────────
Business headlines (NewsAPI) plus crypto headlines (CoinGecko news).

Produces:
  { "all": [...50 newest], "stocks": [...20], "crypto": [...20] }

Each article: id, title, summary, url, published_at, source.
One failing source is tolerated; both failing raises ProducerError.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from cache_engine.errors import ProducerError
from cache_engine.producers.base import HttpProducer

log = logging.getLogger("mc.producers.news")

NEWSAPI_URL     = "https://newsapi.org/v2/top-headlines"
CRYPTO_NEWS_URL = "https://api.coingecko.com/api/v3/news"

MAX_ALL     = 50
MAX_SECTION = 20


def _article(raw: Dict[str, Any], idx: int, prefix: str) -> Dict[str, Any]:
    source = raw.get("source")
    if isinstance(source, dict):
        source = source.get("name")
    return {
        "id":           raw.get("id") or f"{prefix}-{idx}",
        "title":        raw.get("title") or "",
        "summary":      raw.get("description") or "No description available",
        "url":          raw.get("url") or "#",
        "published_at": raw.get("publishedAt") or raw.get("updated_at") or raw.get("created_at") or "",
        "source":       source or raw.get("author") or prefix,
    }


def _newest(articles: List[dict], limit: int) -> List[dict]:
    return sorted(articles, key=lambda a: str(a["published_at"]), reverse=True)[:limit]


class NewsProducer(HttpProducer):

    def __init__(self, client: httpx.AsyncClient, api_key: str, timeout: float = 8.0, on_call=None):
        super().__init__(client, timeout=timeout, on_call=on_call)
        self.api_key = api_key

    @property
    def name(self) -> str:
        return "news"

    async def _stock_news(self) -> List[dict]:
        if not self.api_key:
            raise ProducerError("newsapi", "NEWS_API_KEY not set")
        data = await self._get_json(NEWSAPI_URL, params={
            "country":  "us",
            "category": "business",
            "pageSize": MAX_SECTION,
            "apiKey":   self.api_key,
        }, source="newsapi")
        return [_article(a, i, "stock") for i, a in enumerate(data.get("articles") or [])]

    async def _crypto_news(self) -> List[dict]:
        data = await self._get_json(CRYPTO_NEWS_URL, source="coingecko")
        items = data.get("data") if isinstance(data, dict) else data
        return [_article(a, i, "crypto") for i, a in enumerate(items or [])]

    async def _fetch(self) -> Dict[str, List[dict]]:
        stocks, crypto = await asyncio.gather(
            self._stock_news(), self._crypto_news(), return_exceptions=True,
        )
        failures: List[str] = []
        if isinstance(stocks, Exception):
            log.warning(f"Stock news unavailable: {stocks}")
            failures.append(str(stocks))
            stocks = []
        if isinstance(crypto, Exception):
            log.warning(f"Crypto news unavailable: {crypto}")
            failures.append(str(crypto))
            crypto = []
        if len(failures) == 2:
            raise ProducerError("news", "; ".join(failures))

        log.info(f"News fetched — stocks={len(stocks)} crypto={len(crypto)}")
        return {
            "all":    _newest(stocks + crypto, MAX_ALL),
            "stocks": _newest(stocks, MAX_SECTION),
            "crypto": _newest(crypto, MAX_SECTION),
        }
