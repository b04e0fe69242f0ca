"""
Market Mage — Session Context
──────────────────────────────
Everything one client session needs, built once at start-up and torn
down at the end:

  http client → producers, price lookups
  local store (JSON files) ──▶ LocalTier ─┐
  remote shared cache (Redis | memory) ───┼──▶ DataCoordinator
  scheduler (refresh timers, sweep job) ──┘

    async with await MarketSession.create() as session:
        news = await session.coordinator.ensure_fresh("news")
"""

import asyncio
import logging
from typing import List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from cache_engine import config
from cache_engine.cache.backends import MemoryRowBackend, RedisRowBackend, RowBackend
from cache_engine.cache.durable import DurableStore, JsonFileStore
from cache_engine.cache.keys import CACHE_KEYS
from cache_engine.cache.local_store import LocalCacheStore
from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.cache.tiers import LocalTier
from cache_engine.cache.ttl_config import (
    CATEGORY_DURATION, REFRESH_INTERVAL, REMOTE_TTL_MINUTES, seconds_until_next_day,
)
from cache_engine.coordinator.categories import CategorySpec
from cache_engine.coordinator.coordinator import DataCoordinator
from cache_engine.coordinator.sweeper import schedule_sweep
from cache_engine.prices import PriceLookup
from cache_engine.producers import (
    InsightProducer, MarketProducer, NewsProducer, UserMetricsProducer,
)

log = logging.getLogger("mc.session")


def build_categories(
    client: httpx.AsyncClient,
    remote: RemoteSharedCache,
    coordinator_ref: "DataCoordinator",
    market: MarketProducer,
) -> List[CategorySpec]:
    """The four dashboard categories, wired to their producers."""
    count = remote.record_api_call

    def headlines() -> List[str]:
        news = coordinator_ref.value("news") or {}
        return [a.get("title", "") for a in news.get("all", []) if a.get("title")]

    return [
        CategorySpec(
            name="news",
            label="News",
            producer=NewsProducer(client, config.NEWS_API_KEY,
                                  timeout=config.REQUEST_TIMEOUT, on_call=count),
            cache_key=CACHE_KEYS["news"],
            cache_duration=CATEGORY_DURATION["news"],
            ttl=REMOTE_TTL_MINUTES["news"] * 60,
            refresh_interval=REFRESH_INTERVAL["news"],
            preload=True,
        ),
        CategorySpec(
            name="market",
            label="Market Data",
            producer=market,
            cache_key=CACHE_KEYS["market"],
            cache_duration=CATEGORY_DURATION["market"],
            ttl=REMOTE_TTL_MINUTES["market"] * 60,
            refresh_interval=REFRESH_INTERVAL["market"],
        ),
        CategorySpec(
            name="user_metrics",
            label="User Metrics",
            producer=UserMetricsProducer(remote),
            cache_key=CACHE_KEYS["user_metrics"],
            cache_duration=CATEGORY_DURATION["user_metrics"],
            ttl=REMOTE_TTL_MINUTES["user_metrics"] * 60,
            refresh_interval=REFRESH_INTERVAL["user_metrics"],
        ),
        CategorySpec(
            name="ai_insight",
            label="AI Insight",
            producer=InsightProducer(config.ANTHROPIC_API_KEY, config.ANTHROPIC_MODEL,
                                     headlines, on_call=count),
            cache_key=CACHE_KEYS["ai_insight"],
            cache_duration=seconds_until_next_day,
            tier="local",
            ttl=seconds_until_next_day,
            refresh_interval=REFRESH_INTERVAL["ai_insight"],
        ),
    ]


class MarketSession:

    def __init__(
        self,
        remote: RemoteSharedCache,
        local: LocalCacheStore,
        client: httpx.AsyncClient,
        scheduler: Optional[AsyncIOScheduler] = None,
        sweep_interval_minutes: int = 0,
    ):
        self.remote = remote
        self.local = local
        self.client = client
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.sweep_interval_minutes = sweep_interval_minutes
        local_tier = LocalTier(local)
        self.market = MarketProducer(
            client, config.STOCK_SYMBOLS, config.CRYPTO_IDS,
            api_key=config.ALPHA_VANTAGE_KEY,
            timeout=config.REQUEST_TIMEOUT, on_call=remote.record_api_call,
        )
        self.prices = PriceLookup(self.market, local_tier, remote)
        self.coordinator = DataCoordinator(
            tiers={"remote": remote, "local": local_tier},
            scheduler=self.scheduler,
        )
        for spec in build_categories(client, remote, self.coordinator, self.market):
            self.coordinator.register(spec)

    @classmethod
    async def create(
        cls,
        redis_url: Optional[str] = None,
        cache_dir: Optional[str] = None,
        backend: Optional[RowBackend] = None,
        durable: Optional[DurableStore] = None,
        sweep_interval_minutes: Optional[int] = None,
    ) -> "MarketSession":
        if backend is None:
            backend = await RedisRowBackend.connect(redis_url or config.REDIS_URL)
        if backend is None:
            log.warning("Remote cache falling back to in-process memory")
            backend = MemoryRowBackend()
        local = LocalCacheStore(durable if durable is not None
                                else JsonFileStore(cache_dir or config.CACHE_DIR))
        client = httpx.AsyncClient(
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
            timeout=config.REQUEST_TIMEOUT,
        )
        return cls(
            remote=RemoteSharedCache(backend),
            local=local,
            client=client,
            sweep_interval_minutes=(config.SWEEP_INTERVAL_MINUTES
                                    if sweep_interval_minutes is None else sweep_interval_minutes),
        )

    async def start(self) -> None:
        schedule_sweep(self.scheduler, self.remote, self.sweep_interval_minutes)
        self.coordinator.start()
        if not self.scheduler.running:
            self.scheduler.start()
        log.info(f"Session started — remote backend: {self.remote.backend.name}")

    async def aclose(self) -> None:
        await self.coordinator.aclose()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # shutdown is deferred to the loop; let it run
            await asyncio.sleep(0)
        await self.client.aclose()
        await self.remote.backend.close()
        log.info("Session closed")

    async def __aenter__(self) -> "MarketSession":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
