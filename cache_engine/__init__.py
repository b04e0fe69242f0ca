"""
Market Mage — data-freshness cache
───────────────────────────────────
Local and remote cache tiers, one fetch-through idiom, and a per-session
coordinator that decides when each category of dashboard data is refetched.

    from cache_engine.session import MarketSession

    async with await MarketSession.create() as session:
        news = await session.coordinator.ensure_fresh("news")
"""

__version__ = "1.0.0"
