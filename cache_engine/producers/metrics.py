"""
Market Mage — User Metrics Producer
────────────────────────────────────
Aggregate counters kept beside the remote cache rows.
"""

from typing import Dict

from cache_engine.cache.remote import RemoteSharedCache
from cache_engine.producers.base import Producer

METRIC_NAMES = ("total_users", "active_dashboards", "total_api_calls", "cached_responses")


class UserMetricsProducer(Producer):

    def __init__(self, remote: RemoteSharedCache):
        super().__init__()
        self.remote = remote

    @property
    def name(self) -> str:
        return "user_metrics"

    async def _fetch(self) -> Dict[str, int]:
        counters = await self.remote.get_metrics()
        return {name: int(counters.get(name, 0)) for name in METRIC_NAMES}
