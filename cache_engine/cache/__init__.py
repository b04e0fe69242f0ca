"""
Market Mage cache tiers.

    from cache_engine.cache import LocalCacheStore, RemoteSharedCache, with_cache
    value = await with_cache(build_key("api:stocks", {"symbol": "AAPL"}), fetch, 60, remote)
"""

from .durable import DurableStore, JsonFileStore, MemoryDurableStore
from .fetch_through import Fetched, fetch_through, with_cache
from .keys import CACHE_KEYS, build_key, endpoint_key
from .local_store import LocalCacheStore
from .remote import RemoteSharedCache
from .results import MISS, BackendError, CacheResult, Hit, Miss
from .tiers import CacheTier, LocalTier

__all__ = [
    "DurableStore", "JsonFileStore", "MemoryDurableStore",
    "Fetched", "fetch_through", "with_cache",
    "CACHE_KEYS", "build_key", "endpoint_key",
    "LocalCacheStore", "RemoteSharedCache",
    "MISS", "BackendError", "CacheResult", "Hit", "Miss",
    "CacheTier", "LocalTier",
]
