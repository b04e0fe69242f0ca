"""
Market Mage — Cache Tiers
──────────────────────────
The seam with_cache() talks to. Both stores can sit behind it:

  LocalTier          — wraps the synchronous LocalCacheStore
  RemoteSharedCache  — is a tier itself (see remote.py)

TTL at this seam is always seconds.
"""

from abc import ABC, abstractmethod
from typing import Any

from cache_engine.cache.local_store import LocalCacheStore
from cache_engine.cache.results import CacheResult


class CacheTier(ABC):

    name = "tier"

    @abstractmethod
    async def lookup(self, key: str) -> CacheResult: ...

    @abstractmethod
    async def store(self, key: str, value: Any, ttl: float) -> None: ...

    @abstractmethod
    async def invalidate(self, key: str) -> None: ...


class LocalTier(CacheTier):

    name = "local"

    def __init__(self, store: LocalCacheStore):
        self.local = store

    async def lookup(self, key: str) -> CacheResult:
        return self.local.lookup(key)

    async def store(self, key: str, value: Any, ttl: float) -> None:
        self.local.set(key, value, ttl)

    async def invalidate(self, key: str) -> None:
        self.local.invalidate(key)
