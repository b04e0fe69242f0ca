"""
Market Mage — Local Cache Store
────────────────────────────────
Two layers for short-lived per-client data (prices, computed insights):

  1. in-process dict  — authoritative for the life of the process
  2. durable store    — best-effort, survives restarts

Reads check the dict first, then the durable store. A fresh durable hit is
promoted back into the dict. Nothing here raises for a storage fault: a
failing durable store only costs cache hits.
"""

import json
import logging
import time
from typing import Callable, Dict, Optional, TypeVar

from cache_engine.cache.durable import DurableStore, MemoryDurableStore
from cache_engine.cache.results import MISS, BackendError, CacheResult, Hit, unwrap
from cache_engine.cache.ttl_config import LOCAL_DEFAULT_TTL
from cache_engine.errors import DurableStoreError
from cache_engine.models.entries import LocalEntry

log = logging.getLogger("mc.local")

T = TypeVar("T")


class LocalCacheStore:

    def __init__(
        self,
        durable: Optional[DurableStore] = None,
        clock: Callable[[], float] = time.time,
        default_ttl: float = LOCAL_DEFAULT_TTL,
    ):
        self._memory: Dict[str, LocalEntry] = {}
        self._durable = durable if durable is not None else MemoryDurableStore()
        self._clock = clock
        self.default_ttl = default_ttl

    # ── Writes ────────────────────────────────────────────────
    def set(self, key: str, data: T, ttl: Optional[float] = None) -> None:
        """Store data under key for ttl seconds in both layers."""
        entry = LocalEntry(data=data, stored_at=self._clock(),
                           ttl=self.default_ttl if ttl is None else ttl)
        self._memory[key] = entry
        try:
            self._durable.set(key, json.dumps(entry.to_dict()))
        except (DurableStoreError, TypeError, ValueError) as e:
            log.warning(f"Durable write failed for {key}: {e}")

    # ── Reads ─────────────────────────────────────────────────
    def lookup(self, key: str) -> CacheResult:
        now = self._clock()

        entry = self._memory.get(key)
        if entry is not None:
            if entry.is_fresh(now):
                return Hit(entry.data)
            del self._memory[key]

        try:
            raw = self._durable.get(key)
        except DurableStoreError as e:
            log.warning(f"Durable read failed for {key}: {e}")
            return BackendError(str(e))
        if raw is None:
            return MISS

        try:
            entry = LocalEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            log.warning(f"Discarding unreadable entry {key}: {e}")
            self._remove_durable(key)
            return MISS

        if not entry.is_fresh(now):
            self._remove_durable(key)
            return MISS

        self._memory[key] = entry
        return Hit(entry.data)

    def get(self, key: str) -> Optional[T]:
        """Fresh value for key, or None."""
        return unwrap(self.lookup(key))

    # ── Invalidation ──────────────────────────────────────────
    def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)
        self._remove_durable(key)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix from both layers."""
        keys = {k for k in self._memory if k.startswith(prefix)}
        try:
            keys.update(k for k in self._durable.keys() if k.startswith(prefix))
        except DurableStoreError as e:
            log.warning(f"Durable listing failed during prefix invalidation: {e}")
        for key in keys:
            self.invalidate(key)
        return len(keys)

    def clear(self) -> None:
        self._memory.clear()
        try:
            self._durable.clear()
        except DurableStoreError as e:
            log.warning(f"Durable clear failed: {e}")

    # ── Debugging ─────────────────────────────────────────────
    def get_stats(self) -> dict:
        try:
            durable_size = len(self._durable.keys())
        except DurableStoreError:
            durable_size = 0
        return {"memory_size": len(self._memory), "durable_size": durable_size}

    def _remove_durable(self, key: str) -> None:
        try:
            self._durable.remove(key)
        except DurableStoreError as e:
            log.warning(f"Durable remove failed for {key}: {e}")
