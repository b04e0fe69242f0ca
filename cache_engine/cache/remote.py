"""
Market Mage — Remote Shared Cache
──────────────────────────────────
Server-side cache shared by every client session. Used for expensive or
rate-limited fetches (news, market snapshots, aggregate metrics).

Rows carry an absolute expires_at so independent processes agree on
expiry. Writes are full-payload upserts: last writer wins, no locking.

This cache is an optimisation, never a source of truth. Every backend
fault is logged and turned into "absent" (reads) or "skipped" (writes).
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from cache_engine.cache.backends import MemoryRowBackend, RowBackend
from cache_engine.cache.results import MISS, BackendError, CacheResult, Hit, unwrap
from cache_engine.cache.tiers import CacheTier
from cache_engine.errors import RemoteBackendError
from cache_engine.models.entries import RemoteRow

log = logging.getLogger("mc.remote")

T = TypeVar("T")

DEFAULT_TTL_MINUTES = 5

# Counter names kept beside the rows
METRIC_CACHED_RESPONSES = "cached_responses"
METRIC_API_CALLS        = "total_api_calls"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RemoteSharedCache(CacheTier):

    name = "remote"

    def __init__(
        self,
        backend: Optional[RowBackend] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.backend = backend if backend is not None else MemoryRowBackend()
        self._clock = clock

    # ── Reads ─────────────────────────────────────────────────
    async def lookup(self, key: str) -> CacheResult:
        try:
            raw = await self.backend.fetch_row(key)
        except RemoteBackendError as e:
            log.warning(f"Remote lookup failed for {key}: {e}")
            return BackendError(str(e))
        if raw is None:
            return MISS

        try:
            row = RemoteRow.from_dict(raw)
        except (ValueError, KeyError, TypeError) as e:
            log.warning(f"Remote row for {key} unreadable: {e}")
            return BackendError(f"unreadable row: {e}")

        if not row.is_fresh(self._clock()):
            log.debug(f"Remote row {key} expired at {row.expires_at.isoformat()}")
            await self._delete_quietly(key)
            return MISS

        await self._incr_quietly(METRIC_CACHED_RESPONSES)
        return Hit(row.data)

    async def get_cached(self, key: str) -> Optional[Any]:
        """Payload of the fresh row for key, or None."""
        return unwrap(await self.lookup(key))

    # ── Writes ────────────────────────────────────────────────
    async def set_cached(self, key: str, data: T, ttl_minutes: float = DEFAULT_TTL_MINUTES) -> None:
        """Upsert the row for key, expiring ttl_minutes from now."""
        try:
            payload = json.loads(json.dumps(data))
        except (TypeError, ValueError) as e:
            log.warning(f"Remote write skipped for {key}: payload not JSON ({e})")
            return

        now = self._clock()
        row = RemoteRow(
            cache_key=key,
            data=payload,
            expires_at=now + timedelta(minutes=ttl_minutes),
            updated_at=now,
        )
        try:
            await self.backend.upsert_row(row.to_dict())
        except RemoteBackendError as e:
            log.warning(f"Remote write failed for {key}: {e}")

    async def store(self, key: str, value: Any, ttl: float) -> None:
        await self.set_cached(key, value, ttl / 60)

    # ── Invalidation / eviction ───────────────────────────────
    async def invalidate(self, key: str) -> None:
        await self._delete_quietly(key)

    async def invalidate_prefix(self, prefix: str) -> int:
        try:
            removed = await self.backend.delete_prefix(prefix)
        except RemoteBackendError as e:
            log.warning(f"Remote prefix invalidation failed for {prefix}: {e}")
            return 0
        log.info(f"Invalidated {removed} remote rows under {prefix!r}")
        return removed

    async def sweep_expired(self) -> int:
        """Delete every row whose expires_at has passed."""
        try:
            removed = await self.backend.delete_expired(self._clock())
        except RemoteBackendError as e:
            log.warning(f"Expired-row sweep failed: {e}")
            return 0
        if removed:
            log.info(f"Swept {removed} expired remote rows")
        return removed

    # ── Counters ──────────────────────────────────────────────
    async def record_api_call(self) -> None:
        await self._incr_quietly(METRIC_API_CALLS)

    async def get_metrics(self) -> Dict[str, int]:
        try:
            return await self.backend.read_metrics()
        except RemoteBackendError as e:
            log.warning(f"Reading metrics failed: {e}")
            return {}

    # ── Internals ─────────────────────────────────────────────
    async def _delete_quietly(self, key: str) -> None:
        try:
            await self.backend.delete_row(key)
        except RemoteBackendError as e:
            log.warning(f"Remote delete failed for {key}: {e}")

    async def _incr_quietly(self, metric: str) -> None:
        try:
            await self.backend.incr_metric(metric)
        except RemoteBackendError as e:
            log.debug(f"Metric {metric} not recorded: {e}")
