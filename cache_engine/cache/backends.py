"""
Market Mage — Remote Row Backends
──────────────────────────────────
Storage behind RemoteSharedCache. A backend stores rows of the shape

    { "cache_key", "data", "expires_at", "updated_at" }

and a small counter map (cached_responses, total_api_calls, ...).

  RedisRowBackend  — shared across processes. One string key per row,
                     native expiry set to the row's expires_at.
  MemoryRowBackend — process-local fallback when Redis is unreachable.

Backends raise RemoteBackendError; RemoteSharedCache absorbs it.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from cache_engine.errors import RemoteBackendError
from cache_engine.models.entries import RemoteRow

log = logging.getLogger("mc.backends")

ROW_PREFIX  = "api_cache:"
METRICS_KEY = "user_metrics"

_GLOB_SPECIAL = "\\*?[]"

# Delete KEYS[1] only if it still holds ARGV[1]; a row rewritten since it was
# read survives the sweep.
_DELETE_IF_UNCHANGED = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def _escape_glob(text: str) -> str:
    return "".join("\\" + c if c in _GLOB_SPECIAL else c for c in text)


class RowBackend(ABC):

    name = "backend"

    @abstractmethod
    async def fetch_row(self, key: str) -> Optional[dict]: ...

    @abstractmethod
    async def upsert_row(self, row: dict) -> None: ...

    @abstractmethod
    async def delete_row(self, key: str) -> None: ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int: ...

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def incr_metric(self, metric: str, amount: int = 1) -> None: ...

    @abstractmethod
    async def read_metrics(self) -> Dict[str, int]: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ══════════════════════════════════════════════════════════════
# IN-MEMORY
# ══════════════════════════════════════════════════════════════
class MemoryRowBackend(RowBackend):

    name = "memory"

    def __init__(self):
        self.rows: Dict[str, dict] = {}
        self.metrics: Dict[str, int] = {}

    async def fetch_row(self, key: str) -> Optional[dict]:
        row = self.rows.get(key)
        return dict(row) if row else None

    async def upsert_row(self, row: dict) -> None:
        self.rows[row["cache_key"]] = dict(row)

    async def delete_row(self, key: str) -> None:
        self.rows.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self.rows if k.startswith(prefix)]
        for k in doomed:
            del self.rows[k]
        return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        doomed = [k for k, row in self.rows.items()
                  if not RemoteRow.from_dict(row).is_fresh(now)]
        for k in doomed:
            del self.rows[k]
        return len(doomed)

    async def incr_metric(self, metric: str, amount: int = 1) -> None:
        self.metrics[metric] = self.metrics.get(metric, 0) + amount

    async def read_metrics(self) -> Dict[str, int]:
        return dict(self.metrics)


# ══════════════════════════════════════════════════════════════
# REDIS
# ══════════════════════════════════════════════════════════════
class RedisRowBackend(RowBackend):

    name = "redis"

    def __init__(self, client: aioredis.Redis, prefix: str = ROW_PREFIX):
        self._r = client
        self._prefix = prefix

    @classmethod
    async def connect(cls, url: str, **kwargs) -> Optional["RedisRowBackend"]:
        """Connected backend, or None when Redis is unreachable."""
        client = aioredis.from_url(url, decode_responses=True, socket_timeout=2)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            log.warning(f"Redis unavailable ({e})")
            await client.aclose()
            return None
        log.info("Redis connected")
        return cls(client, **kwargs)

    def _name(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def fetch_row(self, key: str) -> Optional[dict]:
        try:
            raw = await self._r.get(self._name(key))
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"get {key}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise RemoteBackendError(f"corrupt row {key}: {e}") from e

    async def upsert_row(self, row: dict) -> None:
        expires_at = RemoteRow.from_dict(row).expires_at
        if expires_at <= datetime.now(timezone.utc):
            await self.delete_row(row["cache_key"])
            return
        pxat = int(expires_at.timestamp() * 1000)
        try:
            await self._r.set(self._name(row["cache_key"]), json.dumps(row), pxat=pxat)
        except (RedisError, OSError, TypeError, ValueError) as e:
            raise RemoteBackendError(f"set {row['cache_key']}: {e}") from e

    async def delete_row(self, key: str) -> None:
        try:
            await self._r.delete(self._name(key))
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"delete {key}: {e}") from e

    async def delete_prefix(self, prefix: str) -> int:
        pattern = f"{_escape_glob(self._name(prefix))}*"
        removed = 0
        try:
            async for name in self._r.scan_iter(match=pattern):
                removed += await self._r.delete(name)
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"delete prefix {prefix}: {e}") from e
        return removed

    async def delete_expired(self, now: datetime) -> int:
        pattern = f"{_escape_glob(self._prefix)}*"
        removed = 0
        try:
            async for name in self._r.scan_iter(match=pattern):
                raw = await self._r.get(name)
                if raw is None:
                    continue
                try:
                    fresh = RemoteRow.from_dict(json.loads(raw)).is_fresh(now)
                except (ValueError, KeyError, TypeError):
                    fresh = False
                if not fresh:
                    removed += await self._r.eval(_DELETE_IF_UNCHANGED, 1, name, raw)
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"sweep: {e}") from e
        return removed

    async def incr_metric(self, metric: str, amount: int = 1) -> None:
        try:
            await self._r.hincrby(METRICS_KEY, metric, amount)
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"incr {metric}: {e}") from e

    async def read_metrics(self) -> Dict[str, int]:
        try:
            raw = await self._r.hgetall(METRICS_KEY)
        except (RedisError, OSError) as e:
            raise RemoteBackendError(f"read metrics: {e}") from e
        return {k: int(v) for k, v in raw.items()}

    async def ping(self) -> bool:
        try:
            return bool(await self._r.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self._r.aclose()
