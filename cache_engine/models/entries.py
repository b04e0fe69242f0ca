"""
Market Mage — Cache Entry Models
─────────────────────────────────
Defines the two persisted entry shapes.

LocalEntry  — local durable store, JSON under the cache key:
              { "data": ..., "timestamp": epoch-ms, "ttl": ms }
RemoteRow   — remote shared cache row, read by every process:
              { "cache_key", "data", "expires_at", "updated_at" } (ISO-8601)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Generic, TypeVar

T = TypeVar("T")


@dataclass
class LocalEntry(Generic[T]):
    data:      T
    stored_at: float    # epoch seconds
    ttl:       float    # seconds

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl

    def to_dict(self) -> dict:
        return {
            "data":      self.data,
            "timestamp": int(round(self.stored_at * 1000)),
            "ttl":       int(round(self.ttl * 1000)),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LocalEntry":
        return cls(
            data=d["data"],
            stored_at=float(d["timestamp"]) / 1000,
            ttl=float(d["ttl"]) / 1000,
        )


@dataclass
class RemoteRow(Generic[T]):
    cache_key:  str
    data:       T
    expires_at: datetime
    updated_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self) -> dict:
        return {
            "cache_key":  self.cache_key,
            "data":       self.data,
            "expires_at": self.expires_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RemoteRow":
        return cls(
            cache_key=d["cache_key"],
            data=d.get("data"),
            expires_at=_parse_ts(d["expires_at"]),
            updated_at=_parse_ts(d.get("updated_at") or d["expires_at"]),
        )


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
