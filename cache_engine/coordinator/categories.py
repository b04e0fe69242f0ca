"""
Market Mage — Data Categories
──────────────────────────────
A category is one kind of data several consumers share (news, market
snapshot, user metrics, AI insight). The coordinator keeps one
DataCategory per name for freshness bookkeeping only; storage stays in
the cache tiers.

State machine:   stale ──▶ fetching ──▶ fresh
                   ▲           │
                   └─ failure ─┘
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

Producer = Callable[[], Awaitable[Any]]


class CategoryState(str, Enum):
    STALE    = "stale"
    FETCHING = "fetching"
    FRESH    = "fresh"


@dataclass
class CategorySpec:
    name:             str
    producer:         Producer
    cache_key:        str
    cache_duration:   Union[float, Callable[[], float]]  # seconds the coordinator trusts its copy; callable = computed per fetch
    tier:             str = "remote"               # "remote" | "local"
    ttl:              Union[float, Callable[[], float], None] = None  # tier TTL seconds; callable = computed per store
    refresh_interval: Optional[float] = None       # seconds between background refreshes
    preload:          bool = False                 # fetch in the background when the coordinator starts
    label:            Optional[str] = None         # human name used in notices
    extra_keys:       Tuple[str, ...] = ()         # other keys invalidated with this category
    decode:           Optional[Callable[[Any], Any]] = None
    encode:           Optional[Callable[[Any], Any]] = None

    @property
    def window(self) -> float:
        return self.cache_duration() if callable(self.cache_duration) else self.cache_duration

    @property
    def tier_ttl(self) -> float:
        if self.ttl is None:
            return self.window
        return self.ttl() if callable(self.ttl) else self.ttl

    @property
    def keys(self) -> Tuple[str, ...]:
        return (self.cache_key,) + tuple(self.extra_keys)

    @property
    def display_name(self) -> str:
        return self.label or self.name.replace("_", " ").title()


@dataclass
class DataCategory:
    spec:         CategorySpec
    state:        CategoryState = CategoryState.STALE
    last_updated: Optional[float] = None           # epoch seconds of last success
    fresh_until:  Optional[float] = None           # epoch seconds the current value stops being fresh
    generation:   int = 0                          # bumped by invalidate; older fetches are not trusted
    value:        Any = None
    has_value:    bool = False
    error:        Optional[BaseException] = None
    requested:    bool = False
    inflight:     Optional["asyncio.Task"] = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return self.spec.name

    def is_fresh(self, now: float) -> bool:
        return (
            self.state is CategoryState.FRESH
            and self.fresh_until is not None
            and now < self.fresh_until
        )

    def status(self) -> dict:
        return {
            "name":         self.name,
            "state":        self.state.value,
            "last_updated": (
                datetime.fromtimestamp(self.last_updated, tz=timezone.utc).isoformat()
                if self.last_updated is not None else None
            ),
            "has_value":    self.has_value,
            "error":        str(self.error) if self.error else None,
            "cache_key":    self.spec.cache_key,
            "tier":         self.spec.tier,
        }


@dataclass
class Notice:
    """Non-fatal, user-facing report of a category update or failure."""
    severity: str          # "info" | "success" | "error"
    summary:  str
    detail:   str
    category: str
