"""
Market Mage — Fetch-Through
────────────────────────────
The one place fetch-vs-cache branching happens:

    value = await with_cache(key, producer, ttl, tier)

  hit            → cached value, producer not called
  miss / fault   → producer(), result written to the tier, returned
  producer fails → exception propagates unchanged (no retry, no fallback)

There is no guard against two producers running for the same key at once;
DataCoordinator.ensure_fresh provides that.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cache_engine.cache.results import BackendError, Hit
from cache_engine.cache.tiers import CacheTier

log = logging.getLogger("mc.fetch")

T = TypeVar("T")

Producer = Callable[[], Awaitable[T]]


@dataclass
class Fetched(Generic[T]):
    value:      T
    from_cache: bool


async def fetch_through(
    key: str,
    producer: Producer,
    ttl: float,
    tier: CacheTier,
    decode: Optional[Callable[[Any], T]] = None,
    encode: Optional[Callable[[T], Any]] = None,
) -> Fetched:
    """
    Same as with_cache() but also reports which branch served the value.

    decode and encode bind a payload type to the call site: encode turns
    the produced value into what the tier stores (plain JSON for the remote
    tier), decode turns a stored payload back into the call site's type.
    """
    result = await tier.lookup(key)
    if isinstance(result, Hit):
        log.debug(f"{key}: {tier.name} hit")
        value = decode(result.value) if decode else result.value
        return Fetched(value=value, from_cache=True)

    if isinstance(result, BackendError):
        log.debug(f"{key}: {tier.name} unavailable ({result.reason}), treating as miss")
    else:
        log.debug(f"{key}: {tier.name} miss")

    value = await producer()
    await tier.store(key, encode(value) if encode else value, ttl)
    return Fetched(value=value, from_cache=False)


async def with_cache(
    key: str,
    producer: Producer,
    ttl: float,
    tier: CacheTier,
    decode: Optional[Callable[[Any], T]] = None,
    encode: Optional[Callable[[T], Any]] = None,
) -> T:
    """Cached value for key if fresh, otherwise producer() stored for ttl seconds."""
    fetched = await fetch_through(key, producer, ttl, tier, decode=decode, encode=encode)
    return fetched.value
