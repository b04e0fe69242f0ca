"""
Market Mage — Producer Base
────────────────────────────
A producer is a zero-argument coroutine that fetches one fresh value from
upstream, or raises. It never caches; the cache tiers do that.

Subclasses implement:
  - name: str property
  - _fetch() -> value

__call__() records the upstream call (total_api_calls) and wraps transport
faults as ProducerError so callers see one error type.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from cache_engine.errors import ProducerError

log = logging.getLogger("mc.producers")

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
}


class Producer(ABC):

    def __init__(self, on_call: Optional[Callable[[], Awaitable[None]]] = None):
        self.on_call = on_call

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def _fetch(self) -> Any: ...

    async def __call__(self) -> Any:
        if self.on_call is not None:
            await self.on_call()
        log.info(f"{self.name}: fetching from upstream")
        return await self._fetch()


class HttpProducer(Producer):
    """Producer over a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 8.0,
        on_call: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        super().__init__(on_call=on_call)
        self.client = client
        self.timeout = timeout

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                        source: Optional[str] = None) -> Any:
        source = source or self.name
        try:
            r = await self.client.get(url, params=params, headers=HEADERS, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ProducerError(source, f"timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ProducerError(source, f"request failed: {e}") from e
        if r.status_code != 200:
            raise ProducerError(source, f"HTTP {r.status_code}: {r.text[:200]}")
        try:
            return r.json()
        except ValueError as e:
            raise ProducerError(source, "response was not JSON") from e
