"""
Market Mage — Error Types
──────────────────────────
Storage faults are absorbed inside the cache stores and never cross the
store boundary. Producer faults propagate to the coordinator.
"""


class CacheEngineError(Exception):
    """Root of every error raised by cache_engine."""


# ── Storage faults (absorbed by the stores) ──────────────────
class DurableStoreError(CacheEngineError):
    """The local durable tier could not read or write an entry."""


class DurableStoreFull(DurableStoreError):
    """The local durable tier refused a write (quota exceeded)."""


class RemoteBackendError(CacheEngineError):
    """The remote shared cache backend is unreachable or misbehaving."""


# ── Producer / coordinator faults (propagated) ───────────────
class ProducerError(CacheEngineError):
    """An upstream data source failed or returned an unusable payload."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class UnknownCategoryError(CacheEngineError, KeyError):
    """No data category is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"unknown data category: {self.name!r}"
