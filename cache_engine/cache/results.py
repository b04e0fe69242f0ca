"""
Market Mage — Storage Results
──────────────────────────────
What a storage tier answers to a lookup:

  Hit(value)            — a fresh entry was found
  MISS                  — nothing usable (absent or expired)
  BackendError(reason)  — the backend failed; callers treat it as a miss

Stores return these instead of raising so the degrade-on-fault path is
explicit. with_cache() collapses BackendError into a plain miss.
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Hit(Generic[T]):
    value: T


@dataclass(frozen=True)
class Miss:
    pass


@dataclass(frozen=True)
class BackendError:
    reason: str


MISS = Miss()

CacheResult = Union[Hit[Any], Miss, BackendError]


def unwrap(result: "CacheResult") -> Optional[Any]:
    """Value of a Hit, None for anything else."""
    if isinstance(result, Hit):
        return result.value
    return None
