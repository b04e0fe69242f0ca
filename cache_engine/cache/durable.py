"""
Market Mage — Local Durable Stores
───────────────────────────────────
String key/value stores that survive a restart of the client process.
They back the second layer of LocalCacheStore.

Every failure is raised as DurableStoreError; LocalCacheStore absorbs it.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from cache_engine.errors import DurableStoreError, DurableStoreFull

log = logging.getLogger("mc.durable")


class DurableStore(ABC):
    """Minimal localStorage-like contract."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> List[str]: ...

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class MemoryDurableStore(DurableStore):
    """Dict-backed store. max_entries emulates a storage quota."""

    def __init__(self, max_entries: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self.max_entries = max_entries

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if (self.max_entries is not None
                and key not in self._items
                and len(self._items) >= self.max_entries):
            raise DurableStoreFull(f"quota of {self.max_entries} entries exceeded")
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class JsonFileStore(DurableStore):
    """
    One file per key under `directory`. File names are the percent-encoded
    key plus `.json`; writes go through a temp file and an atomic rename.
    """

    SUFFIX = ".json"

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise DurableStoreError(f"read {path.name}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp  = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise DurableStoreError(f"write {path.name}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise DurableStoreError(f"remove {key}: {e}") from e

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        try:
            return [
                unquote(p.name[: -len(self.SUFFIX)])
                for p in self.directory.iterdir()
                if p.is_file() and p.name.endswith(self.SUFFIX)
            ]
        except OSError as e:
            raise DurableStoreError(f"list {self.directory}: {e}") from e
