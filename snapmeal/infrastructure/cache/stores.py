"""
Key/value stores backing the result cache.

Two implementations of the same async protocol:
- InMemoryKeyValueStore: process-local dict, optional byte quota
- FileKeyValueStore: one JSON document per key, survives restarts
"""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from urllib.parse import quote, unquote

import structlog

from snapmeal.domain.shared.errors import CacheError

logger = structlog.get_logger(__name__)


class KeyValueStore(Protocol):
    """
    Async key/value store of serialized records.

    Values are JSON text. Implementations raise CacheError when a write
    cannot be persisted.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryKeyValueStore:
    """In-memory store for tests and single-process use.

    Args:
        quota_bytes: Max total size of stored values (None for unbounded).
            A write that would exceed it raises CacheError.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def _used_bytes(self, excluding: Optional[str] = None) -> int:
        return sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != excluding)

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            needed = self._used_bytes(excluding=key) + len(value.encode("utf-8"))
            if needed > self.quota_bytes:
                raise CacheError(f"Quota exceeded: {needed} > {self.quota_bytes} bytes")
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self._data if k.startswith(prefix)]


class FileKeyValueStore:
    """
    Directory-backed store: one file per key.

    File names are the percent-encoded key plus ".json". Disk IO runs in a
    worker thread so the event loop is never blocked.

    Example:
        >>> store = FileKeyValueStore(Path("~/.cache/snapmeal").expanduser())
        >>> await store.set("snapmeal-meal-1", '{"value": {}}')
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def _list(self, prefix: str) -> List[str]:
        found = []
        for path in self.directory.glob(f"*{self.SUFFIX}"):
            key = unquote(path.name[: -len(self.SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return found

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as e:
            raise CacheError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)

    async def keys(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._list, prefix)
