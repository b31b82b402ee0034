"""Cache storage backends.

``DiskCacheStore`` is the authoritative store: one JSON file per entry at
``<root>/<namespace>/<sanitised fingerprint>.json``, written with an atomic
temp-file replace. ``MemoryCacheStore`` keeps the same contract in a dict and
is what tests inject.

Both raise ``OSError`` from ``write``/``delete`` on I/O failure; the response
cache decides which of those failures are tolerable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator, Optional, Protocol, Tuple, Union

from ..utils import atomic_write_text
from .entry import CacheEntry
from .keys import sanitize, sanitize_namespace

ENTRY_SUFFIX = ".json"


@dataclass(frozen=True)
class StoredItem:
    """One item found by :meth:`CacheStore.scan`.

    ``entry`` is ``None`` when the stored bytes could not be parsed.
    """

    namespace: str
    key: str
    entry: Optional[CacheEntry]
    size_bytes: int


class CacheStore(Protocol):
    def read(self, namespace: str, fingerprint: str) -> Optional[CacheEntry]: ...

    def write(self, entry: CacheEntry) -> int: ...

    def delete(self, namespace: str, fingerprint: str) -> bool: ...

    def delete_key(self, namespace: str, key: str) -> bool: ...

    def delete_namespace(self, namespace: str) -> int: ...

    def scan(self) -> Iterator[StoredItem]: ...

    def remove_stale_temp_files(self) -> int: ...


class DiskCacheStore:
    """Filesystem-backed store rooted at ``root``."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, namespace: str, fingerprint: str) -> Path:
        return self.root / sanitize_namespace(namespace) / (sanitize(fingerprint) + ENTRY_SUFFIX)

    def read(self, namespace: str, fingerprint: str) -> Optional[CacheEntry]:
        """Return the entry for ``fingerprint`` or ``None`` (missing, corrupt, or another fingerprint)."""
        try:
            text = self.path_for(namespace, fingerprint).read_text(encoding="utf-8")
            entry = CacheEntry.from_json(text)
        except (OSError, ValueError):
            return None
        if entry.fingerprint != fingerprint or entry.namespace != namespace:
            return None
        return entry

    def write(self, entry: CacheEntry) -> int:
        return atomic_write_text(self.path_for(entry.namespace, entry.fingerprint), entry.to_json())

    def delete(self, namespace: str, fingerprint: str) -> bool:
        return self._unlink(self.path_for(namespace, fingerprint))

    def delete_key(self, namespace: str, key: str) -> bool:
        return self._unlink(self.root / sanitize_namespace(namespace) / (key + ENTRY_SUFFIX))

    def delete_namespace(self, namespace: str) -> int:
        directory = self.root / sanitize_namespace(namespace)
        removed = 0
        if not directory.is_dir():
            return 0
        for path in directory.glob("*" + ENTRY_SUFFIX):
            if self._unlink(path):
                removed += 1
        return removed

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def scan(self) -> Iterator[StoredItem]:
        if not self.root.is_dir():
            return
        for directory in sorted(p for p in self.root.iterdir() if p.is_dir()):
            for path in sorted(directory.glob("*" + ENTRY_SUFFIX)):
                try:
                    size = path.stat().st_size
                    text = path.read_text(encoding="utf-8")
                except OSError:
                    continue
                try:
                    entry: Optional[CacheEntry] = CacheEntry.from_json(text)
                except ValueError:
                    entry = None
                key = path.name[: -len(ENTRY_SUFFIX)]
                namespace = entry.namespace if entry is not None else directory.name
                yield StoredItem(namespace=namespace, key=key, entry=entry, size_bytes=size)

    def remove_stale_temp_files(self) -> int:
        """Delete temp files left behind by writers that died mid-write."""
        removed = 0
        if not self.root.is_dir():
            return 0
        for path in self.root.glob("*/.*.tmp"):
            try:
                os.unlink(path)
            except OSError:
                continue
            removed += 1
        return removed


class MemoryCacheStore:
    """In-process store with the same contract as :class:`DiskCacheStore`."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: Dict[Tuple[str, str], str] = {}

    def read(self, namespace: str, fingerprint: str) -> Optional[CacheEntry]:
        with self._lock:
            text = self._items.get((namespace, sanitize(fingerprint)))
        if text is None:
            return None
        try:
            entry = CacheEntry.from_json(text)
        except ValueError:
            return None
        return entry if entry.fingerprint == fingerprint else None

    def write(self, entry: CacheEntry) -> int:
        text = entry.to_json()
        with self._lock:
            self._items[(entry.namespace, sanitize(entry.fingerprint))] = text
        return len(text.encode("utf-8"))

    def write_raw(self, namespace: str, key: str, text: str) -> None:
        """Store arbitrary text under ``key`` (used to simulate corruption)."""
        with self._lock:
            self._items[(namespace, key)] = text

    def delete(self, namespace: str, fingerprint: str) -> bool:
        return self.delete_key(namespace, sanitize(fingerprint))

    def delete_key(self, namespace: str, key: str) -> bool:
        with self._lock:
            return self._items.pop((namespace, key), None) is not None

    def delete_namespace(self, namespace: str) -> int:
        with self._lock:
            keys = [k for k in self._items if k[0] == namespace]
            for k in keys:
                del self._items[k]
        return len(keys)

    def scan(self) -> Iterator[StoredItem]:
        with self._lock:
            items = sorted(self._items.items())
        for (namespace, key), text in items:
            try:
                entry: Optional[CacheEntry] = CacheEntry.from_json(text)
            except ValueError:
                entry = None
            yield StoredItem(namespace=namespace, key=key, entry=entry, size_bytes=len(text.encode("utf-8")))

    def remove_stale_temp_files(self) -> int:
        return 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


__all__ = ["CacheStore", "DiskCacheStore", "MemoryCacheStore", "StoredItem", "ENTRY_SUFFIX"]
