"""Cache entry record and its on-disk JSON form."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

ENTRY_FORMAT_VERSION = 1


@dataclass(frozen=True)
class CacheEntry:
    """One cached canonical result.

    ``payload`` is always the JSON form of a canonical result, never a raw
    upstream body. ``size_bytes`` is the serialised size and is filled in by
    :meth:`with_size` before the entry is accounted.
    """

    fingerprint: str
    namespace: str
    payload: Dict[str, Any]
    created_at_ms: int
    expires_at_ms: int
    source_provider: Optional[str] = None
    size_bytes: int = 0

    def __post_init__(self) -> None:
        if self.created_at_ms > self.expires_at_ms:
            raise ValueError("created_at_ms must not be after expires_at_ms")

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms

    def to_json(self) -> str:
        document = asdict(self)
        document["format"] = ENTRY_FORMAT_VERSION
        return json.dumps(document, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    def with_size(self) -> "CacheEntry":
        """Copy whose ``size_bytes`` equals the length of its own JSON form."""
        entry = self
        while True:
            size = len(entry.to_json().encode("utf-8"))
            if size == entry.size_bytes:
                return entry
            entry = replace(entry, size_bytes=size)

    @classmethod
    def from_json(cls, text: str) -> "CacheEntry":
        """Parse an entry file.

        Raises:
            ValueError: The text is not a well-formed entry.
        """
        document = json.loads(text)
        if not isinstance(document, dict) or document.pop("format", None) != ENTRY_FORMAT_VERSION:
            raise ValueError("unsupported cache entry format")
        try:
            return cls(
                fingerprint=str(document["fingerprint"]),
                namespace=str(document["namespace"]),
                payload=dict(document["payload"]),
                created_at_ms=int(document["created_at_ms"]),
                expires_at_ms=int(document["expires_at_ms"]),
                source_provider=document.get("source_provider"),
                size_bytes=int(document.get("size_bytes", 0)),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"incomplete cache entry: {exc}") from exc


__all__ = ["CacheEntry", "ENTRY_FORMAT_VERSION"]
