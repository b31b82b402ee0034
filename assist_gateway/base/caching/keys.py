"""Filesystem-safe names for cache fingerprints.

Reserved bytes (path separators, Windows-reserved punctuation, control
characters) become ``_``. Names longer than :data:`MAX_NAME_BYTES` are cut
and suffixed with a digest of the full fingerprint. Distinct fingerprints may
still share a name; the stored entry carries its original fingerprint and
readers reject a mismatch.
"""

from __future__ import annotations

import hashlib
import re

MAX_NAME_BYTES = 200
_DIGEST_CHARS = 16
_RESERVED = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')


def sanitize(fingerprint: str) -> str:
    """Return a filename stem for ``fingerprint`` of at most 200 UTF-8 bytes."""
    name = _RESERVED.sub("_", fingerprint)
    if name.startswith("."):
        name = "_" + name[1:]
    encoded = name.encode("utf-8")
    if len(encoded) <= MAX_NAME_BYTES:
        return name
    digest = hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:_DIGEST_CHARS]
    head = encoded[: MAX_NAME_BYTES - _DIGEST_CHARS - 1].decode("utf-8", errors="ignore")
    return f"{head}-{digest}"


def sanitize_namespace(namespace: str) -> str:
    name = _RESERVED.sub("_", namespace).strip(". ")
    return name or "_"


__all__ = ["sanitize", "sanitize_namespace", "MAX_NAME_BYTES"]
