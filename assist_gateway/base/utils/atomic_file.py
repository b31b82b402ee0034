"""Atomic file replacement helper.

Writers stage content in a uniquely named temporary file beside the target
and ``os.replace`` it into place, so a reader sees either the previous file
or the complete new one.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Union


def atomic_write_text(path: Union[str, Path], text: str, encoding: str = "utf-8") -> int:
    """Write ``text`` to ``path`` atomically and return the byte count written.

    Raises:
        OSError: The directory could not be created or the write failed. The
            temporary file is removed before the error propagates.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    data = text.encode(encoding)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name[:32]}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, target)
    except OSError:
        with suppress(OSError):
            os.unlink(tmp_name)
        raise
    return len(data)


__all__ = ["atomic_write_text"]
