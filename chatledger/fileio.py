"""Small file helpers shared by the JSON-backed stores.

Atomicity: writes target ``<name>.tmp`` first and then ``os.replace`` into
place, so readers see either the old or the new file, never a partial one.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

from .logging_setup import get_logger

logger = get_logger("chatledger.fileio")


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` atomically, cleaning up the temp file on failure."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()
        raise


def read_text_or_none(path: Path) -> str | None:
    """Return the file's UTF-8 text, or ``None`` when it is missing or unreadable."""

    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.warning("file:read_failed path=%s; treating as absent", os.fspath(path), exc_info=True)
        return None
