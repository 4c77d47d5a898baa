"""JSON-backed Group Store shared by local replicas.

File layout (UTF-8 JSON object)::

    {
      "<group id>": {
        "deletedIds": ["..."],
        "events": [{...record...}],
        "updatedAt": "2025-03-16T11:30:00Z"
      }
    }

Encoding is deterministic (sorted keys, events sorted by id, deletedIds
sorted and de-duplicated, two-space indent) so a decode→encode round trip of
a file written here reproduces it byte for byte. Unreadable or undecodable
files are treated as an empty store.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable, Mapping
from pathlib import Path

from pydantic import ValidationError

from .config import GROUP_STORE_FILENAME, data_root
from .fileio import read_text_or_none, write_text_atomic
from .logging_setup import get_logger
from .models import GroupEntry, SharedStoreFile

logger = get_logger("chatledger.group_store")

_LOCKS_GUARD = threading.Lock()
_PATH_LOCKS: dict[str, threading.RLock] = {}


def _lock_for(path: Path) -> threading.RLock:
    key = os.fspath(path.resolve())
    with _LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.RLock()
        return lock


def canonical_entry(entry: GroupEntry) -> GroupEntry:
    return entry.model_copy(
        update={
            "events": sorted(entry.events, key=lambda r: r.id),
            "deleted_ids": sorted(set(entry.deleted_ids)),
        }
    )


def encode_store(store: Mapping[str, GroupEntry]) -> str:
    payload = {
        group_id: canonical_entry(entry).model_dump(mode="json", by_alias=True)
        for group_id, entry in store.items()
    }
    return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def decode_store(text: str) -> dict[str, GroupEntry]:
    return dict(SharedStoreFile.model_validate_json(text).root)


class GroupStore:
    """Read/write access to the Group Store file.

    All instances pointing at the same file share one lock, so the
    read-modify-write in :meth:`update_group` is a single critical section
    within the process.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or data_root() / GROUP_STORE_FILENAME
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, GroupEntry]:
        text = read_text_or_none(self._path)
        if text is None:
            return {}
        try:
            return decode_store(text)
        except ValidationError:
            logger.warning("group_store:decode_failed path=%s; using empty store", os.fspath(self._path))
            return {}

    def save(self, store: Mapping[str, GroupEntry]) -> None:
        with self._lock:
            write_text_atomic(self._path, encode_store(store))

    def get(self, group_id: str) -> GroupEntry | None:
        return self.load().get(group_id)

    def update_group(self, group_id: str, mutate: Callable[[GroupEntry], GroupEntry]) -> GroupEntry:
        """Apply ``mutate`` to one group's entry and write the store once.

        A missing group starts from an empty entry. If ``mutate`` raises,
        nothing is written.
        """

        with self._lock:
            store = self.load()
            current = store.get(group_id) or GroupEntry()
            updated = canonical_entry(mutate(current))
            store[group_id] = updated
            self.save(store)
            return updated
