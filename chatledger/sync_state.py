"""Per-group sync bookkeeping: pending deletions and last-sync time.

Stored as ``<data dir>/sync_state.json``::

    {"<group id>": {"pendingDeletions": ["..."], "lastSync": "...Z" | null}}
"""

from __future__ import annotations

import json
import os
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .config import SYNC_STATE_FILENAME, data_root
from .fileio import read_text_or_none, write_text_atomic
from .logging_setup import get_logger

logger = get_logger("chatledger.sync_state")


class GroupSyncState(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    pending_deletions: list[str] = Field(default_factory=list)
    last_sync: datetime | None = None

    @field_validator("last_sync")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class SyncStateFile(RootModel[dict[str, GroupSyncState]]):
    root: dict[str, GroupSyncState] = Field(default_factory=dict)


class SyncStateStore:
    """Thread-safe get/set of per-group bookkeeping, persisted atomically."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or data_root() / SYNC_STATE_FILENAME
        self._lock = threading.Lock()

    def _read(self) -> dict[str, GroupSyncState]:
        text = read_text_or_none(self._path)
        if text is None:
            return {}
        try:
            return dict(SyncStateFile.model_validate_json(text).root)
        except ValidationError:
            logger.warning("sync_state:decode_failed path=%s; using empty state", os.fspath(self._path))
            return {}

    def _write(self, state: dict[str, GroupSyncState]) -> None:
        payload = {k: v.model_dump(mode="json", by_alias=True) for k, v in state.items()}
        write_text_atomic(self._path, json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False))

    def pending_deletions(self, group_id: str) -> set[str]:
        with self._lock:
            entry = self._read().get(group_id)
            return set(entry.pending_deletions) if entry else set()

    def add_pending_deletion(self, group_id: str, record_id: str) -> None:
        with self._lock:
            state = self._read()
            entry = state.get(group_id) or GroupSyncState()
            ids = sorted(set(entry.pending_deletions) | {record_id})
            state[group_id] = entry.model_copy(update={"pending_deletions": ids})
            self._write(state)

    def clear_pending_deletions(self, group_id: str) -> None:
        with self._lock:
            state = self._read()
            entry = state.get(group_id)
            if entry is None or not entry.pending_deletions:
                return
            state[group_id] = entry.model_copy(update={"pending_deletions": []})
            self._write(state)

    def last_sync(self, group_id: str) -> datetime | None:
        with self._lock:
            entry = self._read().get(group_id)
            return entry.last_sync if entry else None

    def set_last_sync(self, group_id: str, when: datetime) -> None:
        with self._lock:
            state = self._read()
            entry = state.get(group_id) or GroupSyncState()
            state[group_id] = entry.model_copy(update={"last_sync": when})
            self._write(state)
