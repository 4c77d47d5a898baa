"""Local sync engine: reconcile shared records through the Group Store.

One pass for a group:

1. load the group's entry (missing → empty);
2. union the local pending deletions into ``deletedIds`` and drop matching
   stored records;
3. seed a working map from the stored records;
4. merge every local shared record of the group into it (stamping missing
   ``group_id``/``author``, marking it ``synced``; the later ``updated_at``
   wins, ties keep the stored copy);
5. drop every id in ``deletedIds``;
6. write the entry back once (atomic replace);
7. write the stamped copies locally, push survivors into the local repository
   by LWW and delete ``deletedIds`` locally;
8. stamp any remaining ``pending-upload`` record of the group as ``synced``;
9. clear the local pending deletions and record the completion time.

Passes for one group are serialized by a per-group lock; passes for different
groups may run concurrently (:meth:`SyncEngine.sync_groups`); an ungrouped
shared record is claimed by the first pass that sees it. If the store
write fails the pass stops before touching the local repository.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from datetime import datetime

from .config import sync_max_workers
from .group_store import GroupStore
from .ledger import merge_shared_record, update_record
from .logging_setup import get_logger
from .models import DEFAULT_AUTHOR, GroupEntry, Record, SyncStatus, normalize_record, utc_now
from .pmap import p_map
from .repository import RecordRepository
from .sync_state import SyncStateStore

logger = get_logger("chatledger.sync")


def lww_pick(stored: Record | None, incoming: Record) -> Record:
    """Return the record that wins a last-writer-wins merge.

    ``incoming`` replaces ``stored`` only with a strictly later ``updated_at``.
    """

    if stored is None or incoming.updated_at > stored.updated_at:
        return incoming
    return stored


class SyncEngine:
    """Run sync passes against an injected repository and stores.

    Parameters
    ----------
    repository:
        Local record repository.
    store:
        Group Store; defaults to the file under the data directory.
    state:
        Pending-deletion and last-sync bookkeeping; defaults to the file under
        the data directory.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        repository: RecordRepository,
        *,
        store: GroupStore | None = None,
        state: SyncStateStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._store = store or GroupStore()
        self._state = state or SyncStateStore()
        self._clock = clock or utc_now
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # record id -> group that stamped it; an ungrouped record joins one group only.
        self._claims: dict[str, str] = {}
        self._claims_guard = threading.Lock()

    def _group_lock(self, group_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(group_id)
            if lock is None:
                lock = self._locks[group_id] = threading.Lock()
            return lock

    def record_deletion(self, record_id: str, group_id: str) -> None:
        gid = group_id.strip()
        if not gid:
            return
        self._state.add_pending_deletion(gid, record_id)
        logger.debug("sync:deletion_recorded group=%s id=%s", gid, record_id)

    def last_sync_date(self, group_id: str) -> datetime | None:
        return self._state.last_sync(group_id.strip())

    def sync(self, group_id: str, author: str = "") -> datetime | None:
        """Run one pass for ``group_id``; returns the completion time.

        Returns ``None`` for a blank group id or when the store write fails.
        """

        gid = group_id.strip()
        if not gid:
            return None
        who = author.strip() or DEFAULT_AUTHOR
        with self._group_lock(gid):
            return self._run_pass(gid, who)

    def sync_groups(
        self,
        group_ids: Iterable[str],
        author: str = "",
        *,
        concurrency: int | None = None,
    ) -> dict[str, datetime | None]:
        ids = list(dict.fromkeys(g.strip() for g in group_ids if g.strip()))
        if not ids:
            return {}
        workers = concurrency or sync_max_workers(len(ids))
        pairs = p_map(ids, lambda g: (g, self.sync(g, author)), concurrency=workers)
        return dict(pairs)

    # -- pass internals -----------------------------------------------------

    def _claim(self, record_id: str, group_id: str) -> bool:
        with self._claims_guard:
            return self._claims.setdefault(record_id, group_id) == group_id

    def _release(self, record_ids: Iterable[str], group_id: str) -> None:
        with self._claims_guard:
            for rid in record_ids:
                if self._claims.get(rid) == group_id:
                    del self._claims[rid]

    def _local_members(self, group_id: str, author: str) -> tuple[list[Record], list[Record]]:
        """Collect the group's local shared records.

        Returns ``(members, stamped)``; ``stamped`` holds the copies that gained
        a ``group_id`` or ``author`` and still have to be written locally.
        """

        members: list[Record] = []
        stamped: list[Record] = []
        for record in self._repo.all():
            if not record.is_shared or (record.group_id or group_id) != group_id:
                continue
            if record.group_id is None and not self._claim(record.id, group_id):
                continue
            if record.group_id is None or not (record.author or "").strip():
                record = record.model_copy(
                    update={"group_id": group_id, "author": (record.author or "").strip() or author}
                )
                stamped.append(record)
            members.append(normalize_record(record))
        return members, stamped

    def _run_pass(self, group_id: str, author: str) -> datetime | None:
        t0 = time.perf_counter()
        pending = self._state.pending_deletions(group_id)
        local, stamped = self._local_members(group_id, author)
        stamp = self._clock()

        def merge(entry: GroupEntry) -> GroupEntry:
            deleted = set(entry.deleted_ids) | pending
            working = {r.id: normalize_record(r) for r in entry.events if r.id not in pending}
            for record in local:
                candidate = record.model_copy(update={"sync_status": SyncStatus.SYNCED})
                working[candidate.id] = lww_pick(working.get(candidate.id), candidate)
            for rid in deleted:
                working.pop(rid, None)
            return GroupEntry(events=list(working.values()), deleted_ids=sorted(deleted), updated_at=stamp)

        try:
            entry = self._store.update_group(group_id, merge)
        except OSError:
            logger.error("sync:store_write_failed group=%s; pass aborted", group_id, exc_info=True)
            self._release((r.id for r in stamped), group_id)
            return None

        for record in stamped:
            update_record(self._repo, record, preserve_timestamp=True)

        for record in entry.events:
            merge_shared_record(
                self._repo, record.model_copy(update={"group_id": group_id, "sync_status": SyncStatus.SYNCED})
            )
        for rid in entry.deleted_ids:
            self._repo.delete(rid)

        for record in self._repo.all():
            if record.is_shared and record.group_id == group_id and record.sync_status != SyncStatus.SYNCED:
                update_record(
                    self._repo, record.model_copy(update={"sync_status": SyncStatus.SYNCED}), preserve_timestamp=True
                )

        self._state.clear_pending_deletions(group_id)
        done = self._clock()
        self._state.set_last_sync(group_id, done)
        logger.info(
            "sync:pass_done group=%s events=%d deleted=%d latency_ms=%.2f",
            group_id,
            len(entry.events),
            len(entry.deleted_ids),
            (time.perf_counter() - t0) * 1000.0,
        )
        return done
