"""Record service: the storage-boundary rules on top of a repository.

Every write goes through :func:`chatledger.models.normalize_record`. Local
mutations bump ``updated_at`` and mark shared records ``pending-upload``;
remote merges use last-writer-wins on ``updated_at`` (strictly newer wins,
ties keep the stored copy).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import TYPE_CHECKING

from .api import TextRecognizer, extract_record
from .logging_setup import get_logger
from .models import Record, SyncStatus, new_record_id, normalize_record, utc_now
from .repository import InsertStatus, RecordRepository
from .uploader import upload_shared_records

if TYPE_CHECKING:
    from .sync import SyncEngine

logger = get_logger("chatledger.ledger")

MAX_INSERT_ATTEMPTS = 5


class PersistenceError(Exception):
    """Insert failed, or identifier regeneration ran out of attempts."""


def _locally_mutated(record: Record, stamp: datetime) -> Record:
    update: dict[str, object] = {"updated_at": stamp}
    if record.is_shared:
        update["sync_status"] = SyncStatus.PENDING_UPLOAD
    return record.model_copy(update=update)


def add_record(
    repo: RecordRepository,
    record: Record,
    *,
    max_attempts: int = MAX_INSERT_ATTEMPTS,
    now: datetime | None = None,
) -> Record:
    """Insert ``record``, regenerating its id on collision.

    Returns the stored record (which may carry a new id).

    Raises
    ------
    PersistenceError
        The repository reported a failure, or every attempt collided.
    """

    stamp = now or utc_now()
    candidate = _locally_mutated(normalize_record(record, now=stamp), stamp)

    for attempt in range(1, max_attempts + 1):
        result = repo.insert(candidate)
        if result.status == InsertStatus.OK:
            logger.info("ledger:add id=%s shared=%s attempt=%d", candidate.id, candidate.is_shared, attempt)
            return candidate
        if result.status == InsertStatus.FAILURE:
            raise PersistenceError(result.message or "insert failed")
        logger.warning("ledger:id_conflict id=%s attempt=%d", candidate.id, attempt)
        candidate = candidate.model_copy(update={"id": new_record_id()})

    raise PersistenceError(f"could not allocate a unique id after {max_attempts} attempts")


def update_record(
    repo: RecordRepository,
    record: Record,
    *,
    preserve_timestamp: bool = False,
    now: datetime | None = None,
) -> bool:
    """Persist an edited record.

    With ``preserve_timestamp`` the record is written as-is (after
    normalization); used for bookkeeping changes such as sync stamping that
    must not win a later LWW comparison.
    """

    normalized = normalize_record(record, now=now)
    if not preserve_timestamp:
        normalized = _locally_mutated(normalized, now or utc_now())
    return repo.update(normalized)


def merge_shared_record(repo: RecordRepository, incoming: Record) -> bool:
    """Upsert a remote shared record by last-writer-wins.

    Non-shared records are ignored. Returns ``True`` when the local store
    changed.
    """

    record = normalize_record(incoming)
    if not record.is_shared:
        return False
    existing = repo.get(record.id)
    if existing is None:
        return repo.insert(record).status == InsertStatus.OK
    if record.updated_at > existing.updated_at:
        return repo.update(record)
    return False


def add_record_from_text(
    repo: RecordRepository,
    text: str,
    *,
    reference: datetime | None = None,
    recognizer: TextRecognizer | None = None,
) -> Record | None:
    result = extract_record(text, reference=reference, recognizer=recognizer)
    if result.record is None:
        return None
    return add_record(repo, result.record)


def import_records(repo: RecordRepository, records: Iterable[Record], *, replace: bool = True) -> int:
    """Load restored records as-is; returns how many were stored.

    With ``replace`` every existing record is deleted first. Rows that
    conflict with a stored id or fail to insert are logged and skipped.
    """

    if replace:
        for existing in repo.all():
            repo.delete(existing.id)
    stored = 0
    for record in records:
        result = repo.insert(normalize_record(record))
        if result.status == InsertStatus.OK:
            stored += 1
        else:
            logger.warning("ledger:import_skipped id=%s status=%s", record.id, result.status.value)
    logger.info("ledger:import count=%d replace=%s", stored, replace)
    return stored


def delete_record(
    repo: RecordRepository,
    record_id: str,
    *,
    sync_engine: SyncEngine | None = None,
) -> bool:
    """Delete locally; shared grouped records also queue a pending deletion."""

    existing = repo.get(record_id)
    if existing is None:
        return False
    if not repo.delete(record_id):
        return False
    if sync_engine is not None and existing.is_shared and existing.group_id:
        sync_engine.record_deletion(record_id, existing.group_id)
    logger.info("ledger:delete id=%s shared=%s", record_id, existing.is_shared)
    return True


def upload_shared_for_date(
    repo: RecordRepository,
    day: date,
    *,
    uploader: Callable[[Iterable[Record]], int] = upload_shared_records,
) -> int:
    """Upload the shared records of ``day``; returns the uploaded count."""

    return uploader([r for r in repo.for_date(day) if r.is_shared])
