from datetime import UTC, date, datetime, timedelta

import pytest

from chatledger.ledger import (
    PersistenceError,
    add_record,
    add_record_from_text,
    delete_record,
    import_records,
    merge_shared_record,
    update_record,
    upload_shared_for_date,
)
from chatledger.models import Record, SplitMethod, SyncStatus
from chatledger.repository import InsertResult, InsertStatus, SqlRecordRepository
from chatledger.sync import SyncEngine
from chatledger.sync_state import SyncStateStore

T0 = datetime(2025, 3, 16, 11, 0, tzinfo=UTC)


def _record(**overrides) -> Record:
    fields = {"title": "晚餐", "occurs_at": datetime(2025, 3, 16, 19, 30)}
    fields.update(overrides)
    return Record(**fields)


class _ScriptedRepo:
    """Repository double whose inserts return scripted statuses."""

    def __init__(self, statuses: list[InsertStatus]) -> None:
        self._statuses = list(statuses)
        self.inserted: list[Record] = []

    def insert(self, record: Record) -> InsertResult:
        self.inserted.append(record)
        status = self._statuses.pop(0)
        return InsertResult(status, "boom" if status == InsertStatus.FAILURE else "")


def test_add_record_normalizes_and_stamps(repo: SqlRecordRepository):
    stored = add_record(repo, _record(title="  晚餐 ", share_size=3, group_id=" trip "), now=T0)

    assert stored.title == "晚餐"
    assert stored.group_id == "trip"
    assert stored.split_method == SplitMethod.EQUAL_SPLIT
    assert stored.updated_at == T0
    assert stored.sync_status == SyncStatus.PENDING_UPLOAD
    assert repo.get(stored.id) == stored


def test_add_personal_record_stays_synced(repo: SqlRecordRepository):
    stored = add_record(repo, _record(), now=T0)

    assert stored.sync_status == SyncStatus.SYNCED


def test_add_record_regenerates_id_on_conflict():
    fake = _ScriptedRepo([InsertStatus.CONFLICT, InsertStatus.CONFLICT, InsertStatus.OK])
    original = _record()

    stored = add_record(fake, original)

    assert len(fake.inserted) == 3
    assert len({r.id for r in fake.inserted}) == 3
    assert fake.inserted[0].id == original.id
    assert stored.id == fake.inserted[-1].id


def test_add_record_gives_up_after_max_attempts():
    fake = _ScriptedRepo([InsertStatus.CONFLICT] * 3)

    with pytest.raises(PersistenceError):
        add_record(fake, _record(), max_attempts=3)
    assert len(fake.inserted) == 3


def test_add_record_failure_is_not_retried():
    fake = _ScriptedRepo([InsertStatus.FAILURE])

    with pytest.raises(PersistenceError, match="boom"):
        add_record(fake, _record())
    assert len(fake.inserted) == 1


def test_update_record_bumps_timestamp_unless_preserved(repo: SqlRecordRepository):
    stored = add_record(repo, _record(share_size=2), now=T0)
    synced = stored.model_copy(update={"sync_status": SyncStatus.SYNCED})

    assert update_record(repo, synced, preserve_timestamp=True)
    assert repo.get(stored.id).updated_at == T0
    assert repo.get(stored.id).sync_status == SyncStatus.SYNCED

    later = T0 + timedelta(minutes=5)
    assert update_record(repo, synced.model_copy(update={"title": "宵夜"}), now=later)
    after = repo.get(stored.id)
    assert after.title == "宵夜"
    assert after.updated_at == later
    assert after.sync_status == SyncStatus.PENDING_UPLOAD


def test_merge_shared_record_is_last_writer_wins(repo: SqlRecordRepository):
    base = _record(share_size=2, group_id="trip", updated_at=T0)

    assert merge_shared_record(repo, base) is True
    assert merge_shared_record(repo, base.model_copy(update={"title": "tie"})) is False
    older = base.model_copy(update={"title": "older", "updated_at": T0 - timedelta(seconds=1)})
    assert merge_shared_record(repo, older) is False
    newer = base.model_copy(update={"title": "newer", "updated_at": T0 + timedelta(seconds=1)})
    assert merge_shared_record(repo, newer) is True

    assert repo.get(base.id).title == "newer"


def test_merge_ignores_personal_records(repo: SqlRecordRepository):
    r = _record()

    assert merge_shared_record(repo, r) is False
    assert repo.get(r.id) is None


def test_add_record_from_text(repo: SqlRecordRepository):
    stored = add_record_from_text(repo, "3/16 19:30 晚餐 420元", reference=datetime(2025, 1, 1))

    assert stored is not None
    assert repo.get(stored.id).amount == 420.0
    assert add_record_from_text(repo, "   ") is None


def test_delete_shared_record_queues_pending_deletion(repo: SqlRecordRepository, tmp_path):
    state = SyncStateStore(tmp_path / "state.json")
    engine = SyncEngine(repo, state=state)
    shared = add_record(repo, _record(share_size=2, group_id="trip"))
    personal = add_record(repo, _record())

    assert delete_record(repo, shared.id, sync_engine=engine) is True
    assert delete_record(repo, personal.id, sync_engine=engine) is True
    assert delete_record(repo, "missing", sync_engine=engine) is False

    assert state.pending_deletions("trip") == {shared.id}


def test_import_records_replaces_existing_data(repo: SqlRecordRepository):
    add_record(repo, _record(title="old"))
    restored = [_record(title="a", updated_at=T0), _record(title="b", share_size=2)]

    assert import_records(repo, restored) == 2

    assert sorted(r.title for r in repo.all()) == ["a", "b"]
    assert repo.get(restored[0].id).updated_at == T0


def test_import_records_append_skips_conflicting_ids(repo: SqlRecordRepository):
    kept = add_record(repo, _record(title="kept"))

    count = import_records(repo, [kept.model_copy(update={"title": "dup"}), _record(title="new")], replace=False)

    assert count == 1
    assert sorted(r.title for r in repo.all()) == ["kept", "new"]


def test_upload_shared_for_date_passes_only_shared_records(repo: SqlRecordRepository):
    add_record(repo, _record(title="shared", share_size=2))
    add_record(repo, _record(title="mine"))
    add_record(repo, _record(title="other day", share_size=2, occurs_at=datetime(2025, 3, 17, 9, 0)))
    seen: list[list[str]] = []

    def fake_uploader(records) -> int:
        titles = [r.title for r in records]
        seen.append(titles)
        return len(titles)

    assert upload_shared_for_date(repo, date(2025, 3, 16), uploader=fake_uploader) == 1
    assert seen == [["shared"]]
