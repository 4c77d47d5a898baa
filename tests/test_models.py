import json
from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from chatledger.models import (
    Category,
    GroupEntry,
    Record,
    SplitMethod,
    SyncStatus,
    normalize_record,
)

NOW = datetime(2025, 3, 16, 12, 0, tzinfo=UTC)


def _record(**overrides) -> Record:
    fields = {"title": "晚餐", "occurs_at": datetime(2025, 3, 16, 19, 30)}
    fields.update(overrides)
    return Record(**fields)


def test_single_share_forces_personal():
    r = normalize_record(_record(share_size=1, split_method=SplitMethod.EQUAL_SPLIT))

    assert r.split_method == SplitMethod.PERSONAL
    assert not r.is_shared


def test_shared_personal_becomes_equal_split():
    r = normalize_record(_record(share_size=3, split_method=SplitMethod.PERSONAL))

    assert r.split_method == SplitMethod.EQUAL_SPLIT
    assert r.is_shared


def test_shared_keeps_explicit_split():
    r = normalize_record(_record(share_size=2, split_method=SplitMethod.SINGLE_PAYER))

    assert r.split_method == SplitMethod.SINGLE_PAYER


def test_share_size_clamped_to_one():
    r = normalize_record(_record(share_size=0))

    assert r.share_size == 1
    assert r.split_method == SplitMethod.PERSONAL


def test_group_and_author_trimmed_and_defaulted():
    r = normalize_record(_record(group_id="  ", author="   "))
    assert r.group_id is None
    assert r.author == "local"

    r = normalize_record(_record(group_id=" trip ", author=" alice "))
    assert r.group_id == "trip"
    assert r.author == "alice"


@pytest.mark.parametrize(
    ("title", "notes", "expected"),
    [
        ("  晚餐  ", "", "晚餐"),
        ("", "\n  第一行 \n第二行", "第一行"),
        ("   ", "", "Untitled"),
    ],
)
def test_title_fallbacks(title: str, notes: str, expected: str):
    assert normalize_record(_record(title=title, notes=notes)).title == expected


def test_epoch_updated_at_replaced_with_now():
    r = normalize_record(_record(updated_at=datetime(1970, 1, 1)), now=NOW)

    assert r.updated_at == NOW


def test_updated_at_is_utc():
    naive = _record(updated_at=datetime(2025, 3, 16, 11, 30))
    assert naive.updated_at == datetime(2025, 3, 16, 11, 30, tzinfo=UTC)

    taipei = timezone(timedelta(hours=8))
    aware = _record(updated_at=datetime(2025, 3, 16, 19, 30, tzinfo=taipei))
    assert aware.updated_at.tzinfo == UTC
    assert aware.updated_at == datetime(2025, 3, 16, 11, 30, tzinfo=UTC)


def test_normalize_is_idempotent():
    once = normalize_record(_record(share_size=4, group_id=" g ", title=" x "), now=NOW)

    assert normalize_record(once, now=NOW) == once


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("food", Category.FOOD),
        ("FOOD", Category.FOOD),
        ("餐飲", Category.FOOD),
        ("旅遊", Category.TRAVEL),
        ("unknown", Category.OTHER),
        (None, Category.OTHER),
    ],
)
def test_category_parse(raw, expected: Category):
    assert Category.parse(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("equal-split", SplitMethod.EQUAL_SPLIT),
        ("AA", SplitMethod.EQUAL_SPLIT),
        ("a0", SplitMethod.SINGLE_PAYER),
        ("custom", SplitMethod.CUSTOM),
        ("whatever", SplitMethod.PERSONAL),
    ],
)
def test_split_method_parse(raw: str, expected: SplitMethod):
    assert SplitMethod.parse(raw) == expected


def test_record_json_uses_camel_case_and_round_trips():
    r = _record(
        share_size=3,
        split_method="aa",
        group_id="trip",
        updated_at=datetime(2025, 3, 16, 11, 30, tzinfo=UTC),
        sync_status=SyncStatus.PENDING_UPLOAD,
    )

    data = json.loads(r.model_dump_json(by_alias=True))

    assert {"occursAt", "shareSize", "splitMethod", "groupId", "updatedAt", "syncStatus", "isExpense"} <= set(data)
    assert data["splitMethod"] == "equal-split"
    assert data["syncStatus"] == "pending-upload"
    assert Record.model_validate(data) == r


def test_record_is_frozen_and_rejects_negative_amount():
    r = _record()
    with pytest.raises(ValidationError):
        r.title = "other"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        _record(amount=-1)


def test_record_ids_are_unique_uppercase():
    a, b = _record(), _record()

    assert a.id != b.id
    assert a.id == a.id.upper()


def test_group_entry_aliases():
    entry = GroupEntry.model_validate({"events": [], "deletedIds": ["X"], "updatedAt": "2025-03-16T11:30:00Z"})

    assert entry.deleted_ids == ["X"]
    assert entry.updated_at == datetime(2025, 3, 16, 11, 30, tzinfo=UTC)
