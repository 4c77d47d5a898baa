import json
from datetime import date, datetime

from chatledger.export import CSV_COLUMNS, export_csv, export_json_for_date, import_csv
from chatledger.ledger import add_record
from chatledger.models import Category, EventColor, Record, SplitMethod
from chatledger.repository import SqlRecordRepository

HEADER = ",".join(CSV_COLUMNS)


def _record(**overrides) -> Record:
    fields = {
        "title": "晚餐",
        "notes": "西門町, 七點半",
        "occurs_at": datetime(2025, 3, 16, 19, 30),
        "amount": 420.0,
        "category": Category.FOOD,
        "color": EventColor.RED,
        "is_expense": True,
        "share_size": 3,
        "split_method": SplitMethod.EQUAL_SPLIT,
    }
    fields.update(overrides)
    return Record(**fields)


def test_export_csv_layout():
    r = _record()

    lines = export_csv([r, _record(amount=None, is_expense=False, share_size=1)]).splitlines()

    assert lines[0] == HEADER
    assert lines[1] == f'{r.id},晚餐,"西門町, 七點半",2025-03-16T19:30:00,red,420.0,food,1,3,equal-split'
    assert lines[2].endswith(",,food,0,1,equal-split")


def test_csv_round_trip_keeps_exported_fields():
    original = [_record(), _record(title="捷運", amount=None, category=Category.TRANSPORT, share_size=1)]

    imported = import_csv(export_csv(original))

    fields = ("id", "title", "notes", "occurs_at", "amount", "category", "color", "is_expense", "share_size")
    assert [[getattr(r, f) for f in fields] for r in imported] == [[getattr(r, f) for f in fields] for r in original]
    assert imported[1].split_method == SplitMethod.PERSONAL


def test_import_skips_bad_rows_and_repairs_values():
    text = "\n".join(
        [
            HEADER,
            "too,short",
            "ID1,bad date,,yesterday,red,1,food,1,1,personal",
            "not-a-uuid,午餐,,2025-03-16T12:00:00,magenta,-5,餐飲,true,0,aa",
            "",
        ]
    )

    (record,) = import_csv(text)

    assert record.title == "午餐"
    assert record.id != "not-a-uuid" and len(record.id) == 36
    assert record.color == EventColor.BLUE
    assert record.amount is None
    assert record.category == Category.FOOD
    assert record.is_expense is True
    assert record.share_size == 1
    assert record.split_method == SplitMethod.PERSONAL


def test_export_json_for_date(repo: SqlRecordRepository):
    stored = add_record(repo, _record())
    add_record(repo, _record(occurs_at=datetime(2025, 3, 17, 8, 0)))

    payload = json.loads(export_json_for_date(repo, date(2025, 3, 16)))

    assert [item["id"] for item in payload] == [stored.id]
    assert payload[0]["occursAt"] == "2025-03-16T19:30:00"
    assert payload[0]["shareSize"] == 3
    assert export_json_for_date(repo, date(2025, 1, 1)) is None
