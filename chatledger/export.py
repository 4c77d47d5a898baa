"""CSV and JSON export/import of records.

CSV columns (header row first):
``id, title, description, date, color, amount, category, isExpense,
shareGroupSize, splitMethod``

``date`` is the record's local wall-clock time in ISO-8601; ``isExpense`` is
``1``/``0``; an absent amount is an empty cell. Import skips rows that are
short or carry an unparseable date; unknown enum values fall back to their
defaults and malformed ids get a fresh one.
"""

from __future__ import annotations

import csv
import io
import json
import uuid
from collections.abc import Iterable
from datetime import date, datetime

from .logging_setup import get_logger
from .models import Category, EventColor, Record, SplitMethod, new_record_id, normalize_record
from .repository import RecordRepository

logger = get_logger("chatledger.export")

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "description",
    "date",
    "color",
    "amount",
    "category",
    "isExpense",
    "shareGroupSize",
    "splitMethod",
)


def export_csv(records: Iterable[Record]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for r in records:
        writer.writerow(
            [
                r.id,
                r.title,
                r.notes,
                r.occurs_at.isoformat(),
                r.color.value,
                "" if r.amount is None else repr(float(r.amount)),
                r.category.value,
                "1" if r.is_expense else "0",
                str(max(1, r.share_size)),
                r.split_method.value,
            ]
        )
    return buf.getvalue()


def _parse_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw.strip())).upper()
    except ValueError:
        return new_record_id()


def _parse_occurs_at(raw: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _parse_amount(raw: str) -> float | None:
    s = raw.strip()
    if not s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    return value if value >= 0 else None


def _parse_color(raw: str) -> EventColor:
    try:
        return EventColor(raw.strip().lower())
    except ValueError:
        return EventColor.BLUE


def _parse_share(raw: str) -> int:
    try:
        return max(1, int(raw.strip()))
    except ValueError:
        return 1


def import_csv(text: str) -> list[Record]:
    """Parse CSV produced by :func:`export_csv` (header row required)."""

    rows = list(csv.reader(io.StringIO(text)))
    out: list[Record] = []
    skipped = 0
    for row in rows[1:]:
        if len(row) < len(CSV_COLUMNS):
            skipped += 1
            continue
        occurs_at = _parse_occurs_at(row[3])
        if occurs_at is None:
            skipped += 1
            continue
        share = _parse_share(row[8])
        record = Record(
            id=_parse_id(row[0]),
            title=row[1],
            notes=row[2],
            occurs_at=occurs_at,
            color=_parse_color(row[4]),
            amount=_parse_amount(row[5]),
            category=Category.parse(row[6]),
            is_expense=row[7].strip().lower() in {"1", "true"},
            share_size=share,
            split_method=SplitMethod.parse(row[9]),
        )
        out.append(normalize_record(record))
    if skipped:
        logger.warning("export:csv_rows_skipped count=%d", skipped)
    return out


def export_json_for_date(repo: RecordRepository, day: date) -> str | None:
    """JSON array of the records on ``day``, or ``None`` when there are none."""

    records = repo.for_date(day)
    if not records:
        return None
    payload = [r.model_dump(mode="json", by_alias=True) for r in records]
    return json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False)
