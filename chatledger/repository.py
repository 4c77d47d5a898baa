"""Record repository contract and its SQLAlchemy implementation.

The extraction pipeline, the record service and the sync engine only depend on
:class:`RecordRepository`; :class:`SqlRecordRepository` is the concrete store
(SQLite by default, any SQLAlchemy URL via ``DATABASE_URL``).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import NamedTuple, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db.client import session_scope
from .db.models import RecordRow
from .logging_setup import get_logger
from .models import Category, CategoryExpense, Record

logger = get_logger("chatledger.repository")


class InsertStatus(StrEnum):
    OK = "ok"
    CONFLICT = "conflict"
    FAILURE = "failure"


class InsertResult(NamedTuple):
    status: InsertStatus
    message: str = ""


class RecordRepository(Protocol):
    """Keyed record store consumed by the service layer and the sync engine."""

    def insert(self, record: Record) -> InsertResult: ...

    def update(self, record: Record) -> bool: ...

    def delete(self, record_id: str) -> bool: ...

    def get(self, record_id: str) -> Record | None: ...

    def all(self) -> list[Record]: ...

    def for_date(self, day: date) -> list[Record]: ...


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _apply(row: RecordRow, record: Record) -> RecordRow:
    row.title = record.title
    row.notes = record.notes
    row.occurs_at = record.occurs_at
    row.amount = record.amount
    row.category = record.category.value
    row.is_expense = record.is_expense
    row.share_size = record.share_size
    row.split_method = record.split_method.value
    row.group_id = record.group_id
    row.author = record.author
    row.updated_at = record.updated_at
    row.sync_status = record.sync_status.value
    row.color = record.color.value
    return row


def _to_row(record: Record) -> RecordRow:
    return _apply(RecordRow(id=record.id), record)


def _from_row(row: RecordRow) -> Record:
    return Record(
        id=row.id,
        title=row.title,
        notes=row.notes or "",
        occurs_at=row.occurs_at,
        amount=row.amount,
        category=row.category,
        is_expense=row.is_expense,
        share_size=row.share_size,
        split_method=row.split_method,
        group_id=row.group_id,
        author=row.author,
        updated_at=row.updated_at,
        sync_status=row.sync_status,
        color=row.color,
    )


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


def _is_id_conflict(exc: IntegrityError) -> bool:
    msg = str(exc.orig).lower()
    return "records.id" in msg or "records_pkey" in msg


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------


class SqlRecordRepository:
    """:class:`RecordRepository` over the ``records`` table.

    Every operation runs in its own short transaction from ``session_factory``
    (see :func:`chatledger.db.client.create_session_factory`).
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._factory = session_factory

    def insert(self, record: Record) -> InsertResult:
        try:
            with session_scope(self._factory) as s:
                if s.get(RecordRow, record.id) is not None:
                    return InsertResult(InsertStatus.CONFLICT, f"record id {record.id} already exists")
                s.add(_to_row(record))
                s.flush()
        except IntegrityError as e:
            if _is_id_conflict(e):
                return InsertResult(InsertStatus.CONFLICT, f"record id {record.id} already exists")
            logger.error("repo:insert_failed id=%s error=%s", record.id, e.__class__.__name__)
            return InsertResult(InsertStatus.FAILURE, str(e.orig))
        except SQLAlchemyError as e:
            logger.error("repo:insert_failed id=%s error=%s", record.id, e.__class__.__name__)
            return InsertResult(InsertStatus.FAILURE, str(e))
        return InsertResult(InsertStatus.OK)

    def update(self, record: Record) -> bool:
        try:
            with session_scope(self._factory) as s:
                row = s.get(RecordRow, record.id)
                if row is None:
                    return False
                _apply(row, record)
        except SQLAlchemyError as e:
            logger.error("repo:update_failed id=%s error=%s", record.id, e.__class__.__name__)
            return False
        return True

    def delete(self, record_id: str) -> bool:
        try:
            with session_scope(self._factory) as s:
                row = s.get(RecordRow, record_id)
                if row is None:
                    return False
                s.delete(row)
        except SQLAlchemyError as e:
            logger.error("repo:delete_failed id=%s error=%s", record_id, e.__class__.__name__)
            return False
        return True

    def get(self, record_id: str) -> Record | None:
        with session_scope(self._factory) as s:
            row = s.get(RecordRow, record_id)
            return _from_row(row) if row is not None else None

    def all(self) -> list[Record]:
        with session_scope(self._factory) as s:
            rows = s.scalars(select(RecordRow).order_by(RecordRow.occurs_at, RecordRow.id)).all()
            return [_from_row(r) for r in rows]

    def for_date(self, day: date) -> list[Record]:
        start, end = _day_bounds(day)
        with session_scope(self._factory) as s:
            rows = s.scalars(
                select(RecordRow)
                .where(RecordRow.occurs_at >= start, RecordRow.occurs_at < end)
                .order_by(RecordRow.occurs_at, RecordRow.id)
            ).all()
            return [_from_row(r) for r in rows]

    def for_group(self, group_id: str) -> list[Record]:
        with session_scope(self._factory) as s:
            rows = s.scalars(
                select(RecordRow).where(RecordRow.group_id == group_id).order_by(RecordRow.id)
            ).all()
            return [_from_row(r) for r in rows]

    # -- aggregates ---------------------------------------------------------

    def expense_total_for_date(self, day: date) -> float:
        start, end = _day_bounds(day)
        with session_scope(self._factory) as s:
            total = s.scalar(
                select(func.coalesce(func.sum(RecordRow.amount), 0.0)).where(
                    RecordRow.is_expense.is_(True),
                    RecordRow.amount.is_not(None),
                    RecordRow.occurs_at >= start,
                    RecordRow.occurs_at < end,
                )
            )
        return float(total or 0.0)

    def category_expenses(self) -> list[CategoryExpense]:
        """Expense totals per category, largest first."""

        with session_scope(self._factory) as s:
            rows: Sequence[tuple[str, float, int]] = s.execute(
                select(RecordRow.category, func.sum(RecordRow.amount), func.count(RecordRow.id))
                .where(RecordRow.is_expense.is_(True), RecordRow.amount.is_not(None))
                .group_by(RecordRow.category)
            ).all()
        out = [CategoryExpense(Category.parse(cat), float(total or 0.0), int(n)) for cat, total, n in rows]
        out.sort(key=lambda c: (-c.amount, c.category.value))
        return out
