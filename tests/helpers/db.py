"""DB helpers for tests: bootstrap a file-backed SQLite record repository."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import text as sql_text

from chatledger.db.client import create_session_factory, session_scope
from chatledger.db.models import RecordRow
from chatledger.repository import SqlRecordRepository


def sqlite_url(db_file: Path) -> str:
    return f"sqlite+pysqlite:///{db_file}"


def make_sqlite_repository(db_file: Path) -> SqlRecordRepository:
    """Create the schema in a SQLite file and return a repository over it.

    A file-backed database lets every short-lived session (and every thread in
    concurrent sync tests) see the same state; in-memory SQLite is
    per-connection.
    """

    factory = create_session_factory(sqlite_url(db_file))
    _assert_records_schema_in_sync(factory)
    return SqlRecordRepository(factory)


def _assert_records_schema_in_sync(factory) -> None:
    expected = {c.name for c in RecordRow.__table__.columns}
    with session_scope(factory) as session:
        rows = session.execute(sql_text("PRAGMA table_info('records')")).fetchall()
        got = {row[1] for row in rows}
    assert got == expected, f"records schema drift: missing={expected - got}, extra={got - expected}"
