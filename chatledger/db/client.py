"""SQLAlchemy engine/session helpers for the record repository.

Usage
-----
from chatledger.db.client import create_session_factory, session_scope

factory = create_session_factory("sqlite+pysqlite:///records.db")
with session_scope(factory) as s:
    s.execute(...)

Callers own the session factory and pass it to the repository; there is no
process-wide engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from ..config import database_url as resolve_database_url
from .models import Base


def _ensure_sqlite_parent(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def create_session_factory(
    database_url: str | None = None,
    *,
    create_schema: bool = True,
) -> sessionmaker[Session]:
    """Build a session factory bound to a new engine.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL. Resolved via :func:`chatledger.config.database_url`
        when omitted (``DATABASE_URL`` or the SQLite file in the data dir).
    create_schema:
        Create missing tables on the new engine.
    """

    url = resolve_database_url(database_url)
    _ensure_sqlite_parent(url)
    engine = create_engine(url, pool_pre_ping=True)
    if create_schema:
        init_schema(engine)
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["create_session_factory", "init_schema", "session_scope"]
