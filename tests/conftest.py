"""Pytest configuration for test isolation.

The package keeps its Group Store file, sync bookkeeping and default SQLite
database under ``CHATLEDGER_DATA_DIR`` (``./.chatledger`` when unset). Tests
sharing one working tree would otherwise see each other's state, so every test
gets its own data directory and a clean set of network-related variables.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from chatledger.repository import SqlRecordRepository
from tests.helpers.db import make_sqlite_repository

_NETWORK_VARS = (
    "DATABASE_URL",
    "CHATLEDGER_AI_API_KEY",
    "OPENROUTER_API_KEY",
    "CHATLEDGER_AI_BASE_URL",
    "CHATLEDGER_AI_MODEL",
    "CHATLEDGER_AI_FALLBACK_MODEL",
    "CHATLEDGER_UPLOAD_URL",
    "CHATLEDGER_SYNC_MAX_WORKERS",
)


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``CHATLEDGER_DATA_DIR`` at the test's own temporary directory."""

    data_root = tmp_path / "data"
    data_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CHATLEDGER_DATA_DIR", os.fspath(data_root))
    for var in _NETWORK_VARS:
        monkeypatch.delenv(var, raising=False)
    return data_root


@pytest.fixture
def repo(tmp_path: Path) -> SqlRecordRepository:
    return make_sqlite_repository(tmp_path / "db" / "records.db")
