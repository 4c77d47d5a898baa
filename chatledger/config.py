"""Environment-driven settings for ``chatledger``.

Nothing here reads the environment at import time; every helper resolves its
value when called so tests (and the CLI after ``load_dotenv``) see the current
environment.

Variables
---------
- ``CHATLEDGER_DATA_DIR``: root for the shared group store, sync bookkeeping
  and the default SQLite database (default ``./.chatledger``).
- ``DATABASE_URL``: SQLAlchemy URL for the record repository.
- ``CHATLEDGER_AI_BASE_URL`` / ``CHATLEDGER_AI_API_KEY`` (or
  ``OPENROUTER_API_KEY``) / ``CHATLEDGER_AI_MODEL`` /
  ``CHATLEDGER_AI_FALLBACK_MODEL``: AI extraction endpoint settings.
- ``CHATLEDGER_UPLOAD_URL``: endpoint for shared-record uploads.
- ``CHATLEDGER_SYNC_MAX_WORKERS``: concurrency cap for multi-group sync.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_AI_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_AI_MODEL = "x-ai/grok-4.1-fast"

GROUP_STORE_FILENAME = "local_shared_store.json"
SYNC_STATE_FILENAME = "sync_state.json"
DATABASE_FILENAME = "records.db"


def _env(name: str) -> str | None:
    val = os.getenv(name)
    if val is None:
        return None
    val = val.strip()
    return val or None


def data_root() -> Path:
    """Return the data directory, creating it when missing.

    Default: ``./.chatledger`` under the current working directory.
    Override: ``CHATLEDGER_DATA_DIR`` (absolute or relative).
    """

    root = _env("CHATLEDGER_DATA_DIR")
    path = Path(root).expanduser().resolve() if root else (Path.cwd() / ".chatledger").resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def database_url(override: str | None = None) -> str:
    """Resolve the repository URL: explicit override, ``DATABASE_URL``, then SQLite."""

    url = override or _env("DATABASE_URL")
    if url:
        return url
    return f"sqlite+pysqlite:///{data_root() / DATABASE_FILENAME}"


@dataclass(frozen=True, slots=True)
class AISettings:
    """Connection settings for the OpenAI-compatible extraction endpoint."""

    base_url: str
    api_key: str | None
    model: str
    fallback_model: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key and self.model)


def ai_settings() -> AISettings:
    return AISettings(
        base_url=_env("CHATLEDGER_AI_BASE_URL") or DEFAULT_AI_BASE_URL,
        api_key=_env("CHATLEDGER_AI_API_KEY") or _env("OPENROUTER_API_KEY"),
        model=_env("CHATLEDGER_AI_MODEL") or DEFAULT_AI_MODEL,
        fallback_model=_env("CHATLEDGER_AI_FALLBACK_MODEL"),
    )


def upload_endpoint() -> str | None:
    return _env("CHATLEDGER_UPLOAD_URL")


def sync_max_workers(n_groups: int) -> int:
    """Resolve the worker count for concurrent group syncs.

    Honors ``CHATLEDGER_SYNC_MAX_WORKERS`` when it is a positive integer,
    caps to ``n_groups`` and 16, and never returns less than 1.
    """

    raw = _env("CHATLEDGER_SYNC_MAX_WORKERS")
    try:
        requested = int(raw) if raw else None
    except ValueError:
        requested = None
    if requested is not None and requested > 0:
        return max(1, min(requested, n_groups, 16))
    return max(1, min(4, n_groups))
