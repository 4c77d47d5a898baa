"""Public interface for the ``chatledger`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import extract_record
from .extraction import parse_text
from .group_store import GroupStore
from .ledger import (
    PersistenceError,
    add_record,
    add_record_from_text,
    delete_record,
    merge_shared_record,
    update_record,
    upload_shared_for_date,
)
from .models import (
    Category,
    CategoryExpense,
    EventColor,
    ExtractionResult,
    GroupEntry,
    Record,
    SplitMethod,
    SyncStatus,
    normalize_record,
)
from .normalizer import clean_recognized_text
from .reconcile import reconcile_records
from .repository import InsertResult, InsertStatus, RecordRepository, SqlRecordRepository
from .sync import SyncEngine
from .sync_state import SyncStateStore

__all__ = [
    # API
    "clean_recognized_text",
    "parse_text",
    "extract_record",
    "reconcile_records",
    "normalize_record",
    "add_record",
    "add_record_from_text",
    "update_record",
    "merge_shared_record",
    "delete_record",
    "upload_shared_for_date",
    "PersistenceError",
    # Storage / sync
    "RecordRepository",
    "SqlRecordRepository",
    "InsertResult",
    "InsertStatus",
    "GroupStore",
    "SyncStateStore",
    "SyncEngine",
    # Models / types
    "Record",
    "Category",
    "SplitMethod",
    "SyncStatus",
    "EventColor",
    "GroupEntry",
    "CategoryExpense",
    "ExtractionResult",
]
