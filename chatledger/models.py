"""Data models for ``chatledger``.

``Record`` is the single structured unit produced by extraction, stored by the
repository and reconciled by the sync engine. It is an immutable Pydantic
model; changes are made with ``model_copy(update=...)`` and then passed back
through :func:`normalize_record` at every ingress boundary (extraction output,
repository write, sync merge input).

JSON field names are camelCase (``occursAt``, ``updatedAt``, ``deletedIds``)
so the shared group store file stays readable by other replicas; Python
attribute names stay snake_case.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_AUTHOR = "local"
UNTITLED = "Untitled"


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_record_id() -> str:
    return str(uuid.uuid4()).upper()


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Category(StrEnum):
    FOOD = "food"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    HEALTH = "health"
    EDUCATION = "education"
    TRAVEL = "travel"
    OTHER = "other"

    @property
    def label(self) -> str:
        """Display label (Traditional Chinese), also accepted by :meth:`parse`."""
        return _CATEGORY_LABELS[self]

    @classmethod
    def parse(cls, raw: object) -> Category:
        """Resolve a category from its value or display label; unknown → ``OTHER``."""

        if isinstance(raw, Category):
            return raw
        s = str(raw or "").strip()
        if not s:
            return cls.OTHER
        try:
            return cls(s.lower())
        except ValueError:
            pass
        for cat, label in _CATEGORY_LABELS.items():
            if label == s:
                return cat
        return cls.OTHER


_CATEGORY_LABELS: dict[Category, str] = {
    Category.FOOD: "餐飲",
    Category.TRANSPORT: "交通",
    Category.SHOPPING: "購物",
    Category.ENTERTAINMENT: "娛樂",
    Category.HEALTH: "醫療",
    Category.EDUCATION: "教育",
    Category.TRAVEL: "旅遊",
    Category.OTHER: "其他",
}


class SplitMethod(StrEnum):
    PERSONAL = "personal"
    EQUAL_SPLIT = "equal-split"
    SINGLE_PAYER = "single-payer"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, raw: object) -> SplitMethod:
        """Resolve a split method; legacy codes ``aa``/``a0`` are accepted."""

        if isinstance(raw, SplitMethod):
            return raw
        s = str(raw or "").strip().lower()
        legacy = {"aa": cls.EQUAL_SPLIT, "a0": cls.SINGLE_PAYER}
        if s in legacy:
            return legacy[s]
        try:
            return cls(s)
        except ValueError:
            return cls.PERSONAL


class SyncStatus(StrEnum):
    SYNCED = "synced"
    PENDING_UPLOAD = "pending-upload"


class EventColor(StrEnum):
    """Presentation hint carried with each record."""

    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    ORANGE = "orange"
    PURPLE = "purple"
    YELLOW = "yellow"


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


class Record(BaseModel):
    """A calendar/expense entry.

    Attributes
    ----------
    id:
        Opaque unique identifier; assigned at creation and only regenerated on
        an identifier collision during insert.
    title:
        Short label; never empty once normalized.
    notes:
        Free text. Extracted records carry the cleaned source text here.
    occurs_at:
        Naive local wall-clock timestamp (date plus optional time of day;
        date-only records sit at midnight).
    amount:
        Optional non-negative monetary value.
    share_size / split_method:
        ``share_size > 1`` marks a shared record. ``share_size == 1`` implies
        ``personal``; enforced by :func:`normalize_record`.
    group_id / author:
        Collaboration scope and contributor name for shared records.
    updated_at:
        UTC timestamp of the last local mutation; drives last-writer-wins.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_record_id)
    title: str
    notes: str = ""
    occurs_at: datetime
    amount: float | None = Field(default=None, ge=0)
    category: Category = Category.OTHER
    is_expense: bool = False
    share_size: int = 1
    split_method: SplitMethod = SplitMethod.PERSONAL
    group_id: str | None = None
    author: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)
    sync_status: SyncStatus = SyncStatus.SYNCED
    color: EventColor = EventColor.BLUE

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v: object) -> Category:
        return Category.parse(v)

    @field_validator("split_method", mode="before")
    @classmethod
    def _parse_split(cls, v: object) -> SplitMethod:
        return SplitMethod.parse(v)

    @field_validator("updated_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @property
    def is_shared(self) -> bool:
        return self.share_size > 1


def normalize_record(record: Record, *, now: datetime | None = None) -> Record:
    """Return ``record`` with the storage-boundary defaulting rules applied.

    Rules
    -----
    - ``share_size`` is clamped to at least 1.
    - ``share_size == 1`` forces ``split_method = personal``; a shared record
      still marked ``personal`` becomes ``equal-split``.
    - ``group_id`` is trimmed; blank becomes ``None``.
    - ``author`` is trimmed; blank or missing becomes ``"local"``.
    - ``title`` is trimmed; empty falls back to the first non-empty line of
      ``notes``, then to ``"Untitled"``.
    - ``updated_at`` at or before the Unix epoch is replaced with ``now``.
    """

    share_size = max(1, int(record.share_size))
    split = record.split_method
    if share_size == 1:
        split = SplitMethod.PERSONAL
    elif split == SplitMethod.PERSONAL:
        split = SplitMethod.EQUAL_SPLIT

    group_id = (record.group_id or "").strip() or None
    author = (record.author or "").strip() or DEFAULT_AUTHOR

    title = record.title.strip()
    if not title:
        first_note = next((ln.strip() for ln in record.notes.splitlines() if ln.strip()), "")
        title = first_note or UNTITLED

    updated_at = record.updated_at
    if updated_at.timestamp() <= 0:
        updated_at = now or utc_now()

    return record.model_copy(
        update={
            "share_size": share_size,
            "split_method": split,
            "group_id": group_id,
            "author": author,
            "title": title,
            "updated_at": updated_at,
        }
    )


# ---------------------------------------------------------------------------
# Group store file schema
# ---------------------------------------------------------------------------


class GroupEntry(BaseModel):
    """State of one collaboration group inside the shared store file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    events: list[Record] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("updated_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v.replace(tzinfo=UTC) if v.tzinfo is None else v


class SharedStoreFile(RootModel[dict[str, GroupEntry]]):
    """Top-level schema: group id → :class:`GroupEntry`."""

    root: dict[str, GroupEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Small result types
# ---------------------------------------------------------------------------


class CategoryExpense(NamedTuple):
    category: Category
    amount: float
    count: int


class ExtractionResult(NamedTuple):
    """Outcome of one extraction: the text the record came from, and the record."""

    recognized_text: str
    record: Record | None
