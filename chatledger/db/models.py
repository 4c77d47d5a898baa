from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RecordRow(Base):
    __tablename__ = "records"
    __table_args__ = (
        CheckConstraint("amount IS NULL OR amount >= 0", name="ck_records_amount_nonneg"),
        CheckConstraint("share_size >= 1", name="ck_records_share_size_min"),
        Index("ix_records_occurs_at", "occurs_at"),
        Index("ix_records_group_id", "group_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Naive local wall-clock time.
    occurs_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other")
    is_expense: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    share_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    split_method: Mapped[str] = mapped_column(String, nullable=False, default="personal")
    group_id: Mapped[str | None] = mapped_column(String, nullable=True)
    author: Mapped[str | None] = mapped_column(String, nullable=True)
    # Stored as UTC; SQLite drops tzinfo, so readers re-attach it.
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sync_status: Mapped[str] = mapped_column(String, nullable=False, default="synced")
    color: Mapped[str] = mapped_column(String, nullable=False, default="blue")
