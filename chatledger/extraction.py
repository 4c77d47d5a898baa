"""Compose the field detectors into one candidate :class:`Record`."""

from __future__ import annotations

from datetime import datetime

from .extractors import (
    color_for_category,
    detect_amount,
    detect_category,
    detect_date,
    detect_time,
    detect_title,
    is_expense_text,
    merge_date_time,
)
from .logging_setup import get_logger
from .models import Record, SplitMethod, normalize_record

logger = get_logger("chatledger.extraction")


def parse_text(text: str, *, reference: datetime | None = None) -> Record | None:
    """Parse ``text`` into a record, or return ``None`` for empty input.

    Parameters
    ----------
    text:
        Normalized chat/OCR text. Leading and trailing whitespace is ignored.
    reference:
        Anchor for relative-day words and year-less dates. Defaults to now.

    Notes
    -----
    Sharing is never inferred from text: the result is always personal with
    ``share_size == 1``. When no time is found the record sits at the start of
    the detected day.
    """

    cleaned = text.strip()
    if not cleaned:
        return None
    ref = reference or datetime.now()

    day = detect_date(cleaned, ref)
    occurs_at = merge_date_time(day, detect_time(cleaned))
    amount = detect_amount(cleaned)
    category = detect_category(cleaned)

    record = Record(
        title=detect_title(cleaned) or cleaned,
        notes=cleaned,
        occurs_at=occurs_at,
        amount=amount,
        category=category,
        color=color_for_category(category),
        is_expense=amount is not None or is_expense_text(cleaned),
        share_size=1,
        split_method=SplitMethod.PERSONAL,
    )
    logger.debug(
        "extract:parsed occurs_at=%s amount=%s category=%s",
        occurs_at.isoformat(),
        amount,
        category.value,
    )
    return normalize_record(record)
