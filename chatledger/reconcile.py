from __future__ import annotations

from .models import Record


def reconcile_records(primary: Record, fallback: Record | None) -> Record:
    """Merge an externally produced candidate with the locally parsed one.

    The primary candidate (usually AI-derived) wins except where local
    detection is trusted or fills a gap, applied in order:

    1. different calendar day → take the fallback's ``occurs_at``;
    2. primary has no amount → take the fallback's amount;
    3. fallback says expense → force ``is_expense``;
    4. primary title blank → take the fallback's title.
    """

    if fallback is None:
        return primary

    update: dict[str, object] = {}
    if primary.occurs_at.date() != fallback.occurs_at.date():
        update["occurs_at"] = fallback.occurs_at
    if primary.amount is None and fallback.amount is not None:
        update["amount"] = fallback.amount
    if not primary.is_expense and fallback.is_expense:
        update["is_expense"] = True
    if not primary.title.strip():
        update["title"] = fallback.title

    return primary.model_copy(update=update) if update else primary
