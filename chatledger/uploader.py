"""Thin HTTP sink for shared records.

Non-streaming JSON POST to ``CHATLEDGER_UPLOAD_URL`` (or an explicit
endpoint). The body is::

    {"events": [{"amount": ..., "category": ..., "date": ..., "description": ...,
                 "id": ..., "isExpense": ..., "shareGroupSize": ...,
                 "splitMethod": ..., "title": ...}],
     "generatedAt": "2025-03-16T11:30:00.000Z"}

with sorted keys and UTC ISO-8601 timestamps carrying milliseconds.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from .config import upload_endpoint
from .logging_setup import get_logger
from .models import Record, utc_now

logger = get_logger("chatledger.uploader")


class UploadError(Exception):
    """Base class for upload failures."""


class NothingToUploadError(UploadError):
    pass


class MissingEndpointError(UploadError):
    pass


class UploadEncodingError(UploadError):
    pass


class UploadNetworkError(UploadError):
    pass


class UploadServerError(UploadError):
    def __init__(self, status: int, body: str | None = None) -> None:
        super().__init__(f"upload endpoint returned HTTP {status}")
        self.status = status
        self.body = body


def iso_millis(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a ``Z`` suffix; naive values are local time."""

    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def upload_item(record: Record) -> dict[str, Any]:
    return {
        "id": record.id,
        "title": record.title,
        "description": record.notes,
        "date": iso_millis(record.occurs_at),
        "amount": record.amount,
        "category": record.category.value,
        "isExpense": record.is_expense,
        "shareGroupSize": max(1, record.share_size),
        "splitMethod": record.split_method.value,
    }


def build_payload(records: Iterable[Record], *, generated_at: datetime) -> bytes:
    body = {
        "generatedAt": iso_millis(generated_at),
        "events": [upload_item(r) for r in records],
    }
    try:
        return json.dumps(body, sort_keys=True, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise UploadEncodingError(f"could not encode upload payload: {e}") from e


def upload_shared_records(
    records: Iterable[Record],
    *,
    endpoint: str | None = None,
    now: datetime | None = None,
    timeout: float = 30,
) -> int:
    """POST the shared subset of ``records``; return how many were sent.

    Raises
    ------
    NothingToUploadError
        No record in ``records`` is shared.
    MissingEndpointError
        Neither ``endpoint`` nor ``CHATLEDGER_UPLOAD_URL`` is set.
    UploadServerError
        Non-2xx response (carries ``status`` and ``body``).
    UploadNetworkError
        Transport-level failure.
    """

    shared = [r for r in records if r.is_shared]
    if not shared:
        raise NothingToUploadError("no shared records to upload")

    url = endpoint or upload_endpoint()
    if not url:
        raise MissingEndpointError("CHATLEDGER_UPLOAD_URL is not set")

    data = build_payload(shared, generated_at=now or utc_now())
    req = urllib.request.Request(url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = getattr(resp, "status", 200)
            body = resp.read()
    except urllib.error.HTTPError as e:
        try:
            err_body = e.read().decode("utf-8", errors="replace")
        except Exception:  # noqa: BLE001 - body is best-effort context only
            err_body = None
        logger.error("upload:server_error status=%d count=%d", e.code, len(shared))
        raise UploadServerError(e.code, err_body) from e
    except (urllib.error.URLError, OSError) as e:
        logger.error("upload:network_error error=%s", e.__class__.__name__)
        raise UploadNetworkError(str(e)) from e

    if not 200 <= status < 300:
        raise UploadServerError(status, body.decode("utf-8", errors="replace"))

    logger.info("upload:done count=%d status=%d", len(shared), status)
    return len(shared)
