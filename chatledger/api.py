"""Public extraction entry point.

:func:`extract_record` is the pipeline used by the CLI and the record
service: clean the raw text, then either ask the optional AI recognizer
(which reconciles with local parsing) or parse locally. AI failures never
reach the caller; they are logged and local parsing is used instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .ai_client import RecognitionResult, RecognizerError
from .extraction import parse_text
from .logging_setup import get_logger
from .models import ExtractionResult
from .normalizer import clean_recognized_text

logger = get_logger("chatledger.api")


class TextRecognizer(Protocol):
    def recognize_text(self, text: str, *, reference: datetime) -> RecognitionResult: ...


def extract_record(
    text: str,
    *,
    reference: datetime | None = None,
    recognizer: TextRecognizer | None = None,
) -> ExtractionResult:
    """Extract one candidate record from raw chat/OCR ``text``.

    Parameters
    ----------
    text:
        Raw multi-line input.
    reference:
        Anchor for relative and year-less dates. Defaults to now.
    recognizer:
        Optional AI recognizer. Any :class:`RecognizerError` it raises is
        logged at WARNING and recovered by local parsing.

    Returns
    -------
    ExtractionResult
        ``recognized_text`` is the cleaned text the record came from (the raw
        text when cleaning removes everything); ``record`` is ``None`` when
        nothing usable was found.
    """

    ref = reference or datetime.now()
    cleaned = clean_recognized_text(text)
    source = cleaned or text.strip()

    if recognizer is not None and source:
        try:
            return recognizer.recognize_text(source, reference=ref)
        except RecognizerError as e:
            logger.warning("extract:ai_failed error=%s; falling back to local parse", e.__class__.__name__)

    record = parse_text(source, reference=ref)
    logger.info("extract:done has_record=%s lines=%d", record is not None, len(source.splitlines()))
    return ExtractionResult(source, record)
