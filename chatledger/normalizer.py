"""Line normalizer for pasted chat snippets and OCR output.

Screenshots of chat apps come with a lot of chrome around the one message we
care about: a status-bar clock, read receipts, canned auto-replies, input
placeholders. :func:`clean_recognized_text` drops those lines and keeps the
order-preserving block that most likely describes one real-world event.

The filter is a single pass repeated until its output stops changing, so the
result is always a fixed point: ``clean(clean(x)) == clean(x)``.
"""

from __future__ import annotations

import re

from .logging_setup import get_logger

logger = get_logger("chatledger.normalizer")

NOISE_PHRASES: tuple[str, ...] = (
    "line",
    "錢包",
    "message",
    "回覆",
    "自動回覆",
    "輸入訊息",
    "thanks for the message",
    "i'm sorry",
    "don't worry",
    "sending you more",
    "wifi",
    "4g",
    "<",
    "99+",
    "提醒",
    "已讀",
    "已讀取",
    "已讀訊息",
    "reply",
    "soon",
    "auto reply",
)

BULLET_MARKERS: tuple[str, ...] = ("<", "•", ">")

# Standalone "NT" (currency marker), not part of a longer word.
_NT = r"(?<![A-Za-z])NT(?![A-Za-z])"

IMPORTANT_RE = re.compile(
    r"(\d{1,2}[:：]\d{2}|\d{1,2}[/-]\d{1,2}|\d{4}[/-]\d{1,2}[/-]\d{1,2}"
    r"|今天|明天|後天|today|tomorrow|消費|元|\$|" + _NT + r")",
    re.IGNORECASE,
)
STRONG_RE = re.compile(
    r"(\d{1,2}[/-]\d{1,2}|\d{4}[/-]\d{1,2}[/-]\d{1,2}|消費|元|\$|" + _NT + r")",
    re.IGNORECASE,
)
PURE_TIME_RE = re.compile(r"^\d{1,2}[:：]\d{2}$")

# Lines at raw index below this that hold only a clock are treated as status bar.
STATUS_BAR_LINES = 3
FOREIGN_LETTER_RATIO = 0.6


def _is_noise(line: str) -> bool:
    lower = line.lower()
    return any(phrase in lower for phrase in NOISE_PHRASES)


def _alnum_count(line: str) -> int:
    return sum(1 for ch in line if ch.isalpha() or ch.isnumeric())


def _looks_like_foreign_auto_reply(line: str) -> bool:
    if any(ch.isdigit() for ch in line):
        return False
    letters = sum(1 for ch in line if ch.isascii() and ch.isalpha())
    return len(line) > 0 and letters / len(line) > FOREIGN_LETTER_RATIO


def _clean_once(text: str) -> str:
    filtered: list[str] = []
    for index, raw in enumerate(text.splitlines()):
        line = raw.strip()
        if not line:
            continue
        if _is_noise(line):
            continue
        if line.startswith(BULLET_MARKERS):
            continue
        if len(line) <= 1 and not any(ch.isdigit() for ch in line):
            continue
        if not IMPORTANT_RE.search(line) and _alnum_count(line) < 2:
            continue
        if PURE_TIME_RE.match(line) and index < STATUS_BAR_LINES:
            continue
        filtered.append(line)

    filtered = [ln for ln in filtered if not _looks_like_foreign_auto_reply(ln)]
    if not filtered:
        return ""

    first_strong = next((i for i, ln in enumerate(filtered) if STRONG_RE.search(ln)), None)
    if first_strong is not None:
        filtered = filtered[first_strong:]

    keep: set[int] = set()
    for pos, line in enumerate(filtered):
        if IMPORTANT_RE.search(line):
            keep.add(pos)
            if pos > 0:
                keep.add(pos - 1)
            if pos + 1 < len(filtered):
                keep.add(pos + 1)

    if keep:
        final = [ln for pos, ln in enumerate(filtered) if pos in keep]
    else:
        final = []
        seen_time = False
        for line in filtered:
            if PURE_TIME_RE.match(line):
                if seen_time:
                    continue
                seen_time = True
            final.append(line)

    return "\n".join(final)


def clean_recognized_text(text: str) -> str:
    """Filter chat/OCR noise lines out of ``text``.

    Returns the surviving lines joined by ``"\\n"``. An empty string means
    nothing salvageable was found; it is a valid result, not an error.
    """

    current = text
    passes = 0
    while True:
        cleaned = _clean_once(current)
        passes += 1
        if cleaned == current:
            break
        current = cleaned
    logger.debug(
        "normalize:done passes=%d in_lines=%d out_lines=%d",
        passes,
        len(text.splitlines()),
        len(current.splitlines()) if current else 0,
    )
    return current
