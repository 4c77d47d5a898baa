"""Independent field detectors over normalized chat text.

Each detector is a pure function of the text (plus a reference datetime for
dates). Ambiguity is resolved by fixed tie-break rules and never surfaces as
an error:

- date: the last valid absolute date wins, then relative-day words, then the
  reference day;
- time: the first time sharing a line with "real" content wins, else the last
  time in the text;
- amount: the first line with a currency-marked number wins, else the first
  bare number line above :data:`BARE_AMOUNT_FLOOR`;
- category: first matching row of :data:`CATEGORY_KEYWORDS`;
- title: first line that survives stripping, else the text before the first
  punctuation mark.

Digit lookarounds are used instead of ``\\b`` because CJK characters count as
word characters in Python's ``re``.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

from .models import Category, EventColor

# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------

DATE_RE = re.compile(
    r"(?<!\d)(?:(\d{4})[/-](\d{1,2})[/-](\d{1,2})|(\d{1,2})[/-](\d{1,2}))(?!\d)"
)

# Checked in order; "後天" must come before "明天" and the English phrase
# containing "tomorrow" before plain "tomorrow".
RELATIVE_DAYS: tuple[tuple[str, int], ...] = (
    ("今天", 0),
    ("today", 0),
    ("後天", 2),
    ("day after tomorrow", 2),
    ("明天", 1),
    ("tomorrow", 1),
)


def start_of_day(value: datetime) -> datetime:
    return datetime(value.year, value.month, value.day)


def detect_date(text: str, reference: datetime) -> datetime:
    """Return the start of the calendar day referred to by ``text``."""

    found: datetime | None = None
    for m in DATE_RE.finditer(text):
        if m.group(1):
            year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
        else:
            year, month, day = reference.year, int(m.group(4)), int(m.group(5))
        try:
            found = datetime(year, month, day)
        except ValueError:
            continue
    if found is not None:
        return found

    lower = text.lower()
    for word, offset in RELATIVE_DAYS:
        if word in lower:
            return start_of_day(reference) + timedelta(days=offset)
    return start_of_day(reference)


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

TIME_RE = re.compile(r"(?<!\d)(\d{1,2})[:：](\d{2})(?!\d)")
TIME_CONTEXT_RE = re.compile(
    r"(\d{1,2}[/-]\d{1,2}|\d{4}[/-]\d{1,2}[/-]\d{1,2}|消費|元|\$|NT|\d{3,})"
)


def detect_time(text: str) -> tuple[int, int] | None:
    """Return ``(hour, minute)`` or ``None`` when no valid clock time appears."""

    last: tuple[int, int] | None = None
    for line in text.splitlines():
        for m in TIME_RE.finditer(line):
            hour, minute = int(m.group(1)), int(m.group(2))
            if not (0 <= hour < 24 and 0 <= minute < 60):
                continue
            if TIME_CONTEXT_RE.search(line):
                return hour, minute
            last = (hour, minute)
    return last


def merge_date_time(day: datetime | date, time: tuple[int, int] | None) -> datetime:
    base = datetime(day.year, day.month, day.day)
    if time is None:
        return base
    return base.replace(hour=time[0], minute=time[1])


# ---------------------------------------------------------------------------
# Amount
# ---------------------------------------------------------------------------

_NUM = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"

# Start of a number: not inside digits, and not the tail of "19:30", "3/16" or "1,200".
_NUM_START = r"(?<!\d)(?<!\d[:：/.,])"

AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(_NUM_START + _NUM + r"\s*(?:元|塊|nt\$|nt(?![a-z])|twd(?![a-z]))", re.IGNORECASE),
    re.compile(r"(?<![a-z])(?:nt\$?|twd|\$)\s*" + _NUM, re.IGNORECASE),
    re.compile(r"消費\s*" + _NUM),
)
BARE_NUMBER_RE = re.compile(r"^\s*(\d{2,})\s*$")

# Bare numbers at or below this look like clock minutes, not money.
BARE_AMOUNT_FLOOR = 60


def _to_amount(raw: str) -> float | None:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def detect_amount(text: str) -> float | None:
    lines = text.splitlines()
    for line in lines:
        best: re.Match[str] | None = None
        for pattern in AMOUNT_PATTERNS:
            m = pattern.search(line)
            if m and (best is None or m.start() < best.start()):
                best = m
        if best is not None:
            value = _to_amount(best.group(1))
            if value is not None:
                return value

    for line in lines:
        m = BARE_NUMBER_RE.match(line)
        if m:
            value = float(m.group(1))
            if value > BARE_AMOUNT_FLOOR:
                return value
    return None


# ---------------------------------------------------------------------------
# Category / expense / color
# ---------------------------------------------------------------------------

CATEGORY_KEYWORDS: tuple[tuple[Category, tuple[str, ...]], ...] = (
    (Category.FOOD, ("飯", "餐", "午餐", "早餐", "晚餐", "吃", "咖啡", "飲", "餐廳", "便當", "lunch", "dinner", "breakfast", "coffee")),
    (Category.TRANSPORT, ("車", "捷運", "公車", "地鐵", "高鐵", "火車", "uber", "計程車", "油", "停車", "taxi", "train", "bus")),
    (Category.SHOPPING, ("買", "購物", "超市", "商店", "衣", "服", "鞋", "包", "日用品", "shopping")),
    (Category.ENTERTAINMENT, ("電影", "演唱會", "娛樂", "玩", "聚會", "酒吧", "電玩", "movie", "concert")),
    (Category.HEALTH, ("醫", "藥", "牙", "診所", "健身", "運動", "體檢", "doctor", "gym")),
    (Category.EDUCATION, ("課", "學", "書", "課程", "教育", "講座", "class", "course")),
    (Category.TRAVEL, ("旅遊", "旅行", "出差", "機票", "飯店", "住宿", "住宿費", "flight", "hotel")),
)

CATEGORY_COLORS: dict[Category, EventColor] = {
    Category.FOOD: EventColor.RED,
    Category.TRANSPORT: EventColor.GREEN,
    Category.SHOPPING: EventColor.ORANGE,
    Category.ENTERTAINMENT: EventColor.PURPLE,
    Category.HEALTH: EventColor.YELLOW,
    Category.EDUCATION: EventColor.BLUE,
    Category.TRAVEL: EventColor.GREEN,
    Category.OTHER: EventColor.BLUE,
}

EXPENSE_KEYWORDS: tuple[str, ...] = ("消費", "花費", "cost", "spent", "paid")


def detect_category(text: str) -> Category:
    lower = text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(kw in lower for kw in keywords):
            return category
    return Category.OTHER


def color_for_category(category: Category) -> EventColor:
    return CATEGORY_COLORS.get(category, EventColor.BLUE)


def is_expense_text(text: str) -> bool:
    lower = text.lower()
    return any(kw in lower for kw in EXPENSE_KEYWORDS)


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

TITLE_SKIP_WORDS: tuple[str, ...] = ("已讀", "已讀取", "read", "reply", "message", "soon", "輸入訊息")

_FULL_DATE_ANYWHERE = re.compile(r"(?<!\d)\d{4}[/-]\d{1,2}[/-]\d{1,2}(?!\d)")
_DATE_PREFIX = re.compile(r"^\s*\d{1,2}[/-]\d{1,2}(?!\d)\s*")
_DATE_ANYWHERE = re.compile(r"(?<!\d)\d{1,2}[/-]\d{1,2}(?!\d)")
_TIME_ANYWHERE = re.compile(r"(?<!\d)\d{1,2}[:：]\d{2}(?!\d)")
_TIME_ONLY = re.compile(r"^\s*\d{1,2}[:：]\d{2}\s*$")
_LEADING_PRONOUN = re.compile(
    r"^(?:我們|大家|我|一起|想要|想|要|we\b|everyone\b|i\b|want to\b)\s*",
    re.IGNORECASE,
)

TITLE_FALLBACK_SEPARATORS: tuple[str, ...] = ("，", ",", "。", ".", "；", ";", "、")


def _strip_title_line(line: str) -> str:
    line = _FULL_DATE_ANYWHERE.sub("", line).strip()
    line = _DATE_PREFIX.sub("", line).strip()
    line = _DATE_ANYWHERE.sub("", line).strip()
    line = _TIME_ANYWHERE.sub("", line).strip()
    line = _LEADING_PRONOUN.sub("", line).strip()
    return line


def detect_title(text: str) -> str | None:
    """Infer a short title, or ``None`` when no line or prefix qualifies."""

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        lower = line.lower()
        if any(word in lower for word in TITLE_SKIP_WORDS):
            continue
        line = _strip_title_line(line)
        if not line or _TIME_ONLY.match(line) or line.isdigit():
            continue
        return line

    cut: int | None = None
    for sep in TITLE_FALLBACK_SEPARATORS:
        idx = text.find(sep)
        if idx >= 0 and (cut is None or idx < cut):
            cut = idx
    if cut is not None:
        prefix = text[:cut].strip()
        if prefix:
            return prefix
    return None
