from datetime import datetime

from chatledger.ai_client import NetworkError
from chatledger.api import extract_record
from chatledger.extraction import parse_text
from chatledger.models import Category, EventColor, ExtractionResult, Record, SplitMethod

REF = datetime(2025, 1, 1, 9, 0)


def test_parse_text_end_to_end_chat_line():
    record = parse_text("3/16 19:30 西門町吃晚餐 420元", reference=REF)

    assert record is not None
    assert record.occurs_at == datetime(2025, 3, 16, 19, 30)
    assert record.amount == 420.0
    assert record.is_expense is True
    assert record.category == Category.FOOD
    assert record.color == EventColor.RED
    assert record.title == "西門町吃晚餐 420元"
    assert record.notes == "3/16 19:30 西門町吃晚餐 420元"
    assert record.share_size == 1
    assert record.split_method == SplitMethod.PERSONAL
    assert record.author == "local"


def test_parse_text_date_only_sits_at_start_of_day():
    record = parse_text("明天 看牙醫", reference=REF)

    assert record is not None
    assert record.occurs_at == datetime(2025, 1, 2, 0, 0)
    assert record.amount is None
    assert record.is_expense is False
    assert record.category == Category.HEALTH


def test_parse_text_expense_word_without_amount():
    record = parse_text("這個月消費太多", reference=REF)

    assert record is not None
    assert record.amount is None
    assert record.is_expense is True


def test_parse_text_without_tokens_uses_reference_day():
    record = parse_text("週末一起去爬山吧", reference=REF)

    assert record is not None
    assert record.occurs_at == datetime(2025, 1, 1, 0, 0)
    assert record.amount is None
    assert record.title == "週末一起去爬山吧"


def test_parse_text_empty_input_returns_none():
    assert parse_text("", reference=REF) is None
    assert parse_text("  \n\t ", reference=REF) is None


def test_extract_record_cleans_before_parsing():
    raw = "9:41\nLINE\n已讀 19:30\n3/16 19:30 西門町吃晚餐 420元\n好啊"

    result = extract_record(raw, reference=REF)

    assert result.recognized_text == "3/16 19:30 西門町吃晚餐 420元\n好啊"
    assert result.record is not None
    assert result.record.occurs_at == datetime(2025, 3, 16, 19, 30)
    assert result.record.amount == 420.0


def test_extract_record_empty_text_has_no_record():
    result = extract_record("", reference=REF)

    assert result == ExtractionResult("", None)


class _FailingRecognizer:
    def __init__(self) -> None:
        self.calls = 0

    def recognize_text(self, text: str, *, reference: datetime) -> ExtractionResult:
        self.calls += 1
        raise NetworkError("offline")


class _FixedRecognizer:
    def __init__(self, result: ExtractionResult) -> None:
        self.result = result
        self.seen: list[str] = []

    def recognize_text(self, text: str, *, reference: datetime) -> ExtractionResult:
        self.seen.append(text)
        return self.result


def test_recognizer_failure_falls_back_to_local_parse():
    recognizer = _FailingRecognizer()

    result = extract_record("3/16 19:30 晚餐 420元", reference=REF, recognizer=recognizer)

    assert recognizer.calls == 1
    assert result.record is not None
    assert result.record.amount == 420.0


def test_recognizer_result_is_returned_as_is():
    ai_record = Record(title="晚餐", occurs_at=datetime(2025, 3, 16, 19, 30), amount=420)
    recognizer = _FixedRecognizer(ExtractionResult("3/16 晚餐", ai_record))

    result = extract_record("LINE\n3/16 晚餐 420元", reference=REF, recognizer=recognizer)

    assert recognizer.seen == ["3/16 晚餐 420元"]
    assert result.record is ai_record


def test_recognizer_not_called_for_blank_input():
    recognizer = _FailingRecognizer()

    result = extract_record("   ", reference=REF, recognizer=recognizer)

    assert recognizer.calls == 0
    assert result.record is None
