"""AI-assisted extraction over an OpenAI-compatible chat completions endpoint.

The model is asked for ``{"recognizedText": ..., "event": {...}}``. Its
candidate record is reconciled against local parsing of the recognized text,
so dates and amounts found locally are never lost to a model mistake. When
the model returns no event, or its output is not the expected JSON, the
recognized text is cleaned and parsed locally instead.

Failures are mapped to :class:`RecognizerError` subclasses. Callers treat all
of them as recoverable (see :func:`chatledger.api.extract_record`).
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Annotated, Any, Literal

from openai import APIConnectionError, APIError, APIStatusError, OpenAI
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

from . import prompting
from .config import AISettings, ai_settings
from .extraction import parse_text
from .logging_setup import get_logger
from .models import Category, EventColor, ExtractionResult, Record, SplitMethod, normalize_record
from .normalizer import clean_recognized_text
from .reconcile import reconcile_records

logger = get_logger("chatledger.ai_client")

MAX_TOKENS = 800

RecognitionResult = ExtractionResult


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class RecognizerError(Exception):
    """Base class for AI extraction failures."""


class MissingConfigError(RecognizerError):
    pass


class EncodingError(RecognizerError):
    pass


class NetworkError(RecognizerError):
    pass


class MalformedResponseError(RecognizerError):
    pass


class ServerError(RecognizerError):
    def __init__(self, status: int, body: str | None = None) -> None:
        super().__init__(f"server returned HTTP {status}")
        self.status = status
        self.body = body

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500


# ---------------------------------------------------------------------------
# Message content: plain string, or parts discriminated by ``type``
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["text"]
    text: str


class OtherPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""


def _part_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return "text" if kind == "text" else "other"


ContentPart = Annotated[
    Annotated[TextPart, Tag("text")] | Annotated[OtherPart, Tag("other")],
    Discriminator(_part_tag),
]

_CONTENT_ADAPTER: TypeAdapter[str | list[ContentPart] | None] = TypeAdapter(
    str | list[ContentPart] | None
)


def decode_message_content(raw: Any) -> str:
    """Flatten a chat message ``content`` into text.

    A string is returned as-is; a list of parts yields its ``text`` parts
    joined by newlines (other part types are ignored).
    """

    try:
        content = _CONTENT_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise MalformedResponseError("unrecognized message content shape") from e
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(p.text for p in content if isinstance(p, TextPart))


# ---------------------------------------------------------------------------
# Response payload
# ---------------------------------------------------------------------------

_HHMM = re.compile(r"^\s*(\d{1,2})[:：](\d{2})")


class EventPayload(BaseModel):
    """The ``event`` object returned by the model."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = ""
    description: str | None = None
    date: str | None = None
    time: str | None = None
    amount: float | None = None
    category: str | None = None
    is_expense: bool | None = Field(default=None, alias="isExpense")
    share_group_size: int | None = Field(default=None, alias="shareGroupSize")
    split_method: str | None = Field(default=None, alias="splitMethod")

    def _occurs_at(self, reference: datetime) -> datetime:
        parsed: datetime | None = None
        if self.date:
            try:
                parsed = datetime.fromisoformat(self.date.strip())
            except ValueError:
                parsed = None
        if parsed is None:
            parsed = reference
        elif parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)

        if self.time:
            m = _HHMM.match(self.time)
            if m and int(m.group(1)) < 24 and int(m.group(2)) < 60:
                parsed = parsed.replace(hour=int(m.group(1)), minute=int(m.group(2)), second=0, microsecond=0)
        return parsed

    def to_record(self, reference: datetime) -> Record:
        amount = self.amount if self.amount is not None and self.amount >= 0 else None
        share = max(1, self.share_group_size or 1)
        split = SplitMethod.PERSONAL if share == 1 else SplitMethod.parse(self.split_method or "personal")
        return Record(
            title=self.title,
            notes=self.description or "",
            occurs_at=self._occurs_at(reference),
            amount=amount,
            category=Category.parse(self.category),
            color=EventColor.BLUE,
            is_expense=self.is_expense if self.is_expense is not None else amount is not None,
            share_size=share,
            split_method=split,
        )


class ExtractionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    recognized_text: str | None = Field(default=None, alias="recognizedText")
    event: EventPayload | None = None


_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def _strip_fences(text: str) -> str:
    m = _FENCE.match(text)
    return m.group(1) if m else text


def interpret_response(content: str, *, recognized_default: str, reference: datetime) -> RecognitionResult:
    """Turn the model's text output into a reconciled result."""

    try:
        payload: ExtractionResponse | None = ExtractionResponse.model_validate_json(_strip_fences(content))
    except ValidationError:
        logger.warning("ai_extract:malformed_json chars=%d; using local parse", len(content))
        payload = None

    if payload is not None:
        recognized = payload.recognized_text or recognized_default
        if payload.event is not None:
            candidate = payload.event.to_record(reference)
            fallback = parse_text(recognized, reference=reference)
            merged = normalize_record(reconcile_records(candidate, fallback))
            return RecognitionResult(recognized, merged)
        source = recognized
    else:
        source = content

    local = clean_recognized_text(source) or source
    return RecognitionResult(local, parse_text(local, reference=reference))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AIRecognizer:
    """Chat-completions backed recognizer for text and images.

    Parameters
    ----------
    settings:
        Endpoint settings; defaults to :func:`chatledger.config.ai_settings`.
    client:
        Pre-built ``openai.OpenAI``-compatible client (tests inject a stub).
        Created lazily from ``settings`` when omitted.
    """

    def __init__(self, settings: AISettings | None = None, *, client: Any | None = None) -> None:
        self._settings = settings or ai_settings()
        self._client = client

    @property
    def settings(self) -> AISettings:
        return self._settings

    def _get_client(self) -> Any:
        if self._client is None and not self._settings.configured:
            raise MissingConfigError("AI extraction requires an API key (CHATLEDGER_AI_API_KEY)")
        if self._client is None:
            self._client = OpenAI(base_url=self._settings.base_url, api_key=self._settings.api_key)
        return self._client

    def _call(self, client: Any, model: str, messages: list[dict[str, Any]]) -> str:
        try:
            resp = client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=MAX_TOKENS,
                extra_body={"reasoning": {"enabled": True}},
            )
        except APIStatusError as e:
            raise ServerError(e.status_code, _error_body(e)) from e
        except APIConnectionError as e:
            raise NetworkError(str(e)) from e
        except APIError as e:
            raise MalformedResponseError(f"unusable API response: {e}") from e

        choices = getattr(resp, "choices", None) or []
        if not choices:
            raise MalformedResponseError("response has no choices")
        message = getattr(choices[0], "message", None)
        return decode_message_content(getattr(message, "content", None))

    def _complete(self, messages: list[dict[str, Any]]) -> str:
        client = self._get_client()
        primary = self._settings.model
        try:
            return self._call(client, primary, messages)
        except ServerError as e:
            fallback = self._settings.fallback_model
            if not (e.is_client_error and fallback and fallback != primary):
                raise
            logger.warning(
                "ai_extract:fallback_retry status=%d model=%s fallback=%s", e.status, primary, fallback
            )
            return self._call(client, fallback, messages)

    def recognize_text(self, text: str, *, reference: datetime) -> RecognitionResult:
        self._get_client()
        cleaned = text.strip()
        if not cleaned:
            raise MalformedResponseError("no text to recognize")
        content = self._complete(prompting.build_text_messages(cleaned))
        result = interpret_response(content, recognized_default=cleaned, reference=reference)
        logger.info("ai_extract:text_done has_record=%s", result.record is not None)
        return result

    def recognize_image(
        self,
        image_bytes: bytes,
        *,
        reference: datetime,
        mime_type: str = "image/jpeg",
    ) -> RecognitionResult:
        self._get_client()
        if not image_bytes:
            raise EncodingError("image payload is empty")
        content = self._complete(prompting.build_image_messages(image_bytes, mime_type=mime_type))
        result = interpret_response(content, recognized_default="", reference=reference)
        logger.info("ai_extract:image_done has_record=%s", result.record is not None)
        return result


def _error_body(exc: APIStatusError) -> str | None:
    body = getattr(exc, "body", None)
    if body is None:
        try:
            return exc.response.text
        except Exception:  # noqa: BLE001 - body is best-effort context only
            return None
    return body if isinstance(body, str) else json.dumps(body, ensure_ascii=False)
