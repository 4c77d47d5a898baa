"""Prompt construction for AI-assisted record extraction.

This module builds:
- The system prompt describing the strict JSON shape the model must return
  (``{"recognizedText": ..., "event": {...}}``).
- The user message for text input, and the multi-part user message (text plus
  a base64 ``data:`` URL) for image input.

Prompts are in Traditional Chinese to match the chat logs being parsed.
"""

from __future__ import annotations

import base64
from typing import Any

from .models import Category

_EVENT_SCHEMA = """{{
  "recognizedText": "與事件相關的簡短文字（不要包含狀態列時間或已讀）",
  "event": {{
    "title": "...",
    "description": "...",
    "date": "ISO8601",
    "time": "HH:mm 可選",
    "amount": 2000,
    "category": "{categories}",
    "isExpense": true,
    "shareGroupSize": 1,
    "splitMethod": "personal"
  }}
}}"""


def _category_choices() -> str:
    return "|".join(c.label for c in Category)


def build_system_prompt(*, for_image: bool = False) -> str:
    """Return the system prompt for text (default) or image extraction."""

    source = "聊天截圖或照片" if for_image else "給定的文字"
    schema = _EVENT_SCHEMA.format(categories=_category_choices())
    return (
        f"你是一個行程與記帳解析助手。請從{source}中擷取單一事件資訊，"
        "並回傳純 JSON（不要有多餘文字）：\n"
        f"{schema}\n"
        "title 不要包含日期或時間；優先使用內容中的日期（如 11/30），若無則用今天。"
        "無法確定的欄位設為 null 或省略，請確保輸出可被 JSON 解碼。"
    )


def build_text_messages(cleaned_text: str) -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": build_system_prompt()},
        {
            "role": "user",
            "content": "以下為辨識文字，請解析為行程 JSON，避免使用狀態列時間:\n" + cleaned_text,
        },
    ]


def image_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def build_image_messages(image_bytes: bytes, *, mime_type: str = "image/jpeg") -> list[dict[str, Any]]:
    """Build chat messages carrying the image as an inline ``image_url`` part."""

    return [
        {"role": "system", "content": build_system_prompt(for_image=True)},
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": "請解析這張圖片中的行程/消費資訊，並輸出上述 JSON 結構。避免使用狀態列時間。",
                },
                {"type": "image_url", "image_url": {"url": image_data_url(image_bytes, mime_type)}},
            ],
        },
    ]
