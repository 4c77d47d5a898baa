"""Test helpers to stub the OpenAI chat completions client used by ai_client.py.

Each scripted reply is either a message ``content`` value (a string or a list
of content parts) or an exception instance to raise. Calls are recorded so
tests can assert on the model, messages and extra parameters sent.
"""

from __future__ import annotations

from collections.abc import Sequence
from types import SimpleNamespace
from typing import Any

import httpx
import openai


def api_status_error(status: int, body: str = "") -> openai.APIStatusError:
    """Build the SDK's status error for ``status`` with a real httpx response."""

    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    response = httpx.Response(status, request=request, text=body)
    return openai.APIStatusError(f"HTTP {status}", response=response, body=body or None)


def api_connection_error() -> openai.APIConnectionError:
    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    return openai.APIConnectionError(request=request)


def api_response_validation_error() -> openai.APIResponseValidationError:
    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    response = httpx.Response(200, request=request, text="not json")
    return openai.APIResponseValidationError(response=response, body="not json")


class OpenAIStub:
    """Minimal stub matching the ``openai.OpenAI`` shape ``ai_client`` uses.

    Parameters
    ----------
    replies:
        Consumed in order, one per ``chat.completions.create`` call.
    """

    def __init__(self, replies: Sequence[Any]) -> None:
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

        class _Completions:
            def __init__(self, outer: OpenAIStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> Any:
                self._outer.calls.append(kwargs)
                if not self._outer._replies:
                    raise AssertionError("OpenAIStub: no scripted reply left")
                reply = self._outer._replies.pop(0)
                if isinstance(reply, BaseException):
                    raise reply
                message = SimpleNamespace(role="assistant", content=reply)
                return SimpleNamespace(choices=[SimpleNamespace(index=0, message=message)])

        self.chat = SimpleNamespace(completions=_Completions(self))

    @property
    def models_called(self) -> list[str]:
        return [c["model"] for c in self.calls]
