"""Error helpers for calls against the remote AMS backend.

The backend reports failures in several shapes (``{"message": ...}``,
ASP.NET problem details with ``title``/``detail``, or plain text). Callers
turn any of these into a single user-facing message.
"""

from __future__ import annotations

import json
from typing import Any

import httpx


class SubmissionError(ValueError):
    """A plan submission was rejected before any backend write.

    Attributes:
        step: Wizard step (1-5) the user should be sent back to.
    """

    def __init__(self, message: str, step: int = 1) -> None:
        super().__init__(message)
        self.step = step


def _message_from_body(body: Any) -> str | None:
    if isinstance(body, dict):
        for key in ("message", "detail", "title", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def extract_error_message(exc: BaseException, fallback: str = "Request failed") -> str:
    """Best-effort message extraction from a failed backend call.

    Order: response JSON message, the exception text, then ``fallback``.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body: Any = exc.response.json()
        except (json.JSONDecodeError, ValueError):
            body = exc.response.text
        message = _message_from_body(body)
        if message:
            return message
    text = str(exc).strip()
    return text or fallback
