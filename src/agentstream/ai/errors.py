"""Errors raised by the model capability."""

from __future__ import annotations

import re
from typing import Mapping

__all__ = ["ModelInvocationError", "parse_error_message"]

_EMBEDDED_MESSAGE_RE = re.compile(r'"message"\s*:\s*"((?:[^"\\]|\\.)+)"')


class ModelInvocationError(RuntimeError):
    """Raised when the model provider fails to produce a turn."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


def parse_error_message(error: BaseException) -> str:
    """Return a human readable message for a provider failure.

    Provider errors often embed a JSON body in their message; when one is
    present its inner ``message`` field is used instead.
    """

    body = getattr(error, "body", None)
    if isinstance(body, Mapping):
        inner = body.get("error")
        if isinstance(inner, Mapping) and inner.get("message"):
            return str(inner["message"])
        if body.get("message"):
            return str(body["message"])
    message = getattr(error, "message", None) or str(error) or type(error).__name__
    match = _EMBEDDED_MESSAGE_RE.search(message)
    if match:
        return match.group(1).replace('\\"', '"')
    return message
