"""Classification of controller error responses."""

from __future__ import annotations

from enum import StrEnum
from http import HTTPStatus

import msgspec

SERVICE_UNAVAILABLE = HTTPStatus.SERVICE_UNAVAILABLE.value


class ErrorAction(StrEnum):
    SURFACE = "surface"  # Show to the user, no state change
    RETRY = "retry"  # Reset session and poll printer.info
    UNCLASSIFIED = "unclassified"  # Logged only


class ErrorClassification(msgspec.Struct, frozen=True):
    action: ErrorAction
    code: int
    text: str


def extract_error_message(message: str) -> str:
    """Return the inner ``message`` of a JSON-ish error string, else *message*.

    Moonraker reprs Python dicts into error strings, so single quotes are
    normalised before decoding.
    """
    try:
        decoded = msgspec.json.decode(message.replace("'", '"'))
    except msgspec.DecodeError:
        return message
    if isinstance(decoded, dict):
        inner = decoded.get("message")
        if isinstance(inner, str):
            return inner
    return message


def classify_error(code: int, message: str) -> ErrorClassification:
    if 400 <= code < 500:
        return ErrorClassification(ErrorAction.SURFACE, code, extract_error_message(message))
    if code == SERVICE_UNAVAILABLE:
        return ErrorClassification(ErrorAction.RETRY, code, message)
    return ErrorClassification(ErrorAction.UNCLASSIFIED, code, message)


__all__ = [
    "ErrorAction",
    "ErrorClassification",
    "SERVICE_UNAVAILABLE",
    "classify_error",
    "extract_error_message",
]
