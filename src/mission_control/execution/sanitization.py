"""Redaction and size clamping for payloads persisted in execution logs."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

MAX_PAYLOAD_CHARS = 1_000
TRUNCATION_MARKER = "...(truncated)"

STRIPPED_FIELDS = frozenset({"apiKey", "api_key", "password", "token", "secret"})

_Replacement = str | Callable[[re.Match[str]], str]

_REPLACEMENTS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    (
        re.compile(r"(?i)api[_-]?key[\"\s:=]+([a-zA-Z0-9_-]{20,})"),
        "api_key=***",
    ),
    (
        re.compile(r"(?i)password[\"\s:=]+([^\s\"']+)"),
        "password=***",
    ),
    (
        re.compile(r"(?i)token[\"\s:=]+([a-zA-Z0-9_-]{20,})"),
        "token=***",
    ),
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 ***",
    ),
    (
        re.compile(r"(?i)\b(sk-[a-z0-9\-]{8,})\b"),
        "sk-***",
    ),
)


def redact_text(text: str) -> str:
    """Replace obvious key/password/token values with ``***``."""

    redacted = text
    for pattern, replacement in _REPLACEMENTS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


def truncate_text(text: str, *, max_chars: int = MAX_PAYLOAD_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def sanitize_text(text: str, *, max_chars: int = MAX_PAYLOAD_CHARS) -> str:
    """Redact then clamp a single string."""

    return truncate_text(redact_text(text), max_chars=max_chars)


def sanitize_payload(value: Any, *, max_chars: int = MAX_PAYLOAD_CHARS) -> Any:
    """Sanitize an arbitrary JSON-like payload before it is stored.

    Strings are redacted and truncated, mapping keys in ``STRIPPED_FIELDS`` are
    dropped at every depth, and anything that is not a JSON scalar or container
    is stringified first.
    """

    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        return sanitize_text(value, max_chars=max_chars)
    if isinstance(value, dict):
        return {
            str(key): sanitize_payload(item, max_chars=max_chars)
            for key, item in value.items()
            if str(key) not in STRIPPED_FIELDS
        }
    if isinstance(value, list | tuple | set | frozenset):
        return [sanitize_payload(item, max_chars=max_chars) for item in value]
    return sanitize_text(str(value), max_chars=max_chars)
