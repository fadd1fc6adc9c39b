from __future__ import annotations

import allure

from mission_control.execution.sanitization import (
    TRUNCATION_MARKER,
    redact_text,
    sanitize_payload,
    sanitize_text,
    truncate_text,
)

pytestmark = [
    allure.epic("Execution Control"),
    allure.feature("Step Log Sanitization"),
]


def test_redact_text_masks_api_key_password_and_token_values() -> None:
    text = (
        "api_key=abcdefghijklmnopqrstuvwxyz password: hunter2 "
        "token=ZYXWVUTSRQPONMLKJIHGFEDCBA"
    )

    redacted = redact_text(text)

    assert "abcdefghijklmnopqrstuvwxyz" not in redacted
    assert "hunter2" not in redacted
    assert "ZYXWVUTSRQPONMLKJIHGFEDCBA" not in redacted
    assert "api_key=***" in redacted
    assert "password=***" in redacted
    assert "token=***" in redacted


def test_redact_text_masks_bearer_and_sk_tokens() -> None:
    redacted = redact_text("Authorization: Bearer abc.def-ghi123 and sk-live12345678")

    assert "abc.def-ghi123" not in redacted
    assert "Bearer ***" in redacted
    assert "sk-***" in redacted


def test_redact_text_keeps_short_token_like_words() -> None:
    assert redact_text("token: short") == "token: short"


def test_truncate_text_appends_marker_only_when_over_limit() -> None:
    assert truncate_text("x" * 10, max_chars=10) == "x" * 10
    assert truncate_text("x" * 11, max_chars=10) == "x" * 10 + TRUNCATION_MARKER


def test_sanitize_text_redacts_before_truncating() -> None:
    text = "password=supersecretvalue " + "y" * 50

    result = sanitize_text(text, max_chars=20)

    assert "supersecret" not in result
    assert result.endswith(TRUNCATION_MARKER)


def test_sanitize_payload_drops_sensitive_keys_at_every_depth() -> None:
    payload = {
        "tool_name": "search",
        "apiKey": "k",
        "input": {"query": "launch", "password": "p", "nested": [{"token": "t", "ok": 1}]},
    }

    result = sanitize_payload(payload)

    assert result == {
        "tool_name": "search",
        "input": {"query": "launch", "nested": [{"ok": 1}]},
    }


def test_sanitize_payload_stringifies_unknown_values_and_keeps_scalars() -> None:
    class Opaque:
        def __str__(self) -> str:
            return "opaque-value"

    result = sanitize_payload({"obj": Opaque(), "flag": True, "n": 3, "none": None, "t": (1, 2)})

    assert result == {"obj": "opaque-value", "flag": True, "n": 3, "none": None, "t": [1, 2]}


def test_sanitize_payload_truncates_long_strings() -> None:
    result = sanitize_payload({"output": "z" * 1_500})

    assert len(result["output"]) == 1_000 + len(TRUNCATION_MARKER)
    assert result["output"].endswith(TRUNCATION_MARKER)
