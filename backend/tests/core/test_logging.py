"""Tests for log redaction."""

import logging

from superadmin.core.logging import redact_sensitive_data, redact_string


def test_sensitive_keys_are_redacted():
    event = {
        "event": "login",
        "password": "hunter2",
        "totpCode": "123456",
        "session_token": "gAAAAAB...",
        "Authorization": "Bearer abc",
        "ip": "10.0.0.1",
    }

    redacted = redact_sensitive_data(logging.getLogger("test"), "info", event)

    assert redacted["password"] == "***REDACTED***"
    assert redacted["totpCode"] == "***REDACTED***"
    assert redacted["session_token"] == "***REDACTED***"
    assert redacted["Authorization"] == "***REDACTED***"
    assert redacted["ip"] == "10.0.0.1"
    assert redacted["event"] == "login"
    # Original is untouched
    assert event["password"] == "hunter2"


def test_emails_are_masked():
    assert redact_string("trader@example.com") == "t***@example.com"


def test_long_opaque_values_are_shortened():
    token = "gAAAAAB" + "x" * 80
    assert redact_string(token) == f"{token[:8]}...{token[-4:]}"
    assert redact_string("short value") == "short value"
