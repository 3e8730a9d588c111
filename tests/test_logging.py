"""Tests for log redaction."""

from social_publisher.logging import REDACTED, redact_secrets


def test_secret_values_are_redacted():
    event = redact_secrets(
        None,
        "info",
        {"event": "token_refreshed", "access_token": "ya29.x", "Client_Secret": "s", "user_id": "u"},
    )

    assert event["access_token"] == REDACTED
    assert event["Client_Secret"] == REDACTED
    assert event["user_id"] == "u"


def test_empty_values_are_left_alone():
    event = redact_secrets(None, "info", {"event": "x", "refresh_token": None})

    assert event["refresh_token"] is None
