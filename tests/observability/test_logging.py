"""Tests for log event processors."""

from linksense.observability.logging import (
    REDACTED,
    add_correlation_id,
    clear_correlation_id,
    redact_secrets,
    set_correlation_id,
)


class TestRedactSecrets:
    """Tests for the redaction processor."""

    def test_should_redact_sensitive_keys(self) -> None:
        """Tokens, codes and state values are replaced; flow state names are kept."""
        event = redact_secrets(
            None,
            "info",
            {
                "event": "oauth_state_transition",
                "provider": "slack",
                "authorization_code": "abc",
                "access_token": "xoxb-1",
                "oauth_state": "gAAAA...",
                "state": "token_exchanged",
            },
        )

        assert event["provider"] == "slack"
        assert event["authorization_code"] == REDACTED
        assert event["access_token"] == REDACTED
        assert event["oauth_state"] == REDACTED
        assert event["state"] == "token_exchanged"

    def test_should_redact_nested_dicts(self) -> None:
        """Token response bodies logged as a dict are scrubbed too."""
        event = redact_secrets(
            None, "info", {"body": {"refresh_token": "r", "expires_in": 3600}}
        )

        assert event["body"] == {"refresh_token": REDACTED, "expires_in": 3600}

    def test_should_keep_absent_values(self) -> None:
        """None is left as-is so missing values stay visible."""
        assert redact_secrets(None, "info", {"refresh_token": None})["refresh_token"] is None


class TestCorrelationId:
    """Tests for correlation ID injection."""

    def test_should_attach_and_clear_correlation_id(self) -> None:
        """Bound IDs are added to events until cleared."""
        set_correlation_id("req-1")
        try:
            assert add_correlation_id(None, "info", {})["correlation_id"] == "req-1"
        finally:
            clear_correlation_id()

        assert "correlation_id" not in add_correlation_id(None, "info", {})
