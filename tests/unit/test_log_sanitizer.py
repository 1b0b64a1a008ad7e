"""Unit tests for log sanitization.

Webhook URLs carry their credentials in the path, so anything logged
about a failed notification must be scrubbed first.
"""

import requests

from costwatch.log_sanitizer import LogSanitizer


class TestSanitize:
    """Test secret redaction in free text."""

    def test_redacts_slack_webhook_path(self):
        message = "POST https://hooks.slack.com/services/T000/B000/XXXX failed"

        assert LogSanitizer.sanitize(message) == (
            "POST https://hooks.slack.com/services/[REDACTED] failed"
        )

    def test_redacts_discord_and_teams_webhooks(self):
        result = LogSanitizer.sanitize(
            "https://discord.com/api/webhooks/123/abc and "
            "https://acme.webhook.office.com/webhookb2/xyz"
        )

        assert "abc" not in result
        assert "xyz" not in result
        assert result.count("[REDACTED]") == 2

    def test_redacts_query_string_tokens(self):
        result = LogSanitizer.sanitize("https://example.com/hook?token=s3cret&x=1")

        assert result == "https://example.com/hook?token=[REDACTED]&x=1"

    def test_redacts_bearer_and_passwords(self):
        result = LogSanitizer.sanitize("Authorization: Bearer abc.def password=hunter2")

        assert "abc.def" not in result
        assert "hunter2" not in result

    def test_leaves_plain_text_alone(self):
        assert LogSanitizer.sanitize("Cost of $150.00 exceeded") == "Cost of $150.00 exceeded"

    def test_accepts_non_strings(self):
        assert LogSanitizer.sanitize(42) == "42"


class TestSanitizeException:
    """Test exception message sanitization."""

    def test_sanitizes_request_errors(self):
        error = requests.HTTPError("https://hooks.slack.com/services/T1/B2/tok returned 500")

        assert "tok" not in LogSanitizer.sanitize_exception(error)

    def test_empty_message_falls_back_to_class_name(self):
        assert LogSanitizer.sanitize_exception(TimeoutError()) == "TimeoutError"


class TestSanitizeConfig:
    """Test channel config redaction."""

    def test_redacts_sensitive_keys_recursively(self):
        config = {
            "webhook_url": "https://hooks.slack.com/services/x",
            "channel": "#costs",
            "smtp": {"password": "pw", "host": "smtp.example.com"},
            "smtp_port": 587,
        }

        result = LogSanitizer.sanitize_config(config)

        assert result == {
            "webhook_url": "[REDACTED]",
            "channel": "#costs",
            "smtp": {"password": "[REDACTED]", "host": "smtp.example.com"},
            "smtp_port": 587,
        }
        assert config["webhook_url"].startswith("https://")
