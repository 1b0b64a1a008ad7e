"""Log sanitization for notification secrets.

Webhook URLs embed their credentials in the path (Slack, Teams and Discord
hooks all work this way), so a raw exception from ``requests`` can leak a
usable token into logs. Everything logged about providers and channels
goes through here first.

Design Philosophy:
- Security first: err on side of over-redaction
- Pattern-based: not brittle keyword matching
"""

import re
from re import Pattern
from typing import Any


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns should come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        # https://hooks.slack.com/services/T000/B000/XXXX
        "slack_webhook": re.compile(r"(https://hooks\.slack\.com/services/)([^\s\"'<>]+)"),
        # https://discord.com/api/webhooks/<id>/<token>
        "discord_webhook": re.compile(
            r"(https://(?:\w+\.)?discord(?:app)?\.com/api/webhooks/)([^\s\"'<>]+)"
        ),
        # https://<tenant>.webhook.office.com/webhookb2/...
        "teams_webhook": re.compile(r"(https://[\w.-]*webhook\.office\.com/)([^\s\"'<>]+)"),
        # Query string credentials on any URL
        "url_query_secret": re.compile(
            r"([?&](?:token|key|api_key|apikey|sig|signature|secret)=)([^&\s\"'<>]+)",
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "token_assignment": re.compile(
            r'((?:^|[^a-zA-Z])token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE
        ),
    }

    SENSITIVE_CONFIG_KEYS = {
        "password",
        "token",
        "secret",
        "api_key",
        "authorization",
        "webhook_url",
        "url",
    }

    @classmethod
    def sanitize(cls, message: Any) -> str:
        """Sanitize message by redacting sensitive patterns.

        Examples:
            >>> LogSanitizer.sanitize("POST https://hooks.slack.com/services/T1/B2/abc failed")
            'POST https://hooks.slack.com/services/[REDACTED] failed'
        """
        result = message if isinstance(message, str) else str(message)
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def sanitize_exception(cls, exc: BaseException) -> str:
        """Sanitized ``str(exc)``, falling back to the exception class name."""
        message = str(exc) or type(exc).__name__
        return cls.sanitize(message)

    @classmethod
    def sanitize_config(cls, config: dict[str, Any]) -> dict[str, Any]:
        """Copy of a channel config with secret-bearing values redacted."""
        result: dict[str, Any] = {}
        for key, value in config.items():
            if key.lower() in cls.SENSITIVE_CONFIG_KEYS:
                result[key] = cls.REDACTED
            elif isinstance(value, dict):
                result[key] = cls.sanitize_config(value)
            elif isinstance(value, str):
                result[key] = cls.sanitize(value)
            else:
                result[key] = value
        return result


__all__ = ["LogSanitizer"]
