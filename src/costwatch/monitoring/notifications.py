"""Notification dispatch to pluggable channels.

Philosophy:
- Single responsibility: Route alerts to matching channels and send them
- Isolated failures: one broken channel never blocks the others
- Bounded waits: every send runs on a worker with a timeout
- Security-first: secrets from config/env only, sanitized in logs

Public API (the "studs"):
    Sender: Channel sender interface (``send(alert, config)``)
    NotificationDispatcher: Channel filtering, fan-out and error reporting
    channel_matches: Severity/provider/service routing rule
"""

import contextlib
import logging
import os
import smtplib
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from email.mime.text import MIMEText
from typing import Any

import requests

from costwatch.log_sanitizer import LogSanitizer
from costwatch.monitoring.events import EventBus, NotificationError
from costwatch.monitoring.models import (
    AlertSeverity,
    ChannelType,
    CostAlert,
    CostMonitorError,
    MonitoringConfigError,
    NotificationChannel,
    severity_rank,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10

SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "#ff0000",
    AlertSeverity.HIGH: "#ff6600",
    AlertSeverity.MEDIUM: "#ffcc00",
    AlertSeverity.LOW: "#0099ff",
}


class NotificationDeliveryError(CostMonitorError):
    """Raised when a channel fails to deliver an alert."""

    pass


def channel_matches(channel: NotificationChannel, alert: CostAlert) -> bool:
    """Check whether a channel should receive an alert.

    A channel matches when it is enabled, the alert is at least as severe
    as the channel minimum, and the provider/service filters (when set)
    include the alert. Alerts without a service pass the service filter.
    """
    filters = channel.filters
    return (
        channel.enabled
        and severity_rank(alert.severity) >= severity_rank(filters.min_severity)
        and (filters.providers is None or alert.provider in filters.providers)
        and (filters.services is None or alert.service is None or alert.service in filters.services)
    )


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str] | None = None) -> None:
    response = requests.post(url, json=payload, headers=headers or {}, timeout=HTTP_TIMEOUT)
    if not 200 <= response.status_code < 300:
        raise requests.HTTPError(f"{url} returned {response.status_code}", response=response)


class Sender(ABC):
    """Sends one alert through one channel type."""

    @abstractmethod
    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        """Deliver an alert.

        Returns:
            True when delivered. Returning False or raising is a failure.
        """


class SlackSender(Sender):
    """Slack incoming webhook."""

    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        webhook_url = config.get("webhook_url")
        if not webhook_url:
            raise NotificationDeliveryError("Slack webhook URL not configured")

        payload: dict[str, Any] = {
            "text": f"Cost Alert: {alert.threshold_name}",
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(alert.severity, "#808080"),
                    "title": alert.message,
                    "fields": [
                        {"title": "Provider", "value": alert.provider.upper(), "short": True},
                        {"title": "Service", "value": alert.service or "All", "short": True},
                        {"title": "Current Value", "value": f"{alert.current_value:.2f}", "short": True},
                        {"title": "Threshold", "value": f"{alert.threshold_value:.2f}", "short": True},
                        {"title": "Severity", "value": alert.severity.value, "short": True},
                        {"title": "Time", "value": alert.timestamp.isoformat(), "short": True},
                    ],
                    "footer": "costwatch",
                    "ts": int(alert.timestamp.timestamp()),
                }
            ],
        }
        if config.get("channel"):
            payload["channel"] = config["channel"]

        _post_json(webhook_url, payload)
        return True


class WebhookSender(Sender):
    """Generic JSON webhook, optionally with a bearer token."""

    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        url = config.get("url")
        if not url:
            raise NotificationDeliveryError("Webhook URL not configured")

        headers = {}
        token = config.get("token") or os.environ.get("COSTWATCH_WEBHOOK_TOKEN", "")
        if token:
            headers["Authorization"] = f"Bearer {token}"

        payload = {
            "alert_id": alert.id,
            "timestamp": alert.timestamp.isoformat(),
            "severity": alert.severity.value,
            "provider": alert.provider,
            "service": alert.service,
            "message": alert.message,
            "current_value": alert.current_value,
            "threshold_value": alert.threshold_value,
            "details": alert.details,
        }
        _post_json(url, payload, headers)
        return True


class TeamsSender(Sender):
    """Microsoft Teams incoming webhook (MessageCard)."""

    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        webhook_url = config.get("webhook_url")
        if not webhook_url:
            raise NotificationDeliveryError("Teams webhook URL not configured")

        payload = {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "themeColor": SEVERITY_COLORS.get(alert.severity, "#808080").lstrip("#"),
            "summary": f"Cost Alert: {alert.threshold_name}",
            "sections": [
                {
                    "activityTitle": alert.message,
                    "facts": [
                        {"name": "Provider", "value": alert.provider.upper()},
                        {"name": "Service", "value": alert.service or "All"},
                        {"name": "Current Value", "value": f"{alert.current_value:.2f}"},
                        {"name": "Threshold", "value": f"{alert.threshold_value:.2f}"},
                        {"name": "Severity", "value": alert.severity.value},
                    ],
                }
            ],
        }
        _post_json(webhook_url, payload)
        return True


class DiscordSender(Sender):
    """Discord webhook with a single embed."""

    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        webhook_url = config.get("webhook_url")
        if not webhook_url:
            raise NotificationDeliveryError("Discord webhook URL not configured")

        color = SEVERITY_COLORS.get(alert.severity, "#808080").lstrip("#")
        payload = {
            "content": f"Cost Alert: {alert.threshold_name}",
            "embeds": [
                {
                    "title": alert.message,
                    "color": int(color, 16),
                    "timestamp": alert.timestamp.isoformat(),
                    "fields": [
                        {"name": "Provider", "value": alert.provider.upper(), "inline": True},
                        {"name": "Service", "value": alert.service or "All", "inline": True},
                        {"name": "Severity", "value": alert.severity.value, "inline": True},
                    ],
                }
            ],
        }
        _post_json(webhook_url, payload)
        return True


class EmailSender(Sender):
    """SMTP email with STARTTLS.

    The SMTP password is read from ``COSTWATCH_SMTP_PASSWORD``, never from
    the channel config.
    """

    def send(self, alert: CostAlert, config: dict[str, Any]) -> bool:
        recipients = config.get("to")
        if isinstance(recipients, str):
            recipients = [recipients]
        sender = config.get("from")
        if not recipients or not sender:
            raise NotificationDeliveryError("Email requires 'to' and 'from' addresses")

        body = "\n".join(
            [
                alert.message,
                "",
                f"Provider: {alert.provider}",
                f"Service: {alert.service or 'All'}",
                f"Current value: {alert.current_value:.2f}",
                f"Threshold: {alert.threshold_value:.2f}",
                f"Time: {alert.timestamp.isoformat()}",
                f"Alert ID: {alert.id}",
            ]
        )
        msg = MIMEText(body)
        msg["Subject"] = f"[{alert.severity.value}] Cost Alert: {alert.threshold_name}"
        msg["From"] = sender
        msg["To"] = ", ".join(recipients)

        smtp_password = os.environ.get("COSTWATCH_SMTP_PASSWORD", "")
        smtp = smtplib.SMTP(
            config.get("smtp_host", "localhost"),
            int(config.get("smtp_port", 587)),
            timeout=HTTP_TIMEOUT,
        )
        try:
            if config.get("use_tls", True):
                smtp.starttls()
            if smtp_password:
                smtp.login(config.get("smtp_user", sender), smtp_password)
            smtp.send_message(msg)
            return True
        finally:
            with contextlib.suppress(Exception):
                smtp.quit()


def default_senders() -> dict[ChannelType, Sender]:
    """Built-in senders. SMS has none and is skipped with a warning."""
    return {
        ChannelType.SLACK: SlackSender(),
        ChannelType.WEBHOOK: WebhookSender(),
        ChannelType.TEAMS: TeamsSender(),
        ChannelType.DISCORD: DiscordSender(),
        ChannelType.EMAIL: EmailSender(),
    }


class NotificationDispatcher:
    """Routes alerts to matching channels.

    Each matching channel is sent to on its own worker thread. A send that
    raises, reports failure or outlives ``timeout`` is published as a
    NotificationError event; the other channels are unaffected.
    """

    def __init__(
        self,
        channels: Sequence[NotificationChannel],
        events: EventBus,
        senders: dict[ChannelType, Sender] | None = None,
        timeout: float = 30,
        max_workers: int = 10,
        max_retries: int = 1,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize dispatcher.

        Args:
            channels: Configured notification channels
            events: Bus for NotificationError events
            senders: Sender per channel type (defaults to built-ins)
            timeout: Per-send timeout in seconds
            max_workers: Max parallel sends
            max_retries: Attempts per channel (1 = no retry)
            retry_delay: Initial retry delay in seconds, doubled per attempt
        """
        self.events = events
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._senders = dict(senders) if senders is not None else default_senders()
        self._channels: dict[str, NotificationChannel] = {}
        self._lock = threading.Lock()
        for channel in channels:
            self.add_channel(channel)

    def register(self, channel_type: ChannelType, sender: Sender) -> None:
        """Install or replace the sender for a channel type."""
        with self._lock:
            self._senders[channel_type] = sender

    def add_channel(self, channel: NotificationChannel) -> None:
        """Add a channel.

        Raises:
            MonitoringConfigError: If the channel id is already configured
        """
        with self._lock:
            if channel.id in self._channels:
                raise MonitoringConfigError(f"Notification channel already exists: {channel.id}")
            self._channels[channel.id] = channel

    def remove_channel(self, channel_id: str) -> NotificationChannel | None:
        with self._lock:
            return self._channels.pop(channel_id, None)

    def channels(self) -> list[NotificationChannel]:
        with self._lock:
            return list(self._channels.values())

    def matching_channels(self, alert: CostAlert) -> list[NotificationChannel]:
        return [c for c in self.channels() if channel_matches(c, alert)]

    def _send_with_retry(self, sender: Sender, alert: CostAlert, channel: NotificationChannel) -> None:
        delay = self.retry_delay
        for attempt in range(self.max_retries):
            try:
                if not sender.send(alert, channel.config):
                    raise NotificationDeliveryError(
                        f"{channel.type.value} sender reported failure for channel {channel.id}"
                    )
                return
            except Exception:
                if attempt >= self.max_retries - 1:
                    raise
                time.sleep(delay)
                delay *= 2  # Exponential backoff

    def dispatch(self, alert: CostAlert) -> int:
        """Send an alert to every matching channel.

        Returns:
            Number of channels that accepted the alert
        """
        with self._lock:
            senders = dict(self._senders)

        pending: list[tuple[NotificationChannel, Sender]] = []
        for channel in self.matching_channels(alert):
            sender = senders.get(channel.type)
            if sender is None:
                logger.warning(
                    f"Notification type {channel.type.value} not implemented, "
                    f"skipping channel {channel.id}"
                )
                continue
            pending.append((channel, sender))

        if not pending:
            return 0

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(pending)),
            thread_name_prefix="costwatch-notify",
        )
        try:
            futures = [
                (channel, executor.submit(self._send_with_retry, sender, alert, channel))
                for channel, sender in pending
            ]
            done, _ = wait([future for _, future in futures], timeout=self.timeout)

            sent = 0
            for channel, future in futures:
                if future not in done:
                    future.cancel()
                    self._record_failure(
                        channel, alert, NotificationDeliveryError(f"Timed out after {self.timeout}s")
                    )
                    continue
                try:
                    future.result()
                except Exception as e:
                    self._record_failure(channel, alert, e)
                else:
                    sent += 1
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.debug(f"Alert {alert.id} delivered to {sent}/{len(pending)} channels")
        return sent

    def _record_failure(
        self, channel: NotificationChannel, alert: CostAlert, error: Exception
    ) -> None:
        logger.warning(
            f"Failed to send alert {alert.id} via {channel.type.value} ({channel.id}): "
            f"{LogSanitizer.sanitize_exception(error)}"
        )
        self.events.publish(NotificationError(channel=channel, alert=alert, error=error))


__all__ = [
    "DiscordSender",
    "EmailSender",
    "NotificationDeliveryError",
    "NotificationDispatcher",
    "Sender",
    "SlackSender",
    "TeamsSender",
    "WebhookSender",
    "channel_matches",
    "default_senders",
]
