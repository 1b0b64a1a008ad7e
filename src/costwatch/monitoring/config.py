"""Monitoring configuration: engine config and settings files.

Two layers:
- ``MonitoringConfig`` is what the engine is built from. It holds live
  objects (providers, thresholds, channels) and is validated once, at
  construction.
- ``MonitoringSettings`` is the on-disk form (YAML or JSON) with defaults
  and environment variable fallbacks. ``validate_settings`` reports every
  problem at once; ``to_monitoring_config`` turns settings into a config.

Settings file layout::

    data_collection_interval_ms: 60000
    retention_days: 30
    alerts:
      monthly-budget:
        type: ABSOLUTE
        value: 1000
        severity: HIGH
        cooldown_period_minutes: 60
    notification_channels:
      slack-alerts:
        type: SLACK
        webhook_url: https://hooks.slack.com/services/...
        filters: {min_severity: MEDIUM}

Security:
- Settings file permissions: 0600 (owner read/write only)
- SMTP passwords and webhook tokens come from the environment
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from costwatch.monitoring.models import (
    AlertThreshold,
    MonitoringConfigError,
    NotificationChannel,
    ThresholdType,
)
from costwatch.monitoring.providers import CostProvider

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_DIR = Path.home() / ".costwatch"
DEFAULT_SETTINGS_FILE = DEFAULT_SETTINGS_DIR / "monitoring.yaml"

MIN_COLLECTION_INTERVAL_MS = 10000

# Keys of a channel entry that are not part of the channel's sender config
_CHANNEL_META_KEYS = {"type", "enabled", "filters", "config"}


@dataclass
class MonitoringConfig:
    """Validated engine configuration."""

    interval_ms: int = 60000
    providers: list[CostProvider] = field(default_factory=list)
    alert_thresholds: list[AlertThreshold] = field(default_factory=list)
    notification_channels: list[NotificationChannel] = field(default_factory=list)
    data_retention_days: int = 30
    provider_timeout: float = 30
    notification_timeout: float = 30
    max_workers: int = 10
    notification_retries: int = 1

    def __post_init__(self):
        """Validate configuration."""
        if self.interval_ms <= 0:
            raise MonitoringConfigError("interval_ms must be positive")
        if not 1 <= self.data_retention_days <= 365:
            raise MonitoringConfigError("data_retention_days must be between 1 and 365")
        if self.provider_timeout <= 0 or self.notification_timeout <= 0:
            raise MonitoringConfigError("timeouts must be positive")

        for provider in self.providers:
            if not callable(getattr(provider, "get_cost_breakdown", None)):
                raise MonitoringConfigError(
                    f"Provider {provider!r} does not implement get_cost_breakdown()"
                )

        for label, items in (
            ("threshold", self.alert_thresholds),
            ("notification channel", self.notification_channels),
        ):
            ids = [item.id for item in items]
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            if duplicates:
                raise MonitoringConfigError(f"Duplicate {label} ids: {duplicates}")


@dataclass
class AnalyticsSettings:
    """Switches for the statistical threshold types."""

    enable_anomaly_detection: bool = True
    enable_trend_analysis: bool = True
    enable_budget_forecasting: bool = True
    # Default z-score for ANOMALY alerts that do not set a value
    anomaly_sensitivity: float = 3.0


@dataclass
class LoggingSettings:
    level: str = "info"
    log_file: str | None = None
    enable_console_output: bool = True


@dataclass
class MonitoringSettings:
    """Monitoring settings as stored on disk."""

    data_collection_interval_ms: int = 60000
    retention_days: int = 30
    enable_health_checks: bool = True
    alerts: dict[str, dict[str, Any]] = field(default_factory=dict)
    notification_channels: dict[str, dict[str, Any]] = field(default_factory=dict)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # YAML has no use for null log files
        if data["logging"]["log_file"] is None:
            del data["logging"]["log_file"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitoringSettings":
        """Create from a dictionary, filling gaps with defaults."""
        defaults = cls()
        analytics = {**asdict(defaults.analytics), **(data.get("analytics") or {})}
        logging_settings = {**asdict(defaults.logging), **(data.get("logging") or {})}
        try:
            return cls(
                data_collection_interval_ms=int(
                    data.get("data_collection_interval_ms", defaults.data_collection_interval_ms)
                ),
                retention_days=int(data.get("retention_days", defaults.retention_days)),
                enable_health_checks=bool(
                    data.get("enable_health_checks", defaults.enable_health_checks)
                ),
                alerts=dict(data.get("alerts") or {}),
                notification_channels=dict(data.get("notification_channels") or {}),
                analytics=AnalyticsSettings(**analytics),
                logging=LoggingSettings(**logging_settings),
            )
        except (TypeError, ValueError) as e:
            raise MonitoringConfigError(f"Invalid monitoring settings: {e}") from e

    def build_thresholds(self) -> list[AlertThreshold]:
        """Alert thresholds described by ``alerts``.

        Threshold types switched off in ``analytics`` are built disabled.

        Raises:
            MonitoringConfigError: If an alert entry is invalid
        """
        disabled_types = set()
        if not self.analytics.enable_anomaly_detection:
            disabled_types.add(ThresholdType.ANOMALY)
        if not self.analytics.enable_trend_analysis:
            disabled_types.add(ThresholdType.TREND)
        if not self.analytics.enable_budget_forecasting:
            disabled_types.add(ThresholdType.BUDGET_FORECAST)

        thresholds = []
        for alert_id, alert in self.alerts.items():
            entry = {"id": alert_id, **alert}
            if str(entry.get("type", "")).upper() == ThresholdType.ANOMALY.value:
                entry.setdefault("value", self.analytics.anomaly_sensitivity)
            threshold = AlertThreshold.from_dict(entry)
            if threshold.type in disabled_types:
                threshold = threshold.with_updates({"enabled": False})
            thresholds.append(threshold)
        return thresholds

    def build_channels(self) -> list[NotificationChannel]:
        """Notification channels described by ``notification_channels``.

        Raises:
            MonitoringConfigError: If a channel entry is invalid
        """
        channels = []
        for channel_id, entry in self.notification_channels.items():
            config = dict(entry.get("config") or {})
            config.update({k: v for k, v in entry.items() if k not in _CHANNEL_META_KEYS})
            channels.append(
                NotificationChannel.from_dict(
                    {
                        "id": channel_id,
                        "type": entry.get("type"),
                        "enabled": entry.get("enabled", True),
                        "filters": entry.get("filters"),
                        "config": config,
                    }
                )
            )
        return channels

    def to_monitoring_config(self, providers: list[CostProvider]) -> MonitoringConfig:
        """Build the engine configuration for ``providers``.

        Raises:
            MonitoringConfigError: If the settings are invalid
        """
        return MonitoringConfig(
            interval_ms=self.data_collection_interval_ms,
            providers=list(providers),
            alert_thresholds=self.build_thresholds(),
            notification_channels=self.build_channels(),
            data_retention_days=self.retention_days,
        )


def validate_settings(settings: MonitoringSettings) -> list[str]:
    """Validate settings.

    Returns:
        List of error messages (empty when the settings are valid)
    """
    errors = []

    if settings.data_collection_interval_ms < MIN_COLLECTION_INTERVAL_MS:
        errors.append(
            f"data_collection_interval_ms must be at least 10 seconds "
            f"({MIN_COLLECTION_INTERVAL_MS}ms)"
        )

    if not 1 <= settings.retention_days <= 365:
        errors.append("retention_days must be between 1 and 365")

    for alert_id, alert in settings.alerts.items():
        try:
            single = MonitoringSettings(alerts={alert_id: alert}, analytics=settings.analytics)
            single.build_thresholds()
        except MonitoringConfigError as e:
            errors.append(f"Alert '{alert_id}': {e}")

    for channel_id, channel in settings.notification_channels.items():
        try:
            MonitoringSettings(notification_channels={channel_id: channel}).build_channels()
        except MonitoringConfigError as e:
            errors.append(f"Channel '{channel_id}': {e}")

    if not 1 <= settings.analytics.anomaly_sensitivity <= 10:
        errors.append("analytics.anomaly_sensitivity must be between 1 and 10")

    return errors


def _env_number(name: str, cast: type) -> Any:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}: not a valid number ({raw!r})")
        return None


def settings_from_environment() -> dict[str, Any]:
    """Settings overrides derived from environment variables."""
    data: dict[str, Any] = {}

    interval = _env_number("COSTWATCH_MONITORING_INTERVAL", int)
    if interval is not None:
        data["data_collection_interval_ms"] = interval

    retention = _env_number("COSTWATCH_MONITORING_RETENTION_DAYS", int)
    if retention is not None:
        data["retention_days"] = retention

    alerts = {}
    budget = _env_number("COSTWATCH_BUDGET_ALERT_THRESHOLD", float)
    if budget is not None:
        alerts["budget-alert"] = {
            "type": "ABSOLUTE",
            "value": budget,
            "severity": "HIGH",
            "cooldown_period_minutes": 60,
            "description": "Budget threshold exceeded",
        }

    percentage = _env_number("COSTWATCH_PERCENTAGE_ALERT_THRESHOLD", float)
    if percentage is not None:
        alerts["percentage-alert"] = {
            "type": "PERCENTAGE",
            "value": percentage,
            "severity": "MEDIUM",
            "cooldown_period_minutes": 30,
            "description": "Cost percentage increase threshold exceeded",
        }

    if alerts:
        data["alerts"] = alerts

    channels = {}
    if os.environ.get("SLACK_WEBHOOK_URL"):
        channels["slack"] = {
            "type": "SLACK",
            "webhook_url": os.environ["SLACK_WEBHOOK_URL"],
            "channel": os.environ.get("SLACK_CHANNEL", "#alerts"),
        }

    if os.environ.get("ALERT_EMAIL_TO") and os.environ.get("ALERT_EMAIL_FROM"):
        channels["email"] = {
            "type": "EMAIL",
            "to": os.environ["ALERT_EMAIL_TO"],
            "from": os.environ["ALERT_EMAIL_FROM"],
        }

    if os.environ.get("ALERT_WEBHOOK_URL"):
        channels["webhook"] = {"type": "WEBHOOK", "url": os.environ["ALERT_WEBHOOK_URL"]}

    if channels:
        data["notification_channels"] = channels

    return data


def _read_settings_file(path: Path) -> dict[str, Any]:
    content = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(content)
    else:
        data = yaml.safe_load(content)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MonitoringConfigError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(path: Path | None = None) -> MonitoringSettings:
    """Load settings from a file, falling back to environment variables.

    A missing or unreadable file is not an error: the environment (and
    then the defaults) are used instead.

    Args:
        path: Settings file (default: ~/.costwatch/monitoring.yaml)
    """
    settings_path = Path(path) if path else DEFAULT_SETTINGS_FILE

    if settings_path.exists():
        try:
            return MonitoringSettings.from_dict(_read_settings_file(settings_path))
        except (OSError, json.JSONDecodeError, yaml.YAMLError, MonitoringConfigError) as e:
            logger.warning(f"Failed to load settings from {settings_path}: {e}")
            logger.warning("Using environment and default settings")

    return MonitoringSettings.from_dict(settings_from_environment())


def save_settings(settings: MonitoringSettings, path: Path | None = None) -> Path:
    """Write settings as YAML (JSON for ``.json`` paths) with 0600 permissions.

    Raises:
        MonitoringConfigError: If the file cannot be written
    """
    settings_path = Path(path) if path else DEFAULT_SETTINGS_FILE
    data = settings.to_dict()
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        if settings_path.suffix.lower() == ".json":
            settings_path.write_text(json.dumps(data, indent=2))
        else:
            settings_path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
        settings_path.chmod(0o600)
    except OSError as e:
        raise MonitoringConfigError(f"Failed to save settings to {settings_path}: {e}") from e

    logger.info(f"Settings saved to {settings_path}")
    return settings_path


def sample_settings() -> MonitoringSettings:
    """Settings covering the common alert scenarios."""
    return MonitoringSettings(
        alerts={
            "monthly-budget": {
                "type": "ABSOLUTE",
                "value": 1000,
                "severity": "HIGH",
                "time_window_minutes": 1440,
                "cooldown_period_minutes": 60,
                "description": "Monthly budget exceeded",
            },
            "cost-spike": {
                "type": "PERCENTAGE",
                "value": 25,
                "severity": "MEDIUM",
                "time_window_minutes": 1440,
                "cooldown_period_minutes": 30,
                "description": "Cost increased by more than 25%",
            },
            "anomaly-detection": {
                "type": "ANOMALY",
                "value": 2.0,
                "severity": "MEDIUM",
                "time_window_minutes": 1440,
                "cooldown_period_minutes": 15,
                "description": "Cost anomaly detected (2 standard deviations)",
            },
        },
        notification_channels={
            "slack-alerts": {
                "type": "SLACK",
                "webhook_url": "https://hooks.slack.com/services/YOUR/WEBHOOK/URL",
                "channel": "#cost-alerts",
                "enabled": True,
            },
            "email-alerts": {
                "type": "EMAIL",
                "to": "admin@example.com",
                "from": "alerts@example.com",
                "smtp_host": "smtp.example.com",
                "smtp_port": 587,
                "enabled": False,
            },
        },
    )


def create_sample_settings(path: Path | None = None) -> Path:
    return save_settings(sample_settings(), path)


__all__ = [
    "AnalyticsSettings",
    "DEFAULT_SETTINGS_FILE",
    "LoggingSettings",
    "MonitoringConfig",
    "MonitoringSettings",
    "create_sample_settings",
    "load_settings",
    "sample_settings",
    "save_settings",
    "settings_from_environment",
    "validate_settings",
]
