"""Unit tests for monitoring configuration and settings files.

Testing pyramid: 60% unit tests - tmp_path files, monkeypatched environment
"""

import json
import stat

import pytest
import yaml

from costwatch.monitoring.config import (
    MonitoringConfig,
    MonitoringSettings,
    create_sample_settings,
    load_settings,
    save_settings,
    settings_from_environment,
    validate_settings,
)
from costwatch.monitoring.models import (
    AlertSeverity,
    ChannelType,
    MonitoringConfigError,
    NotificationChannel,
    ThresholdType,
)

ENV_VARS = [
    "COSTWATCH_MONITORING_INTERVAL",
    "COSTWATCH_MONITORING_RETENTION_DAYS",
    "COSTWATCH_BUDGET_ALERT_THRESHOLD",
    "COSTWATCH_PERCENTAGE_ALERT_THRESHOLD",
    "SLACK_WEBHOOK_URL",
    "SLACK_CHANNEL",
    "ALERT_EMAIL_TO",
    "ALERT_EMAIL_FROM",
    "ALERT_WEBHOOK_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestMonitoringConfig:
    """Test engine configuration validation."""

    def test_defaults(self):
        config = MonitoringConfig()

        assert config.interval_ms == 60000
        assert config.data_retention_days == 30

    def test_rejects_non_positive_interval(self):
        with pytest.raises(MonitoringConfigError, match="interval_ms"):
            MonitoringConfig(interval_ms=0)

    @pytest.mark.parametrize("days", [0, 400])
    def test_rejects_retention_out_of_range(self, days):
        with pytest.raises(MonitoringConfigError, match="data_retention_days"):
            MonitoringConfig(data_retention_days=days)

    def test_rejects_duplicate_threshold_ids(self, make_threshold):
        with pytest.raises(MonitoringConfigError, match="Duplicate threshold"):
            MonitoringConfig(alert_thresholds=[make_threshold(id="a"), make_threshold(id="a")])

    def test_rejects_duplicate_channel_ids(self):
        channel = NotificationChannel(id="c", type="WEBHOOK", config={"url": "https://x"})

        with pytest.raises(MonitoringConfigError, match="Duplicate notification channel"):
            MonitoringConfig(notification_channels=[channel, channel])

    def test_rejects_objects_that_are_not_providers(self):
        with pytest.raises(MonitoringConfigError, match="get_cost_breakdown"):
            MonitoringConfig(providers=[object()])


class TestSettingsConversion:
    """Test settings -> engine config conversion."""

    def test_builds_thresholds_and_channels(self, aws_provider):
        settings = MonitoringSettings(
            alerts={"budget": {"type": "ABSOLUTE", "value": 500, "severity": "HIGH"}},
            notification_channels={
                "ops": {
                    "type": "SLACK",
                    "webhook_url": "https://hooks.slack.com/services/x",
                    "channel": "#ops",
                    "filters": {"min_severity": "MEDIUM"},
                }
            },
        )

        config = settings.to_monitoring_config([aws_provider])

        [threshold] = config.alert_thresholds
        [channel] = config.notification_channels
        assert threshold.id == "budget"
        assert threshold.severity == AlertSeverity.HIGH
        assert channel.type == ChannelType.SLACK
        assert channel.config == {
            "webhook_url": "https://hooks.slack.com/services/x",
            "channel": "#ops",
        }
        assert channel.filters.min_severity == AlertSeverity.MEDIUM
        assert config.providers == [aws_provider]

    def test_anomaly_alert_defaults_to_sensitivity(self):
        settings = MonitoringSettings(alerts={"spikes": {"type": "ANOMALY"}})
        settings.analytics.anomaly_sensitivity = 2.5

        [threshold] = settings.build_thresholds()

        assert threshold.value == 2.5

    def test_disabled_analytics_disable_thresholds(self):
        settings = MonitoringSettings(
            alerts={
                "trend": {"type": "TREND", "value": 10},
                "budget": {"type": "ABSOLUTE", "value": 10},
            }
        )
        settings.analytics.enable_trend_analysis = False

        thresholds = {t.id: t for t in settings.build_thresholds()}

        assert not thresholds["trend"].enabled
        assert thresholds["budget"].enabled


class TestValidateSettings:
    """Test settings validation."""

    def test_defaults_are_valid(self):
        assert validate_settings(MonitoringSettings()) == []

    def test_sample_settings_are_valid(self, tmp_path):
        path = create_sample_settings(tmp_path / "monitoring.yaml")

        assert validate_settings(load_settings(path)) == []

    def test_reports_every_problem(self):
        settings = MonitoringSettings(
            data_collection_interval_ms=1000,
            retention_days=0,
            alerts={"bad": {"type": "ABSOLUTE", "value": -1}},
            notification_channels={"mail": {"type": "EMAIL", "to": "ops@example.com"}},
        )
        settings.analytics.anomaly_sensitivity = 20

        errors = validate_settings(settings)

        assert len(errors) == 5
        assert any("at least 10 seconds" in e for e in errors)
        assert any(e.startswith("Alert 'bad'") for e in errors)
        assert any(e.startswith("Channel 'mail'") and "from" in e for e in errors)
        assert any("anomaly_sensitivity" in e for e in errors)


class TestLoadSettings:
    """Test settings file loading."""

    def test_loads_yaml_and_fills_defaults(self, tmp_path):
        path = tmp_path / "monitoring.yaml"
        path.write_text(yaml.safe_dump({"retention_days": 7, "analytics": {"anomaly_sensitivity": 4}}))

        settings = load_settings(path)

        assert settings.retention_days == 7
        assert settings.data_collection_interval_ms == 60000
        assert settings.analytics.anomaly_sensitivity == 4
        assert settings.analytics.enable_trend_analysis

    def test_loads_json(self, tmp_path):
        path = tmp_path / "monitoring.json"
        path.write_text(json.dumps({"data_collection_interval_ms": 30000}))

        assert load_settings(path).data_collection_interval_ms == 30000

    def test_malformed_file_falls_back_to_environment(self, tmp_path, monkeypatch, caplog):
        path = tmp_path / "monitoring.yaml"
        path.write_text("alerts: [unclosed")
        monkeypatch.setenv("COSTWATCH_MONITORING_RETENTION_DAYS", "14")

        settings = load_settings(path)

        assert settings.retention_days == 14
        assert "Failed to load settings" in caplog.text

    def test_missing_file_uses_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("COSTWATCH_BUDGET_ALERT_THRESHOLD", "1000")

        settings = load_settings(tmp_path / "missing.yaml")

        assert settings.alerts["budget-alert"]["value"] == 1000.0

    def test_save_round_trip_and_permissions(self, tmp_path):
        path = tmp_path / "nested" / "monitoring.yaml"
        original = MonitoringSettings(retention_days=90)

        save_settings(original, path)

        assert load_settings(path) == original
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


class TestEnvironment:
    """Test environment variable settings."""

    def test_empty_environment(self):
        assert settings_from_environment() == {}

    def test_thresholds_from_environment(self, monkeypatch):
        monkeypatch.setenv("COSTWATCH_BUDGET_ALERT_THRESHOLD", "1000")
        monkeypatch.setenv("COSTWATCH_PERCENTAGE_ALERT_THRESHOLD", "25")

        settings = MonitoringSettings.from_dict(settings_from_environment())
        thresholds = {t.id: t for t in settings.build_thresholds()}

        assert thresholds["budget-alert"].type == ThresholdType.ABSOLUTE
        assert thresholds["budget-alert"].severity == AlertSeverity.HIGH
        assert thresholds["percentage-alert"].type == ThresholdType.PERCENTAGE
        assert thresholds["percentage-alert"].cooldown_period_minutes == 30

    def test_channels_from_environment(self, monkeypatch):
        monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.com/services/x")
        monkeypatch.setenv("ALERT_EMAIL_TO", "ops@example.com")
        monkeypatch.setenv("ALERT_EMAIL_FROM", "alerts@example.com")
        monkeypatch.setenv("ALERT_WEBHOOK_URL", "https://example.com/hook")

        settings = MonitoringSettings.from_dict(settings_from_environment())
        channels = {c.id: c for c in settings.build_channels()}

        assert channels["slack"].config["channel"] == "#alerts"
        assert channels["email"].type == ChannelType.EMAIL
        assert channels["webhook"].config["url"] == "https://example.com/hook"

    def test_email_needs_both_addresses(self, monkeypatch):
        monkeypatch.setenv("ALERT_EMAIL_TO", "ops@example.com")

        assert "notification_channels" not in settings_from_environment()

    def test_invalid_number_is_ignored(self, monkeypatch, caplog):
        monkeypatch.setenv("COSTWATCH_MONITORING_INTERVAL", "soon")

        assert settings_from_environment() == {}
        assert "COSTWATCH_MONITORING_INTERVAL" in caplog.text
