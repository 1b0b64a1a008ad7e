"""
Shared test fixtures for costwatch tests.

This module provides common fixtures used across all test types:
- A controllable clock for time-dependent logic
- Threshold and data point factories
- Static cost providers
"""

from datetime import datetime, timedelta

import pytest

from costwatch.commands import config as config_commands
from costwatch.monitoring import config as monitoring_config
from costwatch.monitoring.models import (
    AlertSeverity,
    AlertThreshold,
    CostDataPoint,
    ThresholdCondition,
    ThresholdType,
)
from costwatch.monitoring.providers import CostBreakdown, StaticCostProvider

SETTINGS_ENV_VARS = (
    "COSTWATCH_MONITORING_INTERVAL",
    "COSTWATCH_MONITORING_RETENTION_DAYS",
    "COSTWATCH_BUDGET_ALERT_THRESHOLD",
    "COSTWATCH_PERCENTAGE_ALERT_THRESHOLD",
    "SLACK_WEBHOOK_URL",
    "SLACK_CHANNEL",
    "ALERT_EMAIL_TO",
    "ALERT_EMAIL_FROM",
    "ALERT_WEBHOOK_URL",
)


@pytest.fixture(autouse=True)
def isolate_settings(tmp_path, monkeypatch):
    """Keep tests away from ~/.costwatch/monitoring.yaml and the real environment.

    Tests should NEVER read or overwrite the user's settings file.
    """
    settings_file = tmp_path / ".costwatch" / "monitoring.yaml"
    monkeypatch.setattr(monitoring_config, "DEFAULT_SETTINGS_FILE", settings_file)
    monkeypatch.setattr(config_commands, "DEFAULT_SETTINGS_FILE", settings_file)
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return settings_file


# ============================================================================
# TIME FIXTURES
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def start_time():
    """Mid-month weekday noon, far from day and month boundaries."""
    return datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def clock(start_time):
    return FakeClock(start_time)


# ============================================================================
# DATA FACTORIES
# ============================================================================


@pytest.fixture
def make_threshold():
    """Factory for thresholds with sensible defaults."""

    def _make(**overrides) -> AlertThreshold:
        data = {
            "id": "t1",
            "name": "Test threshold",
            "type": ThresholdType.ABSOLUTE,
            "condition": ThresholdCondition.GREATER_THAN,
            "value": 100.0,
            "time_window_minutes": 60,
            "severity": AlertSeverity.MEDIUM,
            "cooldown_period_minutes": 60,
        }
        data.update(overrides)
        return AlertThreshold(**data)

    return _make


@pytest.fixture
def make_points(start_time):
    """Factory for a series of points one minute apart, ending at ``end``."""

    def _make(costs, provider="aws", service="EC2", end=None, step_minutes=1):
        end = end or start_time
        count = len(costs)
        return [
            CostDataPoint(
                timestamp=end - timedelta(minutes=step_minutes * (count - 1 - i)),
                provider=provider,
                service=service,
                cost=cost,
            )
            for i, cost in enumerate(costs)
        ]

    return _make


@pytest.fixture
def aws_provider():
    """Provider reporting EC2 at 100 this month and 50 last month."""
    return StaticCostProvider(
        "aws",
        CostBreakdown(
            this_month={"EC2": 100.0},
            last_month={"EC2": 50.0},
            last_7_days={"EC2": 25.0},
            yesterday={"EC2": 4.0},
        ),
    )
