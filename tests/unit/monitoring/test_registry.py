"""Unit tests for the threshold registry and presets.

Testing pyramid: 60% unit tests - fast, no I/O
"""

from dataclasses import FrozenInstanceError

import pytest

from costwatch.monitoring.models import (
    AlertSeverity,
    MonitoringConfigError,
    ThresholdNotFoundError,
    ThresholdType,
)
from costwatch.monitoring.registry import (
    ThresholdRegistry,
    anomaly_threshold,
    budget_threshold,
    percentage_change_threshold,
)


class TestThresholdRegistry:
    """Test threshold CRUD operations."""

    def test_add_and_get(self, make_threshold):
        registry = ThresholdRegistry()
        threshold = registry.add(make_threshold(id="t1"))

        assert registry.get("t1") is threshold
        assert "t1" in registry
        assert len(registry) == 1

    def test_registered_threshold_cannot_be_mutated(self, make_threshold):
        """Callers keep a reference but cannot change what ticks evaluate."""
        threshold = make_threshold(id="t1", value=10)
        registry = ThresholdRegistry([threshold])

        with pytest.raises(FrozenInstanceError):
            threshold.value = -5

        assert registry.get("t1").value == 10

    def test_rejects_duplicate_ids(self, make_threshold):
        registry = ThresholdRegistry([make_threshold(id="t1")])

        with pytest.raises(MonitoringConfigError, match="already exists"):
            registry.add(make_threshold(id="t1"))

    def test_remove_returns_threshold(self, make_threshold):
        registry = ThresholdRegistry([make_threshold(id="t1")])

        removed = registry.remove("t1")

        assert removed.id == "t1"
        assert registry.get("t1") is None

    def test_remove_unknown_raises(self):
        with pytest.raises(ThresholdNotFoundError):
            ThresholdRegistry().remove("missing")

    def test_update_replaces_threshold(self, make_threshold):
        registry = ThresholdRegistry([make_threshold(id="t1", value=100)])

        updated = registry.update("t1", {"value": 200})

        assert updated.value == 200
        assert registry.get("t1").value == 200

    def test_invalid_update_leaves_threshold_untouched(self, make_threshold):
        registry = ThresholdRegistry([make_threshold(id="t1", value=100)])

        with pytest.raises(MonitoringConfigError):
            registry.update("t1", {"value": -5})

        assert registry.get("t1").value == 100

    def test_update_unknown_raises(self):
        with pytest.raises(ThresholdNotFoundError):
            ThresholdRegistry().update("missing", {"value": 1})

    def test_enabled_keeps_insertion_order(self, make_threshold):
        registry = ThresholdRegistry(
            [
                make_threshold(id="b"),
                make_threshold(id="a", enabled=False),
                make_threshold(id="c"),
            ]
        )

        assert [t.id for t in registry.enabled()] == ["b", "c"]
        assert [t.id for t in registry.list_thresholds()] == ["b", "a", "c"]


class TestPresets:
    """Test threshold preset factories."""

    def test_budget_threshold(self):
        threshold = budget_threshold("Monthly", 5000, provider="aws")

        assert threshold.type == ThresholdType.BUDGET_FORECAST
        assert threshold.value == 5000
        assert threshold.provider == "aws"
        assert threshold.severity == AlertSeverity.HIGH
        assert threshold.id.startswith("budget-")

    def test_anomaly_threshold_default_sensitivity(self):
        threshold = anomaly_threshold("Spikes")

        assert threshold.type == ThresholdType.ANOMALY
        assert threshold.value == 3.0

    @pytest.mark.parametrize(
        ("change", "severity"),
        [(10, AlertSeverity.MEDIUM), (30, AlertSeverity.HIGH), (75, AlertSeverity.CRITICAL)],
    )
    def test_percentage_severity_scales_with_change(self, change, severity):
        threshold = percentage_change_threshold("Growth", change)

        assert threshold.type == ThresholdType.PERCENTAGE
        assert threshold.severity == severity

    def test_preset_ids_are_unique(self):
        assert anomaly_threshold("a").id != anomaly_threshold("b").id
