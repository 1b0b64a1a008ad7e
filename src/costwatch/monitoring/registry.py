"""Threshold registry and common threshold presets.

Public API (the "studs"):
    ThresholdRegistry: Thread-safe map of threshold id -> AlertThreshold
    budget_threshold: Month-end budget forecast preset
    anomaly_threshold: Z-score anomaly preset
    percentage_change_threshold: Percentage increase preset
"""

import logging
import threading
import uuid
from typing import Any

from costwatch.monitoring.models import (
    AlertSeverity,
    AlertThreshold,
    MonitoringConfigError,
    ThresholdCondition,
    ThresholdNotFoundError,
    ThresholdType,
)

logger = logging.getLogger(__name__)


class ThresholdRegistry:
    """Configured alert thresholds, keyed by id.

    Insertion order is kept so thresholds evaluate in the order they were
    added. Readers get copies of the list, never the internal map.
    """

    def __init__(self, thresholds: list[AlertThreshold] | None = None) -> None:
        self._thresholds: dict[str, AlertThreshold] = {}
        self._lock = threading.Lock()
        for threshold in thresholds or []:
            self.add(threshold)

    def __len__(self) -> int:
        with self._lock:
            return len(self._thresholds)

    def __contains__(self, threshold_id: object) -> bool:
        with self._lock:
            return threshold_id in self._thresholds

    def add(self, threshold: AlertThreshold) -> AlertThreshold:
        """Register a threshold.

        Raises:
            MonitoringConfigError: If the id is already registered
        """
        with self._lock:
            if threshold.id in self._thresholds:
                raise MonitoringConfigError(f"Threshold already exists: {threshold.id}")
            self._thresholds[threshold.id] = threshold
        logger.debug(f"Threshold added: {threshold.id} ({threshold.type.value})")
        return threshold

    def remove(self, threshold_id: str) -> AlertThreshold:
        """Unregister a threshold and return it.

        Raises:
            ThresholdNotFoundError: If the id is unknown
        """
        with self._lock:
            try:
                threshold = self._thresholds.pop(threshold_id)
            except KeyError as e:
                raise ThresholdNotFoundError(f"Threshold not found: {threshold_id}") from e
        logger.debug(f"Threshold removed: {threshold_id}")
        return threshold

    def update(self, threshold_id: str, updates: dict[str, Any]) -> AlertThreshold:
        """Apply a partial update and return the new threshold.

        The update is validated as a whole; on failure the registered
        threshold is left untouched.

        Raises:
            ThresholdNotFoundError: If the id is unknown
            MonitoringConfigError: If the update is invalid or changes the id
        """
        with self._lock:
            current = self._thresholds.get(threshold_id)
            if current is None:
                raise ThresholdNotFoundError(f"Threshold not found: {threshold_id}")
            updated = current.with_updates(updates)
            self._thresholds[threshold_id] = updated
        logger.debug(f"Threshold updated: {threshold_id} {sorted(updates)}")
        return updated

    def get(self, threshold_id: str) -> AlertThreshold | None:
        with self._lock:
            return self._thresholds.get(threshold_id)

    def list_thresholds(self) -> list[AlertThreshold]:
        with self._lock:
            return list(self._thresholds.values())

    def enabled(self) -> list[AlertThreshold]:
        """Thresholds that take part in evaluation."""
        return [t for t in self.list_thresholds() if t.enabled]


def _preset_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def budget_threshold(
    name: str,
    budget_amount: float,
    provider: str | None = None,
    service: str | None = None,
) -> AlertThreshold:
    """Alert when projected month-end spend exceeds ``budget_amount``."""
    return AlertThreshold(
        id=_preset_id("budget"),
        name=name,
        type=ThresholdType.BUDGET_FORECAST,
        condition=ThresholdCondition.GREATER_THAN,
        value=budget_amount,
        time_window_minutes=1440,
        provider=provider,
        service=service,
        severity=AlertSeverity.HIGH,
        cooldown_period_minutes=240,
        description=f"Alert when projected monthly spend exceeds ${budget_amount}",
    )


def anomaly_threshold(
    name: str,
    sensitivity: float = 3.0,
    provider: str | None = None,
) -> AlertThreshold:
    """Alert when the latest cost is ``sensitivity`` standard deviations out."""
    return AlertThreshold(
        id=_preset_id("anomaly"),
        name=name,
        type=ThresholdType.ANOMALY,
        condition=ThresholdCondition.GREATER_THAN,
        value=sensitivity,
        time_window_minutes=1440,
        provider=provider,
        severity=AlertSeverity.MEDIUM,
        cooldown_period_minutes=120,
        description=f"Detect cost anomalies with {sensitivity} standard deviation sensitivity",
    )


def percentage_change_threshold(
    name: str,
    change_percentage: float,
    provider: str | None = None,
    service: str | None = None,
) -> AlertThreshold:
    """Alert when cost grows by more than ``change_percentage`` within an hour."""
    if change_percentage > 50:
        severity = AlertSeverity.CRITICAL
    elif change_percentage > 20:
        severity = AlertSeverity.HIGH
    else:
        severity = AlertSeverity.MEDIUM

    return AlertThreshold(
        id=_preset_id("percentage"),
        name=name,
        type=ThresholdType.PERCENTAGE,
        condition=ThresholdCondition.GREATER_THAN,
        value=change_percentage,
        time_window_minutes=60,
        provider=provider,
        service=service,
        severity=severity,
        cooldown_period_minutes=60,
        description=f"Alert when cost changes by more than {change_percentage}%",
    )


__all__ = [
    "ThresholdRegistry",
    "anomaly_threshold",
    "budget_threshold",
    "percentage_change_threshold",
]
