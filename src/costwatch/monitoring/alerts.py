"""Alert lifecycle management with per-threshold cooldown.

Philosophy:
- Single responsibility: Own active alerts, history and cooldown clocks
- Deduplication: a threshold alerts at most once per cooldown period
- Manual resolution: alerts never resolve themselves

Lifecycle:
    IDLE -> TRIGGERED        breach detected and cooldown expired
    TRIGGERED -> ACKNOWLEDGED  acknowledge() (flag only, stays active)
    TRIGGERED|ACKNOWLEDGED -> RESOLVED  resolve() (moved to history)

Public API (the "studs"):
    AlertManager: Active alert map, history and cooldown tracking
"""

import logging
import threading
from datetime import datetime, timedelta

from costwatch.monitoring.evaluator import format_alert_message
from costwatch.monitoring.models import (
    AlertNotFoundError,
    AlertThreshold,
    CostAlert,
    EvaluationResult,
)

logger = logging.getLogger(__name__)


class AlertManager:
    """Alert state for one engine instance.

    All state changes happen under a single lock so the cooldown check and
    alert creation for a threshold are atomic with respect to each other.
    """

    def __init__(self) -> None:
        self._active: dict[str, CostAlert] = {}
        self._history: list[CostAlert] = []
        # threshold id -> time of last alert, for cooldown tracking
        self._last_alert_times: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _cooling_down(self, threshold: AlertThreshold, now: datetime) -> bool:
        last_alert = self._last_alert_times.get(threshold.id)
        if last_alert is None:
            return False
        return now - last_alert < timedelta(minutes=threshold.cooldown_period_minutes)

    def in_cooldown(self, threshold: AlertThreshold, now: datetime) -> bool:
        """Check if a threshold alerted within its cooldown period."""
        with self._lock:
            return self._cooling_down(threshold, now)

    def trigger(
        self,
        threshold: AlertThreshold,
        result: EvaluationResult,
        now: datetime,
    ) -> CostAlert | None:
        """Create an alert for a breach unless the threshold is cooling down.

        Args:
            threshold: Breached threshold
            result: Triggered evaluation result
            now: Alert time; also stamps the cooldown clock

        Returns:
            The new active alert, or None if suppressed by cooldown
        """
        with self._lock:
            if self._cooling_down(threshold, now):
                logger.debug(f"Alert for threshold {threshold.id} suppressed by cooldown")
                return None

            alert = CostAlert(
                threshold_id=threshold.id,
                threshold_name=threshold.name,
                threshold_type=threshold.type,
                provider=result.provider or "unknown",
                service=result.service,
                current_value=result.current_value if result.current_value is not None else 0.0,
                threshold_value=threshold.value,
                severity=threshold.severity,
                message=format_alert_message(threshold, result),
                timestamp=now,
                details=dict(result.details),
            )
            self._active[alert.id] = alert
            self._last_alert_times[threshold.id] = now

        logger.info(f"Alert triggered: {alert.message}")
        return alert

    def acknowledge(self, alert_id: str) -> CostAlert:
        """Mark an active alert as acknowledged. Repeated calls are harmless.

        Raises:
            AlertNotFoundError: If the alert is not active
        """
        with self._lock:
            alert = self._active.get(alert_id)
            if alert is None:
                raise AlertNotFoundError(f"Active alert not found: {alert_id}")
            alert.acknowledged = True
        return alert

    def resolve(self, alert_id: str, now: datetime) -> CostAlert:
        """Resolve an active alert and move it to history.

        Raises:
            AlertNotFoundError: If the alert is not active
        """
        with self._lock:
            alert = self._active.pop(alert_id, None)
            if alert is None:
                raise AlertNotFoundError(f"Active alert not found: {alert_id}")
            alert.resolved_at = now
            self._history.append(alert)

        logger.info(f"Alert resolved: {alert.message}")
        return alert

    def get(self, alert_id: str) -> CostAlert | None:
        with self._lock:
            return self._active.get(alert_id)

    def active(self) -> list[CostAlert]:
        with self._lock:
            return list(self._active.values())

    def history(self) -> list[CostAlert]:
        with self._lock:
            return list(self._history)

    def forget_threshold(self, threshold_id: str) -> None:
        """Drop the cooldown clock of a removed threshold.

        Active alerts of the threshold are kept.
        """
        with self._lock:
            self._last_alert_times.pop(threshold_id, None)

    def prune_history(self, cutoff: datetime) -> int:
        """Drop resolved alerts raised before ``cutoff``.

        Returns:
            Number of history entries removed
        """
        with self._lock:
            before = len(self._history)
            self._history = [a for a in self._history if a.timestamp >= cutoff]
            return before - len(self._history)


__all__ = ["AlertManager"]
