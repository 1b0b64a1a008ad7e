"""Monitoring metrics and health aggregation.

Metrics are derived on demand from the data store and the alert manager;
nothing here is persisted. Operational counters are the only state and are
guarded by a lock because the tick thread and callers touch them
concurrently.

Public API (the "studs"):
    OperationalCounters: Collections, alerts and notifications counters
    build_metrics: MonitoringMetrics from points, alerts and counters
    build_health: HealthStatus snapshot
    calculate_health_score: 0-100 score from cost change and alerts
"""

import sys
import threading
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from costwatch.monitoring.models import (
    CostAlert,
    CostDataPoint,
    CostDriver,
    HealthStatus,
    MonitoringMetrics,
)

try:
    import resource
except ImportError:
    resource = None  # Not available on Windows

COLLECTION_TIME_WINDOW = 100
TOP_COST_DRIVERS = 10


class OperationalCounters:
    """Thread-safe operational counters for the engine."""

    def __init__(self, window: int = COLLECTION_TIME_WINDOW) -> None:
        self._lock = threading.Lock()
        self.data_collections = 0
        self.alerts_triggered = 0
        self.notifications_sent = 0
        self._collection_times: deque[float] = deque(maxlen=window)

    def record_collection(self, duration_ms: float) -> None:
        with self._lock:
            self.data_collections += 1
            self._collection_times.append(duration_ms)

    def record_alert(self) -> None:
        with self._lock:
            self.alerts_triggered += 1

    def record_notifications(self, count: int) -> None:
        with self._lock:
            self.notifications_sent += count

    @property
    def collection_times(self) -> list[float]:
        with self._lock:
            return list(self._collection_times)

    @property
    def average_collection_time(self) -> float:
        """Average of the retained collection durations, in milliseconds."""
        with self._lock:
            if not self._collection_times:
                return 0.0
            return sum(self._collection_times) / len(self._collection_times)


def calculate_health_score(cost_change_percentage: float, active_alerts: int) -> int:
    """Score engine health from today's cost change and open alerts.

    Starts at 100, loses 30/20/10 for cost growth above 20%/10%/5%, loses 5
    per active alert and gains 10 when cost fell by more than 5%. The
    result is clamped to 0-100.
    """
    score = 100

    if cost_change_percentage > 20:
        score -= 30
    elif cost_change_percentage > 10:
        score -= 20
    elif cost_change_percentage > 5:
        score -= 10

    score -= active_alerts * 5

    if cost_change_percentage < -5:
        score += 10

    return max(0, min(100, score))


def health_status_label(active_alerts: int) -> str:
    if active_alerts == 0:
        return "healthy"
    if active_alerts < 3:
        return "warning"
    return "critical"


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today, today - timedelta(days=1)


def build_metrics(
    points: Iterable[CostDataPoint],
    active_alerts: Sequence[CostAlert],
    alert_history: Sequence[CostAlert],
    counters: OperationalCounters,
    now: datetime,
) -> MonitoringMetrics:
    """Summarize today's costs against yesterday's local calendar day."""
    today, yesterday = _day_bounds(now)

    total_today = 0.0
    total_yesterday = 0.0
    drivers: dict[tuple[str, str], list[float]] = {}

    for point in points:
        if point.is_baseline:
            continue
        if point.timestamp >= today:
            total_today += point.cost
            drivers.setdefault((point.provider, point.service), [0.0, 0.0])[0] += point.cost
        elif point.timestamp >= yesterday:
            total_yesterday += point.cost
            drivers.setdefault((point.provider, point.service), [0.0, 0.0])[1] += point.cost

    change = total_today - total_yesterday
    change_percentage = (change / total_yesterday) * 100 if total_yesterday > 0 else 0.0

    top_cost_drivers = sorted(
        (
            CostDriver(provider=provider, service=service, cost=cost, change=cost - previous)
            for (provider, service), (cost, previous) in drivers.items()
        ),
        key=lambda driver: driver.cost,
        reverse=True,
    )[:TOP_COST_DRIVERS]

    resolved = [a for a in alert_history if a.resolved_at is not None]
    if resolved:
        average_resolution = sum(
            (a.resolved_at - a.timestamp).total_seconds() / 60 for a in resolved
        ) / len(resolved)
    else:
        average_resolution = 0.0

    return MonitoringMetrics(
        total_cost_today=total_today,
        cost_change_today=change,
        cost_change_percentage=change_percentage,
        active_alerts=len(active_alerts),
        resolved_alerts=len(resolved),
        average_resolution_time=average_resolution,
        top_cost_drivers=top_cost_drivers,
        health_score=calculate_health_score(change_percentage, len(active_alerts)),
        data_collections=counters.data_collections,
        alerts_triggered=counters.alerts_triggered,
        notifications_sent=counters.notifications_sent,
        avg_collection_time=counters.average_collection_time,
    )


def _memory_usage() -> int:
    """Peak resident set size of this process in bytes (0 if unknown)."""
    if resource is None:
        return 0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux reports kilobytes
    return peak if sys.platform == "darwin" else peak * 1024


def build_health(
    active_alerts: int,
    counters: OperationalCounters,
    started_at: datetime,
    now: datetime,
    last_error: str | None = None,
) -> HealthStatus:
    return HealthStatus(
        status=health_status_label(active_alerts),
        uptime_seconds=max(0.0, (now - started_at).total_seconds()),
        memory_usage=_memory_usage(),
        active_alerts=active_alerts,
        processed_notifications=counters.notifications_sent,
        last_error=last_error,
    )


__all__ = [
    "OperationalCounters",
    "build_health",
    "build_metrics",
    "calculate_health_score",
    "health_status_label",
]
