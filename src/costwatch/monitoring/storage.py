"""In-memory cost data point store with a retention policy.

Philosophy:
- Single responsibility: Hold cost samples and drop expired ones
- Thread-safe: every read and write goes through one lock
- Snapshots for readers: evaluation never sees a half-written tick

Public API (the "studs"):
    CostDataStore: Append-only, time-bounded buffer of CostDataPoint
"""

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta

from costwatch.monitoring.models import CostDataPoint, MonitoringConfigError

logger = logging.getLogger(__name__)


class CostDataStore:
    """Append-only buffer of cost samples, pruned by age.

    Samples are kept in insertion order. Nothing is persisted; the store
    lives and dies with the engine that owns it.
    """

    def __init__(self, retention_days: int = 30) -> None:
        """Initialize data store.

        Args:
            retention_days: Number of days to retain data points (1-365)

        Raises:
            MonitoringConfigError: If retention is out of range
        """
        if not 1 <= retention_days <= 365:
            raise MonitoringConfigError(
                f"retention_days must be between 1 and 365, got {retention_days}"
            )
        self.retention_days = retention_days
        self._points: list[CostDataPoint] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def append(self, point: CostDataPoint) -> None:
        with self._lock:
            self._points.append(point)

    def extend(self, points: Iterable[CostDataPoint]) -> None:
        """Append several points atomically, preserving their order."""
        batch = list(points)
        with self._lock:
            self._points.extend(batch)

    def snapshot(self) -> tuple[CostDataPoint, ...]:
        """Consistent copy of every stored point as of this call."""
        with self._lock:
            return tuple(self._points)

    def prune(self, now: datetime) -> int:
        """Remove points older than the retention period.

        Args:
            now: Reference time for the retention cutoff

        Returns:
            Number of points removed
        """
        cutoff = now - timedelta(days=self.retention_days)
        with self._lock:
            before = len(self._points)
            self._points = [p for p in self._points if p.timestamp >= cutoff]
            removed = before - len(self._points)

        if removed:
            logger.info(f"Pruned {removed} data points older than {self.retention_days} days")
        return removed


__all__ = ["CostDataStore"]
