"""Cost monitoring engine.

Philosophy:
- Single entry point: callers talk to ``CostMonitor`` only
- One tick at a time: collect, evaluate, notify, prune
- Failure isolation: a broken provider, channel or subscriber never stops
  the loop; errors surface as events and in the health status

Tick:
    1. Collect a cost breakdown from every provider
    2. Evaluate every enabled threshold not in cooldown
    3. Raise alerts for breaches and dispatch them to matching channels
    4. Drop data points and resolved alerts past the retention period

Public API (the "studs"):
    CostMonitor: Monitoring engine facade
    MonitoringAlreadyRunningError: Raised by start() on a running engine
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from costwatch.log_sanitizer import LogSanitizer
from costwatch.monitoring.alerts import AlertManager
from costwatch.monitoring.collector import CostCollector
from costwatch.monitoring.config import MonitoringConfig
from costwatch.monitoring.evaluator import evaluate_threshold
from costwatch.monitoring.events import (
    AlertAcknowledged,
    AlertResolved,
    AlertTriggered,
    DataCollectionError,
    E,
    EventBus,
    MonitoringError,
    MonitoringStarted,
    MonitoringStopped,
    NotificationError,
    ThresholdAdded,
    ThresholdRemoved,
    ThresholdUpdated,
)
from costwatch.monitoring.metrics import OperationalCounters, build_health, build_metrics
from costwatch.monitoring.models import (
    AlertThreshold,
    ChannelType,
    CostAlert,
    CostMonitorError,
    HealthStatus,
    MonitoringMetrics,
    NotificationChannel,
)
from costwatch.monitoring.notifications import NotificationDispatcher, Sender
from costwatch.monitoring.registry import ThresholdRegistry
from costwatch.monitoring.scheduler import IntervalTicker, Ticker
from costwatch.monitoring.storage import CostDataStore

logger = logging.getLogger(__name__)


class MonitoringAlreadyRunningError(CostMonitorError):
    """Raised when starting an engine that is already running."""

    pass


class CostMonitor:
    """Cost monitoring engine.

    Example:
        >>> monitor = CostMonitor(MonitoringConfig(providers=[provider]))
        >>> monitor.subscribe(AlertTriggered, lambda e: print(e.alert.message))
        >>> monitor.start()
        ...
        >>> monitor.stop()
    """

    def __init__(
        self,
        config: MonitoringConfig,
        ticker: Ticker | None = None,
        senders: dict[ChannelType, Sender] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Validated monitoring configuration
            ticker: Tick source (default: every ``config.interval_ms``)
            senders: Sender per ChannelType (default: built-in senders)
            clock: Source of the current time
        """
        self.config = config
        self._clock = clock
        self._ticker = ticker or IntervalTicker(config.interval_ms / 1000)

        self.events = EventBus()
        self.counters = OperationalCounters()
        self.store = CostDataStore(retention_days=config.data_retention_days)
        self.thresholds = ThresholdRegistry(config.alert_thresholds)
        self.alerts = AlertManager()
        self.collector = CostCollector(
            config.providers,
            self.store,
            self.events,
            self.counters,
            timeout=config.provider_timeout,
            max_workers=config.max_workers,
            clock=clock,
        )
        self.dispatcher = NotificationDispatcher(
            config.notification_channels,
            self.events,
            senders=senders,
            timeout=config.notification_timeout,
            max_workers=config.max_workers,
            max_retries=config.notification_retries,
        )

        self._running = False
        self._state_lock = threading.Lock()
        # Serializes ticks; a manual run_tick() never overlaps a scheduled one
        self._tick_lock = threading.Lock()
        self._started_at = clock()
        self._last_error: str | None = None

        self.events.subscribe(DataCollectionError, self._remember_collection_error)
        self.events.subscribe(NotificationError, self._remember_notification_error)
        self.events.subscribe(MonitoringError, self._remember_monitoring_error)

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Collect once immediately, then start ticking.

        Raises:
            MonitoringAlreadyRunningError: If already running
        """
        with self._state_lock:
            if self._running:
                raise MonitoringAlreadyRunningError("Cost monitoring is already running")
            self._running = True

        logger.info("Starting cost monitoring...")
        self._started_at = self._clock()
        if not self.thresholds.enabled():
            logger.warning("No enabled alert thresholds configured")

        self.collector.collect()
        self._ticker.start(self.run_tick)
        self.events.publish(MonitoringStarted())
        logger.info(f"Cost monitoring started (interval: {self.config.interval_ms}ms)")

    def stop(self) -> None:
        """Stop ticking. Does nothing if not running."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False

        logger.info("Stopping cost monitoring...")
        self._ticker.stop()
        self.events.publish(MonitoringStopped())
        logger.info("Cost monitoring stopped")

    def run_tick(self) -> list[CostAlert]:
        """Run one monitoring cycle.

        Errors are reported as a MonitoringError event, never raised, so
        the next tick still runs.

        Returns:
            Alerts raised by this tick
        """
        with self._tick_lock:
            try:
                self.collector.collect()
                now = self._clock()
                alerts = self._evaluate_thresholds(now)
                self._prune(now)
                return alerts
            except Exception as e:
                logger.exception("Error during monitoring cycle")
                self.events.publish(MonitoringError(error=e))
                return []

    def _evaluate_thresholds(self, now: datetime) -> list[CostAlert]:
        snapshot = self.store.snapshot()
        raised = []

        for threshold in self.thresholds.enabled():
            if self.alerts.in_cooldown(threshold, now):
                continue

            result = evaluate_threshold(threshold, snapshot, now)
            if not result.triggered:
                continue

            alert = self.alerts.trigger(threshold, result, now)
            if alert is None:
                continue

            self.counters.record_alert()
            self.counters.record_notifications(self.dispatcher.dispatch(alert))
            self.events.publish(AlertTriggered(alert=alert))
            raised.append(alert)

        return raised

    def _prune(self, now: datetime) -> None:
        self.store.prune(now)
        self.alerts.prune_history(now - timedelta(days=self.config.data_retention_days))

    # Thresholds

    def add_threshold(self, threshold: AlertThreshold) -> AlertThreshold:
        """Register a threshold.

        Raises:
            MonitoringConfigError: If the id is already registered
        """
        self.thresholds.add(threshold)
        self.events.publish(ThresholdAdded(threshold=threshold))
        return threshold

    def remove_threshold(self, threshold_id: str) -> AlertThreshold:
        """Remove a threshold. Its active alerts stay active.

        Raises:
            ThresholdNotFoundError: If no threshold has this id
        """
        threshold = self.thresholds.remove(threshold_id)
        self.alerts.forget_threshold(threshold_id)
        self.events.publish(ThresholdRemoved(threshold=threshold))
        return threshold

    def update_threshold(self, threshold_id: str, updates: dict[str, Any]) -> AlertThreshold:
        """Patch a threshold's fields. The id cannot change.

        Raises:
            ThresholdNotFoundError: If no threshold has this id
            MonitoringConfigError: If the patched threshold is invalid
        """
        threshold = self.thresholds.update(threshold_id, updates)
        self.events.publish(ThresholdUpdated(threshold=threshold))
        return threshold

    def get_thresholds(self) -> list[AlertThreshold]:
        return self.thresholds.list_thresholds()

    # Alerts

    def acknowledge_alert(self, alert_id: str) -> CostAlert:
        """Raises AlertNotFoundError if the alert is not active."""
        alert = self.alerts.acknowledge(alert_id)
        self.events.publish(AlertAcknowledged(alert=alert))
        return alert

    def resolve_alert(self, alert_id: str) -> CostAlert:
        """Raises AlertNotFoundError if the alert is not active."""
        alert = self.alerts.resolve(alert_id, self._clock())
        self.events.publish(AlertResolved(alert=alert))
        return alert

    def get_active_alerts(self) -> list[CostAlert]:
        return self.alerts.active()

    def get_alert_history(self) -> list[CostAlert]:
        return self.alerts.history()

    # Notification channels

    def add_notification_channel(self, channel: NotificationChannel) -> None:
        self.dispatcher.add_channel(channel)

    def remove_notification_channel(self, channel_id: str) -> NotificationChannel | None:
        return self.dispatcher.remove_channel(channel_id)

    def register_sender(self, channel_type: ChannelType, sender: Sender) -> None:
        self.dispatcher.register(channel_type, sender)

    # Observability

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Subscribe to engine events. Returns an unsubscribe callable."""
        return self.events.subscribe(event_type, handler)

    def get_metrics(self) -> MonitoringMetrics:
        return build_metrics(
            self.store.snapshot(),
            self.alerts.active(),
            self.alerts.history(),
            self.counters,
            self._clock(),
        )

    def get_health_status(self) -> HealthStatus:
        return build_health(
            active_alerts=len(self.alerts.active()),
            counters=self.counters,
            started_at=self._started_at,
            now=self._clock(),
            last_error=self._last_error,
        )

    def _remember_collection_error(self, event: DataCollectionError) -> None:
        self._last_error = (
            f"Data collection failed for {event.provider}: "
            f"{LogSanitizer.sanitize_exception(event.error)}"
        )

    def _remember_notification_error(self, event: NotificationError) -> None:
        self._last_error = (
            f"Notification via {event.channel.id} failed: "
            f"{LogSanitizer.sanitize_exception(event.error)}"
        )

    def _remember_monitoring_error(self, event: MonitoringError) -> None:
        self._last_error = LogSanitizer.sanitize_exception(event.error)


__all__ = ["CostMonitor", "MonitoringAlreadyRunningError"]
