"""Typed monitoring events and a small event bus.

Each event kind is its own dataclass so handlers receive a known payload
shape. Handlers subscribe per event class (or to every event) and are
called synchronously on the publishing thread.

Public API (the "studs"):
    EventBus: Handler registry keyed by event class
    MonitoringEvent: Base class for all events
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from costwatch.monitoring.models import AlertThreshold, CostAlert, NotificationChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitoringEvent:
    """Base class for engine events."""


@dataclass(frozen=True)
class MonitoringStarted(MonitoringEvent):
    pass


@dataclass(frozen=True)
class MonitoringStopped(MonitoringEvent):
    pass


@dataclass(frozen=True)
class DataCollected(MonitoringEvent):
    provider: str
    timestamp: datetime
    data_points: int = 0


@dataclass(frozen=True)
class DataCollectionError(MonitoringEvent):
    provider: str
    error: Exception


@dataclass(frozen=True)
class AlertTriggered(MonitoringEvent):
    alert: CostAlert


@dataclass(frozen=True)
class AlertAcknowledged(MonitoringEvent):
    alert: CostAlert


@dataclass(frozen=True)
class AlertResolved(MonitoringEvent):
    alert: CostAlert


@dataclass(frozen=True)
class NotificationError(MonitoringEvent):
    channel: NotificationChannel
    alert: CostAlert
    error: Exception


@dataclass(frozen=True)
class MonitoringError(MonitoringEvent):
    error: Exception


@dataclass(frozen=True)
class ThresholdAdded(MonitoringEvent):
    threshold: AlertThreshold


@dataclass(frozen=True)
class ThresholdRemoved(MonitoringEvent):
    threshold: AlertThreshold


@dataclass(frozen=True)
class ThresholdUpdated(MonitoringEvent):
    threshold: AlertThreshold


E = TypeVar("E", bound=MonitoringEvent)


@dataclass
class EventBus:
    """Synchronous publish/subscribe registry for monitoring events.

    Handler failures are logged and never reach the publisher, so a broken
    subscriber cannot stop a monitoring tick.
    """

    _handlers: dict[type, list[Callable[[Any], None]]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` (and its subclasses).

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: Callable[[MonitoringEvent], None]) -> Callable[[], None]:
        """Register ``handler`` for every event."""
        return self.subscribe(MonitoringEvent, handler)

    def publish(self, event: MonitoringEvent) -> None:
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {type(event).__name__}")


__all__ = [
    "AlertAcknowledged",
    "AlertResolved",
    "AlertTriggered",
    "DataCollected",
    "DataCollectionError",
    "EventBus",
    "MonitoringError",
    "MonitoringEvent",
    "MonitoringStarted",
    "MonitoringStopped",
    "NotificationError",
    "ThresholdAdded",
    "ThresholdRemoved",
    "ThresholdUpdated",
]
