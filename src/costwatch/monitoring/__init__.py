"""Cost monitoring and alerting.

This module watches cloud spend and raises alerts when it breaches
configured thresholds:
- Periodic cost collection from pluggable providers
- Threshold evaluation (absolute, percentage, anomaly, trend, forecast)
- Alert lifecycle with cooldown, acknowledgement and resolution
- Multi-channel notification (Slack, email, webhook, Teams, Discord)
- Metrics and health reporting

Public API:
    CostMonitor: Monitoring engine facade
    MonitoringConfig: Engine configuration
    AlertThreshold: Threshold rule definition
    NotificationChannel: Notification destination
    CostAlert: Alert data model
    CostDataPoint: Cost sample data model
"""

from costwatch.monitoring.config import (
    MonitoringConfig,
    MonitoringSettings,
    load_settings,
    validate_settings,
)
from costwatch.monitoring.engine import CostMonitor, MonitoringAlreadyRunningError
from costwatch.monitoring.events import (
    AlertAcknowledged,
    AlertResolved,
    AlertTriggered,
    DataCollected,
    DataCollectionError,
    MonitoringError,
    MonitoringEvent,
    MonitoringStarted,
    MonitoringStopped,
    NotificationError,
    ThresholdAdded,
    ThresholdRemoved,
    ThresholdUpdated,
)
from costwatch.monitoring.models import (
    AlertNotFoundError,
    AlertSeverity,
    AlertThreshold,
    ChannelFilters,
    ChannelType,
    CostAlert,
    CostDataPoint,
    CostDriver,
    CostMonitorError,
    HealthStatus,
    MonitoringConfigError,
    MonitoringMetrics,
    NotificationChannel,
    ThresholdCondition,
    ThresholdNotFoundError,
    ThresholdType,
)
from costwatch.monitoring.providers import (
    CostBreakdown,
    CostProvider,
    CostProviderError,
    FileCostProvider,
    StaticCostProvider,
)
from costwatch.monitoring.registry import (
    anomaly_threshold,
    budget_threshold,
    percentage_change_threshold,
)
from costwatch.monitoring.scheduler import IntervalTicker, ManualTicker, Ticker

__all__ = [
    "AlertAcknowledged",
    "AlertNotFoundError",
    "AlertResolved",
    "AlertSeverity",
    "AlertThreshold",
    "AlertTriggered",
    "ChannelFilters",
    "ChannelType",
    "CostAlert",
    "CostBreakdown",
    "CostDataPoint",
    "CostDriver",
    "CostMonitor",
    "CostMonitorError",
    "CostProvider",
    "CostProviderError",
    "DataCollected",
    "DataCollectionError",
    "FileCostProvider",
    "HealthStatus",
    "IntervalTicker",
    "ManualTicker",
    "MonitoringAlreadyRunningError",
    "MonitoringConfig",
    "MonitoringConfigError",
    "MonitoringError",
    "MonitoringEvent",
    "MonitoringMetrics",
    "MonitoringSettings",
    "MonitoringStarted",
    "MonitoringStopped",
    "NotificationChannel",
    "NotificationError",
    "StaticCostProvider",
    "ThresholdAdded",
    "ThresholdCondition",
    "ThresholdNotFoundError",
    "ThresholdRemoved",
    "ThresholdType",
    "ThresholdUpdated",
    "Ticker",
    "anomaly_threshold",
    "budget_threshold",
    "load_settings",
    "percentage_change_threshold",
    "validate_settings",
]
