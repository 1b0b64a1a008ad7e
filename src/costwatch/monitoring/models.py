"""Data models for cost monitoring.

Philosophy:
- Validate at construction: a threshold or channel that exists is usable
- Immutable samples: data points never change once collected
- Snapshots over references: alerts copy what they need from thresholds

Public API (the "studs"):
    CostDataPoint: One cost sample for a provider/service pair
    AlertThreshold: Alert rule definition
    CostAlert: Triggered alert
    NotificationChannel: Notification target with filters
    EvaluationResult: Outcome of evaluating one threshold
    MonitoringMetrics / HealthStatus: Derived snapshots
"""

import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any


class CostMonitorError(Exception):
    """Base class for cost monitoring errors."""

    pass


class MonitoringConfigError(CostMonitorError, ValueError):
    """Raised when a threshold, channel or config fails validation."""

    pass


class ThresholdNotFoundError(CostMonitorError, KeyError):
    """Raised when a threshold id is not registered."""

    pass


class AlertNotFoundError(CostMonitorError, KeyError):
    """Raised when an alert id is not in the active set."""

    pass


class ThresholdType(Enum):
    """Threshold evaluation algorithms."""

    ABSOLUTE = "ABSOLUTE"
    PERCENTAGE = "PERCENTAGE"
    ANOMALY = "ANOMALY"
    TREND = "TREND"
    BUDGET_FORECAST = "BUDGET_FORECAST"


class ThresholdCondition(Enum):
    """Comparison applied to an evaluated value."""

    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    EQUALS = "EQUALS"
    DEVIATION = "DEVIATION"


class AlertSeverity(Enum):
    """Alert severity levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ChannelType(Enum):
    """Supported notification channel types."""

    EMAIL = "EMAIL"
    SLACK = "SLACK"
    WEBHOOK = "WEBHOOK"
    SMS = "SMS"
    TEAMS = "TEAMS"
    DISCORD = "DISCORD"


SEVERITY_RANK = {
    AlertSeverity.LOW: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.HIGH: 3,
    AlertSeverity.CRITICAL: 4,
}

# Config keys each channel type needs before it can be added
REQUIRED_CHANNEL_FIELDS: dict[ChannelType, tuple[str, ...]] = {
    ChannelType.SLACK: ("webhook_url",),
    ChannelType.EMAIL: ("to", "from"),
    ChannelType.WEBHOOK: ("url",),
    ChannelType.SMS: ("phone_number",),
    ChannelType.TEAMS: ("webhook_url",),
    ChannelType.DISCORD: ("webhook_url",),
}


def _coerce_enum(enum_cls: type[Enum], value: Any, label: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError as e:
        valid = [member.value for member in enum_cls]
        raise MonitoringConfigError(f"Invalid {label}: {value}. Must be one of {valid}") from e


def severity_rank(severity: AlertSeverity | str) -> int:
    """Ordinal rank of a severity (LOW=1 ... CRITICAL=4)."""
    return SEVERITY_RANK[_coerce_enum(AlertSeverity, severity, "severity")]


@dataclass(frozen=True)
class CostDataPoint:
    """Cost sample for one provider/service at one point in time."""

    timestamp: datetime
    provider: str
    service: str
    cost: float
    resource_count: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.cost < 0:
            raise MonitoringConfigError(f"Cost must be non-negative, got {self.cost}")
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_baseline(self) -> bool:
        """True for prior-period reference points seeded by the collector."""
        return bool(self.metadata.get("baseline"))


@dataclass(frozen=True)
class AlertThreshold:
    """Alert threshold definition.

    Defines what to evaluate, when it counts as a breach and how long to
    wait before alerting again for the same threshold.
    """

    id: str
    name: str
    type: ThresholdType
    condition: ThresholdCondition
    value: float
    time_window_minutes: int = 60
    provider: str | None = None
    service: str | None = None
    severity: AlertSeverity = AlertSeverity.MEDIUM
    enabled: bool = True
    cooldown_period_minutes: int = 60
    description: str = ""

    def __post_init__(self):
        """Validate threshold after initialization."""
        if not self.id:
            raise MonitoringConfigError("Threshold id must not be empty")

        object.__setattr__(self, "type", _coerce_enum(ThresholdType, self.type, "threshold type"))
        object.__setattr__(
            self, "condition", _coerce_enum(ThresholdCondition, self.condition, "condition")
        )
        object.__setattr__(
            self, "severity", _coerce_enum(AlertSeverity, self.severity, "severity")
        )

        if self.value <= 0:
            raise MonitoringConfigError(
                f"Threshold '{self.id}': value must be positive, got {self.value}"
            )
        if self.cooldown_period_minutes < 1:
            raise MonitoringConfigError(
                f"Threshold '{self.id}': cooldown_period_minutes must be at least 1"
            )
        if self.time_window_minutes < 1:
            raise MonitoringConfigError(
                f"Threshold '{self.id}': time_window_minutes must be at least 1"
            )

    def with_updates(self, updates: dict[str, Any]) -> "AlertThreshold":
        """Return a validated copy with ``updates`` applied.

        Raises:
            MonitoringConfigError: If an update targets ``id``, names an
                unknown field or produces an invalid threshold
        """
        if "id" in updates and updates["id"] != self.id:
            raise MonitoringConfigError(f"Threshold id is immutable: {self.id}")

        known = {f.name for f in fields(self)}
        unknown = set(updates) - known
        if unknown:
            raise MonitoringConfigError(f"Unknown threshold fields: {sorted(unknown)}")

        return replace(self, **updates)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertThreshold":
        """Create from a settings dictionary."""
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                type=data["type"],
                condition=data.get("condition", "GREATER_THAN"),
                value=float(data["value"]),
                time_window_minutes=int(data.get("time_window_minutes", 60)),
                provider=data.get("provider"),
                service=data.get("service"),
                severity=data.get("severity", "MEDIUM"),
                enabled=data.get("enabled", True),
                cooldown_period_minutes=int(data.get("cooldown_period_minutes", 60)),
                description=data.get("description", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            if isinstance(e, MonitoringConfigError):
                raise
            raise MonitoringConfigError(f"Invalid threshold configuration: {e}") from e


@dataclass(frozen=True)
class ChannelFilters:
    """Routing filters for a notification channel."""

    min_severity: AlertSeverity = AlertSeverity.LOW
    providers: frozenset[str] | None = None
    services: frozenset[str] | None = None

    def __post_init__(self):
        object.__setattr__(
            self, "min_severity", _coerce_enum(AlertSeverity, self.min_severity, "min_severity")
        )
        if self.providers is not None:
            object.__setattr__(self, "providers", frozenset(self.providers))
        if self.services is not None:
            object.__setattr__(self, "services", frozenset(self.services))


@dataclass(frozen=True)
class NotificationChannel:
    """Notification channel configuration."""

    id: str
    type: ChannelType
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    filters: ChannelFilters = field(default_factory=ChannelFilters)

    def __post_init__(self):
        """Validate channel type and the config fields it requires."""
        channel_type = _coerce_enum(ChannelType, self.type, "channel type")
        object.__setattr__(self, "type", channel_type)

        missing = [key for key in REQUIRED_CHANNEL_FIELDS[channel_type] if not self.config.get(key)]
        if missing:
            raise MonitoringConfigError(
                f"Channel '{self.id}': {channel_type.value.lower()} requires {', '.join(missing)}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationChannel":
        """Create from a settings dictionary."""
        filters = data.get("filters") or {}
        try:
            return cls(
                id=data["id"],
                type=data["type"],
                config=dict(data.get("config") or {}),
                enabled=data.get("enabled", True),
                filters=ChannelFilters(
                    min_severity=filters.get("min_severity", "LOW"),
                    providers=filters.get("providers"),
                    services=filters.get("services"),
                ),
            )
        except (KeyError, TypeError) as e:
            raise MonitoringConfigError(f"Invalid channel configuration: {e}") from e


@dataclass
class EvaluationResult:
    """Outcome of evaluating one threshold against a window of data."""

    triggered: bool
    provider: str | None = None
    service: str | None = None
    current_value: float | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _new_alert_id() -> str:
    return f"alert-{uuid.uuid4().hex[:12]}"


@dataclass
class CostAlert:
    """Triggered alert.

    Holds a snapshot of the threshold it came from so that removing or
    editing the threshold later does not change the alert.
    """

    threshold_id: str
    threshold_name: str
    threshold_type: ThresholdType
    provider: str
    current_value: float
    threshold_value: float
    severity: AlertSeverity
    message: str
    timestamp: datetime
    service: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    acknowledged: bool = False
    resolved_at: datetime | None = None
    id: str = field(default_factory=_new_alert_id)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        data = asdict(self)
        data["threshold_type"] = self.threshold_type.value
        data["severity"] = self.severity.value
        data["timestamp"] = self.timestamp.isoformat()
        data["resolved_at"] = self.resolved_at.isoformat() if self.resolved_at else None
        return data


@dataclass
class CostDriver:
    """Provider/service pair ranked by today's cost."""

    provider: str
    service: str
    cost: float
    change: float


@dataclass
class MonitoringMetrics:
    """Point-in-time monitoring summary."""

    total_cost_today: float
    cost_change_today: float
    cost_change_percentage: float
    active_alerts: int
    resolved_alerts: int
    average_resolution_time: float  # minutes
    top_cost_drivers: list[CostDriver]
    health_score: int
    data_collections: int = 0
    alerts_triggered: int = 0
    notifications_sent: int = 0
    avg_collection_time: float = 0.0  # milliseconds


@dataclass
class HealthStatus:
    """Engine health snapshot."""

    status: str  # "healthy", "warning", "critical"
    uptime_seconds: float
    memory_usage: int
    active_alerts: int
    processed_notifications: int
    last_error: str | None = None


__all__ = [
    "AlertNotFoundError",
    "AlertSeverity",
    "AlertThreshold",
    "ChannelFilters",
    "ChannelType",
    "CostAlert",
    "CostDataPoint",
    "CostDriver",
    "EvaluationResult",
    "HealthStatus",
    "MonitoringConfigError",
    "CostMonitorError",
    "MonitoringMetrics",
    "NotificationChannel",
    "REQUIRED_CHANNEL_FIELDS",
    "SEVERITY_RANK",
    "ThresholdCondition",
    "ThresholdNotFoundError",
    "ThresholdType",
    "severity_rank",
]
