"""Threshold evaluation algorithms.

Every function here is pure: given a threshold, the data points and the
current time it reports whether the threshold is breached, without
touching engine state. ``details`` records which algorithm ran and its
intermediate values so a triggered alert can be audited later.

Algorithms:
    ABSOLUTE         Sum of cost in the window vs the threshold value
    PERCENTAGE       Change from first to last point, in percent
    ANOMALY          Z-score of the latest point against the earlier ones
    TREND            Least-squares slope as a percentage of mean cost
    BUDGET_FORECAST  Month-end projection as a percentage of the budget
"""

import calendar
import math
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta

from costwatch.monitoring.models import (
    AlertThreshold,
    CostDataPoint,
    EvaluationResult,
    ThresholdCondition,
    ThresholdType,
)

MIN_PERCENTAGE_POINTS = 2
MIN_TREND_POINTS = 3
MIN_ANOMALY_POINTS = 5

# Tolerance used by EQUALS for derived (non-sum) values
PERCENTAGE_EQUALS_TOLERANCE = 0.01
TREND_EQUALS_TOLERANCE = 0.1


def compare(
    value: float,
    threshold_value: float,
    condition: ThresholdCondition,
    tolerance: float = 0.0,
) -> bool:
    """Apply a threshold condition to an evaluated value.

    DEVIATION compares magnitude, so a drop of 30% deviates from a 25%
    threshold just like a rise of 30% does.
    """
    if condition == ThresholdCondition.GREATER_THAN:
        return value > threshold_value
    if condition == ThresholdCondition.LESS_THAN:
        return value < threshold_value
    if condition == ThresholdCondition.EQUALS:
        if tolerance:
            return abs(value - threshold_value) < tolerance
        return value == threshold_value
    if condition == ThresholdCondition.DEVIATION:
        return abs(value) > threshold_value
    return False


def select_window(
    threshold: AlertThreshold,
    points: Iterable[CostDataPoint],
    now: datetime,
) -> list[CostDataPoint]:
    """Points inside ``[now - time_window, now]`` matching the threshold filters."""
    start = now - timedelta(minutes=threshold.time_window_minutes)
    return [
        p
        for p in points
        if start <= p.timestamp <= now
        and (threshold.provider is None or p.provider == threshold.provider)
        and (threshold.service is None or p.service == threshold.service)
    ]


def _spent(data: Sequence[CostDataPoint]) -> list[CostDataPoint]:
    """Points that represent actual spend (baseline references excluded)."""
    return [p for p in data if not p.is_baseline]


def evaluate_absolute(
    threshold: AlertThreshold, data: Sequence[CostDataPoint], now: datetime
) -> EvaluationResult:
    spent = _spent(data)
    if not spent:
        return EvaluationResult(triggered=False, details={"evaluation_type": "absolute"})

    current_value = sum(p.cost for p in spent)
    return EvaluationResult(
        triggered=compare(current_value, threshold.value, threshold.condition),
        provider=spent[0].provider,
        service=spent[0].service,
        current_value=current_value,
        details={
            "evaluation_type": "absolute",
            "data_points": len(spent),
            "time_window_minutes": threshold.time_window_minutes,
        },
    )


def evaluate_percentage(
    threshold: AlertThreshold, data: Sequence[CostDataPoint], now: datetime
) -> EvaluationResult:
    details = {"evaluation_type": "percentage", "data_points": len(data)}
    if len(data) < MIN_PERCENTAGE_POINTS:
        details["reason"] = "insufficient_data"
        return EvaluationResult(triggered=False, details=details)

    previous_cost = data[0].cost
    current_cost = data[-1].cost
    details.update(
        previous_cost=previous_cost,
        current_cost=current_cost,
        change_amount=current_cost - previous_cost,
    )

    # Undefined change from zero; never alert on it
    if previous_cost == 0:
        details["reason"] = "zero_baseline"
        return EvaluationResult(triggered=False, details=details)

    change_percentage = (current_cost - previous_cost) / previous_cost * 100
    return EvaluationResult(
        triggered=compare(
            change_percentage,
            threshold.value,
            threshold.condition,
            tolerance=PERCENTAGE_EQUALS_TOLERANCE,
        ),
        provider=data[0].provider,
        service=data[0].service,
        current_value=change_percentage,
        details=details,
    )


def evaluate_anomaly(
    threshold: AlertThreshold, data: Sequence[CostDataPoint], now: datetime
) -> EvaluationResult:
    details = {"evaluation_type": "anomaly", "data_points": len(data)}
    if len(data) < MIN_ANOMALY_POINTS:
        details["reason"] = "insufficient_data"
        return EvaluationResult(triggered=False, details=details)

    costs = [p.cost for p in data]
    current_cost = costs[-1]
    historical = costs[:-1]

    mean = sum(historical) / len(historical)
    variance = sum((c - mean) ** 2 for c in historical) / len(historical)
    std_dev = math.sqrt(variance)
    z_score = abs(current_cost - mean) / std_dev if std_dev > 0 else 0.0

    details.update(
        current_cost=current_cost,
        historical_mean=mean,
        standard_deviation=std_dev,
        deviation_from_mean=abs(current_cost - mean),
    )
    return EvaluationResult(
        triggered=z_score > threshold.value,
        provider=data[0].provider,
        service=data[0].service,
        current_value=z_score,
        details=details,
    )


def linear_regression_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of ``values`` against their index."""
    n = len(values)
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_xx = sum(i * i for i in range(n))
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def evaluate_trend(
    threshold: AlertThreshold, data: Sequence[CostDataPoint], now: datetime
) -> EvaluationResult:
    details = {"evaluation_type": "trend", "data_points": len(data)}
    if len(data) < MIN_TREND_POINTS:
        details["reason"] = "insufficient_data"
        return EvaluationResult(triggered=False, details=details)

    costs = [p.cost for p in data]
    slope = linear_regression_slope(costs)
    average_cost = sum(costs) / len(costs)
    trend_percentage = slope / average_cost * 100 if average_cost > 0 else 0.0

    details.update(
        slope=slope,
        average_cost=average_cost,
        time_range=f"{data[0].timestamp.isoformat()} to {data[-1].timestamp.isoformat()}",
    )
    return EvaluationResult(
        triggered=compare(
            trend_percentage,
            threshold.value,
            threshold.condition,
            tolerance=TREND_EQUALS_TOLERANCE,
        ),
        provider=data[0].provider,
        service=data[0].service,
        current_value=trend_percentage,
        details=details,
    )


def evaluate_budget_forecast(
    threshold: AlertThreshold, data: Sequence[CostDataPoint], now: datetime
) -> EvaluationResult:
    spent = _spent(data)
    if not spent:
        return EvaluationResult(triggered=False, details={"evaluation_type": "budget_forecast"})

    current_month_cost = sum(p.cost for p in spent)
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    days_elapsed = now.day
    projected = current_month_cost / days_elapsed * days_in_month
    utilization = projected / threshold.value * 100

    if threshold.condition == ThresholdCondition.GREATER_THAN:
        triggered = utilization > 100
    elif threshold.condition == ThresholdCondition.LESS_THAN:
        triggered = utilization < threshold.value
    else:
        triggered = False

    return EvaluationResult(
        triggered=triggered,
        provider=spent[0].provider,
        service=spent[0].service,
        current_value=utilization,
        details={
            "evaluation_type": "budget_forecast",
            "data_points": len(spent),
            "current_month_cost": current_month_cost,
            "projected_monthly_cost": projected,
            "budget_amount": threshold.value,
            "days_elapsed": days_elapsed,
            "days_in_month": days_in_month,
        },
    )


EVALUATORS: dict[
    ThresholdType,
    Callable[[AlertThreshold, Sequence[CostDataPoint], datetime], EvaluationResult],
] = {
    ThresholdType.ABSOLUTE: evaluate_absolute,
    ThresholdType.PERCENTAGE: evaluate_percentage,
    ThresholdType.ANOMALY: evaluate_anomaly,
    ThresholdType.TREND: evaluate_trend,
    ThresholdType.BUDGET_FORECAST: evaluate_budget_forecast,
}


def evaluate_threshold(
    threshold: AlertThreshold,
    points: Iterable[CostDataPoint],
    now: datetime,
) -> EvaluationResult:
    """Evaluate one threshold against the data points in its window.

    Args:
        threshold: Threshold to evaluate
        points: Candidate data points (any order-preserving collection)
        now: End of the evaluation window

    Returns:
        EvaluationResult; ``triggered`` is False when the window is empty
    """
    data = select_window(threshold, points, now)
    if not data:
        return EvaluationResult(
            triggered=False,
            details={"evaluation_type": threshold.type.value.lower(), "data_points": 0},
        )
    return EVALUATORS[threshold.type](threshold, data, now)


def format_alert_message(threshold: AlertThreshold, result: EvaluationResult) -> str:
    """Human-readable alert message for a triggered evaluation."""
    provider = (result.provider or "unknown").upper()
    service = result.service or "All Services"
    current = f"{result.current_value:.2f}" if result.current_value is not None else "N/A"
    limit = f"{threshold.value:.2f}"
    condition = threshold.condition.value.lower().replace("_", " ")

    if threshold.type == ThresholdType.ABSOLUTE:
        return f"{provider} {service}: Cost of ${current} {condition} threshold of ${limit}"
    if threshold.type == ThresholdType.PERCENTAGE:
        return f"{provider} {service}: Cost changed by {current}% {condition} threshold of {limit}%"
    if threshold.type == ThresholdType.ANOMALY:
        return (
            f"{provider} {service}: Anomalous spending detected "
            f"(z-score: {current}, threshold: {limit})"
        )
    if threshold.type == ThresholdType.TREND:
        return (
            f"{provider} {service}: Cost trend of {current}%/period {condition} "
            f"threshold of {limit}%"
        )
    return f"{provider} {service}: Projected budget utilization of {current}% for this month"


__all__ = [
    "EVALUATORS",
    "compare",
    "evaluate_absolute",
    "evaluate_anomaly",
    "evaluate_budget_forecast",
    "evaluate_percentage",
    "evaluate_threshold",
    "evaluate_trend",
    "format_alert_message",
    "linear_regression_slope",
    "select_window",
]
