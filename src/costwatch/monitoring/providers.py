"""Cost provider adapter interface and reference adapters.

Real cloud adapters live outside this package. Anything with a ``name``
and a ``get_cost_breakdown()`` method can be handed to the collector.

Public API (the "studs"):
    CostBreakdown: Per-service totals for the current billing period
    CostProvider: Adapter protocol consumed by the collector
    StaticCostProvider: Returns a fixed breakdown
    FileCostProvider: Reads a breakdown from a YAML or JSON file
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from costwatch.monitoring.models import CostMonitorError


class CostProviderError(CostMonitorError):
    """Raised when a provider adapter cannot produce a breakdown."""

    pass


def _as_cost_map(data: Any, label: str) -> dict[str, float]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CostProviderError(f"'{label}' must be a mapping of service -> cost")
    try:
        return {str(service): float(cost) for service, cost in data.items()}
    except (TypeError, ValueError) as e:
        raise CostProviderError(f"Invalid cost in '{label}': {e}") from e


@dataclass
class CostBreakdown:
    """Per-service cost totals reported by a provider."""

    this_month: dict[str, float] = field(default_factory=dict)
    last_month: dict[str, float] = field(default_factory=dict)
    last_7_days: dict[str, float] = field(default_factory=dict)
    yesterday: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CostBreakdown":
        """Build from ``{"totals_by_service": {"this_month": {...}, ...}}``.

        The ``totals_by_service`` wrapper is optional.
        """
        totals = data.get("totals_by_service", data)
        return cls(
            this_month=_as_cost_map(totals.get("this_month"), "this_month"),
            last_month=_as_cost_map(totals.get("last_month"), "last_month"),
            last_7_days=_as_cost_map(totals.get("last_7_days"), "last_7_days"),
            yesterday=_as_cost_map(totals.get("yesterday"), "yesterday"),
        )


@runtime_checkable
class CostProvider(Protocol):
    """Adapter protocol: one cloud account or provider."""

    name: str

    def get_cost_breakdown(self) -> CostBreakdown: ...


class StaticCostProvider:
    """Provider that always reports the same breakdown."""

    def __init__(self, name: str, breakdown: CostBreakdown) -> None:
        self.name = name
        self.breakdown = breakdown

    def get_cost_breakdown(self) -> CostBreakdown:
        return self.breakdown


class FileCostProvider:
    """Provider backed by a YAML or JSON breakdown file.

    The file is re-read on every call so an external process can update it
    between ticks.
    """

    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = Path(path)

    def get_cost_breakdown(self) -> CostBreakdown:
        """Read the breakdown file.

        Raises:
            CostProviderError: If the file is missing or malformed
        """
        try:
            content = self.path.read_text()
        except OSError as e:
            raise CostProviderError(f"Cannot read cost file {self.path}: {e}") from e

        try:
            if self.path.suffix.lower() == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise CostProviderError(f"Invalid cost file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CostProviderError(f"Cost file {self.path} must contain a mapping")
        return CostBreakdown.from_dict(data)


__all__ = [
    "CostBreakdown",
    "CostProvider",
    "CostProviderError",
    "FileCostProvider",
    "StaticCostProvider",
]
