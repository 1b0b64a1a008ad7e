"""Cost collector: samples every configured provider once per tick.

Philosophy:
- Single responsibility: Turn provider breakdowns into data points
- Parallel collection with ThreadPoolExecutor
- Isolated failures: one broken provider never aborts the others
- Bounded waits: a hung provider costs at most ``timeout`` seconds

Public API (the "studs"):
    CostCollector: Fan-out collector feeding a CostDataStore
    CostCollectionError: Raised for provider timeouts
"""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime

from costwatch.log_sanitizer import LogSanitizer
from costwatch.monitoring.events import DataCollected, DataCollectionError, EventBus
from costwatch.monitoring.metrics import OperationalCounters
from costwatch.monitoring.models import CostDataPoint, CostMonitorError
from costwatch.monitoring.providers import CostBreakdown, CostProvider
from costwatch.monitoring.storage import CostDataStore

logger = logging.getLogger(__name__)


class CostCollectionError(CostMonitorError):
    """Raised when a provider cannot be sampled."""

    pass


def provider_name(provider: CostProvider) -> str:
    return getattr(provider, "name", None) or type(provider).__name__


class CostCollector:
    """Collects cost breakdowns from providers into the data store.

    Each call to :meth:`collect` queries every provider concurrently and
    appends one data point per service reported for the current month.
    Results are appended in provider order once all fetches finish or
    time out.
    """

    def __init__(
        self,
        providers: Sequence[CostProvider],
        store: CostDataStore,
        events: EventBus,
        counters: OperationalCounters,
        timeout: float = 30,
        max_workers: int = 10,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize cost collector.

        Args:
            providers: Provider adapters to sample
            store: Store receiving the data points
            events: Bus for DataCollected / DataCollectionError events
            counters: Operational counters recording collection latency
            timeout: Per-provider timeout in seconds (clamped to 1-300)
            max_workers: Max parallel fetches (clamped to 1-50)
            clock: Source of the current time
        """
        self.providers = list(providers)
        self.store = store
        self.events = events
        self.counters = counters
        self.timeout = max(1, min(300, timeout))
        self.max_workers = max(1, min(50, max_workers))
        self._clock = clock
        self._seen_series: set[tuple[str, str]] = set()

    def collect(self) -> list[CostDataPoint]:
        """Sample every provider once.

        Returns:
            Data points appended to the store by this collection
        """
        started = time.monotonic()
        now = self._clock()
        collected: list[CostDataPoint] = []

        if self.providers:
            executor = ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(self.providers)),
                thread_name_prefix="costwatch-collect",
            )
            try:
                futures = [executor.submit(p.get_cost_breakdown) for p in self.providers]
                done, _ = wait(futures, timeout=self.timeout)

                for provider, future in zip(self.providers, futures):
                    name = provider_name(provider)
                    if future not in done:
                        future.cancel()
                        self._record_failure(
                            name, CostCollectionError(f"Timed out after {self.timeout}s")
                        )
                        continue

                    try:
                        points = self._to_data_points(name, future.result(), now)
                    except Exception as e:
                        self._record_failure(name, e)
                        continue

                    self.store.extend(points)
                    collected.extend(points)
                    self.events.publish(
                        DataCollected(provider=name, timestamp=now, data_points=len(points))
                    )
            finally:
                # Hung fetches keep their worker thread; nothing waits for them
                executor.shutdown(wait=False, cancel_futures=True)

        duration_ms = (time.monotonic() - started) * 1000
        self.counters.record_collection(duration_ms)
        logger.debug(
            f"Collected {len(collected)} data points from {len(self.providers)} providers "
            f"in {duration_ms:.1f}ms"
        )
        return collected

    def _to_data_points(
        self, provider: str, breakdown: CostBreakdown, now: datetime
    ) -> list[CostDataPoint]:
        points = []
        for service, cost in breakdown.this_month.items():
            series = (provider, service)
            if series not in self._seen_series and service in breakdown.last_month:
                points.append(
                    CostDataPoint(
                        timestamp=now,
                        provider=provider,
                        service=service,
                        cost=breakdown.last_month[service],
                        metadata={"baseline": True, "period": "last_month"},
                    )
                )

            points.append(
                CostDataPoint(
                    timestamp=now,
                    provider=provider,
                    service=service,
                    cost=cost,
                    metadata={
                        "last_month": breakdown.last_month.get(service, 0.0),
                        "last_7_days": breakdown.last_7_days.get(service, 0.0),
                        "yesterday": breakdown.yesterday.get(service, 0.0),
                    },
                )
            )

        # Only mark series as seen once the whole breakdown converted cleanly
        self._seen_series.update((provider, service) for service in breakdown.this_month)
        return points

    def _record_failure(self, provider: str, error: Exception) -> None:
        logger.warning(
            f"Failed to collect cost data from {provider}: "
            f"{LogSanitizer.sanitize_exception(error)}"
        )
        self.events.publish(DataCollectionError(provider=provider, error=error))


__all__ = ["CostCollectionError", "CostCollector", "provider_name"]
