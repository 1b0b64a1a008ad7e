"""Unit tests for cost collection.

Testing pyramid: 60% unit tests - providers are in-memory fakes
Focus on baseline seeding and provider failure isolation.
"""

import threading
from unittest.mock import Mock

from costwatch.monitoring.collector import CostCollector, provider_name
from costwatch.monitoring.events import DataCollected, DataCollectionError, EventBus
from costwatch.monitoring.metrics import OperationalCounters
from costwatch.monitoring.providers import CostBreakdown, CostProviderError, StaticCostProvider
from costwatch.monitoring.storage import CostDataStore


class FailingProvider:
    name = "broken"

    def get_cost_breakdown(self):
        raise CostProviderError("billing API unavailable")


class BlockingProvider:
    """Provider whose fetch hangs until released."""

    name = "slow"

    def __init__(self):
        self.release = threading.Event()

    def get_cost_breakdown(self):
        self.release.wait(5)
        return CostBreakdown(this_month={"VM": 1.0})


def make_collector(providers, clock, timeout=30):
    events = EventBus()
    received = []
    events.subscribe_all(received.append)
    store = CostDataStore()
    counters = OperationalCounters()
    collector = CostCollector(providers, store, events, counters, timeout=timeout, clock=clock)
    return collector, store, counters, received


class TestBaselineSeeding:
    """Test prior-period baseline points."""

    def test_first_collection_seeds_last_month(self, aws_provider, clock):
        collector, store, _, _ = make_collector([aws_provider], clock)

        points = collector.collect()

        assert [(p.cost, p.is_baseline) for p in points] == [(50.0, True), (100.0, False)]
        assert points[0].metadata["period"] == "last_month"
        assert points[1].metadata["last_7_days"] == 25.0
        assert len(store) == 2

    def test_later_collections_do_not_reseed(self, aws_provider, clock):
        collector, store, _, _ = make_collector([aws_provider], clock)

        collector.collect()
        clock.advance(minutes=1)
        points = collector.collect()

        assert [p.cost for p in points] == [100.0]
        assert [p.cost for p in store.snapshot()] == [50.0, 100.0, 100.0]

    def test_no_baseline_without_last_month(self, clock):
        provider = StaticCostProvider("gcp", CostBreakdown(this_month={"BigQuery": 10.0}))
        collector, _, _, _ = make_collector([provider], clock)

        points = collector.collect()

        assert len(points) == 1
        assert not points[0].is_baseline

    def test_points_use_collection_time(self, aws_provider, clock, start_time):
        collector, _, _, _ = make_collector([aws_provider], clock)

        points = collector.collect()

        assert all(p.timestamp == start_time for p in points)


class TestFailureIsolation:
    """Test that one failing provider never affects others."""

    def test_failing_provider_is_reported_and_skipped(self, aws_provider, clock):
        collector, store, _, received = make_collector([FailingProvider(), aws_provider], clock)

        points = collector.collect()

        assert {p.provider for p in points} == {"aws"}
        errors = [e for e in received if isinstance(e, DataCollectionError)]
        assert len(errors) == 1
        assert errors[0].provider == "broken"
        assert isinstance(errors[0].error, CostProviderError)

    def test_success_publishes_data_collected(self, aws_provider, clock, start_time):
        collector, _, _, received = make_collector([aws_provider], clock)

        collector.collect()

        collected = [e for e in received if isinstance(e, DataCollected)]
        assert collected == [DataCollected(provider="aws", timestamp=start_time, data_points=2)]

    def test_slow_provider_times_out(self, aws_provider, clock):
        slow = BlockingProvider()
        collector, _, _, received = make_collector([slow, aws_provider], clock, timeout=1)

        try:
            points = collector.collect()
        finally:
            slow.release.set()

        assert {p.provider for p in points} == {"aws"}
        errors = [e for e in received if isinstance(e, DataCollectionError)]
        assert [e.provider for e in errors] == ["slow"]
        assert "Timed out" in str(errors[0].error)

    def test_failure_does_not_mark_series_seen(self, clock):
        """A provider that fails first still gets its baseline later."""
        provider = Mock()
        provider.name = "azure"
        provider.get_cost_breakdown.side_effect = [
            CostProviderError("boom"),
            CostBreakdown(this_month={"VM": 20.0}, last_month={"VM": 10.0}),
        ]
        collector, _, _, _ = make_collector([provider], clock)

        assert collector.collect() == []
        points = collector.collect()

        assert [p.is_baseline for p in points] == [True, False]


class TestCollectorBookkeeping:
    """Test counters and configuration clamping."""

    def test_records_collection_time(self, aws_provider, clock):
        collector, _, counters, _ = make_collector([aws_provider], clock)

        collector.collect()
        collector.collect()

        assert counters.data_collections == 2
        assert len(counters.collection_times) == 2

    def test_no_providers_still_counts(self, clock):
        collector, store, counters, _ = make_collector([], clock)

        assert collector.collect() == []
        assert counters.data_collections == 1
        assert len(store) == 0

    def test_timeout_and_workers_are_clamped(self, clock):
        collector = CostCollector(
            [], CostDataStore(), EventBus(), OperationalCounters(), timeout=1000, max_workers=0
        )

        assert collector.timeout == 300
        assert collector.max_workers == 1

    def test_provider_name_falls_back_to_class_name(self):
        class Anonymous:
            def get_cost_breakdown(self):
                return CostBreakdown()

        assert provider_name(Anonymous()) == "Anonymous"
