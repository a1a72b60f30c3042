"""Tests for the metric registry"""
import threading
import pytest

from metrics import definitions as names
from metrics.definitions import build_definitions
from metrics.errors import MetricDefinitionError, UnknownMetricError
from metrics.models import MetricDefinition, MetricType, ResetPolicy
from metrics.registry import MetricRegistry


class TestMetricDefinitions:
    """Test reset-policy enforcement at definition time"""

    def test_gauge_cannot_declare_reset_policy(self):
        with pytest.raises(MetricDefinitionError):
            MetricRegistry([MetricDefinition("cpu", MetricType.GAUGE, "%", ResetPolicy.INTERVAL)])

    def test_counter_must_declare_reset_policy(self):
        with pytest.raises(MetricDefinitionError):
            MetricRegistry([MetricDefinition("requests", MetricType.COUNTER)])

    def test_latency_must_declare_reset_policy(self):
        with pytest.raises(MetricDefinitionError):
            MetricRegistry([MetricDefinition("latency", MetricType.LATENCY, "ms")])

    def test_duplicate_definition_rejected(self):
        definition = MetricDefinition("requests", MetricType.COUNTER, "1", ResetPolicy.CUMULATIVE)
        with pytest.raises(MetricDefinitionError):
            MetricRegistry([definition, definition])

    def test_latency_policy_follows_flag(self):
        cumulative = {d.name: d for d in build_definitions(latency_reset_on_flush=False)}
        interval = {d.name: d for d in build_definitions(latency_reset_on_flush=True)}

        assert cumulative[names.HTTP_REQUEST_LATENCY].reset_policy == ResetPolicy.CUMULATIVE
        assert interval[names.HTTP_REQUEST_LATENCY].reset_policy == ResetPolicy.INTERVAL
        # Counters stay cumulative either way
        assert interval[names.HTTP_REQUESTS_TOTAL].reset_policy == ResetPolicy.CUMULATIVE


class TestMetricRegistry:
    """Test registry mutation and snapshot behaviour"""

    def setup_method(self):
        self.registry = MetricRegistry(build_definitions(latency_reset_on_flush=True))

    def test_counters_start_at_zero(self):
        snapshot = self.registry.snapshot()

        for name in (names.HTTP_REQUESTS_TOTAL, names.HTTP_REQUESTS_GET, names.HTTP_REQUESTS_DELETE):
            assert snapshot.counter_value(name) == 0
        # Attributed-only counters have no series until first use
        assert self.registry.series_count(names.HTTP_REQUESTS_ENDPOINT) == 0

    def test_increment_counter(self):
        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL)
        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL, "1", delta=4)

        assert self.registry.snapshot().counter_value(names.HTTP_REQUESTS_TOTAL) == 5

    def test_counter_with_attributes(self):
        attrs = {"endpoint": "GET /api/order"}
        self.registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes=attrs)
        self.registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes=attrs)
        self.registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "PUT /api/auth"})

        snapshot = self.registry.snapshot()
        assert snapshot.counter_value(names.HTTP_REQUESTS_ENDPOINT, attrs) == 2
        assert snapshot.counter_value(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "PUT /api/auth"}) == 1

    def test_counter_cannot_decrease(self):
        with pytest.raises(ValueError):
            self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL, delta=-1)

    def test_unknown_metric(self):
        with pytest.raises(UnknownMetricError):
            self.registry.increment_counter("not_declared")

    def test_wrong_kind_or_unit(self):
        with pytest.raises(MetricDefinitionError):
            self.registry.set_gauge(names.HTTP_REQUESTS_TOTAL, None, 3)

        with pytest.raises(MetricDefinitionError):
            self.registry.set_gauge(names.CPU_USAGE_PERCENT, "bytes", 3)

    def test_gauge_overwrites(self):
        self.registry.set_gauge(names.CPU_USAGE_PERCENT, "%", 40)
        self.registry.set_gauge(names.CPU_USAGE_PERCENT, "%", 12)

        point = self.registry.snapshot().get(names.CPU_USAGE_PERCENT)
        assert point.value == 12
        assert point.unit == "%"

    def test_latency_average(self):
        snapshot = self.registry.snapshot()
        assert snapshot.get(names.HTTP_REQUEST_LATENCY).average == 0

        self.registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 10)
        self.registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 25)

        point = self.registry.snapshot().get(names.HTTP_REQUEST_LATENCY)
        assert point.total_ms == 35
        assert point.count == 2
        assert point.average == 17.5

    def test_snapshot_is_immutable_copy(self):
        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL)
        snapshot = self.registry.snapshot()

        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL)

        assert snapshot.counter_value(names.HTTP_REQUESTS_TOTAL) == 1
        with pytest.raises(AttributeError):
            snapshot.counters[0].value = 10

    def test_reset_only_touches_interval_series(self):
        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL, delta=3)
        self.registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 40)

        self.registry.reset_interval_scoped()

        snapshot = self.registry.snapshot()
        assert snapshot.counter_value(names.HTTP_REQUESTS_TOTAL) == 3
        latency = snapshot.get(names.HTTP_REQUEST_LATENCY)
        assert latency.total_ms == 0
        assert latency.count == 0

    def test_snapshot_and_reset(self):
        self.registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 40, {"endpoint": "GET /"})

        snapshot = self.registry.snapshot_and_reset()

        assert snapshot.get(names.HTTP_REQUEST_LATENCY, {"endpoint": "GET /"}).total_ms == 40
        assert self.registry.snapshot().get(names.HTTP_REQUEST_LATENCY, {"endpoint": "GET /"}).count == 0

    def test_cumulative_latency_not_reset(self):
        registry = MetricRegistry(build_definitions(latency_reset_on_flush=False))
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 40)

        registry.snapshot_and_reset()

        assert registry.snapshot().get(names.HTTP_REQUEST_LATENCY).count == 1

    def test_counter_series_overflow_past_cap(self):
        registry = MetricRegistry(build_definitions(), max_series_per_metric=2)

        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /a"})
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /b"})
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /a"})
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /c"})
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /d"})

        snapshot = registry.snapshot()
        assert registry.series_count(names.HTTP_REQUESTS_ENDPOINT) == 3
        assert registry.evicted_series == 0
        assert registry.overflowed_increments == 2
        assert snapshot.counter_value(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "GET /a"}) == 2
        assert snapshot.counter_value(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "GET /b"}) == 1
        assert snapshot.counter_value(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "other"}) == 2
        assert snapshot.get(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "GET /c"}) is None

    def test_endpoint_counter_never_decreases_past_cap(self):
        registry = MetricRegistry(build_definitions(), max_series_per_metric=1)
        endpoint = {"endpoint": "GET /a"}

        for _ in range(3):
            registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes=endpoint)
        before = registry.snapshot().counter_value(names.HTTP_REQUESTS_ENDPOINT, endpoint)
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes={"endpoint": "GET /b"})
        registry.increment_counter(names.HTTP_REQUESTS_ENDPOINT, attributes=endpoint)
        after = registry.snapshot().counter_value(names.HTTP_REQUESTS_ENDPOINT, endpoint)

        assert before == 3
        assert after == 4

    def test_latency_series_are_evicted(self):
        registry = MetricRegistry(build_definitions(), max_series_per_metric=2)

        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /a"})
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /b"})
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /a"})
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /c"})

        snapshot = registry.snapshot()
        assert registry.evicted_series == 1
        # /b was least recently updated
        assert snapshot.get(names.HTTP_REQUEST_LATENCY, {"endpoint": "GET /b"}) is None
        assert snapshot.get(names.HTTP_REQUEST_LATENCY, {"endpoint": "GET /a"}).count == 2

    def test_unlabelled_series_never_evicted(self):
        registry = MetricRegistry(build_definitions(), max_series_per_metric=1)

        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5)
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /a"})
        registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, 5, {"endpoint": "GET /b"})

        snapshot = registry.snapshot()
        assert snapshot.get(names.HTTP_REQUEST_LATENCY).count == 1
        assert registry.series_count(names.HTTP_REQUEST_LATENCY) == 2


class TestRegistryConcurrency:
    """No increment is lost or double counted across a reset boundary"""

    def test_concurrent_increments(self):
        registry = MetricRegistry(build_definitions())
        threads = [
            threading.Thread(target=lambda: [registry.increment_counter(names.HTTP_REQUESTS_TOTAL) for _ in range(1000)])
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.snapshot().counter_value(names.HTTP_REQUESTS_TOTAL) == 8000

    def test_reset_loses_no_samples(self):
        registry = MetricRegistry([
            MetricDefinition("interval_latency", MetricType.LATENCY, "ms", ResetPolicy.INTERVAL),
        ])
        writers = 4
        samples_per_writer = 2000
        exported = []
        done = threading.Event()

        def write():
            for _ in range(samples_per_writer):
                registry.add_latency_sample("interval_latency", 1)

        def export():
            while not done.is_set():
                exported.append(registry.snapshot_and_reset().get("interval_latency").count)

        exporter = threading.Thread(target=export)
        exporter.start()
        threads = [threading.Thread(target=write) for _ in range(writers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        done.set()
        exporter.join()

        exported.append(registry.snapshot_and_reset().get("interval_latency").count)
        assert sum(exported) == writers * samples_per_writer
        assert registry.snapshot().get("interval_latency").count == 0
