"""Process-wide metric registry holding counters, gauges and latency accumulators"""
import threading
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Union
from .errors import MetricDefinitionError, UnknownMetricError
from .models import (
    Attributes,
    CounterPoint,
    GaugePoint,
    LatencyAccumulator,
    LatencyPoint,
    MetricDefinition,
    MetricType,
    RegistrySnapshot,
    ResetPolicy,
    normalize_attributes,
)
from logging_config import get_logger


logger = get_logger(__name__)

OVERFLOW_ATTRIBUTE_VALUE = "other"


class MetricRegistry:
    """Central store for every metric series the service reports.

    All mutation and snapshot operations take a single lock, so increments
    coming from request threads and the export tick never interleave inside
    an update. ``snapshot_and_reset`` copies and zeroes interval-scoped
    series under one acquisition: an increment lands either before the copy
    (and is exported) or after the reset (and is kept for the next tick).

    Series that carry attributes are capped per metric at
    ``max_series_per_metric``. Counters never lose a series: once the cap is
    reached, increments for new attribute sets go to a single overflow series
    whose attribute values are ``"other"``. Gauges and latency accumulators
    evict the least recently updated series instead. Unlabelled series are
    never evicted.
    """

    def __init__(self, definitions: Iterable[MetricDefinition], max_series_per_metric: int = 500):
        if max_series_per_metric < 1:
            raise ValueError("max_series_per_metric must be at least 1")

        self.max_series_per_metric = max_series_per_metric
        self.definitions: Dict[str, MetricDefinition] = {}
        self._series: Dict[str, "OrderedDict[Attributes, Union[int, float, LatencyAccumulator]]"] = {}
        self._evicted = 0
        self._overflowed = 0
        self._lock = threading.Lock()

        for definition in definitions:
            self.register(definition)

    def register(self, definition: MetricDefinition) -> None:
        """Declare a metric, validating its reset policy against its kind"""
        if definition.metric_type == MetricType.GAUGE:
            if definition.reset_policy != ResetPolicy.NONE:
                raise MetricDefinitionError(
                    f"Gauge {definition.name} cannot declare reset policy {definition.reset_policy.value}"
                )
        elif definition.reset_policy == ResetPolicy.NONE:
            raise MetricDefinitionError(
                f"{definition.metric_type.value} {definition.name} must declare a reset policy"
            )

        with self._lock:
            if definition.name in self.definitions:
                raise MetricDefinitionError(f"Metric {definition.name} is already defined")

            self.definitions[definition.name] = definition
            series = OrderedDict()
            if definition.emit_zero:
                if definition.metric_type == MetricType.COUNTER:
                    series[()] = 0
                elif definition.metric_type == MetricType.LATENCY:
                    series[()] = LatencyAccumulator()
            self._series[definition.name] = series

    def increment_counter(self, name: str, unit: Optional[str] = None, delta: int = 1,
                          attributes: Optional[Dict[str, str]] = None) -> None:
        """Add ``delta`` to a counter series"""
        if delta < 0:
            raise ValueError(f"Counter {name} cannot decrease (delta={delta})")

        self._check(name, MetricType.COUNTER, unit)
        key = normalize_attributes(attributes)
        with self._lock:
            series = self._series[name]
            if key and key not in series and self._labelled(series) >= self.max_series_per_metric:
                key = tuple((attribute, OVERFLOW_ATTRIBUTE_VALUE) for attribute, _ in key)
                self._overflowed += 1
            series[key] = series.get(key, 0) + int(delta)

    def set_gauge(self, name: str, unit: Optional[str], value: Union[int, float],
                  attributes: Optional[Dict[str, str]] = None) -> None:
        """Overwrite a gauge series with the latest reading"""
        self._check(name, MetricType.GAUGE, unit)
        key = normalize_attributes(attributes)
        with self._lock:
            series = self._series[name]
            series[key] = value
            self._touch(name, series, key)

    def add_latency_sample(self, name: str, duration_ms: int,
                           attributes: Optional[Dict[str, str]] = None) -> None:
        """Feed one request duration into a latency accumulator"""
        if duration_ms < 0:
            raise ValueError(f"Latency sample for {name} cannot be negative")

        self._check(name, MetricType.LATENCY, None)
        key = normalize_attributes(attributes)
        with self._lock:
            series = self._series[name]
            accumulator = series.get(key)
            if accumulator is None:
                accumulator = series[key] = LatencyAccumulator()
            accumulator.add(int(duration_ms))
            self._touch(name, series, key)

    def snapshot(self) -> RegistrySnapshot:
        """Immutable copy of every series"""
        with self._lock:
            return self._copy()

    def reset_interval_scoped(self) -> None:
        """Zero every series whose definition is interval-reset"""
        with self._lock:
            self._reset()

    def snapshot_and_reset(self) -> RegistrySnapshot:
        """Copy all series and zero the interval-scoped ones atomically"""
        with self._lock:
            snapshot = self._copy()
            self._reset()
            return snapshot

    def series_count(self, name: str) -> int:
        """Number of live series for a metric"""
        if name not in self.definitions:
            raise UnknownMetricError(name)
        with self._lock:
            return len(self._series[name])

    @property
    def evicted_series(self) -> int:
        return self._evicted

    @property
    def overflowed_increments(self) -> int:
        return self._overflowed

    @staticmethod
    def _labelled(series: OrderedDict) -> int:
        return len(series) - (1 if () in series else 0)

    def _check(self, name: str, metric_type: MetricType, unit: Optional[str]) -> None:
        definition = self.definitions.get(name)
        if definition is None:
            raise UnknownMetricError(name)
        if definition.metric_type != metric_type:
            raise MetricDefinitionError(
                f"Metric {name} is a {definition.metric_type.value}, not a {metric_type.value}"
            )
        if unit is not None and unit != definition.unit:
            raise MetricDefinitionError(
                f"Metric {name} is declared in {definition.unit!r}, got {unit!r}"
            )

    def _touch(self, name: str, series: OrderedDict, key: Attributes) -> None:
        # Caller holds the lock
        if not key:
            return
        series.move_to_end(key)
        if self._labelled(series) <= self.max_series_per_metric:
            return
        for candidate in series:
            if candidate:
                del series[candidate]
                self._evicted += 1
                logger.debug(
                    "Evicted least recently updated series",
                    metric=name,
                    attributes=dict(candidate),
                    event_type="series_evicted"
                )
                break

    def _copy(self) -> RegistrySnapshot:
        counters: List[CounterPoint] = []
        gauges: List[GaugePoint] = []
        latencies: List[LatencyPoint] = []

        for name, series in self._series.items():
            definition = self.definitions[name]
            for attributes, value in series.items():
                if definition.metric_type == MetricType.COUNTER:
                    counters.append(CounterPoint(name, definition.unit, value, attributes, definition.reset_policy))
                elif definition.metric_type == MetricType.GAUGE:
                    gauges.append(GaugePoint(name, definition.unit, value, attributes))
                else:
                    latencies.append(LatencyPoint(
                        name, definition.unit, value.total_ms, value.count, attributes, definition.reset_policy
                    ))

        return RegistrySnapshot(
            counters=tuple(counters),
            gauges=tuple(gauges),
            latencies=tuple(latencies),
            taken_at=time.time(),
        )

    def _reset(self) -> None:
        for name, series in self._series.items():
            definition = self.definitions[name]
            if definition.reset_policy != ResetPolicy.INTERVAL:
                continue
            for key, value in list(series.items()):
                if definition.metric_type == MetricType.LATENCY:
                    value.reset()
                else:
                    series[key] = 0
