"""Builds the OTLP/JSON export body from a registry snapshot"""
import time
from typing import List, Optional, Union
from .models import Attributes, CounterPoint, GaugePoint, LatencyPoint, RegistrySnapshot
from .otlp import (
    AnyValue,
    ExportMetricsRequest,
    Gauge,
    KeyValue,
    Metric,
    NumberDataPoint,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from logging_config import get_logger

logger = get_logger(__name__)

SOURCE_ATTRIBUTE = "source"


class FrameBuilder:
    """Converts a snapshot into a batch of metric records.

    Counters become monotonic cumulative sums. Gauges and latency averages
    become gauges. Every data point carries the ``source`` attribute first,
    followed by the series' own attributes.
    """

    def __init__(self, source: str):
        self.source = source

    def build(self, snapshot: RegistrySnapshot, timestamp_ns: Optional[int] = None) -> ExportMetricsRequest:
        if timestamp_ns is None:
            timestamp_ns = int(snapshot.taken_at * 1e9) if snapshot.taken_at else time.time_ns()

        records: List[Metric] = []
        records.extend(self._sum_record(point, timestamp_ns) for point in snapshot.counters)
        records.extend(self._gauge_record(point, timestamp_ns) for point in snapshot.gauges)
        records.extend(self._latency_record(point, timestamp_ns) for point in snapshot.latencies)

        logger.debug(
            "Built export frame",
            series_count=snapshot.series_count,
            record_count=len(records),
            event_type="frame_built"
        )

        return ExportMetricsRequest(
            resource_metrics=[ResourceMetrics(scope_metrics=[ScopeMetrics(metrics=records)])]
        )

    def _attributes(self, attributes: Attributes) -> List[KeyValue]:
        pairs = [(SOURCE_ATTRIBUTE, self.source)]
        pairs.extend((key, value) for key, value in attributes if key != SOURCE_ATTRIBUTE)
        return [KeyValue(key=key, value=AnyValue(string_value=str(value))) for key, value in pairs]

    def _data_point(self, value: Union[int, float], attributes: Attributes, timestamp_ns: int) -> NumberDataPoint:
        if isinstance(value, bool):
            value = int(value)
        if isinstance(value, int):
            return NumberDataPoint(
                as_int=value, time_unix_nano=timestamp_ns, attributes=self._attributes(attributes)
            )
        return NumberDataPoint(
            as_double=float(value), time_unix_nano=timestamp_ns, attributes=self._attributes(attributes)
        )

    def _sum_record(self, point: CounterPoint, timestamp_ns: int) -> Metric:
        # Interval-reset counters still report as cumulative since the last reset
        return Metric(
            name=point.name,
            unit=point.unit,
            sum=Sum(data_points=[self._data_point(int(point.value), point.attributes, timestamp_ns)])
        )

    def _gauge_record(self, point: GaugePoint, timestamp_ns: int) -> Metric:
        return Metric(
            name=point.name,
            unit=point.unit,
            gauge=Gauge(data_points=[self._data_point(point.value, point.attributes, timestamp_ns)])
        )

    def _latency_record(self, point: LatencyPoint, timestamp_ns: int) -> Metric:
        return Metric(
            name=point.name,
            unit=point.unit,
            gauge=Gauge(data_points=[self._data_point(float(point.average), point.attributes, timestamp_ns)])
        )
