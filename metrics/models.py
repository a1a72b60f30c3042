"""Metric data models"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

Attributes = Tuple[Tuple[str, str], ...]


class MetricType(Enum):
    """Kinds of metric held by the registry"""
    COUNTER = "counter"
    GAUGE = "gauge"
    LATENCY = "latency"


class ResetPolicy(Enum):
    """What happens to an accumulator after it has been exported"""
    NONE = "none"
    CUMULATIVE = "cumulative"
    INTERVAL = "interval"


@dataclass(frozen=True)
class MetricDefinition:
    """Declaration of a metric: kind, unit and reset policy are fixed at definition time"""
    name: str
    metric_type: MetricType
    unit: str = "1"
    reset_policy: ResetPolicy = ResetPolicy.NONE
    description: str = ""
    # Report an unlabelled zero series before the first update
    emit_zero: bool = True


@dataclass
class MetricValue:
    """Single instantaneous reading produced by a collector"""
    name: str
    value: Union[int, float]
    labels: Dict[str, str]
    help_text: str
    metric_type: MetricType = MetricType.GAUGE
    unit: str = "1"

    def __post_init__(self):
        # Ensure labels is never None
        if self.labels is None:
            self.labels = {}


@dataclass
class LatencyAccumulator:
    """Running total of request durations in milliseconds"""
    total_ms: int = 0
    count: int = 0

    def add(self, duration_ms: int) -> None:
        self.total_ms += duration_ms
        self.count += 1

    def reset(self) -> None:
        self.total_ms = 0
        self.count = 0

    @property
    def average(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


@dataclass(frozen=True)
class CounterPoint:
    name: str
    unit: str
    value: int
    attributes: Attributes = ()
    reset_policy: ResetPolicy = ResetPolicy.CUMULATIVE


@dataclass(frozen=True)
class GaugePoint:
    name: str
    unit: str
    value: Union[int, float]
    attributes: Attributes = ()


@dataclass(frozen=True)
class LatencyPoint:
    name: str
    unit: str
    total_ms: int
    count: int
    attributes: Attributes = ()
    reset_policy: ResetPolicy = ResetPolicy.CUMULATIVE

    @property
    def average(self) -> float:
        """Average duration, 0 when nothing was recorded"""
        return self.total_ms / self.count if self.count else 0.0


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable point-in-time copy of every series in the registry"""
    counters: Tuple[CounterPoint, ...] = ()
    gauges: Tuple[GaugePoint, ...] = ()
    latencies: Tuple[LatencyPoint, ...] = ()
    taken_at: float = 0.0
    _index: Dict[Tuple[str, Attributes], object] = field(default_factory=dict, init=False, compare=False, repr=False)

    def __post_init__(self):
        for point in self.counters + self.gauges + self.latencies:
            self._index[(point.name, point.attributes)] = point

    def get(self, name: str, attributes: Optional[Dict[str, str]] = None):
        """Look up a single series by name and attributes"""
        return self._index.get((name, normalize_attributes(attributes)))

    def counter_value(self, name: str, attributes: Optional[Dict[str, str]] = None) -> int:
        point = self.get(name, attributes)
        return point.value if isinstance(point, CounterPoint) else 0

    @property
    def series_count(self) -> int:
        return len(self.counters) + len(self.gauges) + len(self.latencies)


def normalize_attributes(attributes: Optional[Dict[str, str]]) -> Attributes:
    """Turn an attribute mapping into a hashable tuple ordered by key"""
    if not attributes:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in attributes.items()))
