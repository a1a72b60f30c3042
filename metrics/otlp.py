"""OTLP/JSON wire models for the metrics export body"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

CUMULATIVE = "AGGREGATION_TEMPORALITY_CUMULATIVE"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AnyValue(WireModel):
    string_value: str


class KeyValue(WireModel):
    key: str
    value: AnyValue


class NumberDataPoint(WireModel):
    as_int: Optional[int] = None
    as_double: Optional[float] = None
    time_unix_nano: int
    attributes: List[KeyValue] = []

    @model_validator(mode="after")
    def check_single_value(self):
        if (self.as_int is None) == (self.as_double is None):
            raise ValueError("A data point carries exactly one of asInt or asDouble")
        return self


class Sum(WireModel):
    data_points: List[NumberDataPoint]
    aggregation_temporality: str = CUMULATIVE
    is_monotonic: bool = True


class Gauge(WireModel):
    data_points: List[NumberDataPoint]


class Metric(WireModel):
    name: str
    unit: str
    sum: Optional[Sum] = None
    gauge: Optional[Gauge] = None

    @model_validator(mode="after")
    def check_single_kind(self):
        if (self.sum is None) == (self.gauge is None):
            raise ValueError(f"Metric {self.name} must be exactly one of sum or gauge")
        return self


class ScopeMetrics(WireModel):
    metrics: List[Metric]


class ResourceMetrics(WireModel):
    scope_metrics: List[ScopeMetrics]


class ExportMetricsRequest(WireModel):
    resource_metrics: List[ResourceMetrics]

    @property
    def metrics(self) -> List[Metric]:
        return [
            metric
            for resource in self.resource_metrics
            for scope in resource.scope_metrics
            for metric in scope.metrics
        ]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase field names of OTLP/JSON"""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
