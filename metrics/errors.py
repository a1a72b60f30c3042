"""Exceptions raised by the telemetry core"""


class TelemetryError(Exception):
    """Base class for telemetry pipeline errors"""


class MetricDefinitionError(TelemetryError):
    """A metric was declared or used inconsistently with its definition"""


class UnknownMetricError(TelemetryError, KeyError):
    """A metric name was used without being declared"""

    def __str__(self) -> str:
        return f"Unknown metric: {self.args[0]}" if self.args else "Unknown metric"
