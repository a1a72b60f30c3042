"""Base exporter interface and export outcome"""
import abc
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from config import Config
from metrics.otlp import ExportMetricsRequest


@dataclass(frozen=True)
class ExportResult:
    """Outcome of a single export attempt"""
    success: bool
    metrics_count: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BaseExporter(abc.ABC):
    """Abstract base class for metric exporters.

    ``export`` never raises: every failure is logged and reported through
    the returned ``ExportResult``.
    """

    def __init__(self, config: Config):
        self.config = config

    @abc.abstractmethod
    async def start(self) -> None:
        """Initialize the exporter"""
        pass

    @abc.abstractmethod
    async def export(self, batch: ExportMetricsRequest) -> ExportResult:
        """Send one batch to the backend"""
        pass

    @abc.abstractmethod
    async def shutdown(self) -> None:
        """Cleanup the exporter"""
        pass

    @abc.abstractmethod
    def is_healthy(self) -> bool:
        """Check if the last export succeeded"""
        pass
