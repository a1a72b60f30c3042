"""Telemetry pipeline: the single aggregator object handed to collaborators"""
from decimal import Decimal
from typing import Optional, Union
from collectors.host import HostSampler
from config import Config
from .definitions import build_definitions
from .exporters.base import BaseExporter, ExportResult
from .exporters.otlp_http import OTLPHttpExporter
from .frame_builder import FrameBuilder
from .interceptor import RequestContext, TelemetryRecorder
from .presence import PresenceTracker
from .registry import MetricRegistry
from .scheduler import FlushScheduler


class TelemetryPipeline:
    """Owns the registry, presence map and export cycle of one process.

    The routing layer calls the ``on_*`` hooks and reads back nothing but
    the outcome of a flush. Build one instance at startup and pass it by
    reference; a fresh instance is a clean slate.
    """

    def __init__(self, config: Config, exporter: Optional[BaseExporter] = None,
                 sampler: Optional[HostSampler] = None):
        self.config = config
        self.registry = MetricRegistry(
            build_definitions(config.latency_reset_on_flush),
            max_series_per_metric=config.max_series_per_metric,
        )
        self.presence = PresenceTracker()
        self.recorder = TelemetryRecorder(self.registry, self.presence, track_endpoints=config.track_endpoints)
        self.sampler = sampler or HostSampler(precision=config.percent_precision)
        self.builder = FrameBuilder(source=config.service_name)
        self.exporter = exporter or OTLPHttpExporter(config)

        self.scheduler = FlushScheduler(
            config, self.registry, self.presence, self.sampler, self.builder, self.exporter
        )

    # Inbound collaborator boundary

    def on_request_start(self, method: str, path: str) -> Optional[RequestContext]:
        return self.recorder.on_request_start(method, path)

    def on_request_end(self, context: Optional[RequestContext]) -> Optional[int]:
        return self.recorder.on_request_end(context)

    def on_auth_success(self) -> None:
        self.recorder.record_auth_success()

    def on_auth_failure(self) -> None:
        self.recorder.record_auth_failure()

    def on_user_login(self, token: str) -> None:
        self.recorder.record_login(token)

    def on_user_logout(self, token: str) -> None:
        self.recorder.record_logout(token)

    def on_user_activity(self, token: str) -> None:
        self.recorder.record_activity(token)

    def on_order_completed(self, item_count: int, revenue_usd: Union[int, float, str, Decimal]) -> None:
        self.recorder.record_order_completed(item_count, revenue_usd)

    def on_order_failed(self) -> None:
        self.recorder.record_order_failed()

    # Lifecycle

    async def start(self) -> None:
        await self.scheduler.start()

    async def flush(self) -> Optional[ExportResult]:
        return await self.scheduler.flush()

    async def shutdown(self, timeout: Optional[float] = None) -> Optional[ExportResult]:
        return await self.scheduler.shutdown(timeout)

    def status(self) -> dict:
        status = self.scheduler.status()
        status["tracked_tokens"] = self.presence.tracked_count()
        status["evicted_series"] = self.registry.evicted_series
        status["overflowed_increments"] = self.registry.overflowed_increments
        return status
