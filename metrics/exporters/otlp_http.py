"""OTLP/JSON exporter posting metric batches over HTTP"""
import time
from typing import Optional
import httpx
from .base import BaseExporter, ExportResult
from config import Config
from metrics.otlp import ExportMetricsRequest
from logging_config import get_logger


logger = get_logger(__name__)


class OTLPHttpExporter(BaseExporter):
    """Posts each batch once to the configured collector with a bearer token.

    Best effort: no retry and no backoff. A non-2xx response logs the
    response body together with the request body; transport failures log
    the error. Neither propagates to the caller.
    """

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config)
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        self._healthy = True

    async def start(self) -> None:
        """Create the HTTP client"""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.config.export_timeout_seconds,
                transport=self._transport,
            )
            logger.info(
                "OTLP HTTP exporter started",
                endpoint=self.config.collector_url,
                timeout_seconds=self.config.export_timeout_seconds,
                event_type="exporter_start"
            )

    async def export(self, batch: ExportMetricsRequest) -> ExportResult:
        start_time = time.perf_counter()
        metrics_count = len(batch.metrics)

        try:
            body = batch.to_json()
        except (ValueError, TypeError) as e:
            logger.error(
                "Failed to serialize metrics batch",
                error=str(e),
                error_type=type(e).__name__,
                event_type="otlp_serialization_error",
                exc_info=True
            )
            self._healthy = False
            return ExportResult(False, metrics_count, error=str(e))

        if self.client is None:
            await self.start()

        try:
            response = await self.client.post(
                self.config.collector_url,
                content=body,
                headers=self.config.get_auth_headers(),
            )
        except httpx.HTTPError as e:
            duration = time.perf_counter() - start_time
            logger.error(
                "Error sending metrics",
                error=str(e),
                error_type=type(e).__name__,
                endpoint=self.config.collector_url,
                event_type="otlp_transport_error"
            )
            self._healthy = False
            return ExportResult(False, metrics_count, error=str(e), duration_seconds=duration)

        duration = time.perf_counter() - start_time

        if not response.is_success:
            logger.error(
                "Failed to send metrics",
                status_code=response.status_code,
                response_body=response.text,
                request_body=body,
                endpoint=self.config.collector_url,
                event_type="otlp_rejected"
            )
            self._healthy = False
            return ExportResult(
                False, metrics_count,
                status_code=response.status_code,
                error=response.text or response.reason_phrase,
                duration_seconds=duration
            )

        logger.info(
            "Successfully pushed metrics",
            metrics_count=metrics_count,
            status_code=response.status_code,
            export_time_seconds=round(duration, 3),
            event_type="otlp_export"
        )
        self._healthy = True
        return ExportResult(True, metrics_count, status_code=response.status_code, duration_seconds=duration)

    async def shutdown(self) -> None:
        """Close the HTTP client"""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
        logger.info("OTLP HTTP exporter shutdown", event_type="exporter_shutdown")

    def is_healthy(self) -> bool:
        return self._healthy
