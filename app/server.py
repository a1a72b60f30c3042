"""FastAPI application hosting the telemetry pipeline"""
import os
import time
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, HTTPException
from config import Config
from metrics.pipeline import TelemetryPipeline
from middleware.telemetry import TelemetryMiddleware
from logging_config import get_logger, log_error


logger = get_logger(__name__)

ADMIN_PATHS = ("/health", "/status", "/flush")


class TelemetryServer:
    """FastAPI app with the telemetry middleware installed.

    The service's own routers are mounted on ``get_app()``; the admin
    routes report the export cycle and are not themselves instrumented.
    """

    def __init__(self, config: Config, pipeline: Optional[TelemetryPipeline] = None):
        self.config = config
        self.pipeline = pipeline or TelemetryPipeline(config)
        self.start_time = time.time()
        self.app = FastAPI(
            title="Request Telemetry",
            version=config.service_version,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=self._lifespan
        )

        self.app.add_middleware(
            TelemetryMiddleware,
            pipeline=self.pipeline,
            exclude_paths=ADMIN_PATHS,
            log_requests=config.enable_request_logging
        )
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        self.start_time = time.time()
        logger.info(
            "Application startup initiated",
            service_name=self.config.service_name,
            service_version=self.config.service_version,
            flush_period_ms=self.config.flush_period_ms,
            event_type="server_startup"
        )
        await self.pipeline.start()
        try:
            yield
        finally:
            logger.info("Shutting down telemetry pipeline", event_type="server_shutdown")
            await self.pipeline.shutdown()

    def _setup_routes(self):
        """Setup admin routes"""

        @self.app.get('/health')
        def health_check():
            """Healthy while export ticks keep arriving"""
            last_activity = max(self.pipeline.scheduler.last_tick_time, self.start_time)
            age = time.time() - last_activity
            is_healthy = age < self.config.flush_period_seconds * 2

            health_data = {
                "status": "healthy" if is_healthy else "unhealthy",
                "last_tick_seconds_ago": round(age, 1),
                "flush_period_ms": self.config.flush_period_ms,
                "total_ticks": self.pipeline.scheduler.tick_count,
                "tick_errors": self.pipeline.scheduler.tick_errors,
                "exporter_healthy": self.pipeline.exporter.is_healthy()
            }

            if not is_healthy:
                raise HTTPException(status_code=503, detail=health_data)

            return health_data

        @self.app.get('/status')
        def get_status():
            """Export cycle details and the outcome of the last flush"""
            return {
                "service": {
                    "name": self.config.service_name,
                    "version": self.config.service_version,
                    "uptime_seconds": round(time.time() - self.start_time, 1),
                    "hostname": os.uname().nodename
                },
                "export": self.pipeline.status(),
                "collector": {
                    "url": self.config.collector_url,
                    "timeout_seconds": self.config.export_timeout_seconds
                }
            }

        @self.app.post('/flush')
        async def manual_flush():
            """Run an export tick now and report its outcome"""
            try:
                result = await self.pipeline.flush()
            except Exception as e:
                log_error(logger, e, {"component": "manual_flush", "endpoint": "/flush"})
                raise HTTPException(status_code=500, detail={"error": str(e)})

            return {
                "success": bool(result and result.success),
                "result": result.to_dict() if result else None,
                "total_ticks": self.pipeline.scheduler.tick_count
            }

    def get_app(self) -> FastAPI:
        """Get the FastAPI application"""
        return self.app


def create_app(config: Config, pipeline: Optional[TelemetryPipeline] = None) -> FastAPI:
    return TelemetryServer(config, pipeline).get_app()
