"""Periodic export tick: sample, snapshot, build, send"""
import asyncio
import time
from typing import Optional
from collectors.host import HostSampler
from config import Config
from . import definitions as names
from .exporters.base import BaseExporter, ExportResult
from .frame_builder import FrameBuilder
from .presence import PresenceTracker
from .registry import MetricRegistry
from logging_config import get_logger, log_error, log_flush


logger = get_logger(__name__)


class FlushScheduler:
    """Drives the export cycle on a fixed period.

    Each tick samples host gauges and the active-user count, takes an
    atomic snapshot-and-reset of the registry, builds the frame and hands it
    to the exporter as a background task. The next tick does not wait for
    that task. At most one export is in flight: a tick that finds the
    previous export still running is skipped before it snapshots, so
    interval-scoped accumulators keep their samples for the next tick.
    """

    def __init__(self, config: Config, registry: MetricRegistry, presence: PresenceTracker,
                 sampler: HostSampler, builder: FrameBuilder, exporter: BaseExporter):
        self.config = config
        self.registry = registry
        self.presence = presence
        self.sampler = sampler
        self.builder = builder
        self.exporter = exporter

        self.tick_count = 0
        self.tick_errors = 0
        self.skipped_ticks = 0
        self.last_tick_time = 0.0
        self.last_result: Optional[ExportResult] = None

        self._loop_task: Optional[asyncio.Task] = None
        self._export_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def export_in_flight(self) -> bool:
        return self._export_task is not None and not self._export_task.done()

    async def start(self) -> None:
        """Start the periodic loop"""
        if self.running:
            return
        await self.exporter.start()
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(
            "Export scheduler started",
            flush_period_ms=self.config.flush_period_ms,
            event_type="scheduler_start"
        )

    async def _run_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.flush_period_seconds)
                self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.tick_errors += 1
                log_error(logger, e, {"component": "export_tick", "tick_errors": self.tick_errors})

    def tick(self) -> Optional[asyncio.Task]:
        """Run one export tick; returns the spawned export task or None when skipped.

        A skipped tick still counts as loop activity in ``last_tick_time``.
        """
        start_time = time.time()
        self.tick_count += 1

        if self.export_in_flight:
            self.skipped_ticks += 1
            self.last_tick_time = time.time()
            logger.warning(
                "Previous export still in flight, skipping tick",
                skipped_ticks=self.skipped_ticks,
                event_type="export_tick_skipped"
            )
            log_flush(logger, 0, time.time() - start_time, skipped=True)
            return None

        self._sample_gauges()
        snapshot = self.registry.snapshot_and_reset()
        batch = self.builder.build(snapshot)

        self._export_task = asyncio.create_task(self._export(batch))
        self.last_tick_time = time.time()
        log_flush(logger, len(batch.metrics), self.last_tick_time - start_time)
        return self._export_task

    async def flush(self) -> Optional[ExportResult]:
        """Run a tick now and wait for its export to finish"""
        if self.export_in_flight:
            await asyncio.wait({self._export_task})
        task = self.tick()
        if task is None:
            return None
        return await task

    async def shutdown(self, timeout: Optional[float] = None) -> Optional[ExportResult]:
        """Stop the loop, drain the in-flight export and attempt one final flush"""
        timeout = self.config.shutdown_timeout_seconds if timeout is None else timeout

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        result = None
        try:
            result = await asyncio.wait_for(self.flush(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Final flush timed out", timeout_seconds=timeout, event_type="final_flush_timeout")
        except Exception as e:
            log_error(logger, e, {"component": "final_flush"})

        await self.exporter.shutdown()
        logger.info("Export scheduler stopped", ticks=self.tick_count, event_type="scheduler_shutdown")
        return result

    def _sample_gauges(self) -> None:
        for reading in self.sampler.collect():
            self.registry.set_gauge(reading.name, reading.unit, reading.value)

        retention_ms = self.config.presence_retention_ms
        if retention_ms:
            dropped = self.presence.sweep(retention_ms)
            if dropped:
                logger.debug("Swept stale presence entries", dropped=dropped, event_type="presence_sweep")

        self.registry.set_gauge(
            names.ACTIVE_USERS, None, self.presence.count_active(self.config.active_user_window_ms)
        )

    async def _export(self, batch) -> ExportResult:
        try:
            result = await self.exporter.export(batch)
        except Exception as e:
            log_error(logger, e, {"component": "export"})
            result = ExportResult(False, len(batch.metrics), error=str(e))
        self.last_result = result
        return result

    def status(self) -> dict:
        return {
            "running": self.running,
            "flush_period_ms": self.config.flush_period_ms,
            "total_ticks": self.tick_count,
            "tick_errors": self.tick_errors,
            "skipped_ticks": self.skipped_ticks,
            "last_tick_time": self.last_tick_time or None,
            "export_in_flight": self.export_in_flight,
            "exporter_healthy": self.exporter.is_healthy(),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
