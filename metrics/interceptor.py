"""Request and domain-event hooks that feed the registry"""
import functools
import time
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union
from . import definitions as names
from .presence import PresenceTracker
from .registry import MetricRegistry
from logging_config import get_logger


logger = get_logger(__name__)


def never_raise(method):
    """Log and swallow any failure so instrumentation cannot break the caller"""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception as e:
            logger.error(
                "Telemetry hook failed",
                hook=method.__name__,
                error=str(e),
                error_type=type(e).__name__,
                event_type="hook_error",
                exc_info=True
            )
            return None

    return wrapper


def to_cents(amount_usd: Union[int, float, str, Decimal]) -> int:
    """Round a dollar amount half-up to whole cents"""
    try:
        cents = Decimal(str(amount_usd)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100
    except InvalidOperation:
        raise ValueError(f"Invalid revenue amount: {amount_usd!r}") from None
    return int(cents)


@dataclass
class RequestContext:
    """State carried from request start to request completion"""
    method: str
    path: str
    started_at: float = field(default_factory=time.perf_counter)
    finished: bool = False

    @property
    def endpoint(self) -> str:
        return f"{self.method} {self.path}"


class TelemetryRecorder:
    """Translates inbound requests and domain events into registry mutations.

    Methods are safe to call from any thread. None of them raise: internal
    failures are logged and the instrumented request carries on.
    """

    def __init__(self, registry: MetricRegistry, presence: PresenceTracker, track_endpoints: bool = True):
        self.registry = registry
        self.presence = presence
        self.track_endpoints = track_endpoints

    @never_raise
    def on_request_start(self, method: str, path: str) -> RequestContext:
        context = RequestContext(
            method=(method or "").upper(),
            path=path or "/",
            started_at=time.perf_counter()
        )

        self.registry.increment_counter(names.HTTP_REQUESTS_TOTAL)
        method_counter = names.METHOD_COUNTERS.get(context.method)
        if method_counter:
            self.registry.increment_counter(method_counter)
        if self.track_endpoints:
            self.registry.increment_counter(
                names.HTTP_REQUESTS_ENDPOINT,
                attributes={names.ENDPOINT_ATTRIBUTE: context.endpoint}
            )
        return context

    @never_raise
    def on_request_end(self, context: Optional[RequestContext]) -> Optional[int]:
        """Record the latency of a finished request; returns elapsed ms"""
        if context is None or context.finished:
            return None
        context.finished = True

        elapsed_ms = max(0, int(round((time.perf_counter() - context.started_at) * 1000)))
        self.registry.add_latency_sample(names.HTTP_REQUEST_LATENCY, elapsed_ms)
        self.registry.add_latency_sample(
            names.HTTP_REQUEST_LATENCY,
            elapsed_ms,
            attributes={names.ENDPOINT_ATTRIBUTE: context.endpoint}
        )
        return elapsed_ms

    @never_raise
    def record_auth_success(self) -> None:
        self.registry.increment_counter(names.AUTH_ATTEMPTS_SUCCESS)

    @never_raise
    def record_auth_failure(self) -> None:
        self.registry.increment_counter(names.AUTH_ATTEMPTS_FAILED)

    @never_raise
    def record_order_completed(self, item_count: int, revenue_usd: Union[int, float, str, Decimal]) -> None:
        """Count a fulfilled order, its items and its revenue in cents"""
        if item_count < 0:
            raise ValueError(f"Negative item count: {item_count}")
        cents = to_cents(revenue_usd)
        if cents < 0:
            raise ValueError(f"Negative revenue: {revenue_usd}")

        self.registry.increment_counter(names.ORDERS_COMPLETED)
        self.registry.increment_counter(names.ORDERS_ITEMS_SOLD, delta=int(item_count))
        self.registry.increment_counter(names.ORDERS_REVENUE_CENTS, delta=cents)

    @never_raise
    def record_order_failed(self) -> None:
        self.registry.increment_counter(names.ORDERS_FAILED)

    @never_raise
    def record_login(self, token: str) -> None:
        self.presence.touch(token)

    @never_raise
    def record_logout(self, token: str) -> None:
        self.presence.remove(token)

    @never_raise
    def record_activity(self, token: str) -> None:
        # Unknown or logged-out tokens stay untracked
        self.presence.refresh(token)
