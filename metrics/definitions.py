"""Metric names and their declared kind, unit and reset policy"""
from typing import Dict, List
from .models import MetricDefinition, MetricType, ResetPolicy

# Request traffic
HTTP_REQUESTS_TOTAL = "http_requests_total"
HTTP_REQUESTS_GET = "http_requests_get"
HTTP_REQUESTS_POST = "http_requests_post"
HTTP_REQUESTS_PUT = "http_requests_put"
HTTP_REQUESTS_DELETE = "http_requests_delete"
HTTP_REQUESTS_ENDPOINT = "http_requests_endpoint"
HTTP_REQUEST_LATENCY = "http_request_latency"

# Authentication
AUTH_ATTEMPTS_SUCCESS = "auth_attempts_success"
AUTH_ATTEMPTS_FAILED = "auth_attempts_failed"

# Orders
ORDERS_COMPLETED = "orders_completed"
ORDERS_FAILED = "orders_failed"
ORDERS_ITEMS_SOLD = "orders_items_sold"
ORDERS_REVENUE_CENTS = "orders_revenue_cents"

# Point-in-time readings
CPU_USAGE_PERCENT = "cpu_usage_percent"
MEMORY_USAGE_PERCENT = "memory_usage_percent"
ACTIVE_USERS = "active_users"

METHOD_COUNTERS: Dict[str, str] = {
    "GET": HTTP_REQUESTS_GET,
    "POST": HTTP_REQUESTS_POST,
    "PUT": HTTP_REQUESTS_PUT,
    "DELETE": HTTP_REQUESTS_DELETE,
}

ENDPOINT_ATTRIBUTE = "endpoint"


def _counter(name: str, description: str, unit: str = "1") -> MetricDefinition:
    return MetricDefinition(name, MetricType.COUNTER, unit, ResetPolicy.CUMULATIVE, description)


def _gauge(name: str, description: str, unit: str) -> MetricDefinition:
    return MetricDefinition(name, MetricType.GAUGE, unit, ResetPolicy.NONE, description)


def build_definitions(latency_reset_on_flush: bool = False) -> List[MetricDefinition]:
    """Declare every metric the service emits.

    Counters are cumulative for the process lifetime. Latency accumulators
    follow ``latency_reset_on_flush``: when set they report per-interval
    averages and are zeroed right after each export tick.
    """
    latency_policy = ResetPolicy.INTERVAL if latency_reset_on_flush else ResetPolicy.CUMULATIVE

    return [
        _counter(HTTP_REQUESTS_TOTAL, "Total requests received"),
        _counter(HTTP_REQUESTS_GET, "GET requests received"),
        _counter(HTTP_REQUESTS_POST, "POST requests received"),
        _counter(HTTP_REQUESTS_PUT, "PUT requests received"),
        _counter(HTTP_REQUESTS_DELETE, "DELETE requests received"),
        MetricDefinition(
            HTTP_REQUESTS_ENDPOINT, MetricType.COUNTER, "1", ResetPolicy.CUMULATIVE,
            "Requests received per METHOD PATH", emit_zero=False
        ),
        _counter(AUTH_ATTEMPTS_SUCCESS, "Successful authentication attempts"),
        _counter(AUTH_ATTEMPTS_FAILED, "Failed authentication attempts"),
        _counter(ORDERS_COMPLETED, "Orders fulfilled"),
        _counter(ORDERS_FAILED, "Orders that failed"),
        _counter(ORDERS_ITEMS_SOLD, "Items sold across fulfilled orders"),
        _counter(ORDERS_REVENUE_CENTS, "Revenue of fulfilled orders in US cents", unit="USD_cents"),
        MetricDefinition(
            HTTP_REQUEST_LATENCY, MetricType.LATENCY, "ms", latency_policy,
            "Average request latency, service-wide and per endpoint"
        ),
        _gauge(CPU_USAGE_PERCENT, "Load average per logical core", "%"),
        _gauge(MEMORY_USAGE_PERCENT, "Share of physical memory in use", "%"),
        _gauge(ACTIVE_USERS, "Distinct tokens seen within the active-user window", "1"),
    ]
