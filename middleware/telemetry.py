"""Middleware feeding every inbound request into the telemetry pipeline"""
from typing import Iterable, Optional
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from metrics.pipeline import TelemetryPipeline
from logging_config import get_logger


logger = get_logger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    """Token from an ``Authorization: Bearer`` header, if any"""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Counts each request and records its latency once it completes.

    A bearer token on the request refreshes its presence entry if the token
    was logged in; unknown tokens are ignored. The request and response pass through untouched, and
    completion is recorded on both the success and the error path.
    """

    def __init__(self, app, pipeline: TelemetryPipeline, exclude_paths: Iterable[str] = (),
                 log_requests: bool = False):
        super().__init__(app)
        self.pipeline = pipeline
        self.exclude_paths = frozenset(exclude_paths)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in self.exclude_paths:
            return await call_next(request)

        context = self.pipeline.on_request_start(request.method, path)

        token = bearer_token(request)
        if token:
            self.pipeline.on_user_activity(token)

        try:
            return await call_next(request)
        finally:
            elapsed_ms = self.pipeline.on_request_end(context)
            if self.log_requests:
                logger.debug(
                    "HTTP request instrumented",
                    method=request.method,
                    path=path,
                    elapsed_ms=elapsed_ms,
                    event_type="http_request_complete"
                )
