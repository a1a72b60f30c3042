"""Tests for the FastAPI host and the telemetry middleware"""
import json
import os
import time
from unittest.mock import patch
import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import main
from app.server import TelemetryServer
from config import Config
from metrics import definitions as names
from metrics.exporters.otlp_http import OTLPHttpExporter
from metrics.pipeline import TelemetryPipeline


class TestTelemetryServer:
    """Test request instrumentation and the admin routes"""

    def setup_method(self):
        self.bodies = []
        self.config = Config(collector_url="http://collector.test/v1/metrics", api_key="key")
        exporter = OTLPHttpExporter(self.config, transport=httpx.MockTransport(self._collector))
        self.pipeline = TelemetryPipeline(self.config, exporter=exporter)
        self.server = TelemetryServer(self.config, self.pipeline)
        app = self.server.get_app()

        @app.get("/api/order/menu")
        def menu():
            return [{"title": "Veggie", "price": 0.0038}]

        @app.post("/api/order")
        def order():
            return {"order": {"id": 1}}

        @app.get("/api/broken")
        def broken():
            raise RuntimeError("database unavailable")

        self.app = app

    def _collector(self, request):
        self.bodies.append(json.loads(request.content))
        return httpx.Response(200)

    def counter(self, name, attributes=None):
        return self.pipeline.registry.snapshot().counter_value(name, attributes)

    def test_requests_are_counted(self):
        with TestClient(self.app) as client:
            for _ in range(3):
                assert client.get("/api/order/menu").status_code == 200
            for _ in range(2):
                assert client.post("/api/order").status_code == 200

            assert self.counter(names.HTTP_REQUESTS_TOTAL) == 5
            assert self.counter(names.HTTP_REQUESTS_GET) == 3
            assert self.counter(names.HTTP_REQUESTS_POST) == 2
            assert self.counter(names.HTTP_REQUESTS_ENDPOINT, {"endpoint": "GET /api/order/menu"}) == 3
            assert self.pipeline.registry.snapshot().get(names.HTTP_REQUEST_LATENCY).count == 5

    def test_response_passes_through(self):
        with TestClient(self.app) as client:
            response = client.get("/api/order/menu")

        assert response.json() == [{"title": "Veggie", "price": 0.0038}]

    def test_failed_request_still_completes(self):
        with TestClient(self.app, raise_server_exceptions=False) as client:
            response = client.get("/api/broken")

            assert response.status_code == 500
            assert self.counter(names.HTTP_REQUESTS_TOTAL) == 1
            assert self.pipeline.registry.snapshot().get(names.HTTP_REQUEST_LATENCY).count == 1

    def test_bearer_token_refreshes_logged_in_user(self):
        with TestClient(self.app) as client:
            self.pipeline.on_user_login("tok1")
            logged_in_at = self.pipeline.presence.last_seen("tok1")

            client.get("/api/order/menu", headers={"Authorization": "Bearer tok1"})
            client.get("/api/order/menu", headers={"Authorization": "Basic dXNlcjpwdw=="})

            assert self.pipeline.presence.tracked_count() == 1
            assert self.pipeline.presence.last_seen("tok1") >= logged_in_at

    def test_logged_out_and_forged_tokens_are_not_active(self):
        with TestClient(self.app) as client:
            self.pipeline.on_user_login("tok1")
            self.pipeline.on_user_logout("tok1")

            client.get("/api/order/menu", headers={"Authorization": "Bearer tok1"})
            for i in range(50):
                client.get("/api/order/menu", headers={"Authorization": f"Bearer forged{i}"})

            assert self.pipeline.presence.count_active(300000) == 0
            assert self.pipeline.presence.tracked_count() == 0

    def test_admin_routes_not_instrumented(self):
        with TestClient(self.app) as client:
            client.get("/health")
            client.get("/status")

            assert self.counter(names.HTTP_REQUESTS_TOTAL) == 0

    def test_health(self):
        with TestClient(self.app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["flush_period_ms"] == 30000

    def test_health_reports_stalled_ticks(self):
        with TestClient(self.app) as client:
            self.server.start_time = time.time() - 3600

            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["status"] == "unhealthy"

    def test_health_follows_recent_ticks(self):
        with TestClient(self.app) as client:
            self.server.start_time = time.time() - 3600
            self.pipeline.scheduler.last_tick_time = time.time()

            response = client.get("/health")

        assert response.status_code == 200

    def test_status(self):
        with TestClient(self.app) as client:
            data = client.get("/status").json()

        assert data["service"]["name"] == "jwt-pizza-service"
        assert data["collector"]["url"] == "http://collector.test/v1/metrics"
        assert data["export"]["running"] is True
        assert data["export"]["total_ticks"] == 0

    def test_manual_flush(self):
        with TestClient(self.app) as client:
            client.get("/api/order/menu")

            data = client.post("/flush").json()

        assert data["success"] is True
        assert data["total_ticks"] == 1
        assert data["result"]["status_code"] == 200
        metric_names = {
            m["name"] for m in self.bodies[0]["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]
        }
        assert names.CPU_USAGE_PERCENT in metric_names
        assert names.ACTIVE_USERS in metric_names

    def test_shutdown_flushes(self):
        with TestClient(self.app) as client:
            client.get("/api/order/menu")

        assert len(self.bodies) == 1
        assert self.pipeline.scheduler.running is False

    @pytest.mark.parametrize("path", ["/health", "/status"])
    def test_admin_paths_available(self, path):
        with TestClient(self.app) as client:
            assert client.get(path).status_code == 200


class TestMain:
    """Test the service entry point"""

    @patch("main.uvicorn.run")
    def test_main_serves_telemetry_app(self, mock_run):
        env = {
            "COLLECTOR_URL": "http://collector.test/v1/metrics",
            "API_KEY": "key",
            "METRICS_PORT": "9200",
        }
        with patch.dict(os.environ, env):
            main.main()

        app, = mock_run.call_args.args
        assert isinstance(app, FastAPI)
        assert {"/health", "/status", "/flush"} <= {route.path for route in app.routes}
        assert mock_run.call_args.kwargs["port"] == 9200

    @patch("main.uvicorn.run")
    def test_main_exits_on_invalid_config(self, mock_run):
        with patch.dict(os.environ, {"COLLECTOR_URL": "", "API_KEY": ""}):
            with pytest.raises(SystemExit):
                main.main()

        mock_run.assert_not_called()
