"""
Tests for the exporter HTTP endpoints.

Uses FastAPI's TestClient (which runs the lifespan) against an app built
around an in-memory shared dictionary.
"""

from __future__ import annotations

from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from gm_common.config import Settings

from exporter.exporter import Exporter
from exporter.main import create_app

from support import sample_lines, sample_value


@pytest.fixture()
def client(settings: Settings, exporter: Exporter) -> Iterator[TestClient]:
    with TestClient(create_app(settings, exporter)) as c:
        yield c


# ─── /metrics ─────────────────────────────────────────────────


class TestMetricsEndpoint:

    def test_exposition(self, client: TestClient) -> None:
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "text/plain; charset=UTF-8"
        assert "# TYPE gateway_http_status_total counter" in resp.text
        assert "gateway_metric_errors_total 0.0" in sample_lines(resp.text)

    def test_disabled_exporter_returns_500(self, settings: Settings) -> None:
        exp = Exporter(settings, shared=None)
        with TestClient(create_app(settings, exp)) as c:
            resp = c.get("/metrics")
        assert resp.status_code == 500
        assert resp.json() == {"message": "An unexpected error occurred"}

    def test_scrape_is_not_recorded(self, client: TestClient) -> None:
        client.get("/metrics")
        text = client.get("/metrics").text
        assert not any(line.startswith("gateway_http_status_total{") for line in sample_lines(text))


# ─── /events ──────────────────────────────────────────────────


class TestEventsEndpoint:

    def test_single_event(self, client: TestClient) -> None:
        resp = client.post(
            "/events",
            json={
                "service": {"name": "orders"},
                "route": {"name": "list"},
                "response_status": 201,
                "request_size": 512,
                "latencies": {"request": 12, "upstream": 8, "internal": 4},
            },
        )
        assert resp.status_code == 202
        assert resp.json() == {"accepted": 1}

        text = client.get("/metrics").text
        labels = {"service": "orders", "route": "list"}
        assert sample_value(text, "gateway_http_status_total", code="201", **labels) == 1.0
        assert sample_value(text, "gateway_bandwidth_total", type="ingress", **labels) == 512.0
        assert sample_value(text, "gateway_latency_count", type="upstream", **labels) == 1.0

    def test_batch(self, client: TestClient) -> None:
        events = [
            {"service": {"name": "orders"}, "response_status": 200},
            {"service": {"name": "orders"}, "response_status": 200},
            {"response_status": 500},
        ]
        resp = client.post("/events/batch", json={"events": events})
        assert resp.status_code == 202
        assert resp.json() == {"accepted": 3}

        text = client.get("/metrics").text
        assert sample_value(
            text, "gateway_http_status_total", service="orders", route="", code="200"
        ) == 2.0
        assert not any('code="500"' in line for line in sample_lines(text))

    def test_invalid_event(self, client: TestClient) -> None:
        resp = client.post("/events", json={"service": {"name": "orders"}})
        assert resp.status_code == 422


# ─── /health ──────────────────────────────────────────────────


class TestHealthEndpoint:

    def test_ok(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "service": "exporter",
            "shared_dict": "prometheus_metrics",
        }

    def test_degraded(self, settings: Settings) -> None:
        with TestClient(create_app(settings, Exporter(settings, shared=None))) as c:
            body = c.get("/health").json()
        assert body == {"status": "degraded", "service": "exporter", "shared_dict": None}


# ─── Async client ─────────────────────────────────────────────


class TestAsyncClient:

    @pytest.mark.asyncio
    async def test_metrics_over_asgi_transport(
        self, settings: Settings, exporter: Exporter
    ) -> None:
        app = create_app(settings, exporter)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            await ac.post("/events", json={"service": {"name": "api"}, "response_status": 204})
            resp = await ac.get("/metrics")

        assert resp.status_code == 200
        assert sample_value(
            resp.text, "gateway_http_status_total", service="api", route="", code="204"
        ) == 1.0


# ─── /upstreams ───────────────────────────────────────────────


class TestUpstreamsEndpoint:

    def test_registered_target_reported(self, client: TestClient) -> None:
        resp = client.put(
            "/upstreams/ws:orders/targets/orders.internal:80",
            json={"addresses": [{"ip": "10.0.0.5", "port": 80, "health": "UNHEALTHY"}]},
        )
        assert resp.status_code == 204
        assert client.get("/upstreams").json() == {"upstreams": ["ws:orders"]}

        text = client.get("/metrics").text
        assert sample_value(
            text,
            "gateway_upstream_target_health",
            upstream="orders",
            target="orders.internal:80",
            address="10.0.0.5:80",
            state="unhealthy",
        ) == 1.0

    def test_unresolved_target(self, client: TestClient) -> None:
        assert client.put("/upstreams/svc/targets/t1", json={}).status_code == 204

        text = client.get("/metrics").text
        assert sample_value(
            text,
            "gateway_upstream_target_health",
            upstream="svc",
            target="t1",
            address="",
            state="dns_error",
        ) == 1.0

    def test_removed_target_disappears(self, client: TestClient) -> None:
        client.put("/upstreams/svc/targets/t1", json={"addresses": []})
        assert client.delete("/upstreams/svc/targets/t1").status_code == 204
        assert client.delete("/upstreams/svc").status_code == 204

        text = client.get("/metrics").text
        assert client.get("/upstreams").json() == {"upstreams": []}
        assert not any(
            line.startswith("gateway_upstream_target_health{") for line in sample_lines(text)
        )

    def test_invalid_address_rejected(self, client: TestClient) -> None:
        resp = client.put(
            "/upstreams/svc/targets/t1",
            json={"addresses": [{"ip": "10.0.0.5", "port": 70000, "health": "healthy"}]},
        )
        assert resp.status_code == 422

    def test_external_source_not_editable(self, settings: Settings, shared) -> None:
        exp = Exporter(settings, shared=shared, upstreams=None)
        with TestClient(create_app(settings, exp)) as c:
            resp = c.put("/upstreams/svc/targets/t1", json={})
        assert resp.status_code == 404
