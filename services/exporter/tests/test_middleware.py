"""
Tests for the request metrics middleware.
"""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from starlette.datastructures import QueryParams

from gm_common.config import Settings
from gm_common.storage import InMemorySharedDict

from exporter.exporter import Exporter
from exporter.main import create_app
from exporter.middleware import query_params
from exporter.sources import ConnectionStats

from support import StubMemory, sample_lines, series


class _FakeRequest:
    def __init__(self, query: str) -> None:
        self.query_params = QueryParams(query)


@pytest.fixture()
def app_settings() -> Settings:
    return Settings(
        _env_file=None,
        service_name="shop",
        per_consumer=True,
        param_collect_list=["id"],
        location_collect=True,
    )


@pytest.fixture()
def app_exporter(app_settings: Settings, shared: InMemorySharedDict) -> Iterator[Exporter]:
    exp = Exporter(
        app_settings, shared=shared, connections=ConnectionStats(), memory=StubMemory()
    )
    yield exp
    exp.shutdown()


@pytest.fixture()
def app(app_settings: Settings, app_exporter: Exporter) -> FastAPI:
    app = create_app(app_settings, app_exporter)

    @app.get("/items/{item_id}")
    def get_item(item_id: int) -> dict[str, int]:
        return {"item_id": item_id}

    @app.get("/missing")
    def missing() -> None:
        raise HTTPException(status_code=404, detail="nope")

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("handler failed")

    return app


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


class TestQueryParams:

    def test_single_and_repeated(self) -> None:
        request = _FakeRequest("id=1&id=2&name=bob&id=3")
        assert query_params(request) == {"id": ["1", "2", "3"], "name": "bob"}  # type: ignore[arg-type]

    def test_empty(self) -> None:
        assert query_params(_FakeRequest("")) == {}  # type: ignore[arg-type]


class TestMetricsMiddleware:

    def test_request_recorded(self, client: TestClient, app_exporter: Exporter) -> None:
        resp = client.get("/items/7?id=42", headers={"X-Consumer-Username": "alice"})
        assert resp.status_code == 200

        metrics = app_exporter.metrics
        assert metrics is not None
        route = "/items/{item_id}"
        assert series(metrics.status) == {("shop", route, "200"): 1.0}
        assert series(metrics.consumer_status) == {("shop", route, "200", "alice"): 1.0}
        assert series(metrics.param_consumer_total) == {("shop", route, "42", "alice"): 1.0}
        assert series(metrics.location_consumer_total) == {
            ("shop", route, "/items/7", "alice"): 1.0
        }
        assert set(series(metrics.latency)) == {("shop", route, "request")}
        egress = series(metrics.bandwidth)[("shop", route, "egress")]
        assert egress == float(len(resp.content))

    def test_anonymous_request(self, client: TestClient, app_exporter: Exporter) -> None:
        client.get("/items/1")
        metrics = app_exporter.metrics
        assert metrics is not None
        assert series(metrics.consumer_status) == {}
        assert series(metrics.location_total) == {("shop", "/items/{item_id}", "/items/1"): 1.0}

    def test_error_status_recorded(self, client: TestClient, app_exporter: Exporter) -> None:
        assert client.get("/missing").status_code == 404
        assert app_exporter.metrics is not None
        assert series(app_exporter.metrics.status) == {("shop", "/missing", "404"): 1.0}

    def test_unhandled_exception_recorded_as_500(
        self, client: TestClient, app_exporter: Exporter
    ) -> None:
        assert client.get("/boom").status_code == 500
        assert app_exporter.metrics is not None
        assert series(app_exporter.metrics.status) == {("shop", "/boom", "500"): 1.0}

    def test_excluded_paths_not_recorded(
        self, client: TestClient, app_exporter: Exporter
    ) -> None:
        client.get("/metrics")
        client.get("/health")
        assert app_exporter.metrics is not None
        assert series(app_exporter.metrics.status) == {}

    def test_connections_reported_on_scrape(self, client: TestClient) -> None:
        client.get("/items/1")
        lines = sample_lines(client.get("/metrics").text)

        assert 'gateway_http_current_connections{state="accepted"} 2.0' in lines
        assert 'gateway_http_current_connections{state="handled"} 1.0' in lines
        assert 'gateway_http_current_connections{state="reading"} 1.0' in lines
        assert 'gateway_http_current_connections{state="waiting"} 0.0' in lines

    def test_record_failure_does_not_fail_request(
        self, client: TestClient, app_exporter: Exporter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def explode(*args: object) -> None:
            raise RuntimeError("recorder broken")

        monkeypatch.setattr(app_exporter, "record_event", explode)
        assert client.get("/items/3").status_code == 200
