"""
Request metrics middleware for the gateway-metrics exporter.

Records every request served by the hosting application as a completed
event (status, sizes, latencies, query parameters and path) and keeps the
connection counters reported on the scrape path up to date.
"""

from __future__ import annotations

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from gm_common.models import (
    CompletedEvent,
    ConsumerRef,
    Latencies,
    PluginConfig,
    RouteRef,
    ServiceRef,
)
from gm_common.models.event import QueryValue

from exporter.exporter import Exporter
from exporter.sources import ConnectionStats

logger = structlog.get_logger(__name__)

CONSUMER_HEADER = "x-consumer-username"


def query_params(request: Request) -> dict[str, QueryValue]:
    """Collapse query arguments, keeping repeated names as lists."""
    params: dict[str, QueryValue] = {}
    for name, value in request.query_params.multi_items():
        current = params.get(name)
        if current is None:
            params[name] = value
        elif isinstance(current, list):
            current.append(value)
        else:
            params[name] = [current, value]
    return params


class MetricsMiddleware(BaseHTTPMiddleware):
    """Feed each request of the hosting app to the exporter's recorder.

    Args:
        app: The wrapped ASGI application.
        exporter: Exporter receiving the events.
        config: Recorder options applied to every request.
        service_name: Service identity reported for this application.
        connections: Connection counters to maintain, if any.
        exclude_paths: Paths that are served but never recorded.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        exporter: Exporter,
        config: PluginConfig,
        service_name: str,
        connections: ConnectionStats | None = None,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self._exporter = exporter
        self._config = config
        self._service = ServiceRef(name=service_name)
        self._connections = connections
        self._exclude = frozenset(exclude_paths or ())

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        if self._connections is not None:
            self._connections.request_started()

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            if self._connections is not None:
                self._connections.request_finished(response_started=False)
            self._record(request, 500, None, start)
            raise

        if self._connections is not None:
            self._connections.response_started()
            self._connections.request_finished()
        self._record(
            request,
            response.status_code,
            response.headers.get("content-length"),
            start,
        )
        return response

    def _record(
        self,
        request: Request,
        status: int,
        response_size: str | None,
        start: float,
    ) -> None:
        path = request.url.path
        if path in self._exclude:
            return
        total_ms = (time.monotonic() - start) * 1000

        route = request.scope.get("route")
        consumer = request.headers.get(CONSUMER_HEADER)
        try:
            event = CompletedEvent(
                service=self._service,
                route=RouteRef(name=getattr(route, "path", None)) if route is not None else None,
                consumer=ConsumerRef(username=consumer) if consumer else None,
                request_size=request.headers.get("content-length"),
                response_size=response_size,
                response_status=status,
                latencies=Latencies(request=total_ms),
                raw_query_params=query_params(request),
                raw_path=path,
            )
            self._exporter.record_event(self._config, event)
        except Exception:  # noqa: BLE001
            logger.exception("metrics_record_failed", path=path)
