"""
FastAPI application entry point for the gateway-metrics exporter.

Creates and configures the FastAPI app, builds the exporter and its
collaborators, registers routers and the request metrics middleware, and
runs the per-process ``initialize`` / ``init_worker`` hooks at startup.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
import uvicorn
from fastapi import FastAPI

from gm_common.config import Settings, get_settings
from gm_common.logging import configure_logging
from gm_common.storage import build_shared_dict

from exporter.exporter import Exporter
from exporter.middleware import MetricsMiddleware
from exporter.routers import events, health, metrics, upstreams
from exporter.sources import ConnectionStats, InMemoryUpstreams, SQLAlchemyDatastoreProbe

logger = structlog.get_logger()


def build_exporter(settings: Settings) -> Exporter:
    """Build an exporter wired to the collaborators configured in *settings*."""
    datastore = SQLAlchemyDatastoreProbe(settings.db_uri) if settings.db_uri else None
    return Exporter(
        settings,
        shared=build_shared_dict(settings),
        upstreams=InMemoryUpstreams(),
        datastore=datastore,
        connections=ConnectionStats(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    exporter: Exporter = app.state.exporter

    # — Startup —
    if exporter.initialize():
        exporter.init_worker()
    logger.info("exporter_startup", enabled=exporter.enabled)

    yield

    # — Shutdown —
    logger.info("exporter_shutdown")
    exporter.shutdown()
    if isinstance(exporter.datastore, SQLAlchemyDatastoreProbe):
        exporter.datastore.dispose()


def create_app(settings: Settings | None = None, exporter: Exporter | None = None) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    settings = settings or get_settings()
    exporter = exporter or build_exporter(settings)

    app = FastAPI(
        title="Gateway Metrics Exporter",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.exporter = exporter
    app.state.plugin_config = settings.plugin_config()
    app.state.upstreams = exporter.upstreams

    app.include_router(metrics.router)
    app.include_router(events.router)
    app.include_router(health.router)
    app.include_router(upstreams.router)

    connections = exporter.connections
    app.add_middleware(
        MetricsMiddleware,
        exporter=exporter,
        config=app.state.plugin_config,
        service_name=settings.service_name,
        connections=connections if isinstance(connections, ConnectionStats) else None,
        exclude_paths=settings.exclude_paths,
    )

    return app


def run() -> None:
    """Run the exporter with uvicorn."""
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.log_json, service="exporter")
    uvicorn.run(create_app(settings), host=settings.exporter_host, port=settings.exporter_port)


if __name__ == "__main__":
    run()
