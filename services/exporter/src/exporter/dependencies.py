"""
FastAPI dependency injection providers for the gateway-metrics exporter.

Defines reusable Depends() callables for the exporter instance and the
recorder configuration and the upstream registry stored on the application
state at startup.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from gm_common.models import PluginConfig

from exporter.exporter import Exporter
from exporter.sources import InMemoryUpstreams


def get_exporter(request: Request) -> Exporter:
    """Return the exporter stored on ``request.app.state.exporter``."""
    return request.app.state.exporter


def get_plugin_config(request: Request) -> PluginConfig:
    """Return the recorder configuration from app state."""
    return request.app.state.plugin_config


def get_upstreams(request: Request) -> InMemoryUpstreams:
    """Return the upstream registry from app state.

    Raises:
        HTTPException: 404 when the exporter reads upstream health from an
            external source that cannot be edited over HTTP.
    """
    upstreams = request.app.state.upstreams
    if not isinstance(upstreams, InMemoryUpstreams):
        raise HTTPException(status_code=404, detail="Upstream registration is not enabled")
    return upstreams
