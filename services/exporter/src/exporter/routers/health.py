"""
Health check endpoint for the gateway-metrics exporter.

Exposes a ``/health`` endpoint reporting whether the exporter initialised
and which shared dictionary backs it.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from exporter.dependencies import get_exporter
from exporter.exporter import Exporter

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(exporter: Exporter = Depends(get_exporter)) -> dict[str, Any]:
    """Return exporter status.

    Returns:
        Dict with ``status``, ``service`` and ``shared_dict`` keys.
    """
    shared = exporter.shared
    return {
        "status": "ok" if exporter.enabled else "degraded",
        "service": "exporter",
        "shared_dict": shared.name if shared is not None else None,
    }
