"""
Scrape endpoint for the gateway-metrics exporter.

Serves the Prometheus text exposition of the exporter's registry. The
route is synchronous so FastAPI runs it in the threadpool: the scrape path
may block on the datastore probe and the upstream enumeration.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from exporter.dependencies import get_exporter
from exporter.exporter import Exporter, ExporterDisabledError
from exporter.exposition import CONTENT_TYPE

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
def metrics(exporter: Exporter = Depends(get_exporter)) -> Response:
    """Expose every metric in the text exposition format."""
    try:
        payload = exporter.collect_snapshot()
    except ExporterDisabledError:
        return JSONResponse(
            status_code=500,
            content={"message": "An unexpected error occurred"},
        )
    return Response(content=payload, media_type=CONTENT_TYPE)
