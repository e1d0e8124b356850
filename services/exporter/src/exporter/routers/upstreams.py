"""
Upstream registration endpoints for the gateway-metrics exporter.

Lets the gateway push its upstream targets and their resolved addresses
into the exporter's in-memory registry, which the scrape path turns into
the ``upstream_target_health`` family.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from gm_common.models import AddressHealth

from exporter.dependencies import get_upstreams
from exporter.sources import InMemoryUpstreams

router = APIRouter(prefix="/upstreams", tags=["upstreams"])


class TargetRegistration(BaseModel):
    """Resolved addresses of a target; ``null`` when resolution failed."""

    addresses: list[AddressHealth] | None = Field(default=None)


@router.get("")
def list_upstreams(upstreams: InMemoryUpstreams = Depends(get_upstreams)) -> dict[str, list[str]]:
    return {"upstreams": sorted(upstreams.get_all_upstreams())}


@router.put("/{upstream}/targets/{target}", status_code=status.HTTP_204_NO_CONTENT)
def put_target(
    upstream: str,
    target: str,
    body: TargetRegistration,
    upstreams: InMemoryUpstreams = Depends(get_upstreams),
) -> Response:
    upstreams.set_target(upstream, target, body.addresses)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{upstream}/targets/{target}", status_code=status.HTTP_204_NO_CONTENT)
def delete_target(
    upstream: str,
    target: str,
    upstreams: InMemoryUpstreams = Depends(get_upstreams),
) -> Response:
    upstreams.remove_target(upstream, target)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{upstream}", status_code=status.HTTP_204_NO_CONTENT)
def delete_upstream(
    upstream: str,
    upstreams: InMemoryUpstreams = Depends(get_upstreams),
) -> Response:
    upstreams.remove_upstream(upstream)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
