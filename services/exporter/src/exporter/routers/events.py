"""
Event ingestion endpoint for the gateway-metrics exporter.

Lets a gateway that ships its request log over HTTP hand completed events
to the recorder, using the recorder options configured at startup.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from gm_common.models import CompletedEvent, PluginConfig

from exporter.dependencies import get_exporter, get_plugin_config
from exporter.exporter import Exporter

router = APIRouter(prefix="/events", tags=["events"])


class EventBatch(BaseModel):
    events: list[CompletedEvent]


class AcceptedResponse(BaseModel):
    accepted: int


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
def record_event(
    event: CompletedEvent,
    exporter: Exporter = Depends(get_exporter),
    config: PluginConfig = Depends(get_plugin_config),
) -> AcceptedResponse:
    exporter.record_event(config, event)
    return AcceptedResponse(accepted=1)


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
def record_events(
    batch: EventBatch,
    exporter: Exporter = Depends(get_exporter),
    config: PluginConfig = Depends(get_plugin_config),
) -> AcceptedResponse:
    for event in batch.events:
        exporter.record_event(config, event)
    return AcceptedResponse(accepted=len(batch.events))
