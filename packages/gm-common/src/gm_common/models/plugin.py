"""
Recorder configuration model for gateway-metrics.

Defines the per-plugin options that control which optional dimensions the
event recorder collects for each completed request.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PluginConfig(BaseModel):
    """Options for the event recorder.

    Attributes:
        per_consumer: Record consumer-labelled counters when a consumer is known.
        param_collect_list: Query parameter names, tried in order.
        param_value_extract: Regex applied to the parameter value.
        location_collect: Record the request path as a location dimension.
        location_extract: Regex applied to the request path.
    """

    model_config = {"frozen": True}

    per_consumer: bool = Field(default=False)
    param_collect_list: list[str] = Field(default_factory=list)
    param_value_extract: str | None = Field(default=None)
    location_collect: bool = Field(default=False)
    location_extract: str | None = Field(default=None)
