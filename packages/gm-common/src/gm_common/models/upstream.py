"""
Upstream health and node statistics models for gateway-metrics.

Defines the Pydantic models returned by the collaborators consulted on the
scrape path: upstream target health, process memory statistics and
connection counters.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, field_validator


class HealthState(str, enum.Enum):
    """Mutually exclusive health states of an upstream target address."""

    HEALTHCHECKS_OFF = "healthchecks_off"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DNS_ERROR = "dns_error"


class AddressHealth(BaseModel):
    """A resolved address of a target and its health-check state."""

    ip: str
    port: int = Field(..., ge=0, le=65535)
    health: HealthState

    @field_validator("health", mode="before")
    @classmethod
    def _lower(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @property
    def label(self) -> str:
        return f"{self.ip}:{self.port}"


class TargetHealth(BaseModel):
    """Health information for one target of an upstream."""

    addresses: list[AddressHealth] = Field(default_factory=list)


class SharedSegmentStats(BaseModel):
    """Allocation of one shared dictionary."""

    name: str
    allocated_bytes: int = Field(..., ge=0)
    capacity_bytes: int = Field(..., ge=0)


class WorkerHeapStats(BaseModel):
    """Memory held by one worker process."""

    id: str
    allocated_bytes: int = Field(..., ge=0)


class MemoryStats(BaseModel):
    """Memory statistics of the node."""

    shared_segments: list[SharedSegmentStats] = Field(default_factory=list)
    per_worker_heaps: list[WorkerHeapStats] = Field(default_factory=list)


class ConnectionCounters(BaseModel):
    """Connection counters of the request pipeline.

    ``accepted``, ``handled`` and ``total`` are ``None`` when the pipeline
    could not report them.
    """

    accepted: int | None = None
    handled: int | None = None
    total: int | None = None
    active: int = 0
    reading: int = 0
    writing: int = 0
    waiting: int = 0
