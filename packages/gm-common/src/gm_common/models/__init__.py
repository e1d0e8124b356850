"""
Shared Pydantic data models for gateway-metrics.

This package contains the cross-module data models: completed request
events, recorder configuration, upstream health and node statistics.
"""

from gm_common.models.event import (
    CompletedEvent,
    ConsumerRef,
    Latencies,
    RouteRef,
    ServiceRef,
)
from gm_common.models.plugin import PluginConfig
from gm_common.models.upstream import (
    AddressHealth,
    ConnectionCounters,
    HealthState,
    MemoryStats,
    SharedSegmentStats,
    TargetHealth,
    WorkerHeapStats,
)

__all__ = [
    "AddressHealth",
    "CompletedEvent",
    "ConnectionCounters",
    "ConsumerRef",
    "HealthState",
    "Latencies",
    "MemoryStats",
    "PluginConfig",
    "RouteRef",
    "ServiceRef",
    "SharedSegmentStats",
    "TargetHealth",
    "WorkerHeapStats",
]
