"""Helpers and stub collaborators shared by the exporter tests."""

from __future__ import annotations

from prometheus_client.parser import text_string_to_metric_families

from gm_common.models import (
    AddressHealth,
    ConnectionCounters,
    MemoryStats,
    SharedSegmentStats,
    WorkerHeapStats,
)


def series(family) -> dict:
    """Return ``{labels: value}`` for every series of *family*."""
    return dict(family.iterate())


def sample_lines(text: str) -> list[str]:
    """Exposition lines that carry a value."""
    return [line for line in text.splitlines() if line and not line.startswith("#")]


def sample_value(text: str, name: str, **labels: str) -> float | None:
    """Value of the sample *name* whose labels are exactly *labels*, else ``None``."""
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name == name and sample.labels == labels:
                return sample.value
    return None


def address(ip: str, port: int, health: str) -> AddressHealth:
    return AddressHealth(ip=ip, port=port, health=health)


class StubDatastore:
    def __init__(self, reachable: bool = True, error: Exception | None = None) -> None:
        self.reachable = reachable
        self.error = error
        self.calls = 0

    def probe(self) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.reachable


class StubMemory:
    def get_memory_stats(self) -> MemoryStats:
        return MemoryStats(
            shared_segments=[
                SharedSegmentStats(name="prometheus_metrics", allocated_bytes=2048, capacity_bytes=8192)
            ],
            per_worker_heaps=[WorkerHeapStats(id="4242", allocated_bytes=1000)],
        )


class StubConnections:
    def __init__(self, counters: ConnectionCounters) -> None:
        self.counters = counters

    def get_connection_counters(self) -> ConnectionCounters:
        return self.counters
