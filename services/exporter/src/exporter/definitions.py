"""
Gateway metric set for the gateway-metrics exporter.

Declares every family the exporter publishes. Label order puts the most
diverse label last: trailing values that differ produce the most distinct
series keys, so keeping the stable labels first keeps keys grouped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from exporter.families import Counter, Gauge, Histogram
from exporter.registry import Registry


@dataclass(frozen=True)
class GatewayMetrics:
    """Handles to every family of the gateway metric set."""

    connections: Gauge
    datastore_reachable: Gauge
    upstream_target_health: Gauge
    worker_heap_bytes: Gauge
    shared_dict_bytes: Gauge
    shared_dict_total_bytes: Gauge
    status: Counter
    latency: Histogram
    bandwidth: Counter
    consumer_status: Counter
    param_total: Counter
    param_consumer_total: Counter
    location_total: Counter
    location_consumer_total: Counter


def define_metrics(registry: Registry, latency_buckets: Sequence[float]) -> GatewayMetrics:
    """Create the gateway families in *registry* and return their handles."""
    return GatewayMetrics(
        # node
        connections=registry.gauge(
            "http_current_connections",
            "Number of HTTP connections",
            ["state"],
        ),
        datastore_reachable=registry.gauge(
            "datastore_reachable",
            "Datastore reachable from the gateway, 0 is unreachable",
        ),
        upstream_target_health=registry.gauge(
            "upstream_target_health",
            "Health status of targets of upstream. "
            "States = healthchecks_off|healthy|unhealthy|dns_error, "
            "value is 1 when state is populated.",
            ["upstream", "target", "address", "state"],
        ),
        worker_heap_bytes=registry.gauge(
            "memory_workers_heap_bytes",
            "Allocated bytes in worker process",
            ["pid"],
        ),
        shared_dict_bytes=registry.gauge(
            "memory_shared_dict_bytes",
            "Allocated bytes in a shared dict",
            ["shared_dict"],
        ),
        shared_dict_total_bytes=registry.gauge(
            "memory_shared_dict_total_bytes",
            "Total capacity in bytes of a shared dict",
            ["shared_dict"],
        ),
        # per service/route
        status=registry.counter(
            "http_status",
            "HTTP status codes per service/route",
            ["service", "route", "code"],
        ),
        latency=registry.histogram(
            "latency",
            "Latency added by the gateway, total request time and "
            "upstream latency for each service/route",
            ["service", "route", "type"],
            latency_buckets,
        ),
        bandwidth=registry.counter(
            "bandwidth",
            "Total bandwidth in bytes consumed per service/route",
            ["service", "route", "type"],
        ),
        consumer_status=registry.counter(
            "http_consumer_status",
            "HTTP status codes for consumer per service/route",
            ["service", "route", "code", "consumer"],
        ),
        # per url param / location
        param_total=registry.counter(
            "http_url_param_total",
            "Requests per value of a collected URL query parameter",
            ["service", "route", "param"],
        ),
        param_consumer_total=registry.counter(
            "http_url_param_consumer_total",
            "Requests per value of a collected URL query parameter and consumer",
            ["service", "route", "param", "consumer"],
        ),
        location_total=registry.counter(
            "http_url_location_total",
            "Requests per URL location",
            ["service", "route", "location"],
        ),
        location_consumer_total=registry.counter(
            "http_url_location_consumer_total",
            "Requests per URL location and consumer",
            ["service", "route", "location", "consumer"],
        ),
    )
