"""
gateway-metrics exporter service.

Metric registry, cross-worker aggregation, event recording, upstream
health reconciliation and Prometheus exposition for a request pipeline.
"""

from exporter.exporter import Exporter, ExporterDisabledError
from exporter.families import (
    Counter,
    Gauge,
    Histogram,
    InvalidLabelArityError,
    MetricKind,
    NegativeIncrementError,
)
from exporter.registry import Registry

__all__ = [
    "Counter",
    "Exporter",
    "ExporterDisabledError",
    "Gauge",
    "Histogram",
    "InvalidLabelArityError",
    "MetricKind",
    "NegativeIncrementError",
    "Registry",
]
