"""
Prometheus text exposition for the gateway-metrics exporter.

Converts every family of a :class:`~exporter.registry.Registry` into a
``prometheus_client`` metric family and renders them with
``generate_latest``, which applies the format's escaping rules. Families
appear in registration order and series in label order so successive
scrapes diff cleanly.
"""

from __future__ import annotations

from typing import Callable, Iterator

from prometheus_client.core import (
    CounterMetricFamily,
    GaugeMetricFamily,
    HistogramMetricFamily,
    Metric,
)
from prometheus_client.exposition import generate_latest
from prometheus_client.registry import Collector, CollectorRegistry

from gm_common.metrics import format_bound

from exporter.families import MetricFamily, MetricKind
from exporter.registry import Registry

CONTENT_TYPE = "text/plain; charset=UTF-8"


def _counter(family: MetricFamily) -> Metric:
    metric = CounterMetricFamily(family.name, family.help, labels=list(family.label_names))
    for labels, value in family.iterate():
        metric.add_metric(list(labels), value)
    return metric


def _gauge(family: MetricFamily) -> Metric:
    metric = GaugeMetricFamily(family.name, family.help, labels=list(family.label_names))
    for labels, value in family.iterate():
        metric.add_metric(list(labels), value)
    return metric


def _histogram(family: MetricFamily) -> Metric:
    metric = HistogramMetricFamily(family.name, family.help, labels=list(family.label_names))
    for labels, value in family.iterate():
        buckets = [(format_bound(bound), count) for bound, count in value.buckets]
        metric.add_metric(list(labels), buckets, value.sum)
    return metric


_BUILDERS: dict[MetricKind, Callable[[MetricFamily], Metric]] = {
    MetricKind.COUNTER: _counter,
    MetricKind.GAUGE: _gauge,
    MetricKind.HISTOGRAM: _histogram,
}


class RegistryCollector(Collector):
    """Exposes a :class:`Registry` to ``prometheus_client``."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def collect(self) -> Iterator[Metric]:
        for family in self._registry:
            yield _BUILDERS[family.kind](family)


def render(registry: Registry) -> str:
    """Render *registry* in the Prometheus text exposition format."""
    collector_registry = CollectorRegistry(auto_describe=False)
    collector_registry.register(RegistryCollector(registry))
    return generate_latest(collector_registry).decode("utf-8")
