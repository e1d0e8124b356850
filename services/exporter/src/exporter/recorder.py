"""
Event recorder for the gateway-metrics exporter.

Translates one completed request into a fixed, bounded set of metric
updates: status code, bandwidth, latency and the optional URL parameter and
location dimensions. Recording never fails the request: unusable values
are skipped one sub-metric at a time.
"""

from __future__ import annotations

import math
import re
import threading
from functools import lru_cache
from typing import Any, Mapping

import structlog

from gm_common.models import CompletedEvent, PluginConfig
from gm_common.models.event import QueryValue

from exporter.definitions import GatewayMetrics
from exporter.families import Counter

logger = structlog.get_logger()


@lru_cache(maxsize=64)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def positive_number(value: Any) -> float | None:
    """Return *value* as a float if it is a positive number, else ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or number <= 0:
        return None
    return number


def extract_value(value: str, pattern: str | None, group: str) -> str | None:
    """Apply an optional extraction *pattern* to *value*.

    The pattern is anchored at the start of *value* and case-insensitive.
    The result is the named *group* if it matched, else the first group, else
    *value* itself when the pattern has no groups.

    Returns:
        The extracted text, or ``None`` when nothing usable matched or the
        pattern is invalid.
    """
    if pattern is None:
        return value
    try:
        compiled = _compile(pattern)
    except re.error as exc:
        logger.error("metric_value_extract_failed", pattern=pattern, error=str(exc))
        return None

    match = compiled.match(value)
    if match is None:
        return None
    if compiled.groups == 0:
        return value
    if group in compiled.groupindex and match.group(group) is not None:
        return match.group(group)
    return match.group(1)


def first_scalar_param(params: Mapping[str, QueryValue], names: list[str]) -> str | None:
    """Return the value of the first parameter in *names* that has a single value."""
    for name in names:
        value = params.get(name)
        if isinstance(value, str):
            return value
    return None


class EventRecorder:
    """Applies the metric updates for completed events.

    Label reuse buffers are kept per thread, so one recorder can be shared
    by every worker thread of the process.

    Args:
        metrics: The gateway metric set to update.
    """

    def __init__(self, metrics: GatewayMetrics) -> None:
        self._metrics = metrics
        self._local = threading.local()

    def _label_buffers(self) -> tuple[list[Any], list[Any]]:
        local = self._local
        if not hasattr(local, "labels"):
            local.labels = [None, None, None]
            local.labels_consumer = [None, None, None, None]
        return local.labels, local.labels_consumer

    def record(self, config: PluginConfig, event: CompletedEvent) -> None:
        """Record *event*; events without a service identity are ignored."""
        service = event.service.identity if event.service is not None else None
        if not service:
            return
        route = event.route.identity if event.route is not None else None

        metrics = self._metrics
        labels, labels_consumer = self._label_buffers()

        labels[0] = service
        labels[1] = route or ""
        labels[2] = event.response_status
        metrics.status.inc(labels, 1)

        request_size = positive_number(event.request_size)
        if request_size is not None:
            labels[2] = "ingress"
            metrics.bandwidth.inc(labels, request_size)

        response_size = positive_number(event.response_size)
        if response_size is not None:
            labels[2] = "egress"
            metrics.bandwidth.inc(labels, response_size)

        latencies = event.latencies
        for latency_type, latency in (
            ("request", latencies.request),
            ("upstream", latencies.upstream),
            ("internal", latencies.internal),
        ):
            if latency is not None and latency >= 0:
                labels[2] = latency_type
                metrics.latency.observe(labels, latency)

        consumer = None
        if config.per_consumer and event.consumer is not None:
            consumer = event.consumer.username

        if consumer is not None:
            labels_consumer[0] = labels[0]
            labels_consumer[1] = labels[1]
            labels_consumer[2] = event.response_status
            labels_consumer[3] = consumer
            metrics.consumer_status.inc(labels_consumer, 1)

        if config.param_collect_list:
            value = first_scalar_param(event.raw_query_params, config.param_collect_list)
            if value is not None:
                value = extract_value(value, config.param_value_extract, "param")
            if value is not None:
                self._dimension(
                    labels, labels_consumer, value, consumer,
                    metrics.param_total, metrics.param_consumer_total,
                )

        if config.location_collect and event.raw_path is not None:
            value = extract_value(event.raw_path, config.location_extract, "location")
            if value is not None:
                self._dimension(
                    labels, labels_consumer, value, consumer,
                    metrics.location_total, metrics.location_consumer_total,
                )

    @staticmethod
    def _dimension(
        labels: list[Any],
        labels_consumer: list[Any],
        value: str,
        consumer: str | None,
        plain: Counter,
        per_consumer: Counter,
    ) -> None:
        if consumer is not None:
            labels_consumer[2] = value
            labels_consumer[3] = consumer
            per_consumer.inc(labels_consumer, 1)
        else:
            labels[2] = value
            plain.inc(labels, 1)
