"""
Exporter facade for gateway-metrics.

Wires the registry, the gateway metric set, the event recorder and the
health reconciler together behind the four operations the request
pipeline and the scrape endpoint use: ``initialize``, ``init_worker``,
``record_event`` and ``collect_snapshot``.

When the shared dictionary is missing at startup the exporter stays
disabled: every later call logs an error and does nothing, and
``collect_snapshot`` raises :class:`ExporterDisabledError`.
"""

from __future__ import annotations

import structlog

from gm_common.config import Settings, get_settings
from gm_common.models import CompletedEvent, PluginConfig
from gm_common.storage import SharedDict

from exporter.definitions import GatewayMetrics, define_metrics
from exporter.exposition import render
from exporter.reconciler import HealthReconciler
from exporter.recorder import EventRecorder
from exporter.registry import Registry
from exporter.sources import (
    ConnectionCounterSource,
    DatastoreProbe,
    MemoryStatsSource,
    ProcessMemoryStats,
    UpstreamHealthSource,
)

logger = structlog.get_logger()


class ExporterDisabledError(RuntimeError):
    """Raised when a snapshot is requested from an uninitialised exporter."""


class Exporter:
    """Metrics engine of one worker process.

    Args:
        settings: Application settings; defaults to :func:`get_settings`.
        shared: Shared dictionary, ``None`` when it could not be created.
        upstreams: Upstream health enumeration consulted on every scrape.
        datastore: Datastore connectivity probe.
        memory: Memory statistics source; defaults to this process and *shared*.
        connections: Connection counters of the request pipeline.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        shared: SharedDict | None = None,
        upstreams: UpstreamHealthSource | None = None,
        datastore: DatastoreProbe | None = None,
        memory: MemoryStatsSource | None = None,
        connections: ConnectionCounterSource | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.shared = shared
        self.upstreams = upstreams
        self.datastore = datastore
        self.memory = memory
        self.connections = connections

        self.registry: Registry | None = None
        self.metrics: GatewayMetrics | None = None
        self._recorder: EventRecorder | None = None
        self._reconciler: HealthReconciler | None = None

    @property
    def enabled(self) -> bool:
        return self.registry is not None

    def _log_disabled(self, operation: str) -> None:
        logger.error(
            "exporter_not_initialized",
            operation=operation,
            shared_dict=self.settings.shared_dict_name,
        )

    # ── lifecycle ──

    def initialize(self) -> bool:
        """Create the registry and every metric family (once).

        Returns:
            ``True`` when the exporter is enabled.
        """
        if self.registry is not None:
            return True
        if self.shared is None:
            logger.error("exporter_shared_dict_missing", shared_dict=self.settings.shared_dict_name)
            return False

        registry = Registry(self.shared, prefix=self.settings.metric_prefix)
        metrics = define_metrics(registry, self.settings.latency_buckets)
        registry.seal()

        if self.memory is None:
            self.memory = ProcessMemoryStats([self.shared])
        try:
            for segment in self.memory.get_memory_stats().shared_segments:
                metrics.shared_dict_total_bytes.set([segment.name], segment.capacity_bytes)
        except Exception:  # noqa: BLE001
            logger.warning("memory_stats_failed", exc_info=True)

        self.registry = registry
        self.metrics = metrics
        self._recorder = EventRecorder(metrics)
        if self.upstreams is not None:
            self._reconciler = HealthReconciler(metrics.upstream_target_health, self.upstreams)

        logger.info(
            "exporter_initialized",
            families=len(registry),
            shared_dict=self.shared.name,
            prefix=self.settings.metric_prefix,
        )
        return True

    def init_worker(self) -> None:
        """Per-worker setup: start flushing this worker's counter buffer."""
        if self.registry is None:
            self._log_disabled("init_worker")
            return
        self.registry.init_worker(self.settings.sync_interval)

    def shutdown(self) -> None:
        """Flush pending updates and stop the sync thread."""
        if self.registry is not None:
            self.registry.shutdown()

    # ── hot path ──

    def record_event(self, config: PluginConfig, event: CompletedEvent) -> None:
        """Record the metrics of one completed request."""
        if self._recorder is None:
            self._log_disabled("record_event")
            return
        self._recorder.record(config, event)

    # ── scrape path ──

    def collect_snapshot(self) -> str:
        """Refresh node gauges and render the exposition payload.

        Raises:
            ExporterDisabledError: If :meth:`initialize` never succeeded.
        """
        if self.registry is None:
            self._log_disabled("collect_snapshot")
            raise ExporterDisabledError("exporter is not initialized")

        self._collect_connections()
        self._collect_datastore()
        self._collect_upstream_health()
        self._collect_memory()
        return render(self.registry)

    def _collect_connections(self) -> None:
        if self.connections is None:
            return
        assert self.metrics is not None
        gauge = self.metrics.connections
        try:
            counters = self.connections.get_connection_counters()
        except Exception:  # noqa: BLE001
            logger.warning("connection_counters_failed", exc_info=True)
            return

        if counters.accepted is None or counters.handled is None or counters.total is None:
            logger.warning("connection_totals_unavailable")
        else:
            gauge.set(["accepted"], counters.accepted)
            gauge.set(["handled"], counters.handled)
            gauge.set(["total"], counters.total)
        gauge.set(["active"], counters.active)
        gauge.set(["reading"], counters.reading)
        gauge.set(["writing"], counters.writing)
        gauge.set(["waiting"], counters.waiting)

    def _collect_datastore(self) -> None:
        if self.datastore is None:
            return
        assert self.metrics is not None
        try:
            reachable = self.datastore.probe()
        except Exception:  # noqa: BLE001
            logger.error("datastore_probe_failed", exc_info=True)
            reachable = False
        self.metrics.datastore_reachable.set([], 1 if reachable else 0)

    def _collect_upstream_health(self) -> None:
        if self._reconciler is None:
            return
        try:
            self._reconciler.reconcile()
        except Exception:  # noqa: BLE001
            logger.error("upstream_health_reconcile_failed", exc_info=True)

    def _collect_memory(self) -> None:
        if self.memory is None:
            return
        assert self.metrics is not None
        try:
            stats = self.memory.get_memory_stats()
        except Exception:  # noqa: BLE001
            logger.warning("memory_stats_failed", exc_info=True)
            return
        for segment in stats.shared_segments:
            self.metrics.shared_dict_bytes.set([segment.name], segment.allocated_bytes)
        for heap in stats.per_worker_heaps:
            self.metrics.worker_heap_bytes.set([heap.id], heap.allocated_bytes)
