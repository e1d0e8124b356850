"""
Metric registry for the gateway-metrics exporter.

Holds every metric family of the process, created once at startup and
sealed afterwards. The registry owns the worker's counter buffer and its
background sync thread; families reference the shared dictionary but do
not own it.
"""

from __future__ import annotations

from typing import Iterator, Sequence

import structlog

from gm_common.metrics import DEFAULT_LATENCY_BUCKETS, encode_key
from gm_common.storage import SharedDict, SharedDictError

from exporter.counter_buffer import CounterBuffer, SyncThread
from exporter.families import Counter, Gauge, Histogram, MetricFamily

logger = structlog.get_logger()

ERROR_METRIC = "metric_errors_total"


class Registry:
    """Process-wide collection of metric families.

    Args:
        shared: Shared dictionary every family stores its series in.
        prefix: Prepended to every family name.
    """

    def __init__(self, shared: SharedDict, prefix: str = "") -> None:
        self.shared = shared
        self.prefix = prefix
        self._families: dict[str, MetricFamily] = {}
        self._sealed = False
        self._buffer = CounterBuffer(shared, on_rejected=self._count_rejected)
        self._sync_thread: SyncThread | None = None

        self._errors = self.counter(
            ERROR_METRIC,
            "Number of metric updates dropped because of an error",
        )
        self._error_key = encode_key(self._errors.name, ())
        try:
            shared.incr(self._error_key, 0)
        except SharedDictError:
            logger.error("metric_errors_init_failed", shared_dict=shared.name, exc_info=True)

    # ── definition ──

    def _add(self, family: MetricFamily) -> None:
        if self._sealed:
            raise RuntimeError(f"Registry is sealed, cannot add metric {family.name!r}")
        if family.name in self._families:
            raise ValueError(f"Metric {family.name!r} is already registered")
        self._families[family.name] = family
        logger.debug("metric_registered", metric=family.name, kind=family.kind.value)

    def counter(self, name: str, help: str, label_names: Sequence[str] = ()) -> Counter:
        family = Counter(self.prefix + name, help, label_names, self.shared, self._buffer)
        self._add(family)
        return family

    def gauge(self, name: str, help: str, label_names: Sequence[str] = ()) -> Gauge:
        family = Gauge(
            self.prefix + name, help, label_names, self.shared, on_error=self.record_error
        )
        self._add(family)
        return family

    def histogram(
        self,
        name: str,
        help: str,
        label_names: Sequence[str] = (),
        buckets: Sequence[float] = DEFAULT_LATENCY_BUCKETS,
    ) -> Histogram:
        family = Histogram(
            self.prefix + name, help, label_names, buckets, self.shared, self._buffer
        )
        self._add(family)
        return family

    def seal(self) -> None:
        """Refuse any further family definitions."""
        self._sealed = True

    # ── lookup ──

    def get(self, name: str) -> MetricFamily:
        """Look up a family by its full (prefixed) *name*.

        Raises:
            KeyError: If *name* is not registered.
        """
        if name not in self._families:
            raise KeyError(f"Unknown metric '{name}'")
        return self._families[name]

    def __iter__(self) -> Iterator[MetricFamily]:
        return iter(list(self._families.values()))

    def __len__(self) -> int:
        return len(self._families)

    def __contains__(self, name: object) -> bool:
        return name in self._families

    # ── errors ──

    def record_error(self) -> None:
        """Count one dropped metric update."""
        self._buffer.incr(self._error_key, 1)

    def _count_rejected(self, keys: list[str]) -> None:
        # Written through so the scrape that triggered the sync reports it.
        dropped = sum(1 for key in keys if key != self._error_key)
        if not dropped:
            return
        try:
            self.shared.incr(self._error_key, dropped)
        except SharedDictError:
            logger.error("metric_errors_update_failed", dropped=dropped, exc_info=True)

    # ── worker lifecycle ──

    def init_worker(self, sync_interval: float = 1.0) -> None:
        """Start flushing this worker's buffer every *sync_interval* seconds."""
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return
        self._sync_thread = SyncThread(self._buffer, sync_interval)
        self._sync_thread.start()
        logger.info("metrics_worker_started", sync_interval=sync_interval)

    def sync(self) -> int:
        """Flush this worker's pending deltas now."""
        return self._buffer.sync()

    def shutdown(self) -> None:
        """Stop the sync thread after a final flush."""
        if self._sync_thread is not None:
            self._sync_thread.stop(timeout=5.0)
            self._sync_thread = None
        else:
            self._buffer.sync()
