"""
Per-worker counter buffer for the gateway-metrics exporter.

Counter and histogram updates land in a plain in-memory dictionary owned
by the worker and are flushed into the shared dictionary by ``sync()``,
either from the background :class:`SyncThread` or from the scrape path.
The hot path therefore never performs I/O or touches another worker's
state.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Callable

import structlog

from gm_common.storage import SharedDict, SharedDictUnavailableError

logger = structlog.get_logger()


class CounterBuffer:
    """Accumulates pending deltas until the next :meth:`sync`.

    Args:
        shared: Destination shared dictionary.
        on_rejected: Called with the keys the dictionary refused to create.
    """

    def __init__(
        self,
        shared: SharedDict,
        on_rejected: Callable[[list[str]], None] | None = None,
    ) -> None:
        self._shared = shared
        self._on_rejected = on_rejected
        self._pending: defaultdict[str, float] = defaultdict(float)
        self._lock = threading.Lock()
        self._sync_lock = threading.Lock()

    def incr(self, key: str, delta: float) -> None:
        with self._lock:
            self._pending[key] += delta

    def discard_prefix(self, prefix: str) -> None:
        """Drop pending deltas for every key starting with *prefix*."""
        with self._lock:
            for key in [k for k in self._pending if k.startswith(prefix)]:
                del self._pending[key]

    def pending(self) -> dict[str, float]:
        with self._lock:
            return dict(self._pending)

    def sync(self) -> int:
        """Flush pending deltas into the shared dictionary.

        Deltas are merged back into the buffer when the dictionary is
        unreachable, so nothing is lost until the next successful sync.

        Returns:
            Number of keys flushed.
        """
        with self._sync_lock:
            with self._lock:
                if not self._pending:
                    return 0
                batch, self._pending = self._pending, defaultdict(float)

            try:
                rejected = self._shared.incr_many(batch)
            except SharedDictUnavailableError:
                with self._lock:
                    for key, delta in batch.items():
                        self._pending[key] += delta
                logger.error(
                    "counter_sync_failed",
                    shared_dict=self._shared.name,
                    pending=len(batch),
                    exc_info=True,
                )
                return 0

        if rejected:
            logger.error(
                "shared_dict_full",
                shared_dict=self._shared.name,
                dropped=len(rejected),
            )
            if self._on_rejected is not None:
                self._on_rejected(rejected)
        return len(batch) - len(rejected)


class SyncThread(threading.Thread):
    """Daemon thread that calls ``buffer.sync()`` every *interval* seconds."""

    def __init__(self, buffer: CounterBuffer, interval: float) -> None:
        super().__init__(name="metrics-sync", daemon=True)
        self._buffer = buffer
        self._interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._buffer.sync()
            except Exception:  # noqa: BLE001
                logger.exception("counter_sync_loop_error")

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and flush whatever is still pending."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
        self._buffer.sync()
