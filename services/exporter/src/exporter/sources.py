"""
Collaborator interfaces for the gateway-metrics exporter.

The scrape path consults the upstream health-check subsystem, the
datastore, process memory statistics and connection counters. Each is
described by a ``Protocol``; the default implementations below let the
exporter run standalone.
"""

from __future__ import annotations

import os
import threading
from typing import Mapping, Protocol, Sequence

import psutil
import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from gm_common.models import (
    AddressHealth,
    ConnectionCounters,
    MemoryStats,
    SharedSegmentStats,
    TargetHealth,
    WorkerHeapStats,
)
from gm_common.storage import SharedDict, SharedDictError

logger = structlog.get_logger()


# ── interfaces ──


class UpstreamHealthSource(Protocol):
    def get_all_upstreams(self) -> Mapping[str, str]: ...

    def get_upstream_health(self, upstream_id: str) -> Mapping[str, TargetHealth | None] | None: ...


class DatastoreProbe(Protocol):
    def probe(self) -> bool: ...


class MemoryStatsSource(Protocol):
    def get_memory_stats(self) -> MemoryStats: ...


class ConnectionCounterSource(Protocol):
    def get_connection_counters(self) -> ConnectionCounters: ...


# ── upstreams ──


class InMemoryUpstreams:
    """Upstream topology and target health kept in process memory.

    Upstreams are keyed by name and identified by an id equal to the name.
    A target registered without addresses reports a resolution failure.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._targets: dict[str, dict[str, TargetHealth | None]] = {}

    def add_upstream(self, name: str) -> None:
        with self._lock:
            self._targets.setdefault(name, {})

    def remove_upstream(self, name: str) -> None:
        with self._lock:
            self._targets.pop(name, None)

    def set_target(
        self,
        upstream: str,
        target: str,
        addresses: Sequence[AddressHealth] | None,
    ) -> None:
        """Register *target* under *upstream* with its resolved addresses."""
        info = TargetHealth(addresses=list(addresses)) if addresses is not None else None
        with self._lock:
            self._targets.setdefault(upstream, {})[target] = info

    def remove_target(self, upstream: str, target: str) -> None:
        with self._lock:
            self._targets.get(upstream, {}).pop(target, None)

    def get_all_upstreams(self) -> dict[str, str]:
        with self._lock:
            return {name: name for name in self._targets}

    def get_upstream_health(self, upstream_id: str) -> dict[str, TargetHealth | None] | None:
        with self._lock:
            targets = self._targets.get(upstream_id)
            return dict(targets) if targets is not None else None


# ── datastore ──


class SQLAlchemyDatastoreProbe:
    """Checks datastore connectivity with ``SELECT 1``.

    Args:
        db_uri: SQLAlchemy database URL (synchronous driver).
        engine: Pre-built engine, used instead of *db_uri* when given.
    """

    def __init__(self, db_uri: str | None = None, *, engine: Engine | None = None) -> None:
        if engine is None:
            if not db_uri:
                raise ValueError("db_uri or engine is required")
            engine = create_engine(db_uri, pool_pre_ping=True)
        self._engine = engine

    def probe(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("datastore_unreachable", error=str(exc))
            return False
        return True

    def dispose(self) -> None:
        self._engine.dispose()


# ── memory ──


class ProcessMemoryStats:
    """Resident memory of this worker process and shared dict allocation.

    Args:
        shared_dicts: Shared dictionaries to report.
    """

    def __init__(self, shared_dicts: Sequence[SharedDict]) -> None:
        self._shared_dicts = list(shared_dicts)
        self._process = psutil.Process(os.getpid())

    def get_memory_stats(self) -> MemoryStats:
        segments: list[SharedSegmentStats] = []
        for shared in self._shared_dicts:
            try:
                allocated = shared.allocated_bytes()
            except SharedDictError:
                logger.warning("shared_dict_stats_failed", shared_dict=shared.name, exc_info=True)
                continue
            segments.append(
                SharedSegmentStats(
                    name=shared.name,
                    allocated_bytes=allocated,
                    capacity_bytes=shared.capacity_bytes,
                )
            )

        heaps = [
            WorkerHeapStats(
                id=str(self._process.pid),
                allocated_bytes=self._process.memory_info().rss,
            )
        ]
        return MemoryStats(shared_segments=segments, per_worker_heaps=heaps)


# ── connections ──


class ConnectionStats:
    """Request counters maintained by :class:`~exporter.middleware.MetricsMiddleware`.

    ASGI exposes requests rather than sockets: every request counts as an
    accepted and handled connection, ``reading`` covers requests whose
    response has not started and ``writing`` those whose response is being
    sent. Idle keep-alive connections are not observable, so ``waiting`` is
    always 0.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accepted = 0
        self._handled = 0
        self._reading = 0
        self._writing = 0

    def request_started(self) -> None:
        with self._lock:
            self._accepted += 1
            self._reading += 1

    def response_started(self) -> None:
        with self._lock:
            self._reading -= 1
            self._writing += 1

    def request_finished(self, response_started: bool = True) -> None:
        with self._lock:
            if response_started:
                self._writing -= 1
            else:
                self._reading -= 1
            self._handled += 1

    def get_connection_counters(self) -> ConnectionCounters:
        with self._lock:
            return ConnectionCounters(
                accepted=self._accepted,
                handled=self._handled,
                total=self._accepted,
                active=self._reading + self._writing,
                reading=self._reading,
                writing=self._writing,
                waiting=0,
            )
