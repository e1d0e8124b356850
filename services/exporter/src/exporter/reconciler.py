"""
Upstream health reconciliation for the gateway-metrics exporter.

On every scrape the ``upstream_target_health`` family is cleared and
rebuilt from the live upstream enumeration, so targets and addresses that
disappeared since the previous scrape leave no stale series behind.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator

import structlog

from gm_common.models import HealthState

from exporter.families import Gauge
from exporter.sources import UpstreamHealthSource

logger = structlog.get_logger()


class ReconcilePhase(str, enum.Enum):
    RESET = "reset"
    REBUILD = "rebuild"
    DONE = "done"


@dataclass(frozen=True)
class HealthRow:
    """Health of one ``(upstream, target, address)`` triple."""

    upstream: str
    target: str
    address: str
    state: HealthState

    def values(self) -> Iterator[tuple[HealthState, int]]:
        """Yield every state with 1 for the populated one and 0 otherwise."""
        for state in HealthState:
            yield state, int(state is self.state)


def upstream_name(key: str) -> str:
    """Strip a ``workspace:`` qualifier from an upstream key."""
    _, sep, name = key.partition(":")
    return name if sep else key


def build_rows(source: UpstreamHealthSource) -> list[HealthRow]:
    """Enumerate the health rows of every upstream target in *source*."""
    rows: list[HealthRow] = []
    for key, upstream_id in source.get_all_upstreams().items():
        name = upstream_name(key)
        try:
            health_info = source.get_upstream_health(upstream_id)
        except Exception:  # noqa: BLE001
            logger.error("upstream_health_failed", upstream=name, exc_info=True)
            continue
        if not health_info:
            continue

        for target, target_info in health_info.items():
            if target_info is not None and target_info.addresses:
                for address in target_info.addresses:
                    rows.append(HealthRow(name, target, address.label, address.health))
            else:
                rows.append(HealthRow(name, target, "", HealthState.DNS_ERROR))
    return rows


class HealthReconciler:
    """Rebuilds the upstream health family from *source* on every scrape.

    Args:
        family: The ``upstream_target_health`` gauge.
        source: Live upstream enumeration.
    """

    def __init__(self, family: Gauge, source: UpstreamHealthSource) -> None:
        self._family = family
        self._source = source
        self.phase = ReconcilePhase.DONE

    def reconcile(self) -> list[HealthRow]:
        """Reset the family and write one series per row and state."""
        self.phase = ReconcilePhase.RESET
        self._family.reset()

        self.phase = ReconcilePhase.REBUILD
        rows = build_rows(self._source)
        labels: list[str] = ["", "", "", ""]
        for row in rows:
            labels[0] = row.upstream
            labels[1] = row.target
            labels[2] = row.address
            for state, value in row.values():
                labels[3] = state.value
                self._family.set(labels, value)

        self.phase = ReconcilePhase.DONE
        logger.debug("upstream_health_reconciled", rows=len(rows))
        return rows
