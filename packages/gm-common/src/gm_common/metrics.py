"""
Prometheus metrics helpers for gateway-metrics.

Provides the series-key encoding used to store accumulators in the shared
dictionary, and the default latency histogram buckets.

A series key is ``name \\x1f suffix \\x1f le \\x1f json(labels)``: the metric
name comes first so every series of a family shares the ``name \\x1f`` prefix,
and the label vector comes last so arbitrary label text never has to be
escaped against the separator.
"""

from __future__ import annotations

import json
from typing import NamedTuple, Sequence

from prometheus_client.utils import floatToGoString

DEFAULT_LATENCY_BUCKETS: tuple[float, ...] = (
    1, 2, 5, 7, 10, 15, 20, 25, 30, 40, 50, 60, 70,
    80, 90, 100, 200, 300, 400, 500, 1000,
    2000, 5000, 10000, 30000, 60000,
)

SEPARATOR = "\x1f"
INF = "+Inf"


class SeriesKey(NamedTuple):
    """Decoded form of a shared dictionary key."""

    name: str
    suffix: str
    le: str
    labels: tuple[str, ...]


def family_prefix(name: str) -> str:
    """Return the key prefix shared by every series of metric *name*."""
    return name + SEPARATOR


def encode_key(
    name: str,
    labels: Sequence[str],
    suffix: str = "",
    le: str = "",
) -> str:
    """Encode a series identity into a shared dictionary key."""
    return SEPARATOR.join(
        (name, suffix, le, json.dumps(list(labels), ensure_ascii=False, separators=(",", ":")))
    )


def decode_key(key: str) -> SeriesKey:
    """Decode a key produced by :func:`encode_key`.

    Raises:
        ValueError: If *key* is not a series key.
    """
    parts = key.split(SEPARATOR, 3)
    if len(parts) != 4:
        raise ValueError(f"not a series key: {key!r}")
    name, suffix, le, raw_labels = parts
    return SeriesKey(name, suffix, le, tuple(json.loads(raw_labels)))


def format_bound(bound: float) -> str:
    """Format a bucket upper bound the way the exposition format does."""
    return floatToGoString(bound)
