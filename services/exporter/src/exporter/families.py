"""
Metric families for the gateway-metrics exporter.

A family is a named set of same-shaped series (counter, gauge or
histogram) sharing one ordered label schema. Each distinct label vector
owns an independent accumulator stored in the shared dictionary under a
series key (see :mod:`gm_common.metrics`).

Callers pass label vectors as plain sequences and may reuse one mutable
list across calls: the family copies the values into the series key before
returning and keeps no reference to the caller's buffer.
"""

from __future__ import annotations

import enum
import math
import re
from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Protocol, Sequence

import structlog

from gm_common.metrics import INF, decode_key, encode_key, family_prefix, format_bound
from gm_common.storage import SharedDict, SharedDictError

from exporter.counter_buffer import CounterBuffer

logger = structlog.get_logger()

_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

LabelTuple = tuple[str, ...]
ErrorHook = Callable[[], None]


class MetricKind(str, enum.Enum):
    """Family variants, used to dispatch exposition."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


class InvalidLabelArityError(ValueError):
    """Raised when a label vector does not match the family's label count."""


class NegativeIncrementError(ValueError):
    """Raised when a counter is asked to decrease or to add NaN."""


@dataclass(frozen=True)
class HistogramValue:
    """Merged state of one histogram series.

    Attributes:
        buckets: ``(upper_bound, cumulative_count)`` pairs, ending with ``+inf``.
        sum: Sum of every observed value.
        count: Number of observations.
    """

    buckets: tuple[tuple[float, float], ...]
    sum: float
    count: float


class MetricFamily(Protocol):
    """Capabilities shared by every family variant."""

    name: str
    help: str
    label_names: tuple[str, ...]
    kind: MetricKind

    def reset(self) -> None: ...

    def iterate(self) -> Iterator[tuple[LabelTuple, Any]]: ...


def _validate_schema(name: str, label_names: Sequence[str]) -> tuple[str, ...]:
    if not _NAME_RE.match(name):
        raise ValueError(f"Invalid metric name: {name!r}")
    for label in label_names:
        if not _LABEL_RE.match(label) or label.startswith("__") or label == "le":
            raise ValueError(f"Invalid label name {label!r} for metric {name!r}")
    if len(set(label_names)) != len(label_names):
        raise ValueError(f"Duplicate label names for metric {name!r}")
    return tuple(label_names)


def _copy_labels(name: str, label_names: tuple[str, ...], labels: Sequence[Any]) -> LabelTuple:
    if len(labels) != len(label_names):
        raise InvalidLabelArityError(
            f"{name} expects {len(label_names)} label values, got {len(labels)}"
        )
    return tuple("" if value is None else str(value) for value in labels)


def _reset(name: str, shared: SharedDict, buffer: CounterBuffer | None) -> None:
    prefix = family_prefix(name)
    if buffer is not None:
        buffer.discard_prefix(prefix)
    removed = shared.delete_prefix(prefix)
    logger.debug("metric_family_reset", metric=name, removed=removed)


def _scalar_series(name: str, shared: SharedDict) -> Iterator[tuple[LabelTuple, float]]:
    items = shared.get_all(family_prefix(name))
    series = sorted((decode_key(key).labels, value) for key, value in items.items())
    yield from series


class Counter:
    """Monotonically non-decreasing value per label vector."""

    kind = MetricKind.COUNTER

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Sequence[str],
        shared: SharedDict,
        buffer: CounterBuffer,
    ) -> None:
        self.name = name
        self.help = help
        self.label_names = _validate_schema(name, label_names)
        self._shared = shared
        self._buffer = buffer

    def inc(self, labels: Sequence[Any] = (), amount: float = 1.0) -> None:
        """Add *amount* to the series identified by *labels*.

        Raises:
            InvalidLabelArityError: If *labels* has the wrong length.
            NegativeIncrementError: If *amount* is negative or NaN.
        """
        values = _copy_labels(self.name, self.label_names, labels)
        if amount < 0 or math.isnan(amount):
            raise NegativeIncrementError(f"{self.name} cannot be incremented by {amount}")
        self._buffer.incr(encode_key(self.name, values), amount)

    def reset(self) -> None:
        _reset(self.name, self._shared, self._buffer)

    def iterate(self) -> Iterator[tuple[LabelTuple, float]]:
        self._buffer.sync()
        yield from _scalar_series(self.name, self._shared)


class Gauge:
    """Last-set value per label vector, written straight to the shared dictionary."""

    kind = MetricKind.GAUGE

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Sequence[str],
        shared: SharedDict,
        on_error: ErrorHook | None = None,
    ) -> None:
        self.name = name
        self.help = help
        self.label_names = _validate_schema(name, label_names)
        self._shared = shared
        self._on_error = on_error

    def set(self, labels: Sequence[Any], value: float) -> None:
        """Overwrite the series identified by *labels* with *value*.

        A write the shared dictionary refuses is logged and dropped.

        Raises:
            InvalidLabelArityError: If *labels* has the wrong length.
        """
        values = _copy_labels(self.name, self.label_names, labels)
        try:
            self._shared.set(encode_key(self.name, values), value)
        except SharedDictError as exc:
            logger.error("gauge_set_failed", metric=self.name, labels=values, error=str(exc))
            if self._on_error is not None:
                self._on_error()

    def reset(self) -> None:
        _reset(self.name, self._shared, None)

    def iterate(self) -> Iterator[tuple[LabelTuple, float]]:
        yield from _scalar_series(self.name, self._shared)


class Histogram:
    """Bucketed observation counts and running sum per label vector.

    Each observation is stored in exactly one bucket slot, the first upper
    bound that is >= the value (or ``+Inf``); cumulative counts are built
    when the family is read.
    """

    kind = MetricKind.HISTOGRAM

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Sequence[str],
        buckets: Sequence[float],
        shared: SharedDict,
        buffer: CounterBuffer,
    ) -> None:
        self.name = name
        self.help = help
        self.label_names = _validate_schema(name, label_names)
        bounds = tuple(float(b) for b in buckets if not math.isinf(b))
        if not bounds:
            raise ValueError(f"Histogram {name!r} needs at least one finite bucket")
        if any(b <= a for a, b in zip(bounds, bounds[1:])):
            raise ValueError(f"Histogram {name!r} buckets must be strictly ascending")
        self.buckets = bounds
        self._le = [format_bound(b) for b in bounds] + [INF]
        self._le_index = {le: i for i, le in enumerate(self._le)}
        self._shared = shared
        self._buffer = buffer

    def observe(self, labels: Sequence[Any], value: float) -> None:
        """Record one observation of *value*.

        Raises:
            InvalidLabelArityError: If *labels* has the wrong length.
        """
        values = _copy_labels(self.name, self.label_names, labels)
        if math.isnan(value):
            return
        le = self._le[bisect_left(self.buckets, value)]
        self._buffer.incr(encode_key(self.name, values, "bucket", le), 1)
        self._buffer.incr(encode_key(self.name, values, "sum"), value)

    def reset(self) -> None:
        _reset(self.name, self._shared, self._buffer)

    def iterate(self) -> Iterator[tuple[LabelTuple, HistogramValue]]:
        self._buffer.sync()
        items = self._shared.get_all(family_prefix(self.name))

        counts: defaultdict[LabelTuple, list[float]] = defaultdict(
            lambda: [0.0] * len(self._le)
        )
        sums: defaultdict[LabelTuple, float] = defaultdict(float)
        for key, value in items.items():
            series = decode_key(key)
            if series.suffix == "sum":
                sums[series.labels] += value
            elif series.suffix == "bucket" and series.le in self._le_index:
                counts[series.labels][self._le_index[series.le]] += value

        bounds = self.buckets + (math.inf,)
        for labels in sorted(counts.keys() | sums.keys()):
            slots = counts[labels]
            cumulative: list[tuple[float, float]] = []
            running = 0.0
            for bound, slot in zip(bounds, slots):
                running += slot
                cumulative.append((bound, running))
            yield labels, HistogramValue(tuple(cumulative), sums[labels], running)
