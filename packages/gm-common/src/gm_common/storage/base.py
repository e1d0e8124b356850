"""
Shared dictionary interface for gateway-metrics.

A shared dictionary is the aggregation substrate every worker writes its
metric accumulators into. It maps string keys to floats, supports atomic
increments and overwrites, and has a bounded capacity measured in bytes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping

# Fixed per-entry cost charged on top of the key bytes.
ENTRY_OVERHEAD_BYTES = 64


def entry_size(key: str) -> int:
    """Return the number of bytes charged against capacity for *key*."""
    return len(key.encode("utf-8")) + ENTRY_OVERHEAD_BYTES


class SharedDictError(Exception):
    """Base error for shared dictionary operations."""


class SharedDictUnavailableError(SharedDictError):
    """Raised when the backing store of a shared dictionary cannot be reached."""


class SharedDictFullError(SharedDictError):
    """Raised when a new key cannot be created because capacity is exhausted."""

    def __init__(self, name: str, key: str) -> None:
        super().__init__(f"shared dict '{name}' is full, cannot create key {key!r}")
        self.name = name
        self.key = key


class SharedDict(ABC):
    """Concurrently writable ``str -> float`` store with bounded capacity.

    Args:
        name: Name reported in memory statistics.
        capacity_bytes: Maximum bytes allocated to entries.
    """

    def __init__(self, name: str, capacity_bytes: int) -> None:
        self.name = name
        self.capacity_bytes = capacity_bytes

    @abstractmethod
    def incr(self, key: str, delta: float) -> float:
        """Atomically add *delta* to *key*, creating it at 0 on first use.

        Returns:
            The new value.

        Raises:
            SharedDictFullError: If *key* is new and capacity is exhausted.
        """

    def incr_many(self, deltas: Mapping[str, float]) -> list[str]:
        """Apply several increments; return the keys rejected for capacity."""
        rejected: list[str] = []
        for key, delta in deltas.items():
            try:
                self.incr(key, delta)
            except SharedDictFullError:
                rejected.append(key)
        return rejected

    @abstractmethod
    def set(self, key: str, value: float) -> None:
        """Overwrite *key* with *value*.

        Raises:
            SharedDictFullError: If *key* is new and capacity is exhausted.
        """

    @abstractmethod
    def get(self, key: str) -> float | None:
        """Return the value of *key*, or ``None`` if it does not exist."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*; missing keys are ignored."""

    @abstractmethod
    def get_all(self, prefix: str | None = None) -> dict[str, float]:
        """Return a merged snapshot of every key starting with *prefix*."""

    def keys(self, prefix: str | None = None) -> list[str]:
        return list(self.get_all(prefix))

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix*; return how many were removed."""
        keys = self.keys(prefix)
        for key in keys:
            self.delete(key)
        return len(keys)

    @abstractmethod
    def allocated_bytes(self) -> int:
        """Bytes currently charged against capacity."""
