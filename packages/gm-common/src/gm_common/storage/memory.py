"""
In-process shared dictionary for gateway-metrics.

Stripes keys over a fixed number of shards, each guarded by its own lock,
so concurrent writers touching different keys rarely contend. Capacity
accounting uses a separate lock that is only taken when a key is created
or removed.
"""

from __future__ import annotations

import threading
import zlib

from gm_common.storage.base import SharedDict, SharedDictFullError, entry_size

DEFAULT_SHARDS = 16


class _Shard:
    __slots__ = ("lock", "data")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data: dict[str, float] = {}


class InMemorySharedDict(SharedDict):
    """Lock-striped ``SharedDict`` shared by every thread of one process.

    Args:
        name: Name reported in memory statistics.
        capacity_bytes: Maximum bytes allocated to entries.
        shards: Number of lock stripes.
    """

    def __init__(self, name: str, capacity_bytes: int, shards: int = DEFAULT_SHARDS) -> None:
        super().__init__(name, capacity_bytes)
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards = [_Shard() for _ in range(shards)]
        self._alloc_lock = threading.Lock()
        self._allocated = 0

    def _shard(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def _reserve(self, key: str) -> None:
        size = entry_size(key)
        with self._alloc_lock:
            if self._allocated + size > self.capacity_bytes:
                raise SharedDictFullError(self.name, key)
            self._allocated += size

    def _release(self, key: str) -> None:
        with self._alloc_lock:
            self._allocated -= entry_size(key)

    def incr(self, key: str, delta: float) -> float:
        shard = self._shard(key)
        with shard.lock:
            current = shard.data.get(key)
            if current is None:
                self._reserve(key)
                current = 0.0
            value = current + delta
            shard.data[key] = value
            return value

    def set(self, key: str, value: float) -> None:
        shard = self._shard(key)
        with shard.lock:
            if key not in shard.data:
                self._reserve(key)
            shard.data[key] = float(value)

    def get(self, key: str) -> float | None:
        shard = self._shard(key)
        with shard.lock:
            return shard.data.get(key)

    def delete(self, key: str) -> None:
        shard = self._shard(key)
        with shard.lock:
            if shard.data.pop(key, None) is not None:
                self._release(key)

    def get_all(self, prefix: str | None = None) -> dict[str, float]:
        snapshot: dict[str, float] = {}
        for shard in self._shards:
            with shard.lock:
                if prefix is None:
                    snapshot.update(shard.data)
                else:
                    snapshot.update(
                        (k, v) for k, v in shard.data.items() if k.startswith(prefix)
                    )
        return snapshot

    def allocated_bytes(self) -> int:
        with self._alloc_lock:
            return self._allocated

    def __len__(self) -> int:
        return sum(len(shard.data) for shard in self._shards)
