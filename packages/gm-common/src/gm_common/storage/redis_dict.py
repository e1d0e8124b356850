"""
Redis-backed shared dictionary for gateway-metrics.

Stores every accumulator as a field of one Redis hash so that worker
processes on the same node (or across nodes) aggregate into a single view.
``HINCRBYFLOAT`` makes each increment atomic per key; capacity is enforced
by Lua scripts that charge new fields against a companion byte counter in
the same round trip as the write. A batch of increments runs inside
``MULTI``/``EXEC`` so it is applied whole or not at all.
"""

from __future__ import annotations

from typing import Mapping

import redis
import structlog

from gm_common.storage.base import (
    SharedDict,
    SharedDictFullError,
    SharedDictUnavailableError,
    entry_size,
)

logger = structlog.get_logger()

# KEYS: hash, allocated counter.  ARGV: field, delta, entry size, capacity.
_INCR_LUA = """
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 0 then
  local used = tonumber(redis.call('GET', KEYS[2]) or '0')
  if used + tonumber(ARGV[3]) > tonumber(ARGV[4]) then
    return false
  end
  redis.call('INCRBY', KEYS[2], ARGV[3])
end
return redis.call('HINCRBYFLOAT', KEYS[1], ARGV[1], ARGV[2])
"""

# KEYS: hash, allocated counter.  ARGV: field, value, entry size, capacity.
_SET_LUA = """
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 0 then
  local used = tonumber(redis.call('GET', KEYS[2]) or '0')
  if used + tonumber(ARGV[3]) > tonumber(ARGV[4]) then
    return false
  end
  redis.call('INCRBY', KEYS[2], ARGV[3])
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
return 1
"""

# KEYS: hash, allocated counter.  ARGV: field, entry size.
_DELETE_LUA = """
if redis.call('HDEL', KEYS[1], ARGV[1]) == 1 then
  redis.call('DECRBY', KEYS[2], ARGV[2])
end
return 1
"""

_GLOB_SPECIAL = "\\*?[]"


def _glob_escape(text: str) -> str:
    return "".join("\\" + c if c in _GLOB_SPECIAL else c for c in text)


class RedisSharedDict(SharedDict):
    """``SharedDict`` stored in a Redis hash named after the dictionary.

    Args:
        client: A synchronous ``redis.Redis`` created with
            ``decode_responses=True``.
        name: Dictionary name, also the Redis hash key.
        capacity_bytes: Maximum bytes allocated to entries.
    """

    def __init__(self, client: redis.Redis, name: str, capacity_bytes: int) -> None:
        super().__init__(name, capacity_bytes)
        self._client = client
        self._hash_key = name
        self._alloc_key = f"{name}:allocated"
        self._incr_script = client.register_script(_INCR_LUA)
        self._set_script = client.register_script(_SET_LUA)
        self._delete_script = client.register_script(_DELETE_LUA)

    @classmethod
    def from_url(cls, url: str, name: str, capacity_bytes: int) -> RedisSharedDict:
        """Create a dictionary backed by a new client for *url*."""
        return cls(redis.Redis.from_url(url, decode_responses=True), name, capacity_bytes)

    @property
    def _keys(self) -> list[str]:
        return [self._hash_key, self._alloc_key]

    # ── writes ──

    def incr(self, key: str, delta: float) -> float:
        try:
            result = self._incr_script(
                keys=self._keys,
                args=[key, repr(float(delta)), entry_size(key), self.capacity_bytes],
            )
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc
        if result is None:
            raise SharedDictFullError(self.name, key)
        return float(result)

    def incr_many(self, deltas: Mapping[str, float]) -> list[str]:
        if not deltas:
            return []
        keys = list(deltas)
        try:
            pipe = self._client.pipeline(transaction=True)
            for key in keys:
                self._incr_script(
                    keys=self._keys,
                    args=[key, repr(float(deltas[key])), entry_size(key), self.capacity_bytes],
                    client=pipe,
                )
            results = pipe.execute()
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc
        return [key for key, result in zip(keys, results) if result is None]

    def set(self, key: str, value: float) -> None:
        try:
            result = self._set_script(
                keys=self._keys,
                args=[key, repr(float(value)), entry_size(key), self.capacity_bytes],
            )
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc
        if result is None:
            raise SharedDictFullError(self.name, key)

    def delete(self, key: str) -> None:
        try:
            self._delete_script(keys=self._keys, args=[key, entry_size(key)])
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc

    # ── reads ──

    def get(self, key: str) -> float | None:
        try:
            value = self._client.hget(self._hash_key, key)
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc
        return None if value is None else float(value)

    def get_all(self, prefix: str | None = None) -> dict[str, float]:
        try:
            if prefix is None:
                raw = self._client.hgetall(self._hash_key)
                return {k: float(v) for k, v in raw.items()}
            match = _glob_escape(prefix) + "*"
            return {
                k: float(v)
                for k, v in self._client.hscan_iter(self._hash_key, match=match, count=500)
            }
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc

    def allocated_bytes(self) -> int:
        try:
            return int(self._client.get(self._alloc_key) or 0)
        except redis.RedisError as exc:
            raise SharedDictUnavailableError(str(exc)) from exc

    # ── health check ──

    def health_check(self) -> bool:
        """Verify connectivity by issuing a ``PING``.

        Returns:
            ``True`` if Redis responds, ``False`` otherwise.
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            logger.warning("shared_dict_ping_failed", shared_dict=self.name, exc_info=True)
            return False
