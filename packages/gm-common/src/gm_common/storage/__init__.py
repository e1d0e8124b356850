"""
Shared aggregation substrate for gateway-metrics.

Exposes the ``SharedDict`` interface, its in-process and Redis
implementations, and a factory that builds the one selected in settings.
"""

from __future__ import annotations

import structlog

from gm_common.config import Settings, get_settings
from gm_common.storage.base import (
    SharedDict,
    SharedDictError,
    SharedDictFullError,
    SharedDictUnavailableError,
    entry_size,
)
from gm_common.storage.memory import InMemorySharedDict
from gm_common.storage.redis_dict import RedisSharedDict

logger = structlog.get_logger()

__all__ = [
    "InMemorySharedDict",
    "RedisSharedDict",
    "SharedDict",
    "SharedDictError",
    "SharedDictFullError",
    "SharedDictUnavailableError",
    "build_shared_dict",
    "entry_size",
]


def build_shared_dict(settings: Settings | None = None) -> SharedDict | None:
    """Build the shared dictionary configured in *settings*.

    Returns:
        The dictionary, or ``None`` when its backing store is unavailable.
    """
    settings = settings or get_settings()
    name = settings.shared_dict_name
    capacity = settings.shared_dict_capacity_bytes

    if settings.shared_dict_backend == "memory":
        return InMemorySharedDict(name, capacity)

    shared = RedisSharedDict.from_url(settings.redis_url, name, capacity)
    if not shared.health_check():
        logger.error(
            "shared_dict_unavailable",
            shared_dict=name,
            backend=settings.shared_dict_backend,
        )
        return None
    return shared
