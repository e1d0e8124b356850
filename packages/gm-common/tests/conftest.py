"""Shared fixtures for gm-common tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import fakeredis
import pytest

from gm_common.storage import InMemorySharedDict


@pytest.fixture()
def shared() -> InMemorySharedDict:
    """A roomy in-memory shared dictionary."""
    return InMemorySharedDict("test_metrics", 1024 * 1024)


@pytest.fixture()
def mock_redis() -> MagicMock:
    """A mocked synchronous ``redis.Redis`` whose scripts are MagicMocks."""
    r = MagicMock(name="redis")
    r.register_script = MagicMock(side_effect=lambda _src: MagicMock(name="script"))
    r.ping = MagicMock(return_value=True)
    r.hget = MagicMock(return_value=None)
    r.hgetall = MagicMock(return_value={})
    r.hscan_iter = MagicMock(return_value=iter([]))
    r.get = MagicMock(return_value=None)
    pipe = MagicMock(name="pipeline")
    pipe.execute = MagicMock(return_value=[])
    r.pipeline = MagicMock(return_value=pipe)
    return r


@pytest.fixture()
def fake_server() -> fakeredis.FakeServer:
    """An isolated in-process Redis server with a Lua engine."""
    return fakeredis.FakeServer()


@pytest.fixture()
def fake_redis(fake_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)
