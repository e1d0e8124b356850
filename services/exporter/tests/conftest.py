"""Shared fixtures for exporter service tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest

# Make support.py importable from test files (needed with --import-mode=importlib).
sys.path.insert(0, str(Path(__file__).resolve().parent))

from gm_common.config import Settings
from gm_common.storage import InMemorySharedDict

from exporter.definitions import GatewayMetrics, define_metrics
from exporter.exporter import Exporter
from exporter.registry import Registry
from exporter.sources import InMemoryUpstreams

from support import StubMemory


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, metric_prefix="gateway_")


@pytest.fixture()
def shared() -> InMemorySharedDict:
    return InMemorySharedDict("prometheus_metrics", 1024 * 1024)


@pytest.fixture()
def registry(shared: InMemorySharedDict) -> Iterator[Registry]:
    reg = Registry(shared, prefix="t_")
    yield reg
    reg.shutdown()


@pytest.fixture()
def gateway_metrics(shared: InMemorySharedDict) -> Iterator[GatewayMetrics]:
    """The full gateway metric set on small latency buckets."""
    reg = Registry(shared, prefix="gateway_")
    metrics = define_metrics(reg, [1, 5, 10, 100])
    reg.seal()
    yield metrics
    reg.shutdown()


@pytest.fixture()
def upstreams() -> InMemoryUpstreams:
    return InMemoryUpstreams()


@pytest.fixture()
def exporter(
    settings: Settings,
    shared: InMemorySharedDict,
    upstreams: InMemoryUpstreams,
) -> Iterator[Exporter]:
    exp = Exporter(settings, shared=shared, upstreams=upstreams, memory=StubMemory())
    assert exp.initialize()
    yield exp
    exp.shutdown()
