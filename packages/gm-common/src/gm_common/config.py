"""
Environment-based configuration management for gateway-metrics.

Uses pydantic-settings to load configuration values from environment
variables and .env files. The exporter service and the shared library
read their settings from this module to ensure consistent handling.

All environment variables are prefixed with ``GM_`` to avoid collisions.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gm_common.metrics import DEFAULT_LATENCY_BUCKETS
from gm_common.models.plugin import PluginConfig


class Settings(BaseSettings):
    """Central configuration loaded from ``GM_``-prefixed environment variables.

    Attributes:
        service_name: Service identity reported for requests served by the
            hosting application itself.
        metric_prefix: Prefix prepended to every metric family name.
        shared_dict_backend: Aggregation substrate (``memory`` or ``redis``).
        shared_dict_name: Name of the shared dictionary (Redis hash key).
        shared_dict_capacity_bytes: Capacity of the shared dictionary.
        redis_url: Redis connection URL for the ``redis`` backend.
        sync_interval: Seconds between worker buffer flushes.
        latency_buckets: Latency histogram upper bounds in milliseconds.
        db_uri: Datastore URI probed on every scrape (empty disables the probe).
        per_consumer: Track status/param/location counters per consumer.
        param_collect_list: Ordered query parameter names to collect.
        param_value_extract: Optional regex applied to the parameter value.
        location_collect: Collect the request path as a location dimension.
        location_extract: Optional regex applied to the request path.
        exclude_paths: Paths of the hosting app that are never recorded.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Render logs as JSON lines instead of console output.
        exporter_host: Bind address for the exporter service.
        exporter_port: Bind port for the exporter service.
    """

    model_config = SettingsConfigDict(
        env_prefix="GM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Identity ──
    service_name: str = Field(default="gateway", description="Service identity of the host app.")
    metric_prefix: str = Field(
        default="gateway_",
        pattern=r"^[a-zA-Z_:][a-zA-Z0-9_:]*$",
        description="Prefix prepended to every metric family name.",
    )

    # ── Shared dictionary ──
    shared_dict_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Aggregation substrate backend.",
    )
    shared_dict_name: str = Field(
        default="prometheus_metrics",
        min_length=1,
        description="Name of the shared dictionary.",
    )
    shared_dict_capacity_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=4096,
        description="Capacity of the shared dictionary in bytes.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL.",
    )
    sync_interval: float = Field(
        default=1.0,
        gt=0.0,
        description="Seconds between worker buffer flushes.",
    )

    # ── Histograms ──
    latency_buckets: list[float] = Field(
        default_factory=lambda: list(DEFAULT_LATENCY_BUCKETS),
        min_length=1,
        description="Latency histogram upper bounds in milliseconds.",
    )

    # ── Datastore ──
    db_uri: str = Field(default="", description="Datastore URI probed on every scrape.")

    # ── Recorder ──
    per_consumer: bool = Field(default=False, description="Track counters per consumer.")
    param_collect_list: list[str] = Field(
        default_factory=list,
        description="Ordered query parameter names to collect.",
    )
    param_value_extract: str | None = Field(
        default=None,
        description="Regex applied to the collected parameter value.",
    )
    location_collect: bool = Field(default=False, description="Collect the request path.")
    location_extract: str | None = Field(
        default=None,
        description="Regex applied to the request path.",
    )
    exclude_paths: list[str] = Field(
        default_factory=lambda: ["/metrics", "/health"],
        description="Host app paths that are never recorded.",
    )

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")
    log_json: bool = Field(default=True, description="Render logs as JSON lines.")

    # ── Service ──
    exporter_host: str = Field(default="0.0.0.0", description="Exporter bind address.")
    exporter_port: int = Field(default=9542, ge=1, le=65535, description="Exporter bind port.")

    @field_validator("latency_buckets")
    @classmethod
    def _buckets_ascending(cls, value: list[float]) -> list[float]:
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("latency_buckets must be strictly ascending")
        return value

    def plugin_config(self) -> PluginConfig:
        """Build the recorder configuration from these settings."""
        return PluginConfig(
            per_consumer=self.per_consumer,
            param_collect_list=list(self.param_collect_list),
            param_value_extract=self.param_value_extract,
            location_collect=self.location_collect,
            location_extract=self.location_extract,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()
