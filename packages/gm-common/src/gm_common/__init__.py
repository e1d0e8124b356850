"""
gm-common: Shared library for gateway-metrics.

Provides configuration management, structured logging, data models, the
series-key encoding and the shared aggregation substrate used by the
exporter service.
"""

from gm_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
