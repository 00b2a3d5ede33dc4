"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ClaimBackend,
    ClaimStoreConfig,
    IngestConfig,
    PollingConfig,
    SftpConfig,
    SinkConfig,
    SinkType,
    SourceType,
    TracingConfig,
)

__all__ = [
    "ClaimBackend",
    "ClaimStoreConfig",
    "ConfigLocator",
    "ConfigRepository",
    "IngestConfig",
    "PollingConfig",
    "SftpConfig",
    "SinkConfig",
    "SinkType",
    "SourceType",
    "TracingConfig",
]
