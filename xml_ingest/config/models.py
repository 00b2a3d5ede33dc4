"""Pydantic models describing the ingestion service configuration."""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class SourceType(str, Enum):
    """Where remote files are read from."""

    SFTP = "sftp"
    LOCAL = "local"


class ClaimBackend(str, Enum):
    SQLITE = "sqlite"
    REDIS = "redis"
    MEMORY = "memory"


class SinkType(str, Enum):
    LOG = "log"
    JSONL = "jsonl"
    SQLITE = "sqlite"


class SftpConfig(BaseModel):
    """Connection settings for the SFTP server."""

    host: str = "localhost"
    port: int = 22
    user: str = ""
    password: str = ""
    private_key: str | None = None
    private_key_passphrase: str | None = None
    allow_unknown_keys: bool = True
    connect_timeout: float = 10.0

    @field_validator("port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("port must be between 1 and 65535")
        return value


class PollingConfig(BaseModel):
    """Poll cadence, eligibility rule and per-file budget."""

    remote_directory: str = "upload"
    filename_pattern: str = "*.xml"
    filename_regex: str | None = None
    poll_interval_ms: int = 1000
    max_fetch_size: int | None = 10
    parse_timeout_ms: int = 900_000
    worker_threads: int = 8
    max_concurrent_cycles: int = 2
    failure_backoff_ms: int = 5_000
    max_failure_backoff_ms: int = 300_000

    @field_validator("filename_regex")
    @classmethod
    def _compilable(cls, value: str | None) -> str | None:
        if value:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"filename_regex is not a valid expression: {exc}") from exc
        return value or None

    @model_validator(mode="after")
    def _validate_positive(self) -> "PollingConfig":
        for name in (
            "poll_interval_ms",
            "parse_timeout_ms",
            "worker_threads",
            "max_concurrent_cycles",
            "failure_backoff_ms",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.max_fetch_size is not None and self.max_fetch_size <= 0:
            raise ValueError("max_fetch_size must be > 0 or null")
        if self.max_failure_backoff_ms < self.failure_backoff_ms:
            raise ValueError("max_failure_backoff_ms must be >= failure_backoff_ms")
        if not self.filename_pattern and not self.filename_regex:
            raise ValueError("filename_pattern cannot be empty")
        return self

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def parse_timeout(self) -> float:
        return self.parse_timeout_ms / 1000.0


class ClaimStoreConfig(BaseModel):
    """Backend holding the claimed remote paths."""

    backend: ClaimBackend = ClaimBackend.SQLITE
    path: Path = Field(default=Path("data/claims.db"))
    redis_url: str = "redis://localhost:6379/0"
    namespace: str = "xmlSftpMetadataStore"

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_path(self, base_dir: Path) -> Path:
        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class SinkConfig(BaseModel):
    """Destination for ingest results."""

    type: SinkType = SinkType.LOG
    path: Path = Field(default=Path("data/outputs"))

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_path(self, base_dir: Path) -> Path:
        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class TracingConfig(BaseModel):
    enabled: bool = True
    span_name: str = "sftp.message.handle"


class IngestConfig(BaseModel):
    """Top-level configuration file model."""

    source: SourceType = SourceType.SFTP
    local_directory: Path | None = None
    sftp: SftpConfig = Field(default_factory=SftpConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    claim_store: ClaimStoreConfig = Field(default_factory=ClaimStoreConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    tracing: TracingConfig = Field(default_factory=TracingConfig)

    @model_validator(mode="after")
    def _validate_source(self) -> "IngestConfig":
        if self.source is SourceType.LOCAL and self.local_directory is None:
            raise ValueError("local source requires local_directory")
        return self


__all__ = [
    "ClaimBackend",
    "ClaimStoreConfig",
    "IngestConfig",
    "PollingConfig",
    "SftpConfig",
    "SinkConfig",
    "SinkType",
    "SourceType",
    "TracingConfig",
]
