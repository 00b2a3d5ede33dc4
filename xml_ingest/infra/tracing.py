"""Span capability used to correlate one file-processing attempt."""

from __future__ import annotations

import time
import uuid
from threading import Lock
from typing import Any, Protocol

import structlog


class TraceSpan(Protocol):
    def tag(self, key: str, value: Any) -> "TraceSpan":
        ...

    def end(self) -> None:
        ...


class Tracer(Protocol):
    def start(self, name: str) -> TraceSpan:
        ...


class LoggingSpan:
    """Span that reports its tags and duration as structlog events."""

    def __init__(self, name: str, logger: structlog.BoundLogger) -> None:
        self.name = name
        self.span_id = uuid.uuid4().hex[:16]
        self.tags: dict[str, Any] = {}
        self.ended = False
        self._logger = logger
        self._started = time.monotonic()
        self._lock = Lock()
        self._logger.debug("span_started", span=self.name, span_id=self.span_id)

    def tag(self, key: str, value: Any) -> "LoggingSpan":
        with self._lock:
            self.tags[key] = value
        return self

    def end(self) -> None:
        with self._lock:
            if self.ended:
                return
            self.ended = True
            tags = dict(self.tags)
        duration_ms = round((time.monotonic() - self._started) * 1000, 3)
        self._logger.info(
            "span_ended",
            span=self.name,
            span_id=self.span_id,
            duration_ms=duration_ms,
            tags=tags,
        )


class StructlogTracer:
    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("xml_ingest.tracing")

    def start(self, name: str) -> LoggingSpan:
        return LoggingSpan(name, self.logger)


class _NoopSpan:
    def tag(self, key: str, value: Any) -> "_NoopSpan":
        return self

    def end(self) -> None:
        return None


class NoopTracer:
    def start(self, name: str) -> _NoopSpan:
        return _NoopSpan()


__all__ = ["LoggingSpan", "NoopTracer", "StructlogTracer", "TraceSpan", "Tracer"]
