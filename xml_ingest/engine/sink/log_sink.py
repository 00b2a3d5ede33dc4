"""Sink that only reports results through the application log."""

from __future__ import annotations

import structlog

from ...models import IngestResult
from .base import DocumentSink


class LogSink(DocumentSink):
    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("xml_ingest").bind(component="sink")

    def ingest(self, result: IngestResult) -> None:
        if result.ok:
            self.logger.info(
                "document_received",
                filename=result.filename,
                kind=result.document_kind,
                document=result.document.model_dump(mode="json"),
            )
        else:
            self.logger.warning("document_failed", filename=result.filename, error=result.error)


__all__ = ["LogSink"]
