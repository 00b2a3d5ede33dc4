"""Document sink Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ...models import IngestResult


class DocumentSink(ABC):
    """Final consumer of every ingest outcome, success or failure."""

    @abstractmethod
    def ingest(self, result: IngestResult) -> None:
        """Accept a single result; raise to report a delivery failure."""

    def flush(self) -> None:
        """Flush buffered data to the destination."""

    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["DocumentSink"]
