"""Append results as JSON lines to a per-run file."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

from ...models import IngestResult
from .base import DocumentSink


class JsonlSink(DocumentSink):
    """One JSON object per result; writes from worker threads are serialised."""

    def __init__(self, output_dir: Path, run_tag: str | None = None, prefix: str = "ingest") -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.path = self.output_dir / f"{prefix}-{self.run_tag}.jsonl"
        self._file = self.path.open("a", encoding="utf-8")
        self._lock = Lock()

    def ingest(self, result: IngestResult) -> None:
        line = json.dumps(result.to_record(), ensure_ascii=False)
        with self._lock:
            self._file.write(line)
            self._file.write("\n")

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.close()


__all__ = ["JsonlSink"]
