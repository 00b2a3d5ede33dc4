"""Store results in a SQLite table."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

from ...models import IngestResult
from .base import DocumentSink


class SQLiteSink(DocumentSink):
    """Persist each result as a row; the document is kept as a JSON payload."""

    def __init__(self, path: Path, table: str = "ingest_results") -> None:
        self.path = Path(path)
        self.table = table
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = Lock()
        self.conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT NOT NULL,
                kind TEXT,
                payload TEXT,
                error TEXT,
                received_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def ingest(self, result: IngestResult) -> None:
        record = result.to_record()
        payload = json.dumps(record["document"], ensure_ascii=False) if record["document"] else None
        with self._lock:
            self.conn.execute(
                f"INSERT INTO {self.table}(filename, kind, payload, error, received_at) VALUES (?, ?, ?, ?, ?)",
                (
                    result.filename,
                    record["kind"],
                    payload,
                    result.error,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            self.conn.commit()

    def flush(self) -> None:
        with self._lock:
            self.conn.commit()

    def close(self) -> None:
        with self._lock:
            self.conn.commit()
            self.conn.close()


__all__ = ["SQLiteSink"]
