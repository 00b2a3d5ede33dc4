"""SQLite connection management for the claim store and sinks."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict


class SQLiteManager:
    """Manage shared SQLite connections with basic schema guarantees."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, timeout=self.timeout, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._ensure_schema(conn)
                self._connections[path] = conn
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS claims (
                path TEXT PRIMARY KEY,
                claimed_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def close(self, path: Path) -> None:
        with self._lock:
            conn = self._connections.pop(Path(path), None)
        if conn is not None:
            conn.close()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
