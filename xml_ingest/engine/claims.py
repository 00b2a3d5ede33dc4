"""Claim stores recording which remote files were taken for processing.

A claim is written the moment a file is selected, before it is fetched, and
is never released by the ingestion process. ``try_claim`` must be atomic: of
several concurrent callers racing on one path exactly one gets ``True``.
When the backing store cannot be reached every call raises
:class:`ClaimStoreUnavailable` instead of reporting the path as unclaimed.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock

import redis

from ..errors import ClaimStoreUnavailable
from ..infra.storage import SQLiteManager
from ..models import ClaimRecord

DEFAULT_NAMESPACE = "xmlSftpMetadataStore"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ClaimStore(ABC):
    """Persistent, concurrency-safe set of claimed remote paths."""

    @abstractmethod
    def try_claim(self, path: str) -> bool:
        """Record a claim for ``path``; return ``True`` only for the winner."""

    @abstractmethod
    def get(self, path: str) -> ClaimRecord | None:
        """Return the claim for ``path`` if one exists."""

    @abstractmethod
    def recent(self, limit: int = 20) -> list[ClaimRecord]:
        """Return the newest claims first."""

    @abstractmethod
    def ping(self) -> None:
        """Raise :class:`ClaimStoreUnavailable` when the store is unreachable."""

    def is_claimed(self, path: str) -> bool:
        return self.get(path) is not None

    def close(self) -> None:
        """Release underlying resources."""


class SQLiteClaimStore(ClaimStore):
    """Claims kept in a SQLite table; the primary key arbitrates races."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = Path(db_path)
        self._lock = Lock()
        try:
            self._conn = self.manager.connect(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            raise ClaimStoreUnavailable(f"cannot open claim store {self.db_path}: {exc}") from exc

    def try_claim(self, path: str) -> bool:
        with self._lock:
            try:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO claims(path, claimed_at) VALUES (?, ?)",
                    (path, _now().isoformat()),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise ClaimStoreUnavailable(f"claim store write failed: {exc}") from exc
        return cur.rowcount == 1

    def get(self, path: str) -> ClaimRecord | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT path, claimed_at FROM claims WHERE path = ?", (path,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise ClaimStoreUnavailable(f"claim store read failed: {exc}") from exc
        if row is None:
            return None
        return ClaimRecord(path=row["path"], claimed_at=datetime.fromisoformat(row["claimed_at"]))

    def recent(self, limit: int = 20) -> list[ClaimRecord]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT path, claimed_at FROM claims ORDER BY claimed_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise ClaimStoreUnavailable(f"claim store read failed: {exc}") from exc
        return [
            ClaimRecord(path=row["path"], claimed_at=datetime.fromisoformat(row["claimed_at"]))
            for row in rows
        ]

    def ping(self) -> None:
        with self._lock:
            try:
                self._conn.execute("SELECT 1").fetchone()
            except sqlite3.Error as exc:
                raise ClaimStoreUnavailable(f"claim store unreachable: {exc}") from exc

    def close(self) -> None:
        self.manager.close(self.db_path)


class RedisClaimStore(ClaimStore):
    """Claims kept as fields of one Redis hash; ``HSETNX`` arbitrates races."""

    def __init__(self, client: redis.Redis, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, redis_url: str, namespace: str = DEFAULT_NAMESPACE) -> "RedisClaimStore":
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        return cls(client, namespace)

    def try_claim(self, path: str) -> bool:
        try:
            return bool(self.client.hsetnx(self.namespace, path, _now().isoformat()))
        except redis.RedisError as exc:
            raise ClaimStoreUnavailable(f"redis claim failed: {exc}") from exc

    def get(self, path: str) -> ClaimRecord | None:
        try:
            value = self.client.hget(self.namespace, path)
        except redis.RedisError as exc:
            raise ClaimStoreUnavailable(f"redis read failed: {exc}") from exc
        if value is None:
            return None
        return ClaimRecord(path=path, claimed_at=datetime.fromisoformat(value))

    def recent(self, limit: int = 20) -> list[ClaimRecord]:
        try:
            entries = self.client.hgetall(self.namespace)
        except redis.RedisError as exc:
            raise ClaimStoreUnavailable(f"redis read failed: {exc}") from exc
        records = [
            ClaimRecord(path=path, claimed_at=datetime.fromisoformat(value))
            for path, value in entries.items()
        ]
        records.sort(key=lambda record: record.claimed_at, reverse=True)
        return records[:limit]

    def ping(self) -> None:
        try:
            self.client.ping()
        except redis.RedisError as exc:
            raise ClaimStoreUnavailable(f"redis unreachable: {exc}") from exc

    def close(self) -> None:
        self.client.close()


class InMemoryClaimStore(ClaimStore):
    """Process-local claims for dry runs and tests; nothing survives a restart."""

    def __init__(self) -> None:
        self._claims: dict[str, datetime] = {}
        self._lock = Lock()

    def try_claim(self, path: str) -> bool:
        with self._lock:
            if path in self._claims:
                return False
            self._claims[path] = _now()
            return True

    def get(self, path: str) -> ClaimRecord | None:
        with self._lock:
            claimed_at = self._claims.get(path)
        if claimed_at is None:
            return None
        return ClaimRecord(path=path, claimed_at=claimed_at)

    def recent(self, limit: int = 20) -> list[ClaimRecord]:
        with self._lock:
            items = sorted(self._claims.items(), key=lambda item: item[1], reverse=True)
        return [ClaimRecord(path=path, claimed_at=claimed_at) for path, claimed_at in items[:limit]]

    def ping(self) -> None:
        return None


__all__ = [
    "ClaimStore",
    "DEFAULT_NAMESPACE",
    "InMemoryClaimStore",
    "RedisClaimStore",
    "SQLiteClaimStore",
]
