"""Shared fixtures: fake remote source, recording sink/tracer and XML payloads."""

from __future__ import annotations

import io
import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Iterable

import pytest

from xml_ingest.config import ConfigLocator, ConfigRepository, PollingConfig
from xml_ingest.engine.sink import DocumentSink
from xml_ingest.errors import TransportError
from xml_ingest.models import IngestResult

INVOICES_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<Invoices>
  <invoice>
    <id>INV-5</id>
    <amount>999.00</amount>
    <currency>CHF</currency>
  </invoice>
</Invoices>
"""

TRANSACTIONS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<Transactions>
  <transaction>
    <id>TX-2001</id>
    <postingDate>2025-10-31</postingDate>
    <amount Ccy="EUR">1450.00</amount>
    <direction>CRDT</direction>
    <reference>INV-1001</reference>
    <counterparty>Acme Ltd</counterparty>
  </transaction>
  <transaction>
    <id>TX-2002</id>
    <postingDate>2025-11-01</postingDate>
    <amount Ccy="USD">-75.50</amount>
    <direction>DBIT</direction>
    <reference>SUBS-STREAM</reference>
    <counterparty>StreamCo</counterparty>
  </transaction>
</Transactions>
"""

ORDERS_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<Orders>
  <order><id>ORD-1</id></order>
</Orders>
"""


class TrackedStream(io.RawIOBase):
    """Raw stream over a payload that reports its closing back to the owning source.

    Every read first blocks for ``delay`` seconds; closing the stream does not
    wake a blocked read, like a hung remote server.
    """

    def __init__(self, payload: bytes, on_close: Callable[["TrackedStream"], None], delay: float = 0.0) -> None:
        super().__init__()
        self._buffer = io.BytesIO(payload)
        self._on_close = on_close
        self._delay = delay
        self._notified = False

    def readable(self) -> bool:
        return True

    def readinto(self, target) -> int:
        if self._delay:
            threading.Event().wait(self._delay)
        if self.closed:
            raise ValueError("read from closed stream")
        return self._buffer.readinto(target)

    def close(self) -> None:
        if not self._notified:
            self._notified = True
            self._on_close(self)
        super().close()


class FakeRemoteSource:
    """In-memory :class:`RemoteFileSource` that records open and close calls."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.delays: dict[str, float] = {}
        self.broken: set[str] = set()
        self.list_error: Exception | None = None
        self.opened: list[str] = []
        self.open_streams: set[int] = set()
        self.closed_count = 0
        self.list_calls = 0
        self.source_closed = False
        self._lock = threading.Lock()

    def put(self, name: str, payload: bytes) -> None:
        self.files[name] = payload

    def list(self, directory: str) -> list[str]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.files)

    def open(self, path: str) -> TrackedStream:
        name = path.rsplit("/", 1)[-1]
        with self._lock:
            self.opened.append(path)
        if name in self.broken or name not in self.files:
            raise TransportError(f"cannot open {path}")
        stream = TrackedStream(self.files[name], self._closed, self.delays.get(name, 0.0))
        with self._lock:
            self.open_streams.add(id(stream))
        return stream

    def _closed(self, stream: TrackedStream) -> None:
        with self._lock:
            self.open_streams.discard(id(stream))
            self.closed_count += 1

    def close(self) -> None:
        self.source_closed = True


class RecordingSink(DocumentSink):
    def __init__(self, fail_for: Iterable[str] = (), reject_documents_for: Iterable[str] = ()) -> None:
        self.results: list[IngestResult] = []
        self.fail_for = set(fail_for)
        self.reject_documents_for = set(reject_documents_for)
        self.flushes = 0
        self.closed = False
        self._lock = threading.Lock()

    def ingest(self, result: IngestResult) -> None:
        if result.filename in self.fail_for:
            raise RuntimeError(f"sink rejected {result.filename}")
        if result.ok and result.filename in self.reject_documents_for:
            raise ValueError(f"schema mismatch for {result.filename}")
        with self._lock:
            self.results.append(result)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.closed = True

    def by_filename(self) -> dict[str, IngestResult]:
        return {result.filename: result for result in self.results}


class RecordingSpan:
    def __init__(self, name: str) -> None:
        self.name = name
        self.tags: dict[str, Any] = {}
        self.end_calls = 0

    def tag(self, key: str, value: Any) -> "RecordingSpan":
        self.tags[key] = value
        return self

    def end(self) -> None:
        self.end_calls += 1


class RecordingTracer:
    def __init__(self) -> None:
        self.spans: list[RecordingSpan] = []
        self._lock = threading.Lock()

    def start(self, name: str) -> RecordingSpan:
        span = RecordingSpan(name)
        with self._lock:
            self.spans.append(span)
        return span

    def span_for(self, filename: str) -> RecordingSpan:
        for span in self.spans:
            if span.tags.get("remote.file") == filename:
                return span
        raise KeyError(filename)


@pytest.fixture(autouse=True)
def ingest_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("XML_INGEST_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def fake_source() -> FakeRemoteSource:
    return FakeRemoteSource()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_tracer() -> RecordingTracer:
    return RecordingTracer()


@pytest.fixture
def polling_config() -> Callable[..., PollingConfig]:
    def _builder(**overrides: Any) -> PollingConfig:
        base: dict[str, Any] = {
            "remote_directory": "upload",
            "poll_interval_ms": 50,
            "max_fetch_size": None,
            "parse_timeout_ms": 5_000,
            "worker_threads": 4,
            "failure_backoff_ms": 1_000,
            "max_failure_backoff_ms": 8_000,
        }
        base.update(overrides)
        return PollingConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


@pytest.fixture
def payloads() -> SimpleNamespace:
    return SimpleNamespace(invoices=INVOICES_XML, transactions=TRANSACTIONS_XML, orders=ORDERS_XML)


@pytest.fixture
def make_sink() -> Callable[..., RecordingSink]:
    return RecordingSink
