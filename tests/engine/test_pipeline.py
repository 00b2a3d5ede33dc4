from __future__ import annotations

import io
import threading
from unittest.mock import MagicMock

import pytest

from xml_ingest.engine import DocumentTypeResolver, FetchParsePipeline, StreamHandle
from xml_ingest.errors import MAX_ERROR_LENGTH, UNRESOLVED_XML_MESSAGE, IngestError
from xml_ingest.models import RemoteFileRef


def _ref(name: str) -> RemoteFileRef:
    return RemoteFileRef.in_directory("upload", name, "batch-1")


def _pipeline(source, timeout: float = 5.0, resolver=None) -> FetchParsePipeline:
    return FetchParsePipeline(source, resolver or DocumentTypeResolver(), timeout=timeout)


def _join_attempts() -> None:
    for thread in threading.enumerate():
        if thread.name.startswith("ingest-parse-"):
            thread.join(timeout=5)


def test_success_tags_statement_type_and_closes_stream(fake_source, recording_tracer, payloads) -> None:
    fake_source.put("invoices.xml", payloads.invoices)
    span = recording_tracer.start("sftp.message.handle")
    result = _pipeline(fake_source).process(_ref("invoices.xml"), span)
    assert result.ok
    assert result.filename == "invoices.xml"
    assert result.document_kind == "Invoices"
    assert span.tags == {"statement.type": "Invoices"}
    assert fake_source.opened == ["upload/invoices.xml"]
    assert fake_source.open_streams == set()
    assert fake_source.closed_count == 1


def test_unresolved_document_is_a_failure(fake_source, recording_tracer, payloads) -> None:
    fake_source.put("orders.xml", payloads.orders)
    span = recording_tracer.start("sftp.message.handle")
    result = _pipeline(fake_source).process(_ref("orders.xml"), span)
    assert not result.ok
    assert result.document is None
    assert result.error.startswith(UNRESOLVED_XML_MESSAGE)
    assert span.tags["error"] == "true"
    assert span.tags["error.type"] == "unresolved_xml_type"
    assert span.tags["error.msg"] == result.error
    assert "statement.type" not in span.tags
    assert fake_source.open_streams == set()


def test_malformed_xml_releases_stream(fake_source) -> None:
    fake_source.put("broken.xml", b"<Invoices><invoice>")
    result = _pipeline(fake_source).process(_ref("broken.xml"))
    assert not result.ok
    assert result.error.startswith("Malformed XML")
    assert fake_source.open_streams == set()
    assert fake_source.closed_count == 1


def test_transport_error_is_a_failure(fake_source, recording_tracer) -> None:
    fake_source.put("gone.xml", b"")
    fake_source.broken.add("gone.xml")
    span = recording_tracer.start("sftp.message.handle")
    result = _pipeline(fake_source).process(_ref("gone.xml"), span)
    assert not result.ok
    assert "cannot open upload/gone.xml" in result.error
    assert span.tags["error.type"] == "transport_error"


def test_timeout_is_a_failure_and_releases_stream(fake_source, payloads, recording_tracer) -> None:
    fake_source.put("slow.xml", payloads.invoices)
    fake_source.delays["slow.xml"] = 0.5
    span = recording_tracer.start("sftp.message.handle")
    result = _pipeline(fake_source, timeout=0.05).process(_ref("slow.xml"), span)
    _join_attempts()
    assert not result.ok
    assert result.error == "Fetch and parse of upload/slow.xml exceeded 0.05s"
    assert span.tags["error.type"] == "timeout"
    assert "statement.type" not in span.tags
    assert fake_source.opened == ["upload/slow.xml"]
    assert fake_source.open_streams == set()
    assert fake_source.closed_count == 1


def test_repeated_timeouts_leak_no_streams(fake_source, payloads) -> None:
    names = [f"slow-{index}.xml" for index in range(10)]
    for name in names:
        fake_source.put(name, payloads.transactions)
        fake_source.delays[name] = 0.2
    pipeline = _pipeline(fake_source, timeout=0.02)
    results = [pipeline.process(_ref(name)) for name in names]
    _join_attempts()
    assert all(not result.ok for result in results)
    assert all("exceeded" in result.error for result in results)
    assert fake_source.open_streams == set()
    assert fake_source.closed_count == len(fake_source.opened) == len(names)


def test_stalled_read_does_not_delay_later_files(fake_source, payloads) -> None:
    fake_source.put("stalled.xml", payloads.invoices)
    fake_source.delays["stalled.xml"] = 2.0
    fake_source.put("fast.xml", payloads.transactions)
    pipeline = _pipeline(fake_source, timeout=0.3)

    stalled = pipeline.process(_ref("stalled.xml"))
    fast = pipeline.process(_ref("fast.xml"))

    assert not stalled.ok
    assert "exceeded" in stalled.error
    assert fast.ok
    assert fast.document_kind == "Transactions"
    assert fake_source.opened == ["upload/stalled.xml", "upload/fast.xml"]
    assert fake_source.open_streams == set()


def test_error_message_is_truncated(fake_source) -> None:
    fake_source.put("long.xml", b"<x/>")
    resolver = MagicMock()
    resolver.resolve_stream.side_effect = IngestError("boom " * 300)
    result = _pipeline(fake_source, resolver=resolver).process(_ref("long.xml"))
    assert len(result.error) == MAX_ERROR_LENGTH
    assert result.error.startswith("boom")


def test_empty_error_message_falls_back_to_class_name(fake_source) -> None:
    fake_source.put("odd.xml", b"<x/>")
    resolver = MagicMock()
    resolver.resolve_stream.side_effect = RuntimeError()
    result = _pipeline(fake_source, resolver=resolver).process(_ref("odd.xml"))
    assert result.error == "RuntimeError"
    assert fake_source.open_streams == set()


def test_stream_handle_closes_late_streams() -> None:
    handle = StreamHandle()
    handle.release()
    handle.release()
    late = io.BytesIO(b"data")
    with pytest.raises(IngestError):
        handle.attach(late)
    assert late.closed
    assert handle.released


def test_stream_handle_release_closes_attached_stream() -> None:
    handle = StreamHandle()
    stream = handle.attach(io.BytesIO(b"data"))
    assert not stream.closed
    handle.release()
    assert stream.closed
