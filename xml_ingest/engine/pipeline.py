"""Fetch one remote file, parse it within a time budget and report a result."""

from __future__ import annotations

from concurrent.futures import Future, wait
from threading import Lock, Thread
from typing import BinaryIO

import structlog

from ..errors import IngestError, IngestTimeoutError, error_kind, safe_message
from ..infra.sources import RemoteFileSource
from ..infra.tracing import TraceSpan
from ..models import IngestResult, RemoteFileRef, XmlDocument
from .resolver import DocumentTypeResolver

DEFAULT_PARSE_TIMEOUT = 15 * 60.0


class StreamHandle:
    """Hold at most one open stream and close it exactly once.

    ``release`` may run on the waiting thread (timeout) while the parse thread
    still reads; a stream attached after release is closed on the spot.
    """

    def __init__(self) -> None:
        self._stream: BinaryIO | None = None
        self._released = False
        self._lock = Lock()

    @property
    def released(self) -> bool:
        return self._released

    def attach(self, stream: BinaryIO) -> BinaryIO:
        with self._lock:
            late = self._released
            if not late:
                self._stream = stream
        if late:
            _close_quietly(stream)
            raise IngestError("stream opened after the attempt finished")
        return stream

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            stream, self._stream = self._stream, None
        if stream is not None:
            _close_quietly(stream)


def _close_quietly(stream: BinaryIO) -> None:
    try:
        stream.close()
    except Exception as exc:  # noqa: BLE001
        structlog.get_logger("xml_ingest.pipeline").debug("stream_close_failed", error=str(exc))


class FetchParsePipeline:
    """Turn a claimed :class:`RemoteFileRef` into an :class:`IngestResult`.

    Never raises: transport failures, malformed XML, unresolved document
    types and budget overruns all come back as failure results.

    Every attempt runs on its own daemon thread and the budget starts when
    that thread does. A read that never returns keeps only its own thread
    busy, so later files are fetched and timed independently.
    """

    def __init__(
        self,
        source: RemoteFileSource,
        resolver: DocumentTypeResolver,
        timeout: float = DEFAULT_PARSE_TIMEOUT,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.source = source
        self.resolver = resolver
        self.timeout = timeout
        self.logger = logger or structlog.get_logger("xml_ingest").bind(component="pipeline")

    def process(self, ref: RemoteFileRef, span: TraceSpan | None = None) -> IngestResult:
        handle = StreamHandle()
        try:
            future: Future[XmlDocument] = Future()
            attempt = Thread(
                target=self._attempt,
                args=(ref, handle, future),
                name=f"ingest-parse-{ref.filename}",
                daemon=True,
            )
            attempt.start()
            done, _ = wait([future], timeout=self.timeout)
            if not done:
                raise IngestTimeoutError(
                    f"Fetch and parse of {ref.path} exceeded {self.timeout:g}s"
                )
            document = future.result()
        except Exception as exc:  # noqa: BLE001
            return self._failure(ref, exc, span)
        finally:
            handle.release()
        if span is not None:
            span.tag("statement.type", document.kind)
        self.logger.debug("file_parsed", path=ref.path, kind=document.kind, batch=ref.poll_batch_id)
        return IngestResult.success(ref.filename, document)

    def _attempt(self, ref: RemoteFileRef, handle: StreamHandle, future: Future) -> None:
        try:
            future.set_result(self._fetch_and_parse(ref, handle))
        except BaseException as exc:  # noqa: BLE001
            future.set_exception(exc)

    def _fetch_and_parse(self, ref: RemoteFileRef, handle: StreamHandle) -> XmlDocument:
        self.logger.debug("file_fetching", path=ref.path, batch=ref.poll_batch_id)
        stream = handle.attach(self.source.open(ref.path))
        try:
            return self.resolver.resolve_stream(stream)
        finally:
            handle.release()

    def _failure(self, ref: RemoteFileRef, exc: Exception, span: TraceSpan | None) -> IngestResult:
        message = safe_message(exc)
        kind = error_kind(exc)
        if span is not None:
            span.tag("error", "true")
            span.tag("error.type", kind)
            span.tag("error.msg", message)
        self.logger.error(
            "file_ingest_failed",
            path=ref.path,
            batch=ref.poll_batch_id,
            error_type=kind,
            error=message,
        )
        return IngestResult.failure(ref.filename, message)


__all__ = ["DEFAULT_PARSE_TIMEOUT", "FetchParsePipeline", "StreamHandle"]
