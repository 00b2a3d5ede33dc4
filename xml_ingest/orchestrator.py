"""Poll-cycle orchestrator wiring listing, claims, fetch-parse and delivery."""

from __future__ import annotations

import time
import uuid
from concurrent.futures import Future, as_completed
from dataclasses import asdict, dataclass
from pathlib import Path
from threading import Lock
from typing import Callable


from .config import (
    ClaimBackend,
    ConfigLocator,
    IngestConfig,
    PollingConfig,
    SinkType,
    SourceType,
)
from .engine import (
    WORKER_POOL,
    ClaimStore,
    DocumentTypeResolver,
    FetchParsePipeline,
    FilenameMatcher,
    InMemoryClaimStore,
    ListingFilter,
    RedisClaimStore,
    SQLiteClaimStore,
    ThreadPoolManager,
)
from .engine.sink import DocumentSink, JsonlSink, LogSink, SQLiteSink
from .errors import ClaimStoreUnavailable, error_kind, safe_message
from .infra import (
    LocalDirectorySource,
    NoopTracer,
    RemoteFileSource,
    SFTPFileSource,
    SQLiteManager,
    StructlogTracer,
    Tracer,
)
from .logging_conf import configure_logging
from .models import IngestResult, RemoteFileRef

DEFAULT_SPAN_NAME = "sftp.message.handle"

SUCCESS = "success"
FAILED = "failed"
SINK_ERROR = "sink_error"


@dataclass(slots=True)
class CycleSummary:
    """Counters for one poll cycle."""

    batch_id: str
    listed: int = 0
    eligible: int = 0
    claimed: int = 0
    success: int = 0
    failed: int = 0
    sink_errors: int = 0
    skipped: bool = False
    error: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)


class IngestionOrchestrator:
    """Drive list → claim → fetch/parse → deliver for every poll tick.

    Each claimed file is processed on the worker pool inside its own span and
    its result, success or failure, is handed to the sink. Failures of one
    file never affect its siblings. Listing or claim store failures abort the
    cycle and back off exponentially before the next attempt.
    """

    def __init__(
        self,
        source: RemoteFileSource,
        claim_store: ClaimStore,
        sink: DocumentSink,
        polling: PollingConfig,
        thread_pool: ThreadPoolManager | None = None,
        tracer: Tracer | None = None,
        resolver: DocumentTypeResolver | None = None,
        scheduler=None,
        span_name: str = DEFAULT_SPAN_NAME,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.claim_store = claim_store
        self.sink = sink
        self.polling = polling
        self.thread_pool = thread_pool or ThreadPoolManager(polling.worker_threads)
        self.tracer = tracer or NoopTracer()
        self.scheduler = scheduler
        self.span_name = span_name
        self.logger = configure_logging().bind(component="orchestrator")
        self.listing_filter = ListingFilter(
            claim_store,
            FilenameMatcher(polling.filename_pattern, polling.filename_regex),
            polling.remote_directory,
            max_fetch_size=polling.max_fetch_size,
            logger=self.logger.bind(component="listing"),
        )
        self.pipeline = FetchParsePipeline(
            source,
            resolver or DocumentTypeResolver(),
            timeout=polling.parse_timeout,
            logger=self.logger.bind(component="pipeline"),
        )
        self._clock = clock
        self._state_lock = Lock()
        self._consecutive_failures = 0
        self._backoff_until = 0.0

    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.scheduler is None:
            raise RuntimeError("no scheduler configured")
        self.scheduler.schedule_poll(self.polling, self.run_cycle)
        self.scheduler.start()
        self.logger.info(
            "ingestion_started",
            remote_directory=self.polling.remote_directory,
            interval_ms=self.polling.poll_interval_ms,
        )

    def stop(self) -> None:
        if self.scheduler is not None:
            if self.scheduler.started:
                self.scheduler.remove_poll()
            self.scheduler.shutdown()
        self.thread_pool.shutdown(wait=False)
        for closer in (self.sink.flush, self.sink.close, self.source.close, self.claim_store.close):
            try:
                closer()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("shutdown_step_failed", step=getattr(closer, "__qualname__", "?"), error=str(exc))
        self.logger.info("ingestion_stopped")

    # ------------------------------------------------------------------
    @property
    def in_backoff(self) -> bool:
        with self._state_lock:
            return self._clock() < self._backoff_until

    def run_cycle(self) -> CycleSummary:
        summary = CycleSummary(batch_id=uuid.uuid4().hex)
        log = self.logger.bind(batch=summary.batch_id)
        if self.in_backoff:
            summary.skipped = True
            log.debug("cycle_skipped_backoff")
            return summary

        log.debug("cycle_started", remote_directory=self.polling.remote_directory)
        try:
            filenames = self.source.list(self.polling.remote_directory)
        except Exception as exc:  # noqa: BLE001
            self._abort_cycle(summary, exc, stage="listing", log=log)
            return summary
        summary.listed = len(filenames)
        summary.eligible = len(self.listing_filter.candidates(filenames))

        cycle_error: ClaimStoreUnavailable | None = None
        try:
            refs = self.listing_filter.select(filenames, summary.batch_id)
        except ClaimStoreUnavailable as exc:
            # claims granted before the failure still get processed
            refs = exc.claimed
            cycle_error = exc
        summary.claimed = len(refs)

        if refs:
            self._process_batch(refs, summary, log)
            try:
                self.sink.flush()
            except Exception as exc:  # noqa: BLE001
                log.error("sink_flush_failed", error=safe_message(exc))

        if cycle_error is not None:
            self._abort_cycle(summary, cycle_error, stage="claim", log=log)
        else:
            self._reset_backoff()
            if summary.claimed:
                log.info("cycle_finished", **summary.as_dict())
        return summary

    def _process_batch(self, refs: list[RemoteFileRef], summary: CycleSummary, log) -> None:
        executor = self.thread_pool.get(WORKER_POOL, self.polling.worker_threads)
        futures: dict[Future[str], RemoteFileRef] = {
            executor.submit(self._handle_file, ref): ref for ref in refs
        }
        for future in as_completed(futures):
            ref = futures[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                log.error("file_handler_crashed", path=ref.path, error=safe_message(exc))
                outcome = FAILED
            if outcome == SUCCESS:
                summary.success += 1
            elif outcome == SINK_ERROR:
                summary.sink_errors += 1
            else:
                summary.failed += 1

    def _handle_file(self, ref: RemoteFileRef) -> str:
        span = self.tracer.start(self.span_name)
        span.tag("remote.file", ref.filename)
        try:
            result = self.pipeline.process(ref, span)
            try:
                self.sink.ingest(result)
            except Exception as exc:  # noqa: BLE001
                self._sink_failed(ref, exc, span)
                if not result.ok:
                    return SINK_ERROR
                # a rejected document is still reported once, as a failure
                try:
                    self.sink.ingest(IngestResult.failure(ref.filename, safe_message(exc)))
                except Exception as retry_exc:  # noqa: BLE001
                    self._sink_failed(ref, retry_exc, span)
                    return SINK_ERROR
                return FAILED
            if result.ok:
                span.tag("result", "parsed")
                return SUCCESS
            return FAILED
        finally:
            span.end()

    def _sink_failed(self, ref: RemoteFileRef, exc: Exception, span) -> None:
        message = safe_message(exc)
        span.tag("error", "true")
        span.tag("error.type", error_kind(exc))
        span.tag("error.msg", message)
        span.tag("sink.error", message)
        self.logger.error(
            "sink_delivery_failed",
            path=ref.path,
            batch=ref.poll_batch_id,
            error_type=error_kind(exc),
            error=message,
        )

    # ------------------------------------------------------------------
    def _abort_cycle(self, summary: CycleSummary, exc: Exception, stage: str, log) -> None:
        with self._state_lock:
            self._consecutive_failures += 1
            delay_ms = min(
                self.polling.failure_backoff_ms * 2 ** (self._consecutive_failures - 1),
                self.polling.max_failure_backoff_ms,
            )
            self._backoff_until = self._clock() + delay_ms / 1000.0
            failures = self._consecutive_failures
        summary.error = safe_message(exc)
        log.error(
            "cycle_aborted",
            stage=stage,
            error_type=error_kind(exc),
            error=summary.error,
            consecutive_failures=failures,
            backoff_ms=delay_ms,
            claimed=summary.claimed,
        )

    def _reset_backoff(self) -> None:
        with self._state_lock:
            if self._consecutive_failures:
                self.logger.info("cycle_recovered", after_failures=self._consecutive_failures)
            self._consecutive_failures = 0
            self._backoff_until = 0.0


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------
def build_claim_store(config: IngestConfig, base_dir: Path, storage: SQLiteManager | None = None) -> ClaimStore:
    claim_cfg = config.claim_store
    if claim_cfg.backend is ClaimBackend.REDIS:
        return RedisClaimStore.from_url(claim_cfg.redis_url, claim_cfg.namespace)
    if claim_cfg.backend is ClaimBackend.MEMORY:
        return InMemoryClaimStore()
    return SQLiteClaimStore(storage or SQLiteManager(), claim_cfg.resolved_path(base_dir))


def build_source(config: IngestConfig, base_dir: Path) -> RemoteFileSource:
    if config.source is SourceType.LOCAL:
        root = config.local_directory
        if not root.is_absolute():
            root = base_dir / root
        return LocalDirectorySource(root)
    sftp = config.sftp
    return SFTPFileSource(
        host=sftp.host,
        port=sftp.port,
        username=sftp.user,
        password=sftp.password,
        private_key=sftp.private_key,
        private_key_passphrase=sftp.private_key_passphrase,
        allow_unknown_keys=sftp.allow_unknown_keys,
        timeout=sftp.connect_timeout,
    )


def build_sink(config: IngestConfig, base_dir: Path) -> DocumentSink:
    sink_cfg = config.sink
    if sink_cfg.type is SinkType.JSONL:
        return JsonlSink(sink_cfg.resolved_path(base_dir))
    if sink_cfg.type is SinkType.SQLITE:
        path = sink_cfg.resolved_path(base_dir)
        if path.suffix != ".db":
            path = path / "ingest_results.db"
        return SQLiteSink(path)
    return LogSink()


def build_tracer(config: IngestConfig) -> Tracer:
    if config.tracing.enabled:
        return StructlogTracer()
    return NoopTracer()


def build_orchestrator(
    config: IngestConfig,
    locator: ConfigLocator,
    scheduler=None,
    storage: SQLiteManager | None = None,
) -> IngestionOrchestrator:
    base_dir = locator.project_root
    return IngestionOrchestrator(
        source=build_source(config, base_dir),
        claim_store=build_claim_store(config, base_dir, storage),
        sink=build_sink(config, base_dir),
        polling=config.polling,
        thread_pool=ThreadPoolManager(config.polling.worker_threads),
        tracer=build_tracer(config),
        scheduler=scheduler,
        span_name=config.tracing.span_name,
    )


__all__ = [
    "CycleSummary",
    "DEFAULT_SPAN_NAME",
    "IngestionOrchestrator",
    "build_claim_store",
    "build_orchestrator",
    "build_sink",
    "build_source",
    "build_tracer",
]
