"""APScheduler wrapper driving the poll timer."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import PollingConfig
from ..logging_conf import configure_logging

POLL_JOB_ID = "ingest::poll"


class APSchedulerAdapter:
    """Own a background scheduler with a single fixed-interval poll job."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self, wait: bool = False) -> None:
        if self.started:
            self.scheduler.shutdown(wait=wait)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_poll(
        self,
        polling: PollingConfig,
        callback: Callable[[], object],
        job_id: str = POLL_JOB_ID,
    ) -> None:
        trigger = self._build_trigger(polling)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id,
            max_instances=polling.max_concurrent_cycles,
            coalesce=True,
            replace_existing=True,
        )
        self.logger.info(
            "job_scheduled",
            job_id=job_id,
            interval_ms=polling.poll_interval_ms,
            max_instances=polling.max_concurrent_cycles,
        )

    def remove_poll(self, job_id: str = POLL_JOB_ID) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job_id=job_id)

    def _build_trigger(self, polling: PollingConfig) -> IntervalTrigger:
        return IntervalTrigger(seconds=polling.poll_interval)

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "POLL_JOB_ID"]
