"""Scheduling of poll cycles."""

from .apsched_adapter import POLL_JOB_ID, APSchedulerAdapter

__all__ = ["APSchedulerAdapter", "POLL_JOB_ID"]
