"""Named thread pools for blocking fetch, parse and delivery work."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict

WORKER_POOL = "worker"


class ThreadPoolManager:
    """Lazily create one executor per pool name and shut them all down together."""

    def __init__(self, default_workers: int = 8) -> None:
        self.default_workers = default_workers
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()
        self._closed = False

    def get(self, name: str = WORKER_POOL, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if self._closed:
                raise RuntimeError("thread pools already shut down")
            executor = self._executors.get(name)
            if executor is None:
                executor = ThreadPoolExecutor(
                    max_workers=max_workers or self.default_workers,
                    thread_name_prefix=f"ingest-{name}",
                )
                self._executors[name] = executor
            return executor

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            self._closed = True
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait, cancel_futures=True)


__all__ = ["ThreadPoolManager", "WORKER_POOL"]
