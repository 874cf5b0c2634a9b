from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from ops.metrics import Timer

log = logging.getLogger("megadata.sync.scheduler")


class SingleFlight:
    """Non-blocking guard: a second caller is turned away instead of queued."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    @contextmanager
    def try_acquire(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


class PeriodicJob:
    def __init__(self, name: str, interval_s: float, fn: Callable[[], Any]):
        self.name = name
        self.interval_s = float(interval_s)
        self.fn = fn
        self.guard = SingleFlight(name)

    def run_once(self) -> bool:
        """Run the job unless a previous firing is still in flight. Returns False when skipped."""
        with self.guard.try_acquire() as acquired:
            if not acquired:
                log.info("job_skipped_in_flight", extra={"extra": {"job": self.name}})
                return False
            t = Timer()
            try:
                self.fn()
                log.info("job_finished", extra={"extra": {"job": self.name, "duration_ms": t.ms()}})
            except Exception as e:
                log.error(
                    "job_unhandled_exception",
                    extra={"extra": {"job": self.name, "error_type": type(e).__name__,
                                     "message": str(e), "duration_ms": t.ms()}},
                    exc_info=True,
                )
            return True


class Scheduler:
    """Fires each job on its own interval from a daemon thread per job until stopped."""

    def __init__(self, jobs: List[PeriodicJob]):
        self.jobs = list(jobs)
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        for job in self.jobs:
            th = threading.Thread(target=self._loop, args=(job,), name=f"job-{job.name}", daemon=True)
            th.start()
            self._threads.append(th)
        log.info("scheduler_started", extra={"extra": {"jobs": [j.name for j in self.jobs]}})

    def _loop(self, job: PeriodicJob) -> None:
        while not self._stop.wait(job.interval_s):
            # Inline, so stop() joining this thread also waits out an in-flight run.
            job.run_once()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        for th in self._threads:
            th.join(timeout)
        self._threads = []
        log.info("scheduler_stopped")
