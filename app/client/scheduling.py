"""Delayed-call scheduling used by the client-side debounce and refresh helpers."""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


class TaskHandle(Protocol):
    def cancel(self) -> None: ...


class TaskScheduler(Protocol):
    """Runs ``fn`` once after ``delay`` seconds. The returned handle cancels it."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> TaskHandle: ...


class _JobHandle:
    def __init__(self, scheduler: BackgroundScheduler, job_id: str):
        self._scheduler = scheduler
        self._job_id = job_id

    def cancel(self) -> None:
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            # Already ran
            return


class APSchedulerTaskScheduler:
    """TaskScheduler backed by one-shot APScheduler date jobs."""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        self._scheduler = scheduler or BackgroundScheduler()
        self._owns_scheduler = scheduler is None

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def call_later(self, delay: float, fn: Callable[[], None]) -> TaskHandle:
        self.start()
        run_date = datetime.now() + timedelta(seconds=delay)
        job = self._scheduler.add_job(fn, "date", run_date=run_date, misfire_grace_time=None)
        return _JobHandle(self._scheduler, job.id)
