import logging
import threading
from typing import Callable, Optional

from app.client.scheduling import TaskHandle, TaskScheduler

logger = logging.getLogger(__name__)

REFRESH_INTERVALS = {
    "off": None,
    "30s": 30,
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
}


class AutoRefresh:
    """Periodically calls ``callback`` (a dashboard reload). Polling only, no server push."""

    def __init__(self, callback: Callable[[], None], scheduler: TaskScheduler, interval: str = "off"):
        self._callback = callback
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._handle: Optional[TaskHandle] = None
        self._generation = 0
        self.interval = "off"
        self.set_interval(interval)

    @property
    def seconds(self) -> Optional[int]:
        return REFRESH_INTERVALS[self.interval]

    def set_interval(self, interval: str) -> None:
        """Switch interval. The pending tick is cancelled before the new one is armed."""
        if interval not in REFRESH_INTERVALS:
            raise ValueError(f"Invalid refresh interval '{interval}'. Use one of: {', '.join(REFRESH_INTERVALS)}")
        with self._lock:
            self._cancel_locked()
            self.interval = interval
            self._arm_locked()

    def stop(self) -> None:
        self.set_interval("off")

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm_locked(self) -> None:
        seconds = REFRESH_INTERVALS[self.interval]
        if seconds is None:
            return
        generation = self._generation
        self._handle = self._scheduler.call_later(seconds, lambda: self._tick(generation))

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._handle = None
        try:
            self._callback()
        finally:
            with self._lock:
                if generation == self._generation:
                    self._arm_locked()
