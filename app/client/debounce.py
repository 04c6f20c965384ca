import logging
import threading
from typing import Any, Callable, Optional

from app.client.api_client import ApiError
from app.client.scheduling import TaskHandle, TaskScheduler

logger = logging.getLogger(__name__)

LAYOUT_SAVE_DELAY = 0.5


class Debouncer:
    """
    Delays a callback until submissions stop for ``delay`` seconds.

    Each submit cancels the pending call and re-arms it. Only the last
    payload is delivered; earlier ones are dropped, not merged.
    """

    def __init__(self, delay: float, callback: Callable[[Any], None], scheduler: TaskScheduler):
        self.delay = delay
        self._callback = callback
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._handle: Optional[TaskHandle] = None
        self._payload: Any = None
        self._pending = False
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._pending

    def submit(self, payload: Any) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._generation += 1
            generation = self._generation
            self._payload = payload
            self._pending = True
            self._handle = self._scheduler.call_later(self.delay, lambda: self._fire(generation))

    def _take(self, generation: Optional[int]) -> tuple[bool, Any]:
        with self._lock:
            if not self._pending or (generation is not None and generation != self._generation):
                return False, None
            payload = self._payload
            self._payload = None
            self._pending = False
            self._handle = None
            return True, payload

    def _fire(self, generation: Optional[int]) -> None:
        ready, payload = self._take(generation)
        if ready:
            self._callback(payload)

    def flush(self) -> None:
        """Deliver the pending payload now, if any."""
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
        self._fire(None)

    def cancel(self) -> None:
        """Drop the pending payload without delivering it."""
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
            self._payload = None
            self._pending = False


class LayoutSaver:
    """
    Persists dashboard layout after drag and resize.

    Every change records the full position set; the save goes out once the
    user has stopped moving widgets for ``delay`` seconds.
    """

    def __init__(
        self,
        client,
        dashboard_id: str,
        scheduler: TaskScheduler,
        delay: float = LAYOUT_SAVE_DELAY,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.client = client
        self.dashboard_id = dashboard_id
        self.on_error = on_error
        self._debouncer = Debouncer(delay, self._save, scheduler)

    def layout_changed(self, positions: list[dict], layout: Optional[dict] = None) -> None:
        """positions: ``[{"id": widget_id, "position": {x, y, w, h}}]`` for every widget."""
        self._debouncer.submit({"widgets": positions, "layout": layout})

    def _save(self, payload: dict) -> None:
        try:
            self.client.update_layout(self.dashboard_id, payload["widgets"], payload["layout"])
        except ApiError as e:
            logger.warning(f"Saving layout of dashboard {self.dashboard_id} failed: {e}")
            if self.on_error is None:
                raise
            self.on_error(e)

    def flush(self) -> None:
        self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()
