from app.client.api_client import ApiError, CheckinClient
from app.client.scheduling import APSchedulerTaskScheduler, TaskScheduler
from app.client.debounce import Debouncer, LayoutSaver
from app.client.refresh import AutoRefresh, REFRESH_INTERVALS

__all__ = [
    "ApiError",
    "CheckinClient",
    "APSchedulerTaskScheduler",
    "TaskScheduler",
    "Debouncer",
    "LayoutSaver",
    "AutoRefresh",
    "REFRESH_INTERVALS",
]
