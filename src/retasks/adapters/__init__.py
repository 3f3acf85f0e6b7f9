"""Backend adapters for task storage."""

from .google_calendar import GoogleCalendarAdapter
from .google_tasks import GoogleTasksAdapter
from .local import LocalAdapter
from .protocol import AdapterCapabilities, BackendAdapter
from .rest import RestAdapter
from .todoist import TodoistAdapter

__all__ = [
    "AdapterCapabilities",
    "BackendAdapter",
    "GoogleCalendarAdapter",
    "GoogleTasksAdapter",
    "LocalAdapter",
    "RestAdapter",
    "TodoistAdapter",
]
