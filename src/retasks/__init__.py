"""retasks - offline-first task lists over interchangeable backends."""

from .engine import TaskProvider
from .errors import (
    AuthError,
    BackendError,
    ConfigurationError,
    ConflictError,
    NetworkError,
    SyncCancelledError,
    SyncError,
    UnsupportedOperationError,
    ValidationError,
)
from .factory import ProviderSession, create_calendar_provider, create_task_provider
from .models import ProviderConfig, SyncResult, Task
from .scheduler import SyncScheduler
from .store import YamlFileStore

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "BackendError",
    "ConfigurationError",
    "ConflictError",
    "NetworkError",
    "ProviderConfig",
    "ProviderSession",
    "SyncCancelledError",
    "SyncError",
    "SyncResult",
    "SyncScheduler",
    "Task",
    "TaskProvider",
    "UnsupportedOperationError",
    "ValidationError",
    "YamlFileStore",
    "create_calendar_provider",
    "create_task_provider",
]
