"""Data models."""

from .command import Command, CommandKind, CommandStatus, new_id
from .config import (
    BACKEND_GOOGLE_CALENDAR,
    BACKEND_GOOGLE_TASKS,
    BACKEND_LOCAL,
    BACKEND_TODOIST,
    BACKENDS,
    DEFAULT_CACHE_TTL_MS,
    TASK_BACKENDS,
    ProviderConfig,
)
from .sync import Conflict, RemoteResult, SyncResult
from .task import RemoteTask, Task

__all__ = [
    "BACKENDS",
    "BACKEND_GOOGLE_CALENDAR",
    "BACKEND_GOOGLE_TASKS",
    "BACKEND_LOCAL",
    "BACKEND_TODOIST",
    "DEFAULT_CACHE_TTL_MS",
    "TASK_BACKENDS",
    "Command",
    "CommandKind",
    "CommandStatus",
    "Conflict",
    "ProviderConfig",
    "RemoteResult",
    "RemoteTask",
    "SyncResult",
    "Task",
    "new_id",
]
