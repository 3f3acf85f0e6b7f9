"""Provider configuration model."""

from pathlib import Path

from pydantic import BaseModel, Field

BACKEND_LOCAL = "local"
BACKEND_TODOIST = "todoist"
BACKEND_GOOGLE_TASKS = "google-tasks"
BACKEND_GOOGLE_CALENDAR = "google-calendar"

TASK_BACKENDS = (BACKEND_LOCAL, BACKEND_TODOIST, BACKEND_GOOGLE_TASKS)
BACKENDS = (*TASK_BACKENDS, BACKEND_GOOGLE_CALENDAR)

DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000


class ProviderConfig(BaseModel):
    """Settings consumed by the provider factory.

    ``backend`` is a plain string so the factory can reject unknown
    values with a ConfigurationError instead of a pydantic error.
    """

    backend: str = BACKEND_LOCAL
    api_token: str | None = None
    cache_ttl_ms: int = Field(default=DEFAULT_CACHE_TTL_MS, ge=0)
    max_attempts: int = Field(default=3, ge=0)

    # Local: directory holding one markdown file per task
    task_root: Path | None = None

    # Todoist: restrict to one project (None = all active tasks)
    project_id: str | None = None

    # Google Tasks: list to read and write
    tasklist_id: str = "@default"

    # Google Calendar: restrict to these calendars (empty = all selected)
    calendar_ids: list[str] = Field(default_factory=list)
