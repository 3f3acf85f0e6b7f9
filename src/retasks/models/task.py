"""Task domain models."""

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field

from ..utils import now_utc

# Creation time for remote tasks whose backend does not report one
UNKNOWN_CREATED_AT = datetime.fromtimestamp(0, UTC)


class Task(BaseModel):
    """A task as the UI sees it, independent of the backend."""

    # Stable local identifier, generated once and never reassigned
    id: str
    title: str
    completed: bool = False
    due_date: date | None = None
    notes: str | None = None
    order: float = 0
    created_at: datetime = Field(default_factory=now_utc)
    completed_at: datetime | None = None

    # Backend binding, set once the backend knows about the task
    remote_id: str | None = None
    backend_revision: str | None = None

    @property
    def is_confirmed(self) -> bool:
        """Whether the backend has acknowledged this task."""
        return self.remote_id is not None

    @classmethod
    def from_remote(cls, task_id: str, remote: "RemoteTask") -> "Task":
        """Materialize a Task from an adapter's snapshot entry."""
        return cls(
            id=task_id,
            title=remote.title,
            completed=remote.completed,
            due_date=remote.due_date,
            notes=remote.notes,
            order=remote.order,
            created_at=remote.created_at or UNKNOWN_CREATED_AT,
            completed_at=remote.completed_at,
            remote_id=remote.remote_id,
            backend_revision=remote.revision,
        )


class RemoteTask(BaseModel):
    """A task as an adapter reports it, keyed by the backend's identifier."""

    remote_id: str
    title: str
    completed: bool = False
    due_date: date | None = None
    notes: str | None = None
    order: float = 0
    created_at: datetime | None = None
    completed_at: datetime | None = None
    revision: str | None = None
