"""Command model: one durable, not-yet-confirmed mutation intent."""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ValidationError
from ..utils import now_utc


class CommandKind(str, Enum):
    """Mutation a command carries."""

    ADD = "add"
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"
    DELETE = "delete"
    REORDER = "reorder"
    EDIT = "edit"


class CommandStatus(str, Enum):
    """Lifecycle of a queued command."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    APPLIED = "applied"
    FAILED = "failed"  # Terminal


def new_id() -> str:
    """Generate a local identifier for tasks and commands."""
    return uuid.uuid4().hex


def _clean_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Task title cannot be empty", field="title")
    return cleaned


def _date_payload(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


class Command(BaseModel):
    """A queued mutation.

    Immutable: the queue replaces a command with an updated copy when its
    attempts or status change. Payload values are JSON-safe so the queue
    can be persisted as-is.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    kind: CommandKind
    target_task_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=now_utc)
    attempts: int = 0
    status: CommandStatus = CommandStatus.PENDING
    last_error: str | None = None

    # --- Constructors (validate before anything can be queued) ---

    @classmethod
    def add(
        cls,
        task_id: str,
        title: str,
        due_date: date | None = None,
        notes: str | None = None,
        order: float = 0,
        created_at: datetime | None = None,
    ) -> Command:
        """Build an add command. Raises ValidationError for a blank title."""
        payload = {
            "title": _clean_title(title),
            "due_date": _date_payload(due_date),
            "notes": notes,
            "order": order,
        }
        return cls(
            kind=CommandKind.ADD,
            target_task_id=task_id,
            payload=payload,
            created_at=created_at or now_utc(),
        )

    @classmethod
    def edit(cls, task_id: str, changes: dict[str, Any], created_at: datetime | None = None) -> Command:
        """Build an edit command from the touched fields only.

        Recognized keys: title, due_date, notes.
        """
        unknown = set(changes) - {"title", "due_date", "notes"}
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("Edit must change at least one field")

        payload: dict[str, Any] = {}
        if "title" in changes:
            payload["title"] = _clean_title(changes["title"])
        if "due_date" in changes:
            payload["due_date"] = _date_payload(changes["due_date"])
        if "notes" in changes:
            payload["notes"] = changes["notes"]
        return cls(
            kind=CommandKind.EDIT,
            target_task_id=task_id,
            payload=payload,
            created_at=created_at or now_utc(),
        )

    @classmethod
    def complete(cls, task_id: str, created_at: datetime | None = None) -> Command:
        return cls(
            kind=CommandKind.COMPLETE,
            target_task_id=task_id,
            created_at=created_at or now_utc(),
        )

    @classmethod
    def uncomplete(cls, task_id: str, created_at: datetime | None = None) -> Command:
        return cls(
            kind=CommandKind.UNCOMPLETE,
            target_task_id=task_id,
            created_at=created_at or now_utc(),
        )

    @classmethod
    def delete(cls, task_id: str, created_at: datetime | None = None) -> Command:
        return cls(
            kind=CommandKind.DELETE,
            target_task_id=task_id,
            created_at=created_at or now_utc(),
        )

    @classmethod
    def reorder(cls, task_id: str, order: float, created_at: datetime | None = None) -> Command:
        """Build a reorder command. Raises ValidationError for non-finite orders."""
        if isinstance(order, bool) or not isinstance(order, int | float) or not math.isfinite(order):
            raise ValidationError(f"Invalid order: {order!r}", field="order")
        return cls(
            kind=CommandKind.REORDER,
            target_task_id=task_id,
            payload={"order": order},
            created_at=created_at or now_utc(),
        )

    # --- Helpers ---

    @property
    def is_open(self) -> bool:
        """Pending or in flight: its effect still has to be shown locally."""
        return self.status in (CommandStatus.PENDING, CommandStatus.IN_FLIGHT)

    def with_status(self, status: CommandStatus, **changes: Any) -> Command:
        """Return a copy with a new status (and optionally attempts/last_error)."""
        return self.model_copy(update={"status": status, **changes})
