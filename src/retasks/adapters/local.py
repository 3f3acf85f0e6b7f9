"""Filesystem-based backend: one markdown file per task."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import frontmatter

from ..errors import ConflictError
from ..models import Command, CommandKind, RemoteResult, RemoteTask
from ..utils import from_iso, now_utc, parse_date
from .protocol import AdapterCapabilities

logger = logging.getLogger(__name__)


class LocalAdapter:
    """
    Adapter for tasks stored on the local filesystem.

    Tasks are stored as individual .md files with YAML front matter; the
    notes live in the markdown body. No network is involved: fetching reads
    the files and every command is applied immediately, which exercises the
    same reconciliation path the remote backends use.
    """

    key = "local"

    def __init__(self, task_root: Path) -> None:
        """
        Initialize adapter.

        Args:
            task_root: Path to the tasks directory (e.g., ~/.local/share/retasks/tasks)
        """
        self.task_root = task_root

    @property
    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities()

    def ensure_directory(self) -> None:
        """Create the tasks directory if it doesn't exist."""
        self.task_root.mkdir(parents=True, exist_ok=True)

    async def fetch_snapshot(self) -> list[RemoteTask]:
        """Load all tasks from the filesystem."""
        if not self.task_root.exists():
            return []
        tasks = []
        for filepath in self._iter_task_files():
            task = self._parse_task_file(filepath)
            if task is not None:
                tasks.append(task)
        return tasks

    async def apply_command(self, command: Command, remote_id: str | None) -> RemoteResult:
        if command.kind is CommandKind.ADD:
            remote_id = command.target_task_id
            payload = command.payload
            task = RemoteTask(
                remote_id=remote_id,
                title=payload["title"],
                due_date=parse_date(payload.get("due_date")),
                notes=payload.get("notes"),
                order=payload.get("order", 0),
                created_at=command.created_at,
            )
            self._write(task)
            return RemoteResult(remote_id=remote_id, task=task)

        if remote_id is None:
            raise ConflictError(f"Task {command.target_task_id} was never stored")

        if command.kind is CommandKind.DELETE:
            self._path(remote_id).unlink(missing_ok=True)
            return RemoteResult(remote_id=remote_id)

        filepath = self._path(remote_id)
        current = self._parse_task_file(filepath) if filepath.exists() else None
        if current is None:
            raise ConflictError(f"Task file not found: {filepath.name}")

        update: dict[str, Any]
        if command.kind is CommandKind.COMPLETE:
            update = {"completed": True, "completed_at": current.completed_at or command.created_at}
        elif command.kind is CommandKind.UNCOMPLETE:
            update = {"completed": False, "completed_at": None}
        elif command.kind is CommandKind.REORDER:
            update = {"order": command.payload["order"]}
        else:
            update = dict(command.payload)
            if "due_date" in update:
                update["due_date"] = parse_date(update["due_date"])

        task = current.model_copy(update=update)
        self._write(task)
        return RemoteResult(remote_id=remote_id, task=task)

    async def aclose(self) -> None:
        """Nothing to release."""

    # --- Private Methods ---

    def _path(self, remote_id: str) -> Path:
        return self.task_root / f"{remote_id}.md"

    def _iter_task_files(self) -> Iterator[Path]:
        """Iterate over all .md files in the task root."""
        yield from sorted(self.task_root.glob("*.md"))

    def _parse_task_file(self, filepath: Path) -> RemoteTask | None:
        """Parse a single task file."""
        try:
            post = frontmatter.load(filepath)
            metadata = post.metadata
            return RemoteTask(
                remote_id=filepath.stem,
                title=str(metadata.get("title") or filepath.stem),
                completed=bool(metadata.get("completed", False)),
                completed_at=_parse_datetime(metadata.get("completed_at")),
                due_date=parse_date(metadata.get("due")),
                notes=post.content or None,
                order=float(metadata.get("order", 0)),
                created_at=_parse_datetime(metadata.get("created")),
            )
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Skipping unreadable task file %s: %s", filepath.name, e)
            return None

    def _write(self, task: RemoteTask) -> None:
        """Write a task file (front matter + notes body)."""
        self.ensure_directory()
        metadata: dict[str, Any] = {
            "title": task.title,
            "completed": task.completed,
            "order": task.order,
        }
        if task.due_date:
            metadata["due"] = task.due_date.isoformat()
        if task.completed_at:
            metadata["completed_at"] = task.completed_at.isoformat()
        metadata["created"] = (task.created_at or now_utc()).isoformat()

        post = frontmatter.Post(task.notes or "")
        post.metadata = metadata

        # sort_keys=False preserves key order
        with self._path(task.remote_id).open("w") as f:
            f.write(frontmatter.dumps(post, sort_keys=False))


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse datetime from string or pass through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        # PyYAML may hand back naive timestamps
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return from_iso(str(value))
