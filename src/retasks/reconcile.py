"""Merging remote snapshots with queued local commands.

Remote state is authoritative for every field a queued command does not
touch; a queued command is authoritative for the fields it does touch.
Commands are replayed in creation order, so the last writer wins per
command rather than per record.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Command, CommandKind, Task
from .utils import parse_date


def apply_effect(tasks: dict[str, Task], command: Command) -> None:
    """Apply one command's intended effect to a task map in place.

    Commands that target a task missing from the map are ignored, except
    adds, which materialize the task.
    """
    task_id = command.target_task_id
    current = tasks.get(task_id)
    payload = command.payload

    if command.kind is CommandKind.ADD:
        if current is None:
            tasks[task_id] = Task(
                id=task_id,
                title=payload["title"],
                due_date=parse_date(payload.get("due_date")),
                notes=payload.get("notes"),
                order=payload.get("order", 0),
                created_at=command.created_at,
            )
        return

    if current is None:
        return

    if command.kind is CommandKind.DELETE:
        del tasks[task_id]
    elif command.kind is CommandKind.COMPLETE:
        if not current.completed:
            tasks[task_id] = current.model_copy(
                update={"completed": True, "completed_at": command.created_at}
            )
    elif command.kind is CommandKind.UNCOMPLETE:
        if current.completed:
            tasks[task_id] = current.model_copy(update={"completed": False, "completed_at": None})
    elif command.kind is CommandKind.REORDER:
        tasks[task_id] = current.model_copy(update={"order": payload["order"]})
    elif command.kind is CommandKind.EDIT:
        update = dict(payload)
        if "due_date" in update:
            update["due_date"] = parse_date(update["due_date"])
        tasks[task_id] = current.model_copy(update=update)


def is_reflected(command: Command, remote: Task | None) -> bool:
    """Whether a remote task already shows the command's effect.

    Used to confirm commands without a round-trip, so replaying a command
    the backend already applied never produces a second state change.
    """
    if command.kind is CommandKind.ADD:
        return False
    if command.kind is CommandKind.DELETE:
        return remote is None
    if remote is None:
        return False
    if command.kind is CommandKind.COMPLETE:
        return remote.completed
    if command.kind is CommandKind.UNCOMPLETE:
        return not remote.completed
    if command.kind is CommandKind.REORDER:
        return remote.order == command.payload["order"]
    if command.kind is CommandKind.EDIT:
        for field, value in command.payload.items():
            current = getattr(remote, field)
            if field == "due_date":
                value = parse_date(value)
            if current != value:
                return False
        return True
    return False


def reconcile(
    snapshot: Iterable[Task],
    commands: Iterable[Command],
    order_overlay: Mapping[str, float] | None = None,
) -> list[Task]:
    """Build the merged task list.

    Args:
        snapshot: Remote tasks, already bound to local ids
        commands: Commands whose effect must be shown, in creation order
        order_overlay: Locally confirmed orders for backends that cannot
            store ordering remotely

    Returns:
        Merged tasks (unsorted).
    """
    tasks = {task.id: task for task in snapshot}

    if order_overlay:
        for task_id, order in order_overlay.items():
            task = tasks.get(task_id)
            if task is not None:
                tasks[task_id] = task.model_copy(update={"order": order})

    for command in commands:
        apply_effect(tasks, command)

    return list(tasks.values())
