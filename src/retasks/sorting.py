"""Backend-agnostic ordering of the task list."""

from collections.abc import Iterable

from .models import Task


def _sort_key(task: Task) -> tuple:
    if not task.completed:
        return (0, task.order, task.created_at.timestamp(), task.id)
    if task.completed_at is None:
        # Completed without a known time: after every dated completion
        return (2, 0.0, 0.0, task.id)
    return (1, -task.completed_at.timestamp(), 0.0, task.id)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Return tasks in display order.

    Incomplete tasks come first, ascending by ``order`` with ties broken by
    creation time and then id. Completed tasks follow, most recently
    completed first. The result never depends on the order the backend
    returned the tasks in.
    """
    return sorted(tasks, key=_sort_key)
