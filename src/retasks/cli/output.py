"""Terminal output helpers for the command line."""

import os
import sys

from ..models import Conflict, Task

# ANSI color codes
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
RED = "\033[31m"
DIM = "\033[2m"
RESET = "\033[0m"
CHECK = "\u2713"  # ✓
BULLET = "\u2022"  # •
CROSS = "\u2717"  # ✗
BOX = "\u2610"  # ☐
PENDING = "\u21bb"  # ↻


def _supports_color(stream=None) -> bool:
    """Color only on a TTY, and never when NO_COLOR is set."""
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def _colorize(text: str, color: str, stream=None) -> str:
    if _supports_color(stream):
        return f"{color}{text}{RESET}"
    return text


def success(message: str) -> None:
    print(f"{_colorize(CHECK, GREEN)} {message}")


def info(message: str) -> None:
    print(f"{_colorize(BULLET, YELLOW)} {message}")


def header(message: str) -> None:
    print(_colorize(message, BLUE))


def error(message: str) -> None:
    """Print an error to stderr with a red cross."""
    cross = _colorize(CROSS, RED, sys.stderr)
    print(f"{cross} {message}", file=sys.stderr)


def format_task(task: Task, index: int, pending: bool = False) -> str:
    """One list line: position, checkbox, title, due date and a short id.

    ``pending`` marks tasks with changes the backend has not confirmed.
    """
    mark = _colorize(CHECK, GREEN) if task.completed else BOX
    title = _colorize(task.title, DIM) if task.completed else task.title
    parts = [f"{index:>3}.", mark, title]
    if task.due_date is not None:
        parts.append(_colorize(f"(due {task.due_date.isoformat()})", YELLOW))
    if pending:
        parts.append(_colorize(PENDING, BLUE))
    parts.append(_colorize(f"[{task.id[:8]}]", DIM))
    return " ".join(parts)


def conflict(item: Conflict) -> None:
    """Report a change that was reverted."""
    print(
        f"{_colorize(CROSS, RED)} {item.kind.value} on task {item.task_id[:8]} was reverted "
        f"after {item.attempts} attempt(s): {item.error}"
    )
