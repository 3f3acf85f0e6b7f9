"""CLI entry point for retasks."""

import argparse
import asyncio
import logging
from datetime import date
from pathlib import Path

from .auth import EnvTokenSupplier
from .cli import output
from .config import Settings
from .engine import TaskProvider
from .errors import AuthError, BackendError, ConfigurationError, ValidationError
from .factory import create_task_provider
from .logging import setup_logging
from .models import BACKEND_GOOGLE_TASKS, TASK_BACKENDS, Task
from .store import YamlFileStore

logger = logging.getLogger(__name__)


def _parse_due(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD") from e


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="retasks",
        description="Offline-first task list over local files, Todoist or Google Tasks",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for state and local tasks (default: ~/.local/share/retasks)",
    )
    parser.add_argument(
        "--backend",
        choices=TASK_BACKENDS,
        default=None,
        help="Task backend to use (default: local)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Path to write logs to file",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    list_parser = commands.add_parser("list", help="Show tasks (the default)")
    list_parser.add_argument(
        "--offline", action="store_true", help="Show cached tasks without syncing"
    )

    add_parser = commands.add_parser("add", help="Add a task")
    add_parser.add_argument("title", help="Task title")
    add_parser.add_argument("--due", type=_parse_due, default=None, help="Due date (YYYY-MM-DD)")
    add_parser.add_argument("--notes", default=None, help="Free-form notes")

    edit_parser = commands.add_parser("edit", help="Change a task's title, due date or notes")
    edit_parser.add_argument("task", help="List number or id prefix")
    edit_parser.add_argument("--title", default=None)
    edit_parser.add_argument("--due", type=_parse_due, default=None)
    edit_parser.add_argument("--clear-due", action="store_true", help="Remove the due date")
    edit_parser.add_argument("--notes", default=None)

    for name, help_text in (
        ("complete", "Mark a task completed"),
        ("uncomplete", "Mark a task not completed"),
        ("delete", "Delete a task"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("task", help="List number or id prefix")

    reorder_parser = commands.add_parser("reorder", help="Move a task")
    reorder_parser.add_argument("task", help="List number or id prefix")
    reorder_parser.add_argument("order", type=float, help="New order value")

    commands.add_parser("sync", help="Push queued changes and refresh")
    commands.add_parser(
        "reset", help="Discard cached tasks and queued changes for the backend"
    )

    return parser.parse_args(argv)


def resolve_task(tasks: list[Task], ref: str) -> Task:
    """Find a task by its 1-based list position or an id prefix."""
    if ref.isdigit():
        index = int(ref)
        if 1 <= index <= len(tasks):
            return tasks[index - 1]
    matches = [t for t in tasks if t.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValidationError(f"No task matches {ref!r}", field="task")
    raise ValidationError(f"{ref!r} matches {len(matches)} tasks; use a longer id", field="task")


def print_tasks(provider: TaskProvider) -> None:
    tasks = provider.load()
    if not tasks:
        output.info("No tasks")
        return
    pending = provider.pending_task_ids
    for index, task in enumerate(tasks, start=1):
        print(output.format_task(task, index, pending=task.id in pending))


async def try_sync(provider: TaskProvider) -> bool:
    """Sync, reporting failures without losing queued work.

    Returns:
        False only when credentials are missing or rejected.
    """
    try:
        result = await provider.sync()
    except AuthError as e:
        output.error(e.user_message)
        return False
    except BackendError as e:
        logger.info("Sync failed: %s", e)
        pending = provider.pending_count
        if pending:
            output.info(f"Offline: {pending} change(s) queued, will sync later")
        else:
            output.info("Offline: showing cached tasks")
        return True

    for item in result.conflicts:
        output.conflict(item)
    return True


async def run_command(args: argparse.Namespace, provider: TaskProvider) -> int:
    """Execute one subcommand against a provider. Returns the exit code."""
    command = args.command or "list"

    if command == "list":
        ok = True
        if not args.offline and provider.is_cache_stale():
            ok = await try_sync(provider)
        print_tasks(provider)
        return 0 if ok else 1

    if command == "sync":
        if not await try_sync(provider):
            return 1
        output.success(f"Synced ({provider.pending_count} pending)")
        print_tasks(provider)
        return 0

    if command == "reset":
        pending = provider.pending_count
        provider.clear_local_data()
        if pending:
            output.info(f"Discarded {pending} unsynced change(s)")
        output.success(f"Cleared local data for {provider.key}")
        return 0

    if command == "add":
        task = provider.add(args.title, due_date=args.due, notes=args.notes)
        output.success(f"Added: {task.title}")
    else:
        task = resolve_task(provider.load(), args.task)
        if command == "edit":
            changes: dict = {}
            if args.title is not None:
                changes["title"] = args.title
            if args.clear_due:
                changes["due_date"] = None
            elif args.due is not None:
                changes["due_date"] = args.due
            if args.notes is not None:
                changes["notes"] = args.notes
            provider.edit(task.id, **changes)
            output.success(f"Updated: {task.title}")
        elif command == "complete":
            provider.complete(task.id)
            output.success(f"Completed: {task.title}")
        elif command == "uncomplete":
            provider.uncomplete(task.id)
            output.success(f"Reopened: {task.title}")
        elif command == "delete":
            provider.delete_task(task.id)
            output.success(f"Deleted: {task.title}")
        elif command == "reorder":
            provider.reorder(task.id, args.order)
            output.success(f"Moved: {task.title}")

    return 0 if await try_sync(provider) else 1


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    store = YamlFileStore(settings.store_dir)
    token_supplier = None
    if settings.backend == BACKEND_GOOGLE_TASKS:
        token_supplier = EnvTokenSupplier(settings.google_token_env)

    provider = create_task_provider(
        settings.backend,
        settings.provider_config(),
        store=store,
        token_supplier=token_supplier,
    )
    try:
        return await run_command(args, provider)
    finally:
        await provider.aclose()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    # Build settings from CLI args
    settings_kwargs: dict = {}
    if args.data_dir:
        settings_kwargs["data_dir"] = args.data_dir
    if args.backend:
        settings_kwargs["backend"] = args.backend
    if args.verbose:
        settings_kwargs["verbose"] = args.verbose
    if args.log_file:
        settings_kwargs["log_file"] = args.log_file

    settings = Settings(**settings_kwargs)
    setup_logging(settings.verbose, settings.log_file, backend=settings.backend)

    try:
        exit_code = asyncio.run(_run(args, settings))
    except ConfigurationError as e:
        output.error(str(e))
        exit_code = 2
    except ValidationError as e:
        output.error(str(e))
        exit_code = 1
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
