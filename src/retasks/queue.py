"""Durable, ordered queue of not-yet-confirmed commands."""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from .models import Command, CommandKind, CommandStatus
from .store import KeyValueStore

logger = logging.getLogger(__name__)


class CommandQueue:
    """Command queue owned by a single provider.

    Every state transition is persisted before the method returns, so a
    restart resumes from a consistent queue. Applied commands are removed;
    terminally failed ones stay until dismissed so the UI can report them.
    """

    def __init__(self, store: KeyValueStore, key: str, max_attempts: int = 3) -> None:
        """
        Initialize the queue and load any persisted commands.

        Args:
            store: Persistence substrate
            key: Store key for this queue (one per backend)
            max_attempts: Retries allowed before a command fails terminally
        """
        self._store = store
        self._key = key
        self.max_attempts = max_attempts
        self._commands: list[Command] = []
        self._load()

    # --- Queries ---

    def __len__(self) -> int:
        return len(self._commands)

    def all(self) -> list[Command]:
        """All queued commands in creation order."""
        return list(self._commands)

    def get(self, command_id: str) -> Command | None:
        """Look up a command by id."""
        for command in self._commands:
            if command.id == command_id:
                return command
        return None

    def next_batch(self) -> list[Command]:
        """Pending commands in creation order."""
        return [c for c in self._commands if c.status is CommandStatus.PENDING]

    def open_commands(self) -> list[Command]:
        """Pending and in-flight commands in creation order."""
        return [c for c in self._commands if c.is_open]

    def failed(self) -> list[Command]:
        """Terminally failed commands awaiting dismissal."""
        return [c for c in self._commands if c.status is CommandStatus.FAILED]

    def has_open_add(self, task_id: str) -> bool:
        """Whether an unconfirmed add for the task is still queued."""
        return any(
            c.kind is CommandKind.ADD and c.target_task_id == task_id and c.is_open
            for c in self._commands
        )

    # --- Transitions ---

    def enqueue(self, command: Command) -> Command:
        """Append a command as pending and persist the queue."""
        queued = command.with_status(CommandStatus.PENDING)
        self._commands.append(queued)
        self._save()
        logger.debug(
            "Enqueued %s for task %s (%s)", queued.kind.value, queued.target_task_id, queued.id
        )
        return queued

    def mark_in_flight(self, command_id: str) -> Command:
        return self._replace(command_id, lambda c: c.with_status(CommandStatus.IN_FLIGHT))

    def mark_pending(self, command_id: str) -> Command:
        """Return an in-flight command to pending without counting an attempt."""
        return self._replace(command_id, lambda c: c.with_status(CommandStatus.PENDING))

    def mark_applied(self, command_id: str) -> Command:
        """Confirm a command and drop it from the queue."""
        index = self._index(command_id)
        command = self._commands.pop(index).with_status(CommandStatus.APPLIED)
        self._save()
        logger.debug("Applied %s for task %s", command.kind.value, command.target_task_id)
        return command

    def mark_failed(self, command_id: str, error: Exception | str, terminal: bool = False) -> Command:
        """Record a failed attempt.

        The command goes back to pending unless ``terminal`` is set or the
        attempts now exceed ``max_attempts``, in which case it becomes
        FAILED and stays in the queue until dismissed.
        """

        def _fail(command: Command) -> Command:
            attempts = command.attempts + 1
            exhausted = terminal or attempts > self.max_attempts
            status = CommandStatus.FAILED if exhausted else CommandStatus.PENDING
            return command.with_status(status, attempts=attempts, last_error=str(error))

        updated = self._replace(command_id, _fail)
        if updated.status is CommandStatus.FAILED:
            logger.warning(
                "Command %s (%s) failed terminally after %d attempt(s): %s",
                updated.id,
                updated.kind.value,
                updated.attempts,
                updated.last_error,
            )
        else:
            logger.info(
                "Command %s (%s) failed, attempt %d/%d: %s",
                updated.id,
                updated.kind.value,
                updated.attempts,
                self.max_attempts,
                updated.last_error,
            )
        return updated

    def supersede(self, task_id: str) -> list[Command]:
        """Drop every pending command for a task and return them.

        In-flight commands are left alone: their request is already out.
        """
        removed = [
            c
            for c in self._commands
            if c.target_task_id == task_id and c.status is CommandStatus.PENDING
        ]
        if removed:
            self._commands = [c for c in self._commands if c not in removed]
            self._save()
            logger.debug("Superseded %d command(s) for task %s", len(removed), task_id)
        return removed

    def dismiss(self, command_id: str) -> None:
        """Forget a terminally failed command."""
        index = self._index(command_id)
        if self._commands[index].status is not CommandStatus.FAILED:
            raise ValueError(f"Command {command_id} has not failed")
        del self._commands[index]
        self._save()

    def clear(self) -> None:
        """Drop every command, failed ones included."""
        if self._commands:
            logger.info("Discarding %d queued command(s) from %s", len(self._commands), self._key)
        self._commands = []
        self._store.delete(self._key)

    # --- Private Methods ---

    def _index(self, command_id: str) -> int:
        for i, command in enumerate(self._commands):
            if command.id == command_id:
                return i
        raise KeyError(command_id)

    def _replace(self, command_id: str, update) -> Command:
        index = self._index(command_id)
        self._commands[index] = update(self._commands[index])
        self._save()
        return self._commands[index]

    def _load(self) -> None:
        """Read the persisted queue, resuming interrupted requests as pending."""
        raw = self._store.get(self._key, []) or []
        commands: list[Command] = []
        for item in raw:
            try:
                command = Command.model_validate(item)
            except PydanticValidationError:
                logger.warning("Skipping malformed queued command in %s: %r", self._key, item)
                continue
            if command.status is CommandStatus.IN_FLIGHT:
                # The process stopped mid-request; the request may be retried
                command = command.with_status(CommandStatus.PENDING)
            commands.append(command)
        self._commands = commands
        if commands:
            logger.info("Loaded %d queued command(s) from %s", len(commands), self._key)

    def _save(self) -> None:
        self._store.set(self._key, [c.model_dump(mode="json") for c in self._commands])
