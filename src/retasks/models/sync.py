"""Sync-related result models."""

from dataclasses import dataclass, field
from datetime import datetime

from ..errors import ConflictError
from .command import Command, CommandKind
from .task import RemoteTask, Task


@dataclass
class RemoteResult:
    """What an adapter reports after applying one command."""

    remote_id: str | None = None  # Backend id (required for adds)
    task: RemoteTask | None = None  # Post-mutation remote state, when the backend returns it


@dataclass
class Conflict:
    """A command that failed terminally; its task was reverted to remote truth."""

    task_id: str
    command_id: str
    kind: CommandKind
    attempts: int
    error: ConflictError

    @classmethod
    def from_command(cls, command: Command) -> "Conflict":
        """Build a conflict record from a terminally failed command."""
        message = command.last_error or f"{command.kind.value} could not be applied"
        return cls(
            task_id=command.target_task_id,
            command_id=command.id,
            kind=command.kind,
            attempts=command.attempts,
            error=ConflictError(message),
        )


@dataclass
class SyncResult:
    """Result of one sync round."""

    tasks: list[Task] = field(default_factory=list)  # Merged, sorted list for the UI
    conflicts: list[Conflict] = field(default_factory=list)  # New terminal failures this round
    applied: int = 0  # Commands confirmed this round
    pending: int = 0  # Commands still waiting after this round
    fetched_at: datetime | None = None
    generation: int = 0

    @property
    def has_conflicts(self) -> bool:
        """Whether any command failed terminally this round."""
        return len(self.conflicts) > 0
