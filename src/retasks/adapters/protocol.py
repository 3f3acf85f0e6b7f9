"""Adapter protocol for task storage backends."""

from dataclasses import dataclass
from typing import Protocol

from ..models import Command, RemoteResult, RemoteTask


@dataclass(frozen=True)
class AdapterCapabilities:
    """What a backend can do.

    Mutations a backend cannot perform are rejected before queuing.
    A backend that allows reordering but has ``stores_order`` False keeps
    the order locally instead.
    """

    can_add: bool = True
    can_edit: bool = True
    can_complete: bool = True
    can_delete: bool = True
    can_reorder: bool = True
    can_set_due_date: bool = True
    stores_order: bool = True

    @classmethod
    def read_only(cls) -> "AdapterCapabilities":
        """Capabilities of a backend that only lists items."""
        return cls(
            can_add=False,
            can_edit=False,
            can_complete=False,
            can_delete=False,
            can_reorder=False,
            can_set_due_date=False,
            stores_order=False,
        )


class BackendAdapter(Protocol):
    """Network-facing half of a provider.

    Adapters translate generic commands into backend calls and backend
    responses into RemoteTask objects. They raise the errors from
    ``retasks.errors``: AuthError for credential failures, NetworkError
    (and RateLimitError) for transient failures, ConflictError when the
    targeted entity no longer exists.

    Adapters hold no task state between calls; the provider owns it.
    """

    key: str

    @property
    def capabilities(self) -> AdapterCapabilities:
        """Get adapter capabilities."""
        ...

    async def fetch_snapshot(self) -> list[RemoteTask]:
        """Fetch the backend's authoritative list of tasks."""
        ...

    async def apply_command(self, command: Command, remote_id: str | None) -> RemoteResult:
        """Apply one command to the backend.

        Args:
            command: The command to apply
            remote_id: Backend id of the target task (None only for adds)

        Returns:
            RemoteResult; for adds ``remote_id`` must be set.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
