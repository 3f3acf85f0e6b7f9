"""Binding between stable local task ids and backend identifiers."""

from __future__ import annotations

from collections.abc import Iterable

from .models import new_id
from .store import KeyValueStore


class IdentityMap:
    """Persisted two-way map of local id <-> remote id.

    Remote-born tasks get a local id the first time they are seen and keep
    it across snapshots and restarts.
    """

    def __init__(self, store: KeyValueStore, key: str) -> None:
        self._store = store
        self._key = key
        self._by_remote: dict[str, str] = dict(store.get(key, {}) or {})
        self._by_local: dict[str, str] = {v: k for k, v in self._by_remote.items()}

    def resolve_all(self, remote_ids: Iterable[str]) -> list[str]:
        """Local ids for a batch of remote ids, creating missing bindings.

        Persists at most once.
        """
        local_ids = []
        created = False
        for remote_id in remote_ids:
            local_id = self._by_remote.get(remote_id)
            if local_id is None:
                local_id = new_id()
                self._by_remote[remote_id] = local_id
                self._by_local[local_id] = remote_id
                created = True
            local_ids.append(local_id)
        if created:
            self._save()
        return local_ids

    def local_for(self, remote_id: str) -> str:
        """Return the local id bound to remote_id, creating one if needed."""
        local_id = self._by_remote.get(remote_id)
        if local_id is None:
            local_id = new_id()
            self.bind(local_id, remote_id)
        return local_id

    def remote_for(self, local_id: str) -> str | None:
        """Return the remote id for a local task, if confirmed."""
        return self._by_local.get(local_id)

    def bind(self, local_id: str, remote_id: str) -> None:
        """Associate a local task with its backend identifier."""
        previous = self._by_local.get(local_id)
        if previous is not None and previous != remote_id:
            self._by_remote.pop(previous, None)
        self._by_remote[remote_id] = local_id
        self._by_local[local_id] = remote_id
        self._save()

    def forget(self, local_id: str) -> None:
        """Remove the binding for a task that no longer exists."""
        remote_id = self._by_local.pop(local_id, None)
        if remote_id is not None:
            self._by_remote.pop(remote_id, None)
            self._save()

    def clear(self) -> None:
        self._by_remote.clear()
        self._by_local.clear()
        self._store.delete(self._key)

    def _save(self) -> None:
        self._store.set(self._key, dict(self._by_remote))
