"""Task provider: optimistic local state over a pluggable backend.

The provider owns everything a UI needs from a task list:
- Mutations apply to the in-memory list immediately and are queued
- ``sync`` flushes the queue and fetches the remote snapshot
- Reconciliation merges the snapshot with still-open commands
- The merged list is always returned in display order

Adapters only translate commands into network calls; they never see
the queue, the cache or the local ids.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any

from .adapters import AdapterCapabilities, BackendAdapter
from .cache import SnapshotCache
from .errors import (
    AuthError,
    BackendError,
    ConflictError,
    SyncCancelledError,
    UnsupportedOperationError,
    ValidationError,
    wrap_error,
)
from .identity import IdentityMap
from .models import (
    DEFAULT_CACHE_TTL_MS,
    Command,
    CommandKind,
    CommandStatus,
    Conflict,
    RemoteTask,
    SyncResult,
    Task,
    new_id,
)
from .queue import CommandQueue
from .reconcile import apply_effect, is_reflected, reconcile
from .sorting import sort_tasks
from .store import KeyValueStore
from .utils import now_utc

logger = logging.getLogger(__name__)

# Marks edit fields that were not passed
_UNCHANGED: Any = object()


class TaskProvider:
    """Backend-agnostic task list with offline-first mutations.

    One provider serves one backend. Switching backends means building a
    new provider and calling ``cancel`` on the old one, which bumps its
    generation so a sync that is still running can never publish stale
    results.
    """

    # Consecutive snapshots a confirmed task may be missing from before
    # it is treated as deleted remotely
    MISSES_BEFORE_DROP = 2

    def __init__(
        self,
        adapter: BackendAdapter,
        store: KeyValueStore,
        *,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        """Initialize the provider and restore persisted state.

        Args:
            adapter: Backend adapter doing the network calls
            store: Persistence for queue, cache, id bindings and local order
            cache_ttl_ms: Age after which the cached snapshot is stale
            max_attempts: Retryable failures allowed before a command
                fails terminally
            clock: Source of "now" (injectable for tests)
        """
        self.adapter = adapter
        self.key = adapter.key
        self._store = store
        self._clock = clock

        self._cache = SnapshotCache(store, cache_ttl_ms, clock)
        self._queue = CommandQueue(store, f"{self.key}.queue", max_attempts)
        self._ids = IdentityMap(store, f"{self.key}.ids")
        self._order_key = f"{self.key}.order"
        self._order_overlay: dict[str, float] = dict(store.get(self._order_key, {}) or {})

        self._tasks: dict[str, Task] = {}
        self._misses: dict[str, int] = {}  # task_id -> consecutive snapshots missing
        self._generation = 0
        self._inflight: asyncio.Task[SyncResult] | None = None

        self._restore()

    # --- Queries ---

    @property
    def capabilities(self) -> AdapterCapabilities:
        return self.adapter.capabilities

    @property
    def generation(self) -> int:
        """Incremented by every ``cancel``; results of older syncs are dropped."""
        return self._generation

    @property
    def pending_count(self) -> int:
        """Commands not yet confirmed by the backend."""
        return len(self._queue.open_commands())

    @property
    def pending_task_ids(self) -> set[str]:
        """Tasks with at least one unconfirmed change."""
        return {c.target_task_id for c in self._queue.open_commands()}

    @property
    def conflicts(self) -> list[Conflict]:
        """Terminally failed commands that have not been dismissed."""
        return [Conflict.from_command(c) for c in self._queue.failed()]

    def load(self) -> list[Task]:
        """Return the merged task list in display order.

        Never touches the network.
        """
        return sort_tasks(self._tasks.values())

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def is_cache_stale(self) -> bool:
        """Whether the cached snapshot is missing or older than its TTL."""
        return not self._cache.is_fresh(self._cache.get(self.key))

    # --- Mutations ---

    def add(self, title: str, due_date: date | None = None, notes: str | None = None) -> Task:
        """Add a task locally and queue it for the backend.

        Returns:
            The new task, already visible in ``load``.

        Raises:
            ValidationError: If the title is blank
            UnsupportedOperationError: If the backend cannot add tasks
        """
        self._require("can_add", "adding tasks")
        if due_date is not None:
            self._require("can_set_due_date", "due dates")

        task_id = new_id()
        command = Command.add(
            task_id,
            title,
            due_date=due_date,
            notes=notes,
            order=self._next_order(),
            created_at=self._clock(),
        )
        self._submit(command)
        return self._tasks[task_id]

    def edit(
        self,
        task_id: str,
        *,
        title: Any = _UNCHANGED,
        due_date: Any = _UNCHANGED,
        notes: Any = _UNCHANGED,
    ) -> Task:
        """Change title, due_date and/or notes of a task.

        Only the given fields are touched; pass None to clear due_date or
        notes. Editing to the current values queues nothing.
        """
        changes = {
            name: value
            for name, value in (("title", title), ("due_date", due_date), ("notes", notes))
            if value is not _UNCHANGED
        }
        current = self._get_task(task_id)
        self._require("can_edit", "editing tasks")
        if "due_date" in changes:
            self._require("can_set_due_date", "due dates")

        command = Command.edit(task_id, changes, created_at=self._clock())
        if is_reflected(command, current):
            return current
        self._submit(command)
        return self._tasks[task_id]

    def complete(self, task_id: str) -> Task:
        """Mark a task completed. Completing a completed task is a no-op."""
        current = self._get_task(task_id)
        self._require("can_complete", "completing tasks")
        if current.completed:
            return current
        self._submit(Command.complete(task_id, created_at=self._clock()))
        return self._tasks[task_id]

    def uncomplete(self, task_id: str) -> Task:
        """Mark a task not completed. A no-op for incomplete tasks."""
        current = self._get_task(task_id)
        self._require("can_complete", "reopening tasks")
        if not current.completed:
            return current
        self._submit(Command.uncomplete(task_id, created_at=self._clock()))
        return self._tasks[task_id]

    def delete_task(self, task_id: str) -> None:
        """Delete a task.

        Pending commands for the task are dropped. If the backend never
        saw the task at all, nothing is queued.
        """
        self._get_task(task_id)
        self._require("can_delete", "deleting tasks")

        superseded = self._queue.supersede(task_id)
        if any(c.kind is CommandKind.ADD for c in superseded):
            logger.debug("Task %s deleted before it reached %s", task_id, self.key)
            self._tasks.pop(task_id, None)
            self._forget(task_id)
            return

        self._submit(Command.delete(task_id, created_at=self._clock()))

    def reorder(self, task_id: str, new_order: float) -> Task:
        """Move a task to a new position.

        Backends that cannot store ordering keep it in a local overlay
        once the command is flushed.
        """
        current = self._get_task(task_id)
        self._require("can_reorder", "reordering tasks")

        command = Command.reorder(task_id, new_order, created_at=self._clock())
        if current.order == command.payload["order"]:
            return current
        self._submit(command)
        return self._tasks[task_id]

    def dismiss_conflict(self, command_id: str) -> None:
        """Acknowledge a conflict so it is no longer reported."""
        self._queue.dismiss(command_id)

    # --- Local data ---

    def invalidate_cache(self) -> None:
        """Mark the cached snapshot stale; the current list stays visible."""
        self._cache.invalidate(self.key)

    def clear_local_data(self) -> None:
        """Forget everything stored for this backend.

        Used on sign-out and when a backend is reset: any in-flight sync
        is cancelled, then queued changes, the cached snapshot, id bindings
        and the local order overlay are deleted.
        """
        self.cancel()
        self._queue.clear()
        self._cache.invalidate(self.key)
        self._ids.clear()
        self._order_overlay = {}
        self._store.delete(self._order_key)
        self._tasks = {}
        self._misses = {}
        logger.info("Cleared local data for %s", self.key)

    # --- Sync ---

    async def sync(self) -> SyncResult:
        """Flush queued commands, fetch the snapshot and reconcile.

        Concurrent callers share one in-flight sync: at most one fetch and
        one flush run at a time.

        Raises:
            AuthError: Credentials are missing or rejected; commands
                confirmed before the failure stay confirmed
            NetworkError: The snapshot could not be fetched; no state changed
            SyncCancelledError: ``cancel`` was called while the sync ran
        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.debug("Joining in-flight sync for %s", self.key)
        else:
            inflight = asyncio.ensure_future(self._sync_once(self._generation))
            self._inflight = inflight

        try:
            return await asyncio.shield(inflight)
        except asyncio.CancelledError:
            if inflight.cancelled():
                raise SyncCancelledError(f"Sync for {self.key} was cancelled") from None
            raise

    def cancel(self) -> None:
        """Abandon any in-flight sync and invalidate its results."""
        self._generation += 1
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            logger.info("Cancelling in-flight sync for %s", self.key)
            inflight.cancel()

    async def aclose(self) -> None:
        """Cancel outstanding work and release the adapter."""
        inflight = self._inflight
        self.cancel()
        if inflight is not None:
            await asyncio.gather(inflight, return_exceptions=True)
        await self.adapter.aclose()

    # --- Private Methods: sync round ---

    async def _sync_once(self, generation: int) -> SyncResult:
        start_time = time.perf_counter()
        logger.info("Sync started for %s (generation %d)", self.key, generation)

        try:
            remote = await self.adapter.fetch_snapshot()
        except AuthError:
            logger.warning("Sync for %s needs sign-in", self.key)
            raise
        except BackendError as e:
            logger.warning("Fetching %s failed: %s", self.key, e)
            raise
        except Exception as e:
            raise wrap_error(e, f"Fetching {self.key}") from e

        self._check_generation(generation)
        snapshot = self._bind_snapshot(remote)
        applied, conflicts, confirmed = await self._flush(snapshot)
        self._check_generation(generation)

        open_commands = self._queue.open_commands()
        effective = sorted([*applied, *open_commands], key=lambda c: c.created_at)
        merged = self._merge(snapshot, effective)
        deleted = {c.target_task_id for c in effective if c.kind is CommandKind.DELETE}
        self._detect_deletions(merged, {t.id for t in snapshot}, deleted)

        entry = self._cache.put(self.key, sort_tasks(confirmed.values()))
        self._tasks = merged

        elapsed = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Sync finished for %s: %d tasks, %d applied, %d pending, %d conflicts (%.0fms)",
            self.key,
            len(merged),
            len(applied),
            len(open_commands),
            len(conflicts),
            elapsed,
        )
        return SyncResult(
            tasks=self.load(),
            conflicts=conflicts,
            applied=len(applied),
            pending=len(open_commands),
            fetched_at=entry.fetched_at,
            generation=generation,
        )

    async def _flush(
        self, snapshot: list[Task]
    ) -> tuple[list[Command], list[Conflict], dict[str, Task]]:
        """Send pending commands to the backend in creation order.

        Commands for a task wait behind any earlier unconfirmed command
        for the same task. Retryable failures leave the command pending
        for the next round; AuthError stops the whole flush.

        Args:
            snapshot: Snapshot fetched this round, bound to local ids

        Returns:
            Commands confirmed this round, new conflicts, and what the
            backend holds once those commands are applied (the snapshot
            to cache).
        """
        remote_orders = {task.id: task.order for task in snapshot}
        confirmed = self._merge(snapshot, [])
        applied: list[Command] = []
        conflicts: list[Conflict] = []
        blocked: set[str] = set()
        created: set[str] = set()

        for queued in self._queue.next_batch():
            task_id = queued.target_task_id
            if task_id in blocked:
                continue
            # May have been superseded while an earlier request was out
            command = self._queue.get(queued.id)
            if command is None or command.status is not CommandStatus.PENDING:
                continue

            remote_id = self._ids.remote_for(task_id)

            if command.kind is CommandKind.ADD:
                if remote_id is not None:
                    # Created on an earlier run that stopped before confirming
                    applied.append(self._confirm(command, confirmed))
                    continue
            elif remote_id is None:
                if self._queue.has_open_add(task_id):
                    blocked.add(task_id)
                else:
                    failed = self._queue.mark_failed(
                        command.id, "Task does not exist on the backend", terminal=True
                    )
                    conflicts.append(Conflict.from_command(failed))
                continue

            if command.kind is CommandKind.REORDER and not self.capabilities.stores_order:
                self._set_local_order(task_id, command.payload["order"], remote_orders.get(task_id))
                applied.append(self._confirm(command, confirmed))
                continue

            if (
                command.kind is not CommandKind.ADD
                and task_id not in created
                and is_reflected(command, confirmed.get(task_id))
            ):
                logger.debug("%s for %s already reflected remotely", command.kind.value, task_id)
                applied.append(self._confirm(command, confirmed))
                continue

            self._queue.mark_in_flight(command.id)
            try:
                result = await self.adapter.apply_command(command, remote_id)
            except asyncio.CancelledError:
                # Gone if local data was cleared while the request was out
                if self._queue.get(command.id) is not None:
                    self._queue.mark_pending(command.id)
                raise
            except Exception as e:
                error = wrap_error(e, f"{command.kind.value} on {self.key}")
                if isinstance(error, AuthError):
                    self._queue.mark_pending(command.id)
                    logger.warning("Flush for %s stopped: authentication failed", self.key)
                    if error is e:
                        raise
                    raise error from e
                failed = self._queue.mark_failed(command.id, error, terminal=not error.is_retryable)
                if failed.status is CommandStatus.FAILED:
                    conflicts.append(Conflict.from_command(failed))
                else:
                    blocked.add(task_id)
                continue

            if command.kind is CommandKind.ADD:
                if not result.remote_id:
                    failed = self._queue.mark_failed(
                        command.id, ConflictError("Backend returned no id for new task"), terminal=True
                    )
                    conflicts.append(Conflict.from_command(failed))
                    continue
                self._ids.bind(task_id, result.remote_id)
                created.add(task_id)
            elif command.kind is CommandKind.DELETE:
                self._forget(task_id)

            applied.append(self._confirm(command, confirmed))

        return applied, conflicts, confirmed

    def _confirm(self, command: Command, confirmed: dict[str, Task]) -> Command:
        """Record a command as confirmed by the backend.

        The effect goes into the cached snapshot before the command leaves
        the queue, so it survives a sync that stops partway.
        """
        task_id = command.target_task_id
        apply_effect(confirmed, command)
        task = confirmed.get(task_id)
        if task is not None and task.remote_id is None:
            remote_id = self._ids.remote_for(task_id)
            if remote_id is not None:
                confirmed[task_id] = task.model_copy(update={"remote_id": remote_id})
        self._cache.put(self.key, sort_tasks(confirmed.values()))
        return self._queue.mark_applied(command.id)

    def _set_local_order(self, task_id: str, order: float, remote_order: float | None) -> None:
        """Keep an order the backend cannot store.

        Moving a task back to the order the backend reports drops the
        overlay entry instead.
        """
        if remote_order is not None and remote_order == order:
            if self._order_overlay.pop(task_id, None) is None:
                return
        else:
            self._order_overlay[task_id] = order
        self._save_overlay()

    def _detect_deletions(self, merged: dict[str, Task], seen: set[str], deleted: set[str]) -> None:
        """Keep or drop confirmed tasks that vanished from the snapshot.

        A task missing once is kept as last known; missing on a second
        consecutive snapshot it is dropped along with its pending commands.
        """
        for task_id in list(self._misses):
            if task_id in seen:
                del self._misses[task_id]

        for task_id, previous in self._tasks.items():
            if task_id in merged or task_id in deleted or previous.remote_id is None:
                continue
            misses = self._misses.get(task_id, 0) + 1
            if misses >= self.MISSES_BEFORE_DROP:
                logger.info("Task %s is gone from %s; dropping it", task_id, self.key)
                self._misses.pop(task_id, None)
                self._queue.supersede(task_id)
                self._forget(task_id)
            else:
                self._misses[task_id] = misses
                merged[task_id] = previous

    # --- Private Methods: state ---

    def _restore(self) -> None:
        """Rebuild the in-memory list from the cache and the queue."""
        entry = self._cache.get(self.key)
        snapshot = entry.snapshot if entry else []
        self._tasks = self._merge(snapshot, self._queue.open_commands())
        logger.debug(
            "Restored %d tasks and %d queued commands for %s",
            len(self._tasks),
            len(self._queue),
            self.key,
        )

    def _bind_snapshot(self, remote: list[RemoteTask]) -> list[Task]:
        """Give remote tasks their stable local ids."""
        local_ids = self._ids.resolve_all(r.remote_id for r in remote)
        snapshot = []
        for local_id, item in zip(local_ids, remote, strict=True):
            task = Task.from_remote(local_id, item)
            previous = self._tasks.get(local_id)
            if item.created_at is None and previous is not None:
                task = task.model_copy(update={"created_at": previous.created_at})
            snapshot.append(task)
        return snapshot

    def _merge(self, snapshot: Iterable[Task], commands: Iterable[Command]) -> dict[str, Task]:
        merged: dict[str, Task] = {}
        for task in reconcile(snapshot, commands, self._order_overlay):
            if task.remote_id is None:
                remote_id = self._ids.remote_for(task.id)
                if remote_id is not None:
                    task = task.model_copy(update={"remote_id": remote_id})
            merged[task.id] = task
        return merged

    def _submit(self, command: Command) -> None:
        queued = self._queue.enqueue(command)
        apply_effect(self._tasks, queued)
        self._misses.pop(queued.target_task_id, None)

    def _forget(self, task_id: str) -> None:
        self._ids.forget(task_id)
        if self._order_overlay.pop(task_id, None) is not None:
            self._save_overlay()

    def _save_overlay(self) -> None:
        self._store.set(self._order_key, dict(self._order_overlay))

    def _next_order(self) -> float:
        orders = [t.order for t in self._tasks.values() if not t.completed]
        return max(orders) + 1 if orders else 0

    def _get_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise ValidationError(f"Unknown task: {task_id}", field="task_id")
        return task

    def _require(self, capability: str, action: str) -> None:
        if not getattr(self.capabilities, capability):
            raise UnsupportedOperationError(f"{self.key} does not support {action}")

    def _check_generation(self, generation: int) -> None:
        if generation != self._generation:
            raise SyncCancelledError(
                f"Sync generation {generation} of {self.key} was superseded"
            )
