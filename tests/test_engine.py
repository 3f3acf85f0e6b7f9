"""Tests for TaskProvider: optimistic mutations, sync and reconciliation."""

import asyncio

import pytest

from retasks.adapters import AdapterCapabilities
from retasks.cache import SnapshotCache
from retasks.engine import TaskProvider
from retasks.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    SyncCancelledError,
    UnsupportedOperationError,
    ValidationError,
)
from retasks.models import CommandKind, CommandStatus
from retasks.queue import CommandQueue

from .fakes import FakeAdapter, FakeClock, InMemoryStore


async def _synced(provider: TaskProvider) -> dict[str, str]:
    """Sync and return {title: local id}."""
    result = await provider.sync()
    return {task.title: task.id for task in result.tasks}


class TestLoad:
    """Tests for reading the task list without the network."""

    def test_load_empty_without_cache(self, provider: TaskProvider, adapter: FakeAdapter):
        """A fresh provider shows nothing and does not fetch."""
        assert provider.load() == []
        assert adapter.fetch_calls == 0

    @pytest.mark.asyncio
    async def test_restart_shows_cache_and_queued_changes(
        self, adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock
    ):
        """A new provider rebuilds the list from the cache plus the queue."""
        adapter.seed("Remote task")
        first = TaskProvider(adapter, store, clock=clock)
        await first.sync()
        first.add("Added offline")

        second = TaskProvider(adapter, store, clock=clock)

        assert [t.title for t in second.load()] == ["Remote task", "Added offline"]
        assert second.pending_count == 1
        assert adapter.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_local_ids_survive_restart(
        self, adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock
    ):
        """Remote-born tasks keep their local id across providers."""
        adapter.seed("Remote task")
        first = TaskProvider(adapter, store, clock=clock)
        ids = await _synced(first)

        second = TaskProvider(adapter, store, clock=clock)
        again = await _synced(second)

        assert again["Remote task"] == ids["Remote task"]

    @pytest.mark.asyncio
    async def test_cache_staleness_follows_ttl(self, provider: TaskProvider, clock: FakeClock):
        """The cache is stale before the first sync and after the TTL."""
        assert provider.is_cache_stale()

        await provider.sync()
        assert not provider.is_cache_stale()

        clock.advance(milliseconds=299_999)
        assert not provider.is_cache_stale()

        clock.advance(milliseconds=2)
        assert provider.is_cache_stale()


class TestMutations:
    """Tests for optimistic, queued mutations."""

    def test_add_is_visible_immediately(self, provider: TaskProvider, adapter: FakeAdapter):
        """An added task shows up before any network call."""
        task = provider.add("Buy milk")

        assert provider.load() == [task]
        assert not task.is_confirmed
        assert provider.pending_count == 1
        assert adapter.applied == []

    def test_add_strips_title(self, provider: TaskProvider):
        task = provider.add("  Buy milk  ")
        assert task.title == "Buy milk"

    def test_add_blank_title_rejected_before_queue(self, provider: TaskProvider):
        """Invalid titles never reach the queue."""
        with pytest.raises(ValidationError):
            provider.add("   ")

        assert provider.load() == []
        assert provider.pending_count == 0

    def test_add_appends_to_end(self, provider: TaskProvider):
        """New tasks are ordered after every incomplete task."""
        first = provider.add("First")
        second = provider.add("Second")

        assert first.order == 0
        assert second.order == 1
        assert [t.title for t in provider.load()] == ["First", "Second"]

    def test_unknown_task_rejected(self, provider: TaskProvider):
        with pytest.raises(ValidationError):
            provider.complete("missing")

    def test_complete_and_uncomplete(self, provider: TaskProvider):
        """Completing moves a task behind incomplete ones; uncompleting restores it."""
        first = provider.add("First")
        provider.add("Second")

        done = provider.complete(first.id)
        assert done.completed
        assert done.completed_at is not None
        assert [t.title for t in provider.load()] == ["Second", "First"]

        reopened = provider.uncomplete(first.id)
        assert not reopened.completed
        assert reopened.completed_at is None
        assert [t.title for t in provider.load()] == ["First", "Second"]

    def test_completing_completed_task_is_noop(self, provider: TaskProvider):
        """A repeated complete adds no queue entry."""
        task = provider.add("Task")
        provider.complete(task.id)
        pending = provider.pending_count

        provider.complete(task.id)

        assert provider.pending_count == pending

    def test_edit_only_touches_given_fields(self, provider: TaskProvider):
        task = provider.add("Old title", notes="keep me")

        edited = provider.edit(task.id, title="New title")

        assert edited.title == "New title"
        assert edited.notes == "keep me"

    def test_edit_to_same_values_is_noop(self, provider: TaskProvider):
        task = provider.add("Title")
        pending = provider.pending_count

        provider.edit(task.id, title="Title")

        assert provider.pending_count == pending

    def test_edit_without_changes_rejected(self, provider: TaskProvider):
        task = provider.add("Title")
        with pytest.raises(ValidationError):
            provider.edit(task.id)

    def test_reorder_moves_task(self, provider: TaskProvider):
        provider.add("First")
        second = provider.add("Second")

        provider.reorder(second.id, -1)

        assert [t.title for t in provider.load()] == ["Second", "First"]

    def test_reorder_rejects_non_finite(self, provider: TaskProvider):
        task = provider.add("Task")
        with pytest.raises(ValidationError):
            provider.reorder(task.id, float("nan"))

    def test_delete_unsynced_task_queues_nothing(self, provider: TaskProvider):
        """Deleting a task the backend never saw drops its add."""
        task = provider.add("Oops")
        provider.complete(task.id)

        provider.delete_task(task.id)

        assert provider.load() == []
        assert provider.pending_count == 0

    def test_read_only_backend_rejects_mutations(self, store: InMemoryStore, clock: FakeClock):
        """Mutations outside the backend's capabilities fail before queuing."""
        adapter = FakeAdapter(capabilities=AdapterCapabilities.read_only())
        provider = TaskProvider(adapter, store, clock=clock)

        with pytest.raises(UnsupportedOperationError):
            provider.add("Task")
        assert provider.pending_count == 0

    def test_due_date_rejected_when_unsupported(self, store: InMemoryStore, clock: FakeClock):
        adapter = FakeAdapter(capabilities=AdapterCapabilities(can_set_due_date=False))
        provider = TaskProvider(adapter, store, clock=clock)

        with pytest.raises(UnsupportedOperationError):
            provider.add("Task", due_date=clock().date())


class TestSync:
    """Tests for flushing and reconciling."""

    @pytest.mark.asyncio
    async def test_sync_pulls_remote_tasks(self, provider: TaskProvider, adapter: FakeAdapter):
        adapter.seed("Second", order=2)
        adapter.seed("First", order=1)

        result = await provider.sync()

        assert [t.title for t in result.tasks] == ["First", "Second"]
        assert all(t.is_confirmed for t in result.tasks)
        assert result.applied == 0
        assert result.pending == 0

    @pytest.mark.asyncio
    async def test_offline_add_syncs_when_online(self, provider: TaskProvider, adapter: FakeAdapter):
        """A task added offline is pushed once the backend is reachable."""
        adapter.fetch_error = NetworkError("offline")
        task = provider.add("Buy milk")

        with pytest.raises(NetworkError):
            await provider.sync()
        assert provider.load() == [task]
        assert provider.pending_count == 1

        adapter.fetch_error = None
        result = await provider.sync()

        assert result.applied == 1
        assert result.pending == 0
        assert [t.title for t in adapter.remote.values()] == ["Buy milk"]
        (synced,) = result.tasks
        assert synced.id == task.id
        assert synced.remote_id is not None

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_count_attempts(
        self, provider: TaskProvider, adapter: FakeAdapter, store: InMemoryStore
    ):
        """Failing to fetch never burns a retry."""
        provider.add("Task")
        adapter.fetch_error = NetworkError("offline")

        for _ in range(5):
            with pytest.raises(NetworkError):
                await provider.sync()

        (command,) = CommandQueue(store, "fake.queue").all()
        assert command.attempts == 0
        assert command.status is CommandStatus.PENDING
        assert provider.conflicts == []

    @pytest.mark.asyncio
    async def test_reflected_complete_not_sent_again(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        """A complete the backend already shows is confirmed without a request."""
        remote = adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        adapter.update(remote.remote_id, completed=True)

        result = await provider.sync()

        assert adapter.applied == []
        assert result.applied == 1
        assert result.pending == 0
        assert result.tasks[0].completed

    @pytest.mark.asyncio
    async def test_concurrent_syncs_share_one_fetch(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        """Overlapping sync calls join the in-flight one."""
        adapter.seed("Task")
        adapter.gate = asyncio.Event()

        first = asyncio.create_task(provider.sync())
        second = asyncio.create_task(provider.sync())
        await asyncio.sleep(0)
        adapter.gate.set()
        results = await asyncio.gather(first, second)

        assert adapter.fetch_calls == 1
        assert results[0] is results[1]

    @pytest.mark.asyncio
    async def test_sync_after_previous_finished_fetches_again(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        await provider.sync()
        await provider.sync()
        assert adapter.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_retryable_failure_keeps_optimistic_state(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        adapter.apply_errors = [NetworkError("flaky")]

        result = await provider.sync()

        assert result.conflicts == []
        assert result.pending == 1
        assert result.tasks[0].completed

    @pytest.mark.asyncio
    async def test_conflict_after_retry_ceiling(self, provider: TaskProvider, adapter: FakeAdapter):
        """Three failures stay pending; the fourth reverts the task."""
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        adapter.apply_errors = [NetworkError("down")] * 4

        for _ in range(3):
            result = await provider.sync()
            assert result.conflicts == []
            assert provider.get(ids["Task"]).completed

        result = await provider.sync()

        (conflict,) = result.conflicts
        assert conflict.task_id == ids["Task"]
        assert conflict.kind is CommandKind.COMPLETE
        assert conflict.attempts == 4
        assert isinstance(conflict.error, ConflictError)
        assert not provider.get(ids["Task"]).completed
        assert provider.pending_count == 0

    @pytest.mark.asyncio
    async def test_conflicts_listed_until_dismissed(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        adapter.apply_errors = [ConflictError("gone")]

        await provider.sync()
        (conflict,) = provider.conflicts

        # A later sync does not report it as new
        again = await provider.sync()
        assert again.conflicts == []
        assert len(provider.conflicts) == 1

        provider.dismiss_conflict(conflict.command_id)
        assert provider.conflicts == []

    @pytest.mark.asyncio
    async def test_not_found_is_terminal(self, provider: TaskProvider, adapter: FakeAdapter):
        """A 404-style conflict does not wait for the retry ceiling."""
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.edit(ids["Task"], title="Renamed")
        adapter.apply_errors = [ConflictError("not found")]

        result = await provider.sync()

        assert len(result.conflicts) == 1
        assert provider.get(ids["Task"]).title == "Task"

    @pytest.mark.asyncio
    async def test_auth_failure_on_fetch_changes_nothing(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        before = provider.load()
        adapter.fetch_error = AuthError("expired")

        with pytest.raises(AuthError):
            await provider.sync()

        assert provider.load() == before
        assert provider.pending_count == 1
        assert adapter.applied == []

    @pytest.mark.asyncio
    async def test_auth_failure_on_apply_keeps_command_pending(
        self, provider: TaskProvider, adapter: FakeAdapter, store: InMemoryStore
    ):
        provider.add("Task")
        adapter.apply_errors = [AuthError("expired")]

        with pytest.raises(AuthError):
            await provider.sync()

        (command,) = CommandQueue(store, "fake.queue").all()
        assert command.status is CommandStatus.PENDING
        assert command.attempts == 0

        result = await provider.sync()
        assert result.applied == 1

    @pytest.mark.asyncio
    async def test_later_command_waits_for_unconfirmed_add(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        """Commands for a task are never sent ahead of its add."""
        task = provider.add("Task")
        provider.complete(task.id)
        adapter.apply_errors = [NetworkError("flaky")]

        await provider.sync()
        assert adapter.applied_kinds == [CommandKind.ADD]

        result = await provider.sync()

        assert adapter.applied_kinds == [CommandKind.ADD, CommandKind.ADD, CommandKind.COMPLETE]
        assert result.pending == 0
        (remote,) = adapter.remote.values()
        assert remote.completed

    @pytest.mark.asyncio
    async def test_delete_supersedes_pending_commands(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        provider.edit(ids["Task"], title="Renamed")

        provider.delete_task(ids["Task"])
        result = await provider.sync()

        assert adapter.applied_kinds == [CommandKind.DELETE]
        assert adapter.remote == {}
        assert result.tasks == []

    @pytest.mark.asyncio
    async def test_mutation_during_sync_is_kept(self, provider: TaskProvider, adapter: FakeAdapter):
        """A change made while a sync is awaiting shows in that sync's result."""
        adapter.seed("Task")
        await provider.sync()
        adapter.gate = asyncio.Event()

        pending_sync = asyncio.create_task(provider.sync())
        await asyncio.sleep(0)
        added = provider.add("During sync")
        adapter.gate.set()
        result = await pending_sync

        assert added.id in {t.id for t in result.tasks}
        assert added.id in {t.id for t in provider.load()}

    @pytest.mark.asyncio
    async def test_remote_edit_wins_for_untouched_fields(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        remote = adapter.seed("Task", notes="old notes")
        ids = await _synced(provider)
        provider.edit(ids["Task"], title="Local title")
        adapter.update(remote.remote_id, notes="remote notes")
        adapter.apply_errors = [NetworkError("flaky")]

        result = await provider.sync()

        (task,) = result.tasks
        assert task.title == "Local title"
        assert task.notes == "remote notes"

    @pytest.mark.asyncio
    async def test_cache_holds_confirmed_state_only(
        self, provider: TaskProvider, adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock
    ):
        """Unconfirmed changes are never written into the cached snapshot."""
        adapter.seed("Task")
        ids = await _synced(provider)
        provider.complete(ids["Task"])
        adapter.apply_errors = [NetworkError("flaky")]

        await provider.sync()

        entry = SnapshotCache(store, clock=clock).get("fake")
        (cached,) = entry.snapshot
        assert not cached.completed
        assert provider.get(ids["Task"]).completed

    @pytest.mark.asyncio
    async def test_remote_deletion_needs_two_snapshots(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        """A task missing once is kept; missing twice it is dropped."""
        adapter.seed("Keep")
        gone = adapter.seed("Gone")
        await provider.sync()
        del adapter.remote[gone.remote_id]

        first = await provider.sync()
        assert {t.title for t in first.tasks} == {"Keep", "Gone"}

        second = await provider.sync()
        assert [t.title for t in second.tasks] == ["Keep"]

    @pytest.mark.asyncio
    async def test_reappearing_task_resets_miss_count(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        flaky = adapter.seed("Flaky")
        await provider.sync()

        del adapter.remote[flaky.remote_id]
        await provider.sync()
        adapter.remote[flaky.remote_id] = flaky
        await provider.sync()
        del adapter.remote[flaky.remote_id]
        result = await provider.sync()

        assert [t.title for t in result.tasks] == ["Flaky"]

    @pytest.mark.asyncio
    async def test_reorder_kept_locally_when_backend_cannot_store_order(
        self, store: InMemoryStore, clock: FakeClock
    ):
        adapter = FakeAdapter(capabilities=AdapterCapabilities(stores_order=False))
        adapter.seed("First", order=0)
        adapter.seed("Second", order=1)
        provider = TaskProvider(adapter, store, clock=clock)
        ids = await _synced(provider)

        provider.reorder(ids["Second"], -1)
        result = await provider.sync()

        assert adapter.applied == []
        assert [t.title for t in result.tasks] == ["Second", "First"]

        # The overlay survives a restart and later snapshots
        restarted = TaskProvider(adapter, store, clock=clock)
        assert [t.title for t in restarted.load()] == ["Second", "First"]
        again = await restarted.sync()
        assert [t.title for t in again.tasks] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_reorder_back_to_remote_order_sticks(
        self, store: InMemoryStore, clock: FakeClock
    ):
        """Moving a task back to where the backend has it clears the local order."""
        adapter = FakeAdapter(capabilities=AdapterCapabilities(stores_order=False))
        adapter.seed("Task", order=2)
        provider = TaskProvider(adapter, store, clock=clock)
        ids = await _synced(provider)

        provider.reorder(ids["Task"], 5)
        await provider.sync()
        assert store.get("fake.order") == {ids["Task"]: 5}

        provider.reorder(ids["Task"], 2)
        await provider.sync()
        result = await provider.sync()

        assert adapter.applied == []
        assert store.get("fake.order") == {}
        assert result.tasks[0].order == 2
        assert TaskProvider(adapter, store, clock=clock).get(ids["Task"]).order == 2

    @pytest.mark.asyncio
    async def test_reorder_sent_when_backend_stores_order(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        remote = adapter.seed("Task", order=0)
        ids = await _synced(provider)

        provider.reorder(ids["Task"], 5)
        await provider.sync()

        assert adapter.applied_kinds == [CommandKind.REORDER]
        assert adapter.remote[remote.remote_id].order == 5

    @pytest.mark.asyncio
    async def test_in_flight_command_resumes_after_restart(
        self, adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock
    ):
        """A command interrupted mid-request is retried by the next process."""
        first = TaskProvider(adapter, store, clock=clock)
        task = first.add("Interrupted")
        queue = CommandQueue(store, "fake.queue")
        queue.mark_in_flight(queue.all()[0].id)

        second = TaskProvider(adapter, store, clock=clock)
        result = await second.sync()

        assert result.applied == 1
        assert [t.id for t in result.tasks] == [task.id]
        assert len(adapter.remote) == 1

    @pytest.mark.asyncio
    async def test_confirmed_add_survives_sync_stopped_partway(
        self, adapter: FakeAdapter, store: InMemoryStore, clock: FakeClock
    ):
        """Commands confirmed before a flush stops are not lost on restart."""
        first = TaskProvider(adapter, store, clock=clock)
        first.add("A")
        first.add("B")
        adapter.apply_errors = [None, AuthError("expired")]

        with pytest.raises(AuthError):
            await first.sync()

        second = TaskProvider(adapter, store, clock=clock)
        assert sorted(t.title for t in second.load()) == ["A", "B"]
        assert second.pending_count == 1

        result = await second.sync()

        assert sorted(t.title for t in result.tasks) == ["A", "B"]
        assert len(adapter.remote) == 2
        assert adapter.applied_kinds == [CommandKind.ADD] * 3


class TestLocalData:
    """Tests for cache invalidation and clearing local data."""

    @pytest.mark.asyncio
    async def test_invalidate_cache_keeps_tasks(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        await provider.sync()
        assert not provider.is_cache_stale()

        provider.invalidate_cache()

        assert provider.is_cache_stale()
        assert [t.title for t in provider.load()] == ["Task"]

    @pytest.mark.asyncio
    async def test_clear_local_data_forgets_everything(self, store: InMemoryStore, clock: FakeClock):
        adapter = FakeAdapter(capabilities=AdapterCapabilities(stores_order=False))
        adapter.seed("Synced", order=0)
        provider = TaskProvider(adapter, store, clock=clock)
        ids = await _synced(provider)
        provider.reorder(ids["Synced"], 4)
        await provider.sync()
        provider.add("Queued")

        provider.clear_local_data()

        assert provider.load() == []
        assert provider.pending_count == 0
        assert provider.is_cache_stale()
        for key in ("fake.queue", "fake.cache", "fake.ids", "fake.order"):
            assert store.get(key) is None
        assert TaskProvider(adapter, store, clock=clock).load() == []

    @pytest.mark.asyncio
    async def test_clear_local_data_cancels_running_sync(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        adapter.gate = asyncio.Event()
        pending_sync = asyncio.create_task(provider.sync())
        await asyncio.sleep(0)

        provider.clear_local_data()

        with pytest.raises(SyncCancelledError):
            await pending_sync
        assert provider.load() == []

    @pytest.mark.asyncio
    async def test_clear_local_data_while_request_is_out(
        self, provider: TaskProvider, adapter: FakeAdapter, store: InMemoryStore
    ):
        provider.add("Task")
        adapter.apply_gate = asyncio.Event()
        pending_sync = asyncio.create_task(provider.sync())
        while not adapter.applied:
            await asyncio.sleep(0)

        provider.clear_local_data()

        with pytest.raises(SyncCancelledError):
            await pending_sync
        assert provider.pending_count == 0
        assert store.get("fake.queue") is None


class TestCancellation:
    """Tests for generation-based cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_discards_in_flight_sync(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        adapter.gate = asyncio.Event()

        pending_sync = asyncio.create_task(provider.sync())
        await asyncio.sleep(0)
        provider.cancel()

        with pytest.raises(SyncCancelledError):
            await pending_sync
        assert provider.generation == 1
        assert provider.load() == []
        assert provider.is_cache_stale()

    @pytest.mark.asyncio
    async def test_sync_after_cancel_runs_new_generation(
        self, provider: TaskProvider, adapter: FakeAdapter
    ):
        adapter.seed("Task")
        provider.cancel()

        result = await provider.sync()

        assert result.generation == 1
        assert [t.title for t in result.tasks] == ["Task"]

    @pytest.mark.asyncio
    async def test_aclose_closes_adapter(self, provider: TaskProvider, adapter: FakeAdapter):
        await provider.aclose()
        assert adapter.closed
