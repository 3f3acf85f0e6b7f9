"""Tests for the persisted command queue."""

import pytest

from retasks.models import Command, CommandKind, CommandStatus
from retasks.queue import CommandQueue

from .fakes import InMemoryStore

KEY = "fake.queue"


@pytest.fixture
def queue(store: InMemoryStore) -> CommandQueue:
    return CommandQueue(store, KEY, max_attempts=3)


class TestCommandQueue:
    """Tests for CommandQueue transitions."""

    def test_enqueue_persists_before_returning(self, queue: CommandQueue, store: InMemoryStore):
        command = queue.enqueue(Command.add("t1", "Task"))

        assert command.status is CommandStatus.PENDING
        (saved,) = store.data[KEY]
        assert saved["id"] == command.id
        assert saved["kind"] == "add"

    def test_next_batch_in_creation_order(self, queue: CommandQueue):
        first = queue.enqueue(Command.add("t1", "First"))
        second = queue.enqueue(Command.complete("t1"))
        third = queue.enqueue(Command.add("t2", "Second"))

        assert [c.id for c in queue.next_batch()] == [first.id, second.id, third.id]

    def test_next_batch_skips_in_flight(self, queue: CommandQueue):
        command = queue.enqueue(Command.add("t1", "Task"))
        queue.mark_in_flight(command.id)

        assert queue.next_batch() == []
        assert [c.id for c in queue.open_commands()] == [command.id]

    def test_mark_applied_removes_command(self, queue: CommandQueue, store: InMemoryStore):
        command = queue.enqueue(Command.add("t1", "Task"))

        applied = queue.mark_applied(command.id)

        assert applied.status is CommandStatus.APPLIED
        assert len(queue) == 0
        assert store.data[KEY] == []

    def test_failures_up_to_ceiling_stay_pending(self, queue: CommandQueue):
        command = queue.enqueue(Command.complete("t1"))

        for attempt in range(1, 4):
            failed = queue.mark_failed(command.id, "boom")
            assert failed.status is CommandStatus.PENDING
            assert failed.attempts == attempt

        final = queue.mark_failed(command.id, "boom")
        assert final.status is CommandStatus.FAILED
        assert final.attempts == 4
        assert final.last_error == "boom"
        assert queue.failed() == [final]
        assert queue.next_batch() == []

    def test_terminal_failure_skips_ceiling(self, queue: CommandQueue):
        command = queue.enqueue(Command.delete("t1"))

        failed = queue.mark_failed(command.id, "not found", terminal=True)

        assert failed.status is CommandStatus.FAILED
        assert failed.attempts == 1

    def test_mark_pending_does_not_count_attempt(self, queue: CommandQueue):
        command = queue.enqueue(Command.complete("t1"))
        queue.mark_in_flight(command.id)

        reverted = queue.mark_pending(command.id)

        assert reverted.status is CommandStatus.PENDING
        assert reverted.attempts == 0

    def test_supersede_drops_pending_only(self, queue: CommandQueue):
        in_flight = queue.enqueue(Command.complete("t1"))
        queue.mark_in_flight(in_flight.id)
        edit = queue.enqueue(Command.edit("t1", {"title": "New"}))
        other = queue.enqueue(Command.complete("t2"))

        removed = queue.supersede("t1")

        assert [c.id for c in removed] == [edit.id]
        assert {c.id for c in queue.all()} == {in_flight.id, other.id}

    def test_has_open_add(self, queue: CommandQueue):
        command = queue.enqueue(Command.add("t1", "Task"))
        assert queue.has_open_add("t1")
        assert not queue.has_open_add("t2")

        queue.mark_failed(command.id, "rejected", terminal=True)
        assert not queue.has_open_add("t1")

    def test_dismiss_failed(self, queue: CommandQueue):
        command = queue.enqueue(Command.complete("t1"))
        queue.mark_failed(command.id, "gone", terminal=True)

        queue.dismiss(command.id)

        assert len(queue) == 0

    def test_dismiss_pending_raises(self, queue: CommandQueue):
        command = queue.enqueue(Command.complete("t1"))
        with pytest.raises(ValueError):
            queue.dismiss(command.id)

    def test_clear_drops_everything(self, queue: CommandQueue, store: InMemoryStore):
        queue.enqueue(Command.add("t1", "Task"))
        failed = queue.enqueue(Command.complete("t2"))
        queue.mark_failed(failed.id, "gone", terminal=True)

        queue.clear()

        assert len(queue) == 0
        assert store.get(KEY) is None
        assert len(CommandQueue(store, KEY)) == 0


class TestCommandQueuePersistence:
    """Tests for reloading a queue from the store."""

    def test_reload_preserves_order_and_state(self, queue: CommandQueue, store: InMemoryStore):
        first = queue.enqueue(Command.add("t1", "Task", order=2))
        second = queue.enqueue(Command.complete("t1"))
        queue.mark_failed(second.id, "flaky")

        reloaded = CommandQueue(store, KEY)

        commands = reloaded.all()
        assert [c.id for c in commands] == [first.id, second.id]
        assert commands[0].kind is CommandKind.ADD
        assert commands[0].payload["order"] == 2
        assert commands[1].attempts == 1

    def test_in_flight_resets_to_pending_on_load(self, queue: CommandQueue, store: InMemoryStore):
        command = queue.enqueue(Command.add("t1", "Task"))
        queue.mark_in_flight(command.id)

        reloaded = CommandQueue(store, KEY)

        assert reloaded.get(command.id).status is CommandStatus.PENDING

    def test_malformed_entries_are_skipped(self, store: InMemoryStore):
        store.set(KEY, [{"kind": "explode"}, Command.complete("t1").model_dump(mode="json")])

        reloaded = CommandQueue(store, KEY)

        assert len(reloaded) == 1
