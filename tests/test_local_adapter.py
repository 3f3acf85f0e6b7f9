"""Tests for the markdown file backend."""

from datetime import date
from pathlib import Path

import frontmatter
import pytest

from retasks.adapters import LocalAdapter
from retasks.engine import TaskProvider
from retasks.errors import ConflictError
from retasks.models import Command

from .fakes import T0, FakeClock, InMemoryStore


@pytest.fixture
def task_dir(tmp_path: Path) -> Path:
    """Create a temporary task directory."""
    task_root = tmp_path / "tasks"
    task_root.mkdir()
    return task_root


@pytest.fixture
def local(task_dir: Path) -> LocalAdapter:
    return LocalAdapter(task_dir)


async def _add(local: LocalAdapter, title: str = "Task", **kwargs) -> str:
    result = await local.apply_command(Command.add("t1", title, created_at=T0, **kwargs), None)
    return result.remote_id


class TestLocalAdapter:
    """Tests for LocalAdapter."""

    @pytest.mark.asyncio
    async def test_fetch_missing_directory(self, tmp_path: Path):
        adapter = LocalAdapter(tmp_path / "missing")
        assert await adapter.fetch_snapshot() == []

    @pytest.mark.asyncio
    async def test_add_writes_markdown_file(self, local: LocalAdapter, task_dir: Path):
        remote_id = await _add(local, "Write report", due_date=date(2026, 1, 9), notes="Draft first")

        assert remote_id == "t1"
        post = frontmatter.load(task_dir / "t1.md")
        assert post["title"] == "Write report"
        assert post["completed"] is False
        assert post.content == "Draft first"

    @pytest.mark.asyncio
    async def test_fetch_reads_files(self, local: LocalAdapter):
        await _add(local, "Write report", due_date=date(2026, 1, 9), notes="Draft first", order=2)

        (task,) = await local.fetch_snapshot()

        assert task.remote_id == "t1"
        assert task.title == "Write report"
        assert task.due_date == date(2026, 1, 9)
        assert task.notes == "Draft first"
        assert task.order == 2
        assert task.created_at == T0

    @pytest.mark.asyncio
    async def test_fetch_hand_written_file(self, local: LocalAdapter, task_dir: Path):
        (task_dir / "groceries.md").write_text(
            "---\ntitle: Groceries\ncompleted: true\norder: 1\n---\nMilk and eggs\n"
        )

        (task,) = await local.fetch_snapshot()

        assert task.remote_id == "groceries"
        assert task.completed
        assert task.notes == "Milk and eggs"

    @pytest.mark.asyncio
    async def test_fetch_skips_file_with_bad_fields(self, local: LocalAdapter, task_dir: Path):
        """A hand-edited file with unparseable fields does not fail the fetch."""
        (task_dir / "broken.md").write_text("---\ntitle: Broken\norder: soon\n---\n")
        (task_dir / "bad-due.md").write_text("---\ntitle: Bad due\ndue: tomorrow\n---\n")
        (task_dir / "fine.md").write_text("---\ntitle: Fine\norder: 3\n---\n")

        (task,) = await local.fetch_snapshot()

        assert task.remote_id == "fine"
        assert task.order == 3

    @pytest.mark.asyncio
    async def test_complete_and_uncomplete(self, local: LocalAdapter):
        remote_id = await _add(local)

        await local.apply_command(Command.complete("t1", created_at=T0), remote_id)
        (done,) = await local.fetch_snapshot()
        assert done.completed
        assert done.completed_at == T0

        await local.apply_command(Command.uncomplete("t1"), remote_id)
        (reopened,) = await local.fetch_snapshot()
        assert not reopened.completed
        assert reopened.completed_at is None

    @pytest.mark.asyncio
    async def test_edit_and_reorder(self, local: LocalAdapter):
        remote_id = await _add(local, due_date=date(2026, 1, 9))

        await local.apply_command(Command.edit("t1", {"title": "Renamed", "due_date": None}), remote_id)
        await local.apply_command(Command.reorder("t1", 4.5), remote_id)

        (task,) = await local.fetch_snapshot()
        assert task.title == "Renamed"
        assert task.due_date is None
        assert task.order == 4.5

    @pytest.mark.asyncio
    async def test_delete_removes_file(self, local: LocalAdapter, task_dir: Path):
        remote_id = await _add(local)

        await local.apply_command(Command.delete("t1"), remote_id)

        assert not (task_dir / "t1.md").exists()

    @pytest.mark.asyncio
    async def test_mutating_missing_file_conflicts(self, local: LocalAdapter):
        with pytest.raises(ConflictError):
            await local.apply_command(Command.complete("t1"), "t1")


class TestLocalProvider:
    """End-to-end tests through TaskProvider."""

    @pytest.mark.asyncio
    async def test_tasks_round_trip_through_files(self, task_dir: Path):
        clock = FakeClock()
        provider = TaskProvider(LocalAdapter(task_dir), InMemoryStore(), clock=clock)
        task = provider.add("From provider")
        await provider.sync()
        provider.complete(task.id)
        await provider.sync()

        # Another device with its own state sees the file
        other = TaskProvider(LocalAdapter(task_dir), InMemoryStore(), clock=clock)
        result = await other.sync()

        (seen,) = result.tasks
        assert seen.title == "From provider"
        assert seen.completed
        assert seen.remote_id == task.id
