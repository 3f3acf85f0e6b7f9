"""Google Tasks API v1 adapter."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from ..auth import TokenSupplier
from ..errors import UnsupportedOperationError
from ..models import Command, CommandKind, RemoteResult, RemoteTask
from ..utils import from_iso, parse_date
from .protocol import AdapterCapabilities
from .rest import RestAdapter

logger = logging.getLogger(__name__)

STATUS_NEEDS_ACTION = "needsAction"
STATUS_COMPLETED = "completed"


def _due_value(value: str | None) -> str | None:
    """Google Tasks stores due dates as midnight UTC; the time is ignored."""
    if not value:
        return None
    return f"{value[:10]}T00:00:00.000Z"


def _position_order(position: str | None) -> float:
    # Positions are zero-padded digit strings that sort lexicographically
    if not position:
        return 0
    try:
        return float(int(position))
    except ValueError:
        return 0


class GoogleTasksAdapter(RestAdapter):
    """Adapter for one Google Tasks list.

    Uses tasks.list, tasks.insert, tasks.patch and tasks.delete. Moving
    tasks needs tasks.move, which is not used, so ordering is kept locally.
    """

    key = "google-tasks"
    name = "GoogleTasks"
    BASE_URL = "https://tasks.googleapis.com/tasks/v1"
    PAGE_SIZE = 100

    def __init__(
        self,
        token_supplier: TokenSupplier,
        client: httpx.AsyncClient | None = None,
        tasklist_id: str = "@default",
    ) -> None:
        super().__init__(token_supplier, client)
        self.tasklist_id = tasklist_id

    @property
    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(stores_order=False)

    def _tasks_url(self, remote_id: str | None = None) -> str:
        url = f"{self.BASE_URL}/lists/{self.tasklist_id}/tasks"
        return f"{url}/{remote_id}" if remote_id else url

    async def fetch_snapshot(self) -> list[RemoteTask]:
        """List every task in the list, following page tokens."""
        tasks: list[RemoteTask] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "showCompleted": "true",
                "showHidden": "true",
                "maxResults": self.PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token
            data = await self._request("GET", self._tasks_url(), params=params) or {}

            for item in data.get("items", []):
                if item.get("deleted"):
                    continue
                tasks.append(self._parse_task(item))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Google Tasks snapshot: %d tasks", len(tasks))
        return tasks

    async def apply_command(self, command: Command, remote_id: str | None) -> RemoteResult:
        payload = command.payload

        if command.kind is CommandKind.ADD:
            body: dict[str, Any] = {"title": payload["title"]}
            if payload.get("notes"):
                body["notes"] = payload["notes"]
            if payload.get("due_date"):
                body["due"] = _due_value(payload["due_date"])
            data = await self._request("POST", self._tasks_url(), json=body)
            created = self._parse_task(data)
            return RemoteResult(remote_id=created.remote_id, task=created)

        if command.kind is CommandKind.DELETE:
            await self._request("DELETE", self._tasks_url(remote_id))
            return RemoteResult(remote_id=remote_id)

        if command.kind is CommandKind.COMPLETE:
            patch: dict[str, Any] = {
                "status": STATUS_COMPLETED,
                "completed": command.created_at.isoformat().replace("+00:00", "Z"),
            }
        elif command.kind is CommandKind.UNCOMPLETE:
            patch = {"status": STATUS_NEEDS_ACTION, "completed": None}
        elif command.kind is CommandKind.EDIT:
            patch = {}
            if "title" in payload:
                patch["title"] = payload["title"]
            if "notes" in payload:
                patch["notes"] = payload["notes"]
            if "due_date" in payload:
                patch["due"] = _due_value(payload["due_date"])
        else:
            raise UnsupportedOperationError(f"Google Tasks cannot {command.kind.value} tasks")

        data = await self._request("PATCH", self._tasks_url(remote_id), json=patch)
        updated = self._parse_task(data) if data else None
        return RemoteResult(remote_id=remote_id, task=updated)

    @staticmethod
    def _parse_task(item: dict[str, Any]) -> RemoteTask:
        """Map a Google Tasks resource onto RemoteTask."""
        completed_raw = item.get("completed")
        due: date | None = parse_date(item.get("due"))
        return RemoteTask(
            remote_id=item["id"],
            title=item.get("title") or "",
            completed=item.get("status") == STATUS_COMPLETED,
            completed_at=from_iso(completed_raw) if completed_raw else None,
            due_date=due,
            notes=item.get("notes") or None,
            order=_position_order(item.get("position")),
            revision=item.get("etag"),
        )
