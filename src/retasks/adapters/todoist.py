"""Todoist REST v2 adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..auth import TokenSupplier
from ..errors import SyncError, UnsupportedOperationError
from ..models import Command, CommandKind, RemoteResult, RemoteTask
from ..utils import from_iso, parse_date
from .protocol import AdapterCapabilities
from .rest import RestAdapter

logger = logging.getLogger(__name__)


class TodoistAdapter(RestAdapter):
    """Adapter for the Todoist REST API v2.

    Only active tasks are listed by ``GET /tasks``; a task closed
    elsewhere simply disappears from the snapshot. Todoist has no REST
    endpoint for moving tasks, so ordering is kept locally.
    """

    key = "todoist"
    name = "Todoist"
    BASE_URL = "https://api.todoist.com/rest/v2"

    def __init__(
        self,
        token_supplier: TokenSupplier,
        client: httpx.AsyncClient | None = None,
        project_id: str | None = None,
    ) -> None:
        super().__init__(token_supplier, client)
        self.project_id = project_id

    @property
    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(stores_order=False)

    async def fetch_snapshot(self) -> list[RemoteTask]:
        """Fetch all active tasks."""
        params = {"project_id": self.project_id} if self.project_id else None
        data = await self._request("GET", f"{self.BASE_URL}/tasks", params=params)
        if not isinstance(data, list):
            raise SyncError("Unexpected Todoist response: expected a list of tasks")
        tasks = [self._parse_task(item) for item in data]
        logger.debug("Todoist snapshot: %d tasks", len(tasks))
        return tasks

    async def apply_command(self, command: Command, remote_id: str | None) -> RemoteResult:
        payload = command.payload

        if command.kind is CommandKind.ADD:
            body: dict[str, Any] = {"content": payload["title"]}
            if payload.get("notes"):
                body["description"] = payload["notes"]
            if payload.get("due_date"):
                body["due_date"] = payload["due_date"]
            if self.project_id:
                body["project_id"] = self.project_id
            data = await self._request("POST", f"{self.BASE_URL}/tasks", json=body)
            created = self._parse_task(data)
            return RemoteResult(remote_id=created.remote_id, task=created)

        url = f"{self.BASE_URL}/tasks/{remote_id}"

        if command.kind is CommandKind.COMPLETE:
            await self._request("POST", f"{url}/close")
        elif command.kind is CommandKind.UNCOMPLETE:
            await self._request("POST", f"{url}/reopen")
        elif command.kind is CommandKind.DELETE:
            await self._request("DELETE", url)
        elif command.kind is CommandKind.EDIT:
            data = await self._request("POST", url, json=self._edit_body(payload))
            updated = self._parse_task(data) if data else None
            return RemoteResult(remote_id=remote_id, task=updated)
        else:
            raise UnsupportedOperationError(f"Todoist cannot {command.kind.value} tasks")

        return RemoteResult(remote_id=remote_id)

    @staticmethod
    def _edit_body(payload: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if "title" in payload:
            body["content"] = payload["title"]
        if "notes" in payload:
            body["description"] = payload["notes"] or ""
        if "due_date" in payload:
            if payload["due_date"]:
                body["due_date"] = payload["due_date"]
            else:
                body["due_string"] = "no date"
        return body

    @staticmethod
    def _parse_task(item: dict[str, Any]) -> RemoteTask:
        """Map a Todoist task object onto RemoteTask."""
        due = item.get("due") or {}
        created = item.get("created_at")
        return RemoteTask(
            remote_id=str(item["id"]),
            title=item.get("content") or "",
            completed=bool(item.get("is_completed", False)),
            due_date=parse_date(due.get("date")),
            notes=item.get("description") or None,
            order=item.get("order") or 0,
            created_at=from_iso(created) if created else None,
        )
