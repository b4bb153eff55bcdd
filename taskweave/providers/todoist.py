"""Todoist REST API adapter."""

from datetime import timedelta
from typing import Any, Optional
import logging

import httpx

from ..domain.due import parse_datetime
from ..domain.errors import ErrorKind
from ..domain.models import (
    Capability,
    ChangeSet,
    ItemError,
    Project,
    Task,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskListing,
    TaskPriority,
    TaskStatus,
)
from .base import HttpProvider


logger = logging.getLogger(__name__)

PAGE_LIMIT = 200
COMPLETED_WINDOW_DAYS = 7

_PRIORITY_FROM_TODOIST = {
    4: TaskPriority.HIGHEST,
    3: TaskPriority.HIGH,
    2: TaskPriority.MEDIUM,
    1: TaskPriority.NORMAL,
}
_PRIORITY_TO_TODOIST = {v: k for k, v in _PRIORITY_FROM_TODOIST.items()}


def priority_to_todoist(priority: TaskPriority) -> int:
    """Todoist only has four levels; anything below NORMAL maps to 1."""
    return _PRIORITY_TO_TODOIST.get(priority, 1)


class TodoistProvider(HttpProvider):
    """Adapter for Todoist.

    Open tasks come from ``/tasks``; tasks completed in the last week are
    fetched from the completed-tasks endpoint only when the hint asks for
    DONE tasks. Todoist has no in-progress or cancelled state.
    """

    type_name = "todoist"
    default_capabilities = Capability.all()
    default_statuses = frozenset({TaskStatus.NOT_STARTED, TaskStatus.DONE})

    def __init__(
        self,
        provider_id: str,
        api_key: str,
        *,
        base_url: str = "https://api.todoist.com/api/v1",
        **kwargs: Any,
    ) -> None:
        """Initialize the Todoist adapter.

        Args:
            provider_id: Provider identifier
            api_key: Todoist API token
            base_url: API root, overridable for tests
        """
        super().__init__(provider_id, **kwargs)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._projects: dict[str, Project] = {}

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _paged(self, path: str, params: dict, key: str = "results") -> list[dict]:
        """Follow ``next_cursor`` until the last page."""
        items: list[dict] = []
        cursor: Optional[str] = None
        while True:
            query = {**params, "limit": PAGE_LIMIT}
            if cursor:
                query["cursor"] = cursor
            response = await self._request("GET", f"{self._base_url}{path}", params=query)
            data = self._json(response)
            try:
                items.extend(data[key])
                cursor = data.get("next_cursor")
            except (KeyError, TypeError, AttributeError) as e:
                raise self._error(ErrorKind.MALFORMED, f"unexpected page shape from {path}") from e
            if not cursor:
                return items

    async def list_projects(self) -> list[Project]:
        raw = await self._paged("/projects", {})
        projects = []
        for item in raw:
            try:
                projects.append(self._project(str(item["id"]), item["name"]))
            except (KeyError, TypeError) as e:
                raise self._error(ErrorKind.MALFORMED, f"invalid project record: {e}") from e
        self._projects = {p.id: p for p in projects}
        return projects

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        await self.list_projects()
        now = self._clock()

        raw = [(item, TaskStatus.NOT_STARTED) for item in await self._paged("/tasks", {})]
        if hint is not None and hint.statuses and hint.wants_status(TaskStatus.DONE):
            since = now - timedelta(days=COMPLETED_WINDOW_DAYS)
            completed = await self._paged(
                "/tasks/completed/by_completion_date",
                {
                    "since": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "until": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
                },
                key="items",
            )
            raw.extend((item, TaskStatus.DONE) for item in completed)

        listing = TaskListing()
        for item, status in raw:
            try:
                listing.tasks.append(self._finalize(self._to_task(item, status), now))
            except (KeyError, TypeError, ValueError) as e:
                native_id = str(item.get("id", "?")) if isinstance(item, dict) else "?"
                logger.warning(f"{self.provider_id}: skipping task {native_id}: {e}")
                listing.item_errors.append(ItemError(native_id, str(e)))
        return listing

    def _to_task(self, item: dict, status: Optional[TaskStatus] = None) -> Task:
        """Convert a Todoist task record into a Task."""
        native_id = str(item["id"])
        if item.get("checked"):
            status = TaskStatus.DONE
        due = item.get("due") or {}
        project_id = item.get("project_id")
        project = None
        if project_id is not None:
            project = self._projects.get(str(project_id)) or self._project(
                str(project_id), str(project_id)
            )

        return Task(
            id=TaskId(self.provider_id, native_id),
            title=item["content"],
            status=status or TaskStatus.NOT_STARTED,
            capabilities=Capability.all(),
            description=item.get("description") or None,
            project=project,
            priority=_PRIORITY_FROM_TODOIST.get(item.get("priority") or 1),
            due=parse_datetime(due.get("date")),
            url=f"https://app.todoist.com/app/task/{native_id}",
            labels=list(item.get("labels") or []),
            created_at=parse_datetime(item.get("added_at")),
            completed_at=parse_datetime(item.get("completed_at")),
        )

    def _decode(self, response: httpx.Response, status: Optional[TaskStatus] = None) -> Task:
        data = self._json(response)
        try:
            return self._finalize(self._to_task(data, status))
        except (KeyError, TypeError, ValueError) as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid task record: {e}") from e

    async def create_task(self, draft: TaskDraft) -> Task:
        self._require(Capability.CREATE, "create")
        body: dict[str, Any] = {"content": draft.title}
        if draft.description:
            body["description"] = draft.description
        if draft.project_id:
            body["project_id"] = draft.project_id
        if draft.priority is not None:
            body["priority"] = priority_to_todoist(draft.priority)
        if draft.due is not None:
            body["due_date"] = draft.due.date().isoformat()

        response = await self._request("POST", f"{self._base_url}/tasks", json=body)
        logger.info(f"{self.provider_id}: created task {draft.title!r}")
        return self._decode(response)

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        self._require(Capability.UPDATE, "update")
        body: dict[str, Any] = {}
        if changes.title is not None:
            body["content"] = changes.title
        if changes.description is not None:
            body["description"] = changes.description
        if changes.priority is not None:
            body["priority"] = priority_to_todoist(changes.priority)
        if changes.clear_due:
            body["due_string"] = "no date"
        elif changes.due is not None:
            body["due_date"] = changes.due.date().isoformat()

        response = await self._request(
            "POST", f"{self._base_url}/tasks/{task.native_id}", json=body
        )
        return self._decode(response, task.status)

    async def delete_task(self, task: Task) -> None:
        self._require(Capability.DELETE, "delete")
        await self._request("DELETE", f"{self._base_url}/tasks/{task.native_id}")

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        action = "close" if status is TaskStatus.DONE else "reopen"
        await self._request("POST", f"{self._base_url}/tasks/{task.native_id}/{action}")
        updated = ChangeSet().apply_to(task)
        updated.status = status
        updated.completed_at = self._clock() if status is TaskStatus.DONE else None
        return self._finalize(updated)
