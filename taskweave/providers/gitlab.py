"""GitLab To-Do list adapter."""

from dataclasses import replace
from typing import Any, Optional
import logging

from ..domain.due import parse_datetime
from ..domain.errors import ErrorKind
from ..domain.models import (
    Capability,
    ItemError,
    Project,
    Task,
    TaskFilter,
    TaskId,
    TaskListing,
    TaskStatus,
)
from .base import HttpProvider


logger = logging.getLogger(__name__)

PER_PAGE = 50


class GitLabTodoProvider(HttpProvider):
    """Adapter exposing a user's GitLab to-do items as tasks.

    To-dos can be listed and marked done; GitLab offers no way to reopen,
    create, edit or delete them.
    """

    type_name = "gitlab"
    default_capabilities = Capability.LIST | Capability.CHANGE_STATUS
    default_statuses = frozenset({TaskStatus.DONE})

    def __init__(
        self,
        provider_id: str,
        api_key: str,
        *,
        base_url: str = "https://gitlab.com",
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._api_key = api_key
        self._api_url = f"{base_url.rstrip('/')}/api/v4"

    def _get_headers(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _todos(self, state: str) -> list[dict]:
        """Fetch every page of to-dos in the given state."""
        todos: list[dict] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"{self._api_url}/todos",
                params={"state": state, "page": page, "per_page": PER_PAGE},
            )
            batch = self._json(response)
            if not isinstance(batch, list):
                raise self._error(ErrorKind.MALFORMED, "expected a list of to-dos")
            if not batch:
                return todos
            todos.extend(batch)
            page += 1

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        states = ["pending"]
        if hint is not None and hint.statuses and hint.wants_status(TaskStatus.DONE):
            states.append("done")

        now = self._clock()
        listing = TaskListing()
        for state in states:
            for todo in await self._todos(state):
                try:
                    listing.tasks.append(self._finalize(self._to_task(todo), now))
                except (KeyError, TypeError, ValueError) as e:
                    native_id = str(todo.get("id", "?")) if isinstance(todo, dict) else "?"
                    logger.warning(f"{self.provider_id}: skipping to-do {native_id}: {e}")
                    listing.item_errors.append(ItemError(native_id, str(e)))
        return listing

    async def list_projects(self) -> list[Project]:
        projects: dict[str, Project] = {}
        for todo in await self._todos("pending"):
            project = todo.get("project") if isinstance(todo, dict) else None
            if project and "id" in project:
                projects[str(project["id"])] = self._project(
                    str(project["id"]), project.get("name") or str(project["id"])
                )
        return list(projects.values())

    def _to_task(self, todo: dict) -> Task:
        """Convert a to-do record into a Task."""
        target = todo.get("target") or {}
        project = todo.get("project")
        done = todo["state"] == "done"

        return Task(
            id=TaskId(self.provider_id, str(todo["id"])),
            title=target.get("title") or todo["body"],
            status=TaskStatus.DONE if done else TaskStatus.NOT_STARTED,
            # done to-dos cannot be reopened
            capabilities=Capability.LIST if done else self.capabilities,
            description=target.get("description") or None,
            project=(
                self._project(str(project["id"]), project["name"]) if project else None
            ),
            due=parse_datetime(target.get("due_date")),
            url=todo.get("target_url"),
            labels=list(target.get("labels") or []),
            created_at=parse_datetime(todo.get("created_at")),
            metadata={
                "target_type": todo.get("target_type"),
                "action": todo.get("action_name"),
            },
        )

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        await self._request("POST", f"{self._api_url}/todos/{task.native_id}/mark_as_done")
        logger.info(f"{self.provider_id}: marked to-do {task.native_id} as done")
        return self._finalize(
            replace(
                task,
                status=TaskStatus.DONE,
                capabilities=Capability.LIST,
                completed_at=self._clock(),
                labels=list(task.labels),
                metadata=dict(task.metadata),
            )
        )
