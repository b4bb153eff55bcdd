"""In-memory provider, used for tests and demos."""

import asyncio
from dataclasses import replace
from itertools import count
from typing import Iterable, Optional

from ..domain.due import utc_now
from ..domain.errors import ErrorKind, ProviderError
from ..domain.models import (
    Capability,
    ChangeSet,
    Project,
    Task,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskListing,
    TaskStatus,
)
from .base import BaseProvider


class InMemoryProvider(BaseProvider):
    """Provider keeping its tasks in a dict.

    Capabilities and settable statuses are configurable so the same class
    can stand in for read-only feeds and two-state backends. ``fail_with``
    makes every call raise the given error and ``delay`` makes every call
    sleep first; both exist to exercise the engine's isolation logic.
    """

    type_name = "memory"
    is_remote = False
    default_capabilities = Capability.all()
    default_statuses = frozenset(TaskStatus)

    def __init__(
        self,
        provider_id: str,
        *,
        tasks: Optional[Iterable[Task]] = None,
        projects: Optional[Iterable[Project]] = None,
        capabilities: Optional[Capability] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
        fail_with: Optional[ProviderError] = None,
        delay: float = 0.0,
        **kwargs,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._capabilities = (
            capabilities if capabilities is not None else self.default_capabilities
        )
        self._statuses = (
            frozenset(statuses) if statuses is not None else self.default_statuses
        )
        self._tasks: dict[str, Task] = {}
        self._projects: dict[str, Project] = {p.id: p for p in projects or ()}
        self._ids = count(1)
        self.fail_with = fail_with
        self.delay = delay
        self.calls: list[str] = []

        for task in tasks or ():
            self._tasks[task.native_id] = replace(
                task,
                id=TaskId(provider_id, task.native_id),
                capabilities=Capability.all(),
            )

    @property
    def capabilities(self) -> Capability:
        return self._capabilities

    @property
    def supported_statuses(self) -> frozenset[TaskStatus]:
        return self._statuses

    def add(
        self,
        title: str,
        status: TaskStatus = TaskStatus.NOT_STARTED,
        **fields,
    ) -> Task:
        """Seed a task directly, bypassing capability checks."""
        native_id = str(next(self._ids))
        while native_id in self._tasks:
            native_id = str(next(self._ids))
        task = Task(
            id=TaskId(self.provider_id, native_id),
            title=title,
            status=status,
            capabilities=Capability.all(),
            **fields,
        )
        self._tasks[native_id] = task
        if task.project is not None:
            self._projects.setdefault(task.project.id, task.project)
        return task

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    def _stored(self, task: Task) -> Task:
        stored = self._tasks.get(task.native_id)
        if stored is None:
            raise self._error(ErrorKind.NOT_FOUND, f"task {task.native_id} not found")
        return stored

    def _snapshot(self, task: Task) -> Task:
        return self._finalize(
            replace(task, labels=list(task.labels), metadata=dict(task.metadata))
        )

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        await self._enter("list_tasks")
        now = self._clock()
        return TaskListing(
            tasks=[
                self._finalize(replace(t, labels=list(t.labels), metadata=dict(t.metadata)), now)
                for t in self._tasks.values()
            ]
        )

    async def list_projects(self) -> list[Project]:
        await self._enter("list_projects")
        return list(self._projects.values())

    async def create_task(self, draft: TaskDraft) -> Task:
        self._require(Capability.CREATE, "create")
        await self._enter("create_task")
        project = self._projects.get(draft.project_id) if draft.project_id else None
        task = self.add(
            draft.title,
            description=draft.description,
            project=project,
            priority=draft.priority,
            due=draft.due,
            created_at=utc_now(),
        )
        return self._snapshot(task)

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        self._require(Capability.UPDATE, "update")
        await self._enter("update_task")
        updated = changes.apply_to(self._stored(task))
        self._tasks[updated.native_id] = updated
        return self._snapshot(updated)

    async def delete_task(self, task: Task) -> None:
        self._require(Capability.DELETE, "delete")
        await self._enter("delete_task")
        self._stored(task)
        del self._tasks[task.native_id]

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        await self._enter("change_status")
        stored = self._stored(task)
        updated = replace(
            stored,
            status=status,
            completed_at=utc_now() if status is TaskStatus.DONE else None,
        )
        self._tasks[updated.native_id] = updated
        return self._snapshot(updated)
