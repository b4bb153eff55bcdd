"""Protocol definitions for provider adapters."""

from typing import Optional, Protocol, runtime_checkable

from .models import (
    Capability,
    ChangeSet,
    Project,
    Task,
    TaskDraft,
    TaskFilter,
    TaskListing,
    TaskStatus,
)


@runtime_checkable
class TaskProvider(Protocol):
    """Contract every backend adapter satisfies.

    Every method raises ``ProviderError`` on failure; nothing else escapes.
    Connection details are given to the adapter at construction time and
    are never read by the engine.
    """

    @property
    def provider_id(self) -> str:
        """Identifier, stable for the session."""
        ...

    @property
    def name(self) -> str:
        """Human readable name."""
        ...

    @property
    def type_name(self) -> str:
        """Backend type tag (todoist, github, ...)."""
        ...

    @property
    def capabilities(self) -> Capability:
        """Operations this provider supports."""
        ...

    @property
    def supported_statuses(self) -> frozenset[TaskStatus]:
        """Statuses ``change_status`` can set."""
        ...

    @property
    def is_remote(self) -> bool:
        """Whether calls go over the network (selects the timeout)."""
        ...

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        """List every task visible in the provider's scope."""
        ...

    async def list_projects(self) -> list[Project]:
        """List projects tasks can belong to."""
        ...

    async def create_task(self, draft: TaskDraft) -> Task:
        """Create a task, return it as stored by the backend."""
        ...

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        """Apply changes to a task, return the updated task."""
        ...

    async def delete_task(self, task: Task) -> None:
        """Delete a task."""
        ...

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        """Move a task to another status, return the updated task."""
        ...
