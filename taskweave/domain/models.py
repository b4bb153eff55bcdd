"""Domain models for the task aggregator."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, Flag, auto
from typing import Optional, Sequence, Union

from .errors import ErrorKind, ProviderError


class TaskStatus(Enum):
    """Task status values shared by every provider."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def is_closed(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.CANCELLED)


class TaskPriority(Enum):
    """Task priority levels, lowest first."""

    LOWEST = "lowest"
    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    HIGHEST = "highest"

    @property
    def rank(self) -> int:
        """Numeric rank, higher means more important."""
        return _PRIORITY_ORDER.index(self)


_PRIORITY_ORDER = list(TaskPriority)


class DueState(Enum):
    """Classification of a due date relative to now, most urgent first."""

    OVERDUE = "overdue"
    TODAY = "today"
    SOON = "soon"
    NONE = "none"

    @property
    def severity(self) -> int:
        return _DUE_STATE_ORDER.index(self)


_DUE_STATE_ORDER = list(DueState)


class Capability(Flag):
    """Operations a provider (or a single task) supports."""

    NONE = 0
    LIST = auto()
    CREATE = auto()
    UPDATE = auto()
    DELETE = auto()
    CHANGE_STATUS = auto()

    @classmethod
    def all(cls) -> "Capability":
        return cls.LIST | cls.CREATE | cls.UPDATE | cls.DELETE | cls.CHANGE_STATUS

    def names(self) -> list[str]:
        return [c.name.lower() for c in Capability if c.name != "NONE" and c in self]


@dataclass(frozen=True)
class TaskId:
    """Global task identity: the owning provider plus its native id."""

    provider_id: str
    native_id: str

    @classmethod
    def parse(cls, value: str) -> "TaskId":
        """Parse a ``provider:native`` reference."""
        provider_id, sep, native_id = value.partition(":")
        if not sep or not provider_id or not native_id:
            raise ValueError(f"Invalid task reference: {value!r}")
        return cls(provider_id, native_id)

    def __str__(self) -> str:
        return f"{self.provider_id}:{self.native_id}"


@dataclass(frozen=True)
class Project:
    """A project, list, repository, calendar or note owned by one provider."""

    id: str
    name: str
    provider_id: str


@dataclass
class Task:
    """Provider-agnostic task entity.

    Instances handed out in a snapshot are treated as immutable; mutations
    produce new instances via ``dataclasses.replace``.
    """

    id: TaskId
    title: str
    status: TaskStatus
    capabilities: Capability = Capability.LIST
    description: Optional[str] = None
    project: Optional[Project] = None
    priority: Optional[TaskPriority] = None
    due: Optional[datetime] = None
    due_state: DueState = DueState.NONE
    url: Optional[str] = None
    labels: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)  # adapter-private: href, etag, line ...

    @property
    def provider_id(self) -> str:
        return self.id.provider_id

    @property
    def native_id(self) -> str:
        return self.id.native_id

    def can(self, capability: Capability) -> bool:
        """Check whether the task allows the given operation."""
        return capability in self.capabilities


@dataclass
class TaskDraft:
    """Fields for a task that does not exist yet."""

    title: str
    description: Optional[str] = None
    project_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due: Optional[datetime] = None


@dataclass
class ChangeSet:
    """Partial update for an existing task. ``None`` means unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due: Optional[datetime] = None
    clear_due: bool = False

    def is_empty(self) -> bool:
        return (
            self.title is None
            and self.description is None
            and self.priority is None
            and self.due is None
            and not self.clear_due
        )

    def apply_to(self, task: Task) -> Task:
        """Return a copy of the task with the changes applied locally."""
        updated = replace(task, labels=list(task.labels), metadata=dict(task.metadata))
        if self.title is not None:
            updated.title = self.title
        if self.description is not None:
            updated.description = self.description
        if self.priority is not None:
            updated.priority = self.priority
        if self.clear_due:
            updated.due = None
        elif self.due is not None:
            updated.due = self.due
        return updated


@dataclass
class TaskFilter:
    """Filter criteria over the merged task list. Empty criteria match all."""

    statuses: Optional[list[TaskStatus]] = None
    provider_ids: Optional[list[str]] = None
    project_ids: Optional[list[str]] = None
    due_states: Optional[list[DueState]] = None
    due_after: Optional[datetime] = None
    due_before: Optional[datetime] = None
    text: Optional[str] = None

    def matches(self, task: Task) -> bool:
        """Check whether a task satisfies every criterion."""
        if self.statuses and task.status not in self.statuses:
            return False
        if self.provider_ids and task.provider_id not in self.provider_ids:
            return False
        if self.project_ids:
            if task.project is None or task.project.id not in self.project_ids:
                return False
        if self.due_states and task.due_state not in self.due_states:
            return False
        if self.due_after and (task.due is None or task.due < self.due_after):
            return False
        if self.due_before and (task.due is None or task.due > self.due_before):
            return False
        if self.text:
            needle = self.text.casefold()
            haystack = " ".join(
                part for part in (task.title, task.description or "", *task.labels)
            ).casefold()
            if needle not in haystack:
                return False
        return True

    def wants_status(self, status: TaskStatus) -> bool:
        """Used by adapters that fetch open and closed items separately."""
        return not self.statuses or status in self.statuses


@dataclass(frozen=True)
class ItemError:
    """A single native record an adapter could not translate."""

    native_id: str
    message: str


@dataclass
class TaskListing:
    """Result of one provider's ``list_tasks`` call."""

    tasks: list[Task] = field(default_factory=list)
    item_errors: list[ItemError] = field(default_factory=list)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one provider during a refresh."""

    provider_id: str
    provider_name: str
    tasks: tuple[Task, ...] = ()
    item_errors: tuple[ItemError, ...] = ()
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MergedSnapshot:
    """Sorted, unfiltered union of every provider's tasks from one refresh cycle."""

    tasks: tuple[Task, ...]
    results: tuple[FetchResult, ...]
    fetched_at: datetime

    @property
    def failures(self) -> dict[str, ProviderError]:
        """Provider id to error for every provider that failed."""
        return {r.provider_id: r.error for r in self.results if r.error is not None}

    @property
    def item_errors(self) -> dict[str, tuple[ItemError, ...]]:
        return {r.provider_id: r.item_errors for r in self.results if r.item_errors}

    @property
    def all_failed(self) -> bool:
        """True when there were providers and none of them succeeded."""
        return bool(self.results) and all(not r.ok for r in self.results)

    def find(self, task_id: TaskId) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def patched(self, task: Task) -> "MergedSnapshot":
        """Return a snapshot with ``task`` replacing (or added beside) its old version."""
        from .ordering import sort_tasks

        others = [t for t in self.tasks if t.id != task.id]
        return replace(self, tasks=tuple(sort_tasks([*others, task])))

    def without(self, task_id: TaskId) -> "MergedSnapshot":
        return replace(self, tasks=tuple(t for t in self.tasks if t.id != task_id))


TaskCollection = Union["MergedSnapshot", Sequence[Task]]


def unsupported(provider_id: str, operation: str) -> ProviderError:
    """Build the error raised when an operation is outside a capability set."""
    return ProviderError(
        ErrorKind.UNSUPPORTED,
        f"{operation} is not supported",
        provider_id=provider_id,
    )
