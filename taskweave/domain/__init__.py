"""Domain models and protocols."""

from .errors import ErrorKind, ProviderError
from .models import (
    Capability,
    ChangeSet,
    DueState,
    FetchResult,
    ItemError,
    MergedSnapshot,
    Project,
    Task,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskListing,
    TaskPriority,
    TaskStatus,
)
from .due import DuePreset, classify_due
from .ordering import sort_tasks, task_sort_key
from .protocols import TaskProvider

__all__ = [
    "Capability",
    "ChangeSet",
    "DuePreset",
    "DueState",
    "ErrorKind",
    "FetchResult",
    "ItemError",
    "MergedSnapshot",
    "Project",
    "ProviderError",
    "Task",
    "TaskDraft",
    "TaskFilter",
    "TaskId",
    "TaskListing",
    "TaskPriority",
    "TaskProvider",
    "TaskStatus",
    "classify_due",
    "sort_tasks",
    "task_sort_key",
]
