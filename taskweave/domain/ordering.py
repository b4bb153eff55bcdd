"""Deterministic ordering of the merged task list."""

from datetime import datetime, timezone
from typing import Iterable

from .models import Task


_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def task_sort_key(task: Task) -> tuple:
    """Due state, dated before undated, due, priority (desc), project, title.

    Provider and native id close the key so that equal-looking tasks from
    different providers still have a fixed order.
    """
    priority_rank = task.priority.rank if task.priority is not None else -1
    return (
        task.due_state.severity,
        task.due is None,
        task.due if task.due is not None else _FAR_FUTURE,
        -priority_rank,
        task.project.name if task.project else "",
        task.title,
        task.provider_id,
        task.native_id,
    )


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=task_sort_key)
