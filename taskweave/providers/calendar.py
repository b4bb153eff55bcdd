"""iCalendar helpers shared by the iCal and CalDAV adapters."""

from datetime import date, datetime
from typing import Any, Optional
import uuid

from icalendar import Calendar, Todo

from ..domain.due import date_to_datetime, ensure_aware
from ..domain.models import ChangeSet, TaskDraft, TaskPriority, TaskStatus


PRODID = "-//taskweave//taskweave//EN"

_STATUS_FROM_ICAL = {
    "NEEDS-ACTION": TaskStatus.NOT_STARTED,
    "IN-PROCESS": TaskStatus.IN_PROGRESS,
    "COMPLETED": TaskStatus.DONE,
    "CANCELLED": TaskStatus.CANCELLED,
}
_STATUS_TO_ICAL = {v: k for k, v in _STATUS_FROM_ICAL.items()}

_PRIORITY_TO_ICAL = {
    TaskPriority.HIGHEST: 1,
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 4,
    TaskPriority.NORMAL: 0,
    TaskPriority.LOW: 6,
    TaskPriority.LOWEST: 8,
}


def priority_from_ical(value: int) -> TaskPriority:
    """RFC 5545 priority (1 highest, 9 lowest, 0 undefined) to TaskPriority."""
    if value in (0, 5):
        return TaskPriority.NORMAL
    if value == 1:
        return TaskPriority.HIGHEST
    if value in (2, 3):
        return TaskPriority.HIGH
    if value == 4:
        return TaskPriority.MEDIUM
    if value in (6, 7):
        return TaskPriority.LOW
    if value >= 8:
        return TaskPriority.LOWEST
    raise ValueError(f"invalid priority {value}")


def priority_to_ical(priority: TaskPriority) -> int:
    return _PRIORITY_TO_ICAL[priority]


def status_to_ical(status: TaskStatus) -> str:
    return _STATUS_TO_ICAL[status]


def parse_calendar(text: Any) -> Calendar:
    """Parse iCalendar text, raising ValueError when it is not a calendar."""
    calendar = Calendar.from_ical(text)
    if calendar.name != "VCALENDAR":
        raise ValueError(f"expected VCALENDAR, got {calendar.name}")
    return calendar


def to_datetime(value: Any) -> Optional[datetime]:
    """Normalise a decoded DATE or DATE-TIME value."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return date_to_datetime(value)
    raise ValueError(f"unsupported date value {value!r}")


def _decoded(component, name: str) -> Any:
    if name not in component:
        return None
    return component.decoded(name)


def _categories(component) -> list[str]:
    raw = component.get("CATEGORIES")
    if raw is None:
        return []
    values = raw if isinstance(raw, list) else [raw]
    labels: list[str] = []
    for value in values:
        labels.extend(str(cat) for cat in getattr(value, "cats", [value]))
    return labels


def component_status(component) -> TaskStatus:
    """Status of a VTODO or VEVENT. A COMPLETED timestamp implies DONE."""
    raw = component.get("STATUS")
    if component.name == "VEVENT":
        if raw is not None and str(raw).upper() == "CANCELLED":
            return TaskStatus.CANCELLED
        return TaskStatus.NOT_STARTED

    if "COMPLETED" in component:
        return TaskStatus.DONE
    if raw is None:
        return TaskStatus.NOT_STARTED
    try:
        return _STATUS_FROM_ICAL[str(raw).upper()]
    except KeyError:
        raise ValueError(f"unknown STATUS {raw}") from None


def component_uid(component) -> str:
    uid = component.get("UID")
    if not uid:
        raise ValueError(f"{component.name} without UID")
    recurrence = component.get("RECURRENCE-ID")
    if recurrence is not None:
        return f"{uid}@{recurrence.to_ical().decode()}"
    return str(uid)


def component_fields(component) -> dict:
    """Task fields decoded from a VTODO or VEVENT component.

    Raises ValueError (or KeyError) for components that cannot be shown
    as a task.
    """
    summary = component.get("SUMMARY")
    if not summary:
        raise ValueError(f"{component.name} without SUMMARY")

    due = _decoded(component, "DUE") if component.name == "VTODO" else None
    if due is None:
        due = _decoded(component, "DTSTART")

    priority = component.get("PRIORITY")
    return {
        "title": str(summary),
        "status": component_status(component),
        "description": str(component["DESCRIPTION"]) if "DESCRIPTION" in component else None,
        "priority": priority_from_ical(int(priority)) if priority is not None else None,
        "due": to_datetime(due),
        "url": str(component["URL"]) if "URL" in component else None,
        "labels": _categories(component),
        "created_at": to_datetime(_decoded(component, "CREATED")),
        "completed_at": to_datetime(_decoded(component, "COMPLETED")),
    }


def task_components(calendar: Calendar) -> list:
    """VTODO and VEVENT components of a calendar, in document order."""
    return [c for c in calendar.walk() if c.name in ("VTODO", "VEVENT")]


def _set(component, name: str, value: Any) -> None:
    component.pop(name, None)
    if value is not None:
        component.add(name, value)


def new_todo_calendar(draft: TaskDraft, now: datetime) -> tuple[str, Calendar]:
    """Build a calendar holding one VTODO for a draft; returns (uid, calendar)."""
    uid = str(uuid.uuid4())
    todo = Todo()
    todo.add("UID", uid)
    todo.add("DTSTAMP", now)
    todo.add("CREATED", now)
    todo.add("SUMMARY", draft.title)
    todo.add("STATUS", status_to_ical(TaskStatus.NOT_STARTED))
    if draft.description:
        todo.add("DESCRIPTION", draft.description)
    if draft.priority is not None:
        todo.add("PRIORITY", priority_to_ical(draft.priority))
    if draft.due is not None:
        todo.add("DUE", draft.due)

    calendar = Calendar()
    calendar.add("PRODID", PRODID)
    calendar.add("VERSION", "2.0")
    calendar.add_component(todo)
    return uid, calendar


def apply_changes(component, changes: ChangeSet, now: datetime) -> None:
    """Write a change set into a VTODO in place."""
    if changes.title is not None:
        _set(component, "SUMMARY", changes.title)
    if changes.description is not None:
        _set(component, "DESCRIPTION", changes.description or None)
    if changes.priority is not None:
        _set(component, "PRIORITY", priority_to_ical(changes.priority))
    if changes.clear_due:
        component.pop("DUE", None)
    elif changes.due is not None:
        _set(component, "DUE", changes.due)
    _set(component, "DTSTAMP", now)
    _set(component, "LAST-MODIFIED", now)


def apply_status(component, status: TaskStatus, now: datetime) -> None:
    """Set STATUS on a VTODO and keep COMPLETED consistent with it."""
    _set(component, "STATUS", status_to_ical(status))
    _set(component, "COMPLETED", now if status is TaskStatus.DONE else None)
    _set(component, "DTSTAMP", now)
    _set(component, "LAST-MODIFIED", now)
