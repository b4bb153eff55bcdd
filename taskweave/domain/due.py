"""Due date helpers: classification and quick presets."""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional

from .models import DueState


DEFAULT_SOON_DAYS = 7


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    """Midnight of the same day, keeping the timezone."""
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def date_to_datetime(value: date) -> datetime:
    """All-day dates are represented as midnight UTC."""
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse the date formats returned by REST backends.

    Accepts ``YYYY-MM-DD``, ISO datetimes with or without offset and a
    trailing ``Z``. Returns None for empty input; raises ValueError for
    anything else.
    """
    if not value:
        return None
    if len(value) == 10:
        return date_to_datetime(date.fromisoformat(value))
    return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))


def classify_due(
    due: Optional[datetime],
    now: datetime,
    soon_days: int = DEFAULT_SOON_DAYS,
) -> DueState:
    """Classify a due date against ``now`` by calendar day (UTC)."""
    if due is None:
        return DueState.NONE

    today = ensure_aware(now).astimezone(timezone.utc).date()
    day = ensure_aware(due).astimezone(timezone.utc).date()

    if day < today:
        return DueState.OVERDUE
    if day == today:
        return DueState.TODAY
    if day <= today + timedelta(days=soon_days):
        return DueState.SOON
    return DueState.NONE


class DuePreset(Enum):
    """Quick due date choices offered when creating or editing a task."""

    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEKEND = "this_weekend"
    NEXT_WEEK = "next_week"
    NO_DATE = "no_date"

    def resolve(self, now: datetime) -> Optional[datetime]:
        """Midnight of the target day, or None for NO_DATE."""
        if self is DuePreset.NO_DATE:
            return None

        weekday = now.weekday()  # Monday == 0
        if self is DuePreset.TODAY:
            target = now
        elif self is DuePreset.TOMORROW:
            target = now + timedelta(days=1)
        elif self is DuePreset.THIS_WEEKEND:
            target = now if weekday >= 5 else now + timedelta(days=5 - weekday)
        else:
            target = now + timedelta(days=7 - weekday)

        return start_of_day(target)
