"""Tests for the iCalendar helpers and ICalProvider."""

import pytest

from taskweave.domain.errors import ErrorKind, ProviderError
from taskweave.domain.models import (
    Capability,
    DueState,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from taskweave.providers.calendar import (
    new_todo_calendar,
    priority_from_ical,
    priority_to_ical,
)
from taskweave.providers.ical import ICalProvider


FEED = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//Test//EN",
    "X-WR-CALNAME:Team",
    "BEGIN:VTODO",
    "UID:todo-1",
    "SUMMARY:Renew passport",
    "DUE;VALUE=DATE:20250311",
    "PRIORITY:1",
    "CATEGORIES:admin,travel",
    "STATUS:NEEDS-ACTION",
    "END:VTODO",
    "BEGIN:VTODO",
    "UID:todo-2",
    "SUMMARY:File taxes",
    "STATUS:NEEDS-ACTION",
    "COMPLETED:20250310T120000Z",
    "END:VTODO",
    "BEGIN:VEVENT",
    "UID:event-1",
    "SUMMARY:Standup",
    "DTSTART:20250312T090000Z",
    "END:VEVENT",
    "BEGIN:VTODO",
    "UID:todo-1",
    "SUMMARY:Duplicate",
    "END:VTODO",
    "BEGIN:VTODO",
    "UID:todo-3",
    "END:VTODO",
    "END:VCALENDAR",
    "",
]).encode()


class TestPriorityMapping:
    """Tests for iCalendar priority conversion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, TaskPriority.NORMAL),
            (1, TaskPriority.HIGHEST),
            (2, TaskPriority.HIGH),
            (4, TaskPriority.MEDIUM),
            (5, TaskPriority.NORMAL),
            (7, TaskPriority.LOW),
            (9, TaskPriority.LOWEST),
        ],
    )
    def test_from_ical(self, value, expected):
        assert priority_from_ical(value) == expected

    def test_negative_is_invalid(self):
        with pytest.raises(ValueError):
            priority_from_ical(-1)

    def test_to_ical(self):
        assert priority_to_ical(TaskPriority.HIGHEST) == 1
        assert priority_to_ical(TaskPriority.NORMAL) == 0
        assert priority_to_ical(TaskPriority.LOWEST) == 8


class TestNewTodoCalendar:
    """Tests for building a VTODO from a draft."""

    def test_builds_single_todo(self, now):
        uid, calendar = new_todo_calendar(
            TaskDraft(title="Water plants", priority=TaskPriority.HIGH, due=now), now
        )

        todos = list(calendar.walk("VTODO"))
        assert len(todos) == 1
        assert str(todos[0]["UID"]) == uid
        assert str(todos[0]["SUMMARY"]) == "Water plants"
        assert str(todos[0]["STATUS"]) == "NEEDS-ACTION"
        assert int(todos[0]["PRIORITY"]) == 3


class TestICalProvider:
    """Tests for ICalProvider."""

    @pytest.fixture
    def provider(self, mock_client, clock) -> ICalProvider:
        return ICalProvider(
            "team", "webcal://example.com/feed.ics", name="Team calendar",
            http_client=mock_client, clock=clock,
        )

    @pytest.mark.asyncio
    async def test_list_feed(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(content=FEED)

        listing = await provider.list_tasks()

        tasks = {t.native_id: t for t in listing.tasks}
        assert set(tasks) == {"todo-1", "todo-2", "event-1"}

        passport = tasks["todo-1"]
        assert passport.title == "Renew passport"
        assert passport.priority == TaskPriority.HIGHEST
        assert passport.due_state == DueState.OVERDUE
        assert passport.labels == ["admin", "travel"]
        assert passport.project.name == "Team"
        assert passport.capabilities == Capability.LIST

        assert tasks["todo-2"].status == TaskStatus.DONE
        assert tasks["event-1"].status == TaskStatus.NOT_STARTED
        assert tasks["event-1"].due_state == DueState.TODAY
        assert tasks["event-1"].metadata["component"] == "VEVENT"

        assert {e.native_id for e in listing.item_errors} == {"todo-1", "todo-3"}

    @pytest.mark.asyncio
    async def test_webcal_scheme_rewritten(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(content=FEED)

        await provider.list_tasks()

        call = mock_client.request.call_args
        assert call.args == ("GET", "https://example.com/feed.ics")
        assert call.kwargs["follow_redirects"] is True

    @pytest.mark.asyncio
    async def test_not_a_calendar(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(content=b"<html>gone</html>")

        with pytest.raises(ProviderError) as exc_info:
            await provider.list_tasks()

        assert exc_info.value.kind == ErrorKind.MALFORMED

    @pytest.mark.asyncio
    async def test_feed_missing(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(status_code=404)

        with pytest.raises(ProviderError) as exc_info:
            await provider.list_tasks()

        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_read_only(self, provider, sample_task):
        with pytest.raises(ProviderError) as exc_info:
            await provider.change_status(sample_task, TaskStatus.DONE)

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_list_projects(self, provider):
        projects = await provider.list_projects()

        assert [p.name for p in projects] == ["Team calendar"]
