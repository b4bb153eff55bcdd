"""Shared pytest fixtures."""

import pytest
import httpx
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from taskweave.domain.models import Project, Task, TaskId, TaskPriority, TaskStatus
from taskweave.providers.memory import InMemoryProvider


NOW = datetime(2025, 3, 12, 10, 30, tzinfo=timezone.utc)  # a Wednesday


@pytest.fixture
def now() -> datetime:
    """Fixed point in time used by clocks in tests."""
    return NOW


@pytest.fixture
def clock():
    """Clock returning the fixed test time."""
    return lambda: NOW


@pytest.fixture
def sample_task() -> Task:
    """Create a sample task for testing."""
    return Task(
        id=TaskId("mem", "1"),
        title="Test task",
        status=TaskStatus.NOT_STARTED,
        priority=TaskPriority.MEDIUM,
        project=Project("inbox", "Inbox", "mem"),
        created_at=NOW,
    )


@pytest.fixture
def sample_task_with_due_date() -> Task:
    """Create a sample task with a due date."""
    return Task(
        id=TaskId("mem", "2"),
        title="Task with due date",
        status=TaskStatus.NOT_STARTED,
        priority=TaskPriority.HIGH,
        due=NOW + timedelta(days=1),
        created_at=NOW,
    )


@pytest.fixture
def memory_provider(clock) -> InMemoryProvider:
    """In-memory provider with the fixed clock."""
    return InMemoryProvider("mem", name="Memory", clock=clock)


def make_response(status_code=200, json_data=None, content=b"", headers=None):
    """Build a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.content = content
    response.headers = headers or {}
    return response


@pytest.fixture
def http_response():
    """Factory for mock httpx responses."""
    return make_response


@pytest.fixture
def mock_client():
    """Create mock HTTP client."""
    return AsyncMock(spec=httpx.AsyncClient)
