"""Tests for GitHubIssuesProvider with mocked HTTP client."""

import pytest

from taskweave.domain.errors import ErrorKind, ProviderError
from taskweave.domain.models import (
    Capability,
    ChangeSet,
    TaskDraft,
    TaskFilter,
    TaskPriority,
    TaskStatus,
)
from taskweave.providers.github import GitHubIssuesProvider, issue_status


REPO_URL = "https://api.github.com/repos/acme/widgets"


def make_issue(number, state="open", **extra):
    issue = {
        "number": number,
        "title": f"Issue {number}",
        "state": state,
        "body": "Details",
        "html_url": f"https://github.com/acme/widgets/issues/{number}",
        "labels": [{"name": "bug"}],
        "created_at": "2025-03-01T12:00:00Z",
    }
    issue.update(extra)
    return issue


class TestIssueStatus:
    """Tests for issue_status."""

    def test_open(self):
        assert issue_status({"state": "open"}) == TaskStatus.NOT_STARTED

    def test_closed_completed(self):
        assert issue_status({"state": "closed", "state_reason": "completed"}) == TaskStatus.DONE

    def test_closed_not_planned(self):
        assert (
            issue_status({"state": "closed", "state_reason": "not_planned"})
            == TaskStatus.CANCELLED
        )

    def test_unknown(self):
        with pytest.raises(ValueError):
            issue_status({"state": "merged"})


class TestGitHubIssuesProvider:
    """Tests for GitHubIssuesProvider."""

    @pytest.fixture
    def provider(self, mock_client, clock) -> GitHubIssuesProvider:
        return GitHubIssuesProvider(
            "gh", "ghp_token", "acme/widgets", http_client=mock_client, clock=clock
        )

    def test_capabilities(self, provider):
        assert Capability.DELETE not in provider.capabilities
        assert provider.supported_statuses == {
            TaskStatus.NOT_STARTED, TaskStatus.DONE, TaskStatus.CANCELLED,
        }

    @pytest.mark.asyncio
    async def test_list_skips_pull_requests(self, provider, mock_client, http_response):
        mock_client.request.side_effect = [
            http_response(json_data=[
                make_issue(1, milestone={"due_on": "2025-03-14T07:00:00Z"}),
                make_issue(2, pull_request={"url": "..."}),
            ]),
            http_response(json_data=[]),
        ]

        listing = await provider.list_tasks()

        assert [t.native_id for t in listing.tasks] == ["1"]
        issue = listing.tasks[0]
        assert issue.labels == ["bug"]
        assert issue.project.id == "acme/widgets"
        assert issue.due.day == 14
        assert issue.priority is None

        first = mock_client.request.call_args_list[0]
        assert first.args == ("GET", f"{REPO_URL}/issues")
        assert first.kwargs["params"] == {"state": "open", "page": 1, "per_page": 100}
        assert first.kwargs["headers"]["Authorization"] == "Bearer ghp_token"

    @pytest.mark.asyncio
    async def test_closed_issues_only_when_asked(self, provider, mock_client, http_response):
        mock_client.request.side_effect = [
            http_response(json_data=[
                make_issue(3, state="closed", state_reason="not_planned",
                           closed_at="2025-03-11T00:00:00Z"),
            ]),
            http_response(json_data=[]),
        ]

        listing = await provider.list_tasks(TaskFilter(statuses=[TaskStatus.CANCELLED]))

        assert listing.tasks[0].status == TaskStatus.CANCELLED
        assert listing.tasks[0].completed_at is not None
        assert mock_client.request.call_args_list[0].kwargs["params"]["state"] == "all"

    @pytest.mark.asyncio
    async def test_bad_issue_becomes_item_error(self, provider, mock_client, http_response):
        mock_client.request.side_effect = [
            http_response(json_data=[make_issue(1), make_issue(4, state="weird")]),
            http_response(json_data=[]),
        ]

        listing = await provider.list_tasks()

        assert len(listing.tasks) == 1
        assert listing.item_errors[0].native_id == "4"

    @pytest.mark.asyncio
    async def test_rate_limited(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(status_code=429)

        with pytest.raises(ProviderError) as exc_info:
            await provider.list_tasks()

        assert exc_info.value.kind == ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_create(self, provider, mock_client, http_response):
        mock_client.request.return_value = http_response(
            status_code=201, json_data=make_issue(10, title="New issue")
        )

        created = await provider.create_task(TaskDraft(title="New issue", description="Details"))

        assert created.native_id == "10"
        call = mock_client.request.call_args
        assert call.args == ("POST", f"{REPO_URL}/issues")
        assert call.kwargs["json"] == {"title": "New issue", "body": "Details"}

    @pytest.mark.asyncio
    async def test_create_with_priority_unsupported(self, provider, mock_client):
        with pytest.raises(ProviderError) as exc_info:
            await provider.create_task(TaskDraft(title="x", priority=TaskPriority.HIGH))

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED
        mock_client.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_title(self, provider, mock_client, http_response, sample_task):
        mock_client.request.return_value = http_response(
            json_data=make_issue(1, title="Renamed")
        )

        updated = await provider.update_task(sample_task, ChangeSet(title="Renamed"))

        assert updated.title == "Renamed"
        call = mock_client.request.call_args
        assert call.args == ("PATCH", f"{REPO_URL}/issues/1")
        assert call.kwargs["json"] == {"title": "Renamed"}

    @pytest.mark.asyncio
    async def test_update_due_unsupported(self, provider, mock_client, sample_task):
        with pytest.raises(ProviderError) as exc_info:
            await provider.update_task(sample_task, ChangeSet(clear_due=True))

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_cancel(self, provider, mock_client, http_response, sample_task):
        mock_client.request.return_value = http_response(
            json_data=make_issue(1, state="closed", state_reason="not_planned")
        )

        updated = await provider.change_status(sample_task, TaskStatus.CANCELLED)

        assert updated.status == TaskStatus.CANCELLED
        assert mock_client.request.call_args.kwargs["json"] == {
            "state": "closed",
            "state_reason": "not_planned",
        }

    @pytest.mark.asyncio
    async def test_in_progress_unsupported(self, provider, sample_task):
        with pytest.raises(ProviderError) as exc_info:
            await provider.change_status(sample_task, TaskStatus.IN_PROGRESS)

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_delete_unsupported(self, provider, sample_task):
        with pytest.raises(ProviderError) as exc_info:
            await provider.delete_task(sample_task)

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED
