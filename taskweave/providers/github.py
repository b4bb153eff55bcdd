"""GitHub issues adapter."""

from typing import Any, Optional
import logging

import httpx

from ..domain.due import parse_datetime
from ..domain.errors import ErrorKind
from ..domain.models import (
    Capability,
    ChangeSet,
    ItemError,
    Project,
    Task,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskListing,
    TaskStatus,
)
from .base import HttpProvider


logger = logging.getLogger(__name__)

PER_PAGE = 100

_STATE_FOR_STATUS = {
    TaskStatus.NOT_STARTED: {"state": "open", "state_reason": "reopened"},
    TaskStatus.DONE: {"state": "closed", "state_reason": "completed"},
    TaskStatus.CANCELLED: {"state": "closed", "state_reason": "not_planned"},
}


def issue_status(issue: dict) -> TaskStatus:
    """Map issue state and close reason to a TaskStatus."""
    state = issue["state"]
    if state == "open":
        return TaskStatus.NOT_STARTED
    if state == "closed":
        if issue.get("state_reason") == "not_planned":
            return TaskStatus.CANCELLED
        return TaskStatus.DONE
    raise ValueError(f"unknown issue state {state!r}")


class GitHubIssuesProvider(HttpProvider):
    """Adapter for the issues of a single GitHub repository.

    Issues carry no priority and their due date comes from the milestone,
    so edits are limited to title and description. Pull requests returned
    by the issues endpoint are skipped.
    """

    type_name = "github"
    default_capabilities = (
        Capability.LIST | Capability.CREATE | Capability.UPDATE | Capability.CHANGE_STATUS
    )
    default_statuses = frozenset(_STATE_FOR_STATUS)

    def __init__(
        self,
        provider_id: str,
        api_key: str,
        repository: str,
        *,
        base_url: str = "https://api.github.com",
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._api_key = api_key
        self._repository = repository
        self._repo_url = f"{base_url.rstrip('/')}/repos/{repository}"

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def project(self) -> Project:
        return self._project(self._repository, self._repository)

    async def list_projects(self) -> list[Project]:
        return [self.project]

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        state = "open"
        if hint is not None and hint.statuses and any(s.is_closed for s in hint.statuses):
            state = "all"

        now = self._clock()
        listing = TaskListing()
        page = 1
        while True:
            response = await self._request(
                "GET",
                f"{self._repo_url}/issues",
                params={"state": state, "page": page, "per_page": PER_PAGE},
            )
            batch = self._json(response)
            if not isinstance(batch, list):
                raise self._error(ErrorKind.MALFORMED, "expected a list of issues")
            if not batch:
                return listing

            for issue in batch:
                if isinstance(issue, dict) and "pull_request" in issue:
                    continue
                try:
                    listing.tasks.append(self._finalize(self._to_task(issue), now))
                except (KeyError, TypeError, ValueError) as e:
                    native_id = str(issue.get("number", "?")) if isinstance(issue, dict) else "?"
                    logger.warning(f"{self.provider_id}: skipping issue {native_id}: {e}")
                    listing.item_errors.append(ItemError(native_id, str(e)))
            page += 1

    def _to_task(self, issue: dict) -> Task:
        milestone = issue.get("milestone") or {}
        return Task(
            id=TaskId(self.provider_id, str(issue["number"])),
            title=issue["title"],
            status=issue_status(issue),
            capabilities=self.capabilities,
            description=issue.get("body") or None,
            project=self.project,
            due=parse_datetime(milestone.get("due_on")),
            url=issue.get("html_url"),
            labels=[
                label["name"] if isinstance(label, dict) else str(label)
                for label in issue.get("labels") or []
            ],
            created_at=parse_datetime(issue.get("created_at")),
            completed_at=parse_datetime(issue.get("closed_at")),
        )

    def _decode(self, response: httpx.Response) -> Task:
        data = self._json(response)
        try:
            return self._finalize(self._to_task(data))
        except (KeyError, TypeError, ValueError) as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid issue record: {e}") from e

    def _reject_unmapped(self, priority, due, clear_due: bool = False) -> None:
        if priority is not None:
            raise self._error(ErrorKind.UNSUPPORTED, "issues have no priority")
        if due is not None or clear_due:
            raise self._error(ErrorKind.UNSUPPORTED, "issue due dates come from milestones")

    async def create_task(self, draft: TaskDraft) -> Task:
        self._require(Capability.CREATE, "create")
        self._reject_unmapped(draft.priority, draft.due)
        body: dict[str, Any] = {"title": draft.title}
        if draft.description:
            body["body"] = draft.description
        response = await self._request("POST", f"{self._repo_url}/issues", json=body)
        logger.info(f"{self.provider_id}: opened issue {draft.title!r}")
        return self._decode(response)

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        self._require(Capability.UPDATE, "update")
        self._reject_unmapped(changes.priority, changes.due, changes.clear_due)
        body: dict[str, Any] = {}
        if changes.title is not None:
            body["title"] = changes.title
        if changes.description is not None:
            body["body"] = changes.description
        response = await self._request(
            "PATCH", f"{self._repo_url}/issues/{task.native_id}", json=body
        )
        return self._decode(response)

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        response = await self._request(
            "PATCH",
            f"{self._repo_url}/issues/{task.native_id}",
            json=_STATE_FOR_STATUS[status],
        )
        return self._decode(response)
