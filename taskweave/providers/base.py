"""Shared behaviour for provider adapters."""

from datetime import datetime
from typing import Any, Callable, Optional
import logging

import httpx

from ..domain.due import DEFAULT_SOON_DAYS, classify_due, ensure_aware, utc_now
from ..domain.errors import ErrorKind, ProviderError
from ..domain.models import (
    Capability,
    ChangeSet,
    Project,
    Task,
    TaskDraft,
    TaskStatus,
    unsupported,
)


logger = logging.getLogger(__name__)


def classify_status(status_code: int) -> Optional[ErrorKind]:
    """Map an HTTP status code to an error kind (None for success)."""
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code in (404, 410):
        return ErrorKind.NOT_FOUND
    if status_code in (409, 412):
        return ErrorKind.CONFLICT
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.NETWORK
    return ErrorKind.MALFORMED


class BaseProvider:
    """Base class for adapters.

    Subclasses set ``type_name``, ``default_capabilities`` and
    ``default_statuses`` and override the operations they support. The
    defaults reject every mutation with ``ErrorKind.UNSUPPORTED``.
    """

    type_name = "base"
    is_remote = True
    default_capabilities = Capability.LIST
    default_statuses: frozenset[TaskStatus] = frozenset()

    def __init__(
        self,
        provider_id: str,
        *,
        name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        soon_days: int = DEFAULT_SOON_DAYS,
    ) -> None:
        self._provider_id = provider_id
        self._name = name or provider_id
        self._clock = clock or utc_now
        self._soon_days = soon_days

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider_id={self._provider_id!r})"

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def capabilities(self) -> Capability:
        return self.default_capabilities

    @property
    def supported_statuses(self) -> frozenset[TaskStatus]:
        return self.default_statuses

    async def list_projects(self) -> list[Project]:
        return []

    async def create_task(self, draft: TaskDraft) -> Task:
        raise unsupported(self.provider_id, "create")

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        raise unsupported(self.provider_id, "update")

    async def delete_task(self, task: Task) -> None:
        raise unsupported(self.provider_id, "delete")

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        raise unsupported(self.provider_id, "change_status")

    def _error(self, kind: ErrorKind, message: str) -> ProviderError:
        return ProviderError(kind, message, provider_id=self.provider_id)

    def _require(self, capability: Capability, operation: str) -> None:
        if capability not in self.capabilities:
            raise unsupported(self.provider_id, operation)

    def _require_status(self, status: TaskStatus) -> None:
        self._require(Capability.CHANGE_STATUS, "change_status")
        if status not in self.supported_statuses:
            raise self._error(
                ErrorKind.UNSUPPORTED,
                f"status {status.value} is not supported by {self.type_name}",
            )

    def _project(self, project_id: str, project_name: str) -> Project:
        return Project(id=project_id, name=project_name, provider_id=self.provider_id)

    def _finalize(self, task: Task, now: Optional[datetime] = None) -> Task:
        """Normalise the due date, classify it and clamp capabilities."""
        if task.due is not None:
            task.due = ensure_aware(task.due)
        task.due_state = classify_due(task.due, now or self._clock(), self._soon_days)
        task.capabilities = task.capabilities & self.capabilities
        return task


class HttpProvider(BaseProvider):
    """Base class for adapters talking to a REST backend via httpx."""

    timeout = 10.0

    def __init__(
        self,
        provider_id: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_headers(self) -> dict:
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client:
            return self._http_client
        return httpx.AsyncClient()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and translate transport and status failures."""
        headers = {**self._get_headers(), **kwargs.pop("headers", {})}
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                timeout=kwargs.pop("timeout", self.timeout),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise self._error(ErrorKind.NETWORK, f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise self._error(ErrorKind.NETWORK, f"{method} {url} failed: {e}") from e
        finally:
            if self._owns_client and not self._http_client:
                await client.aclose()

        kind = classify_status(response.status_code)
        if kind is not None:
            logger.warning(
                f"{self.provider_id}: {method} {url} returned HTTP {response.status_code}"
            )
            raise self._error(kind, f"{method} {url} returned HTTP {response.status_code}")
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid JSON: {e}") from e
