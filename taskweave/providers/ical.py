"""Read-only iCalendar subscription adapter."""

from typing import Any, Optional
import logging

from ..domain.errors import ErrorKind
from ..domain.models import (
    Capability,
    ItemError,
    Project,
    Task,
    TaskFilter,
    TaskId,
    TaskListing,
)
from .base import HttpProvider
from .calendar import component_fields, component_uid, parse_calendar, task_components


logger = logging.getLogger(__name__)


class ICalProvider(HttpProvider):
    """Adapter for a published ``.ics`` feed.

    Both VTODO and VEVENT components become tasks. The feed cannot be
    written to, so the only capability is LIST.
    """

    type_name = "ical"
    default_capabilities = Capability.LIST

    def __init__(self, provider_id: str, url: str, **kwargs: Any) -> None:
        super().__init__(provider_id, **kwargs)
        if url.startswith("webcal://"):
            url = "https://" + url[len("webcal://"):]
        self._url = url

    async def list_projects(self) -> list[Project]:
        return [self._project(self.provider_id, self.name)]

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        response = await self._request("GET", self._url, follow_redirects=True)
        try:
            calendar = parse_calendar(response.content)
        except ValueError as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid calendar: {e}") from e

        project = self._project(
            self.provider_id, str(calendar.get("X-WR-CALNAME") or self.name)
        )
        now = self._clock()
        listing = TaskListing()
        seen: set[str] = set()
        for index, component in enumerate(task_components(calendar)):
            try:
                uid = component_uid(component)
                if uid in seen:
                    raise ValueError(f"duplicate UID {uid}")
                seen.add(uid)
                task = Task(
                    id=TaskId(self.provider_id, uid),
                    capabilities=Capability.LIST,
                    project=project,
                    metadata={"component": component.name},
                    **component_fields(component),
                )
            except (KeyError, TypeError, ValueError) as e:
                native_id = str(component.get("UID") or f"#{index}")
                logger.warning(f"{self.provider_id}: skipping {component.name} {native_id}: {e}")
                listing.item_errors.append(ItemError(native_id, str(e)))
                continue
            listing.tasks.append(self._finalize(task, now))

        logger.debug(f"{self.provider_id}: {len(listing.tasks)} tasks from {self._url}")
        return listing
