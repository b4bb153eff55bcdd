"""CalDAV collection adapter."""

from dataclasses import dataclass
from typing import Any, Optional
import logging
import xml.etree.ElementTree as ET

import httpx

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
from .calendar import (
    apply_changes,
    apply_status,
    component_fields,
    component_uid,
    new_todo_calendar,
    parse_calendar,
    task_components,
)


logger = logging.getLogger(__name__)

DAV = "{DAV:}"
CALDAV = "{urn:ietf:params:xml:ns:caldav}"

CALENDAR_QUERY = """<?xml version="1.0" encoding="utf-8" ?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:getetag/>
    <c:calendar-data/>
  </d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR"/>
  </c:filter>
</c:calendar-query>
"""


@dataclass
class CalendarResource:
    """One calendar object resource from a multistatus response."""

    href: str
    etag: Optional[str]
    data: str


def parse_multistatus(body: bytes) -> list[CalendarResource]:
    """Extract href, etag and calendar data from a REPORT response.

    Raises ValueError for bodies that are not a DAV multistatus document.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ValueError(f"invalid XML: {e}") from e
    if root.tag != f"{DAV}multistatus":
        raise ValueError(f"unexpected root element {root.tag}")

    resources = []
    for response in root.findall(f"{DAV}response"):
        href = response.findtext(f"{DAV}href")
        etag = None
        data = None
        for propstat in response.findall(f"{DAV}propstat"):
            status = propstat.findtext(f"{DAV}status") or ""
            if " 200 " not in f"{status} ":
                continue
            prop = propstat.find(f"{DAV}prop")
            if prop is None:
                continue
            etag = prop.findtext(f"{DAV}getetag") or etag
            data = prop.findtext(f"{CALDAV}calendar-data") or data
        if href and data:
            resources.append(CalendarResource(href.strip(), etag, data))
    return resources


class CalDavProvider(HttpProvider):
    """Adapter for a single CalDAV calendar collection.

    VTODOs support every operation; VEVENTs are listed read-only. Writes
    carry the last seen ETag so concurrent edits made elsewhere surface
    as ``ErrorKind.CONFLICT`` instead of being overwritten.
    """

    type_name = "caldav"
    default_capabilities = Capability.all()
    default_statuses = frozenset(TaskStatus)

    def __init__(
        self,
        provider_id: str,
        url: str,
        *,
        login: Optional[str] = None,
        password: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._url = url if url.endswith("/") else url + "/"
        self._auth = httpx.BasicAuth(login, password or "") if login else None

    async def _dav(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._auth is not None:
            kwargs.setdefault("auth", self._auth)
        return await self._request(method, url, **kwargs)

    def _resolve(self, href: str) -> str:
        return str(httpx.URL(self._url).join(href))

    @property
    def project(self) -> Project:
        return self._project(self._url, self.name)

    async def list_projects(self) -> list[Project]:
        return [self.project]

    async def _resources(self) -> list[CalendarResource]:
        response = await self._dav(
            "REPORT",
            self._url,
            content=CALENDAR_QUERY.encode(),
            headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
        )
        try:
            return parse_multistatus(response.content)
        except ValueError as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid REPORT response: {e}") from e

    def _to_task(self, resource: CalendarResource) -> Task:
        calendar = parse_calendar(resource.data)
        components = [c for c in task_components(calendar) if "RECURRENCE-ID" not in c]
        if not components:
            raise ValueError("no VTODO or VEVENT in resource")
        component = components[0]
        is_todo = component.name == "VTODO"
        return Task(
            id=TaskId(self.provider_id, component_uid(component)),
            capabilities=self.capabilities if is_todo else Capability.LIST,
            project=self.project,
            metadata={
                "href": self._resolve(resource.href),
                "etag": resource.etag,
                "ical": resource.data,
                "component": component.name,
            },
            **component_fields(component),
        )

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        now = self._clock()
        listing = TaskListing()
        for resource in await self._resources():
            try:
                listing.tasks.append(self._finalize(self._to_task(resource), now))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"{self.provider_id}: skipping {resource.href}: {e}")
                listing.item_errors.append(ItemError(resource.href, str(e)))
        return listing

    async def _put(self, href: str, calendar, precondition: dict) -> Task:
        data = calendar.to_ical().decode()
        response = await self._dav(
            "PUT",
            href,
            content=data.encode(),
            headers={"Content-Type": "text/calendar; charset=utf-8", **precondition},
        )
        resource = CalendarResource(href, response.headers.get("ETag"), data)
        try:
            return self._finalize(self._to_task(resource))
        except (KeyError, TypeError, ValueError) as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid calendar data: {e}") from e

    def _if_match(self, task: Task) -> dict:
        etag = task.metadata.get("etag")
        return {"If-Match": etag} if etag else {}

    def _stored_todo(self, task: Task):
        """Re-parse the task's calendar and return it with its VTODO."""
        if "href" not in task.metadata or "ical" not in task.metadata:
            raise self._error(ErrorKind.NOT_FOUND, f"task {task.native_id} was not loaded from CalDAV")
        try:
            calendar = parse_calendar(task.metadata["ical"])
        except ValueError as e:
            raise self._error(ErrorKind.MALFORMED, f"invalid calendar data: {e}") from e
        for component in calendar.walk("VTODO"):
            if "RECURRENCE-ID" not in component:
                return calendar, component
        raise self._error(ErrorKind.UNSUPPORTED, "only VTODO entries can be modified")

    async def create_task(self, draft: TaskDraft) -> Task:
        self._require(Capability.CREATE, "create")
        uid, calendar = new_todo_calendar(draft, self._clock())
        task = await self._put(self._resolve(f"{uid}.ics"), calendar, {"If-None-Match": "*"})
        logger.info(f"{self.provider_id}: created VTODO {uid}")
        return task

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        self._require(Capability.UPDATE, "update")
        calendar, todo = self._stored_todo(task)
        apply_changes(todo, changes, self._clock())
        return await self._put(task.metadata["href"], calendar, self._if_match(task))

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        calendar, todo = self._stored_todo(task)
        apply_status(todo, status, self._clock())
        return await self._put(task.metadata["href"], calendar, self._if_match(task))

    async def delete_task(self, task: Task) -> None:
        self._require(Capability.DELETE, "delete")
        if "href" not in task.metadata:
            raise self._error(ErrorKind.NOT_FOUND, f"task {task.native_id} was not loaded from CalDAV")
        await self._dav("DELETE", task.metadata["href"], headers=self._if_match(task))
