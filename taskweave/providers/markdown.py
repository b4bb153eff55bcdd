"""Parser and writer for Obsidian-style Markdown task lines.

A task line looks like ``- [x] Water plants #home ⏫ 📅 2025-01-27 ✅ 2025-01-26``.
The character between the brackets is the status; the emoji markers carry
priority, due date and completion date. Everything else stays part of the
title and survives rewrites untouched.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional
import re

from ..domain.models import TaskPriority, TaskStatus


DUE_MARKER = "📅"
DONE_MARKER = "✅"

TASK_RE = re.compile(r"^(?P<prefix>\s*[-*+] \[)(?P<mark>.)\](?: (?P<body>.*))?$")
TAG_RE = re.compile(r"(?<!\S)#([\w/-]+)")

_STATUS_FROM_MARK = {
    " ": TaskStatus.NOT_STARTED,
    "x": TaskStatus.DONE,
    "X": TaskStatus.DONE,
    "/": TaskStatus.IN_PROGRESS,
    "-": TaskStatus.CANCELLED,
}
_MARK_FOR_STATUS = {
    TaskStatus.NOT_STARTED: " ",
    TaskStatus.DONE: "x",
    TaskStatus.IN_PROGRESS: "/",
    TaskStatus.CANCELLED: "-",
}

_PRIORITY_FROM_EMOJI = {
    "⏬": TaskPriority.LOWEST,
    "🔽": TaskPriority.LOW,
    "🔼": TaskPriority.MEDIUM,
    "⏫": TaskPriority.HIGH,
    "🔺": TaskPriority.HIGHEST,
}
_EMOJI_FOR_PRIORITY = {v: k for k, v in _PRIORITY_FROM_EMOJI.items()}
_PRIORITY_RE = re.compile(
    r"\s*(?<!\S)([" + "".join(_PRIORITY_FROM_EMOJI) + r"])(?=\s|$)"
)


def _marker_re(marker: str) -> re.Pattern:
    return re.compile(r"\s*" + re.escape(marker) + r"\s*(\d{4}-\d{2}-\d{2})")


_DUE_RE = _marker_re(DUE_MARKER)
_DONE_RE = _marker_re(DONE_MARKER)


def extract_date(body: str, pattern: re.Pattern) -> tuple[str, Optional[date]]:
    """Remove the last ``<emoji> YYYY-MM-DD`` marker and return its date."""
    matches = list(pattern.finditer(body))
    if not matches:
        return body, None
    last = matches[-1]
    value = date.fromisoformat(last.group(1))
    return body[: last.start()] + body[last.end():], value


def extract_priority(body: str) -> tuple[str, TaskPriority]:
    """Remove priority emojis; the last one wins, none means NORMAL."""
    found = _PRIORITY_RE.findall(body)
    if not found:
        return body, TaskPriority.NORMAL
    return _PRIORITY_RE.sub("", body), _PRIORITY_FROM_EMOJI[found[-1]]


@dataclass
class MarkdownTask:
    """A task line decoded from a note."""

    line_no: int
    raw: str
    prefix: str
    mark: str
    title: str
    priority: TaskPriority = TaskPriority.NORMAL
    due: Optional[date] = None
    completed: Optional[date] = None

    @property
    def status(self) -> TaskStatus:
        return _STATUS_FROM_MARK[self.mark]

    @property
    def tags(self) -> list[str]:
        return TAG_RE.findall(self.title)

    def render(self) -> str:
        """Serialize back into a single Markdown line."""
        parts = [f"{self.prefix}{self.mark}] {self.title}"]
        if self.priority is not TaskPriority.NORMAL:
            parts.append(_EMOJI_FOR_PRIORITY[self.priority])
        if self.due is not None:
            parts.append(f"{DUE_MARKER} {self.due.isoformat()}")
        if self.completed is not None:
            parts.append(f"{DONE_MARKER} {self.completed.isoformat()}")
        return " ".join(parts)

    def with_status(self, status: TaskStatus, today: date) -> "MarkdownTask":
        """Completing stamps today's date; any other status drops the stamp."""
        return replace(
            self,
            mark=_MARK_FOR_STATUS[status],
            completed=today if status is TaskStatus.DONE else None,
        )


def parse_line(line: str, line_no: int) -> Optional[MarkdownTask]:
    """Decode a task line.

    Returns None for lines that are not tasks and raises ValueError for
    task lines that cannot be decoded (unknown status, bad date, no text).
    """
    match = TASK_RE.match(line.rstrip("\r\n"))
    if match is None:
        return None

    mark = match.group("mark")
    if mark not in _STATUS_FROM_MARK:
        raise ValueError(f"unknown task status {mark!r} on line {line_no + 1}")

    body = match.group("body") or ""
    body, due = extract_date(body, _DUE_RE)
    body, completed = extract_date(body, _DONE_RE)
    body, priority = extract_priority(body)
    title = " ".join(body.split())
    if not title:
        raise ValueError(f"empty task on line {line_no + 1}")

    return MarkdownTask(
        line_no=line_no,
        raw=line.rstrip("\r\n"),
        prefix=match.group("prefix"),
        mark=mark,
        title=title,
        priority=priority,
        due=due,
        completed=completed,
    )


def new_task_line(
    title: str,
    priority: Optional[TaskPriority] = None,
    due: Optional[date] = None,
) -> str:
    return MarkdownTask(
        line_no=-1,
        raw="",
        prefix="- [",
        mark=" ",
        title=" ".join(title.split()),
        priority=priority or TaskPriority.NORMAL,
        due=due,
    ).render()
