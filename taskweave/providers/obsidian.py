"""Obsidian vault adapter: tasks are checklist lines in Markdown notes."""

import asyncio
import hashlib
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from urllib.parse import quote
import logging

from ..domain.due import date_to_datetime
from ..domain.errors import ErrorKind, ProviderError
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
from .base import BaseProvider
from .markdown import MarkdownTask, new_task_line, parse_line


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INBOX = "Inbox.md"


def task_native_id(relative_path: str, line_no: int) -> str:
    return hashlib.sha256(f"{relative_path}:{line_no}".encode()).hexdigest()


def note_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ObsidianProvider(BaseProvider):
    """Adapter for a local vault.

    File I/O runs in worker threads. Task ids are built from the note path
    and line number, so every write first re-reads the note and raises
    ``ErrorKind.CONFLICT`` if its content differs from what was listed.
    Tasks returned by a write carry the note's new digest; other tasks
    from the same note need a fresh listing after any change to it.
    """

    type_name = "obsidian"
    is_remote = False
    default_capabilities = Capability.all()
    default_statuses = frozenset(TaskStatus)

    def __init__(
        self,
        provider_id: str,
        path: str,
        *,
        inbox_file: str = DEFAULT_INBOX,
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_id, **kwargs)
        self._root = Path(path).expanduser().resolve()
        self._inbox_file = inbox_file
        self._write_lock = asyncio.Lock()

    async def _io(self, func: Callable[..., T], *args: Any) -> T:
        """Run blocking file work off the event loop and translate I/O errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except FileNotFoundError as e:
            raise self._error(ErrorKind.NOT_FOUND, f"{e.filename} not found") from e
        except OSError as e:
            raise self._error(ErrorKind.NETWORK, f"file access failed: {e}") from e
        except UnicodeDecodeError as e:
            raise self._error(ErrorKind.MALFORMED, f"note is not valid UTF-8: {e.reason}") from e

    def _notes(self) -> list[Path]:
        if not self._root.is_dir():
            raise FileNotFoundError(2, "vault not found", str(self._root))
        return sorted(
            p
            for p in self._root.rglob("*.md")
            if not any(part.startswith(".") for part in p.relative_to(self._root).parts)
        )

    def _relative(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    def _note_path(self, relative_path: str) -> Path:
        """Resolve a vault-relative note name, refusing anything outside the vault."""
        path = (self._root / relative_path).resolve()
        if path.suffix != ".md" or not path.is_relative_to(self._root):
            raise self._error(ErrorKind.NOT_FOUND, f"{relative_path} is not a note in this vault")
        return path

    def _note_project(self, relative_path: str) -> Project:
        return self._project(relative_path, Path(relative_path).stem)

    def _to_task(self, relative_path: str, parsed: MarkdownTask, digest: str) -> Task:
        return Task(
            id=TaskId(self.provider_id, task_native_id(relative_path, parsed.line_no)),
            title=parsed.title,
            status=parsed.status,
            capabilities=Capability.all(),
            project=self._note_project(relative_path),
            priority=parsed.priority,
            due=date_to_datetime(parsed.due) if parsed.due else None,
            url=(
                f"obsidian://open?vault={quote(self._root.name)}"
                f"&file={quote(relative_path)}"
            ),
            labels=parsed.tags,
            completed_at=date_to_datetime(parsed.completed) if parsed.completed else None,
            metadata={
                "path": relative_path,
                "line": parsed.line_no,
                "raw": parsed.raw,
                "digest": digest,
            },
        )

    def _scan(self) -> tuple[list[tuple[str, MarkdownTask, str]], list[ItemError]]:
        found = []
        errors = []
        for note in self._notes():
            relative_path = self._relative(note)
            try:
                text = note.read_text(encoding="utf-8")
            except UnicodeDecodeError as e:
                errors.append(
                    ItemError(relative_path, f"{relative_path} is not valid UTF-8: {e.reason}")
                )
                continue
            digest = note_digest(text)
            for line_no, line in enumerate(text.splitlines()):
                try:
                    parsed = parse_line(line, line_no)
                except ValueError as e:
                    errors.append(ItemError(task_native_id(relative_path, line_no), str(e)))
                    continue
                if parsed is not None:
                    found.append((relative_path, parsed, digest))
        return found, errors

    async def list_tasks(self, hint: Optional[TaskFilter] = None) -> TaskListing:
        found, errors = await self._io(self._scan)
        for error in errors:
            logger.warning(f"{self.provider_id}: {error.message}")
        now = self._clock()
        return TaskListing(
            tasks=[
                self._finalize(self._to_task(path, parsed, digest), now)
                for path, parsed, digest in found
            ],
            item_errors=errors,
        )

    async def list_projects(self) -> list[Project]:
        notes = await self._io(self._notes)
        return [self._note_project(self._relative(note)) for note in notes]

    def _locate(self, task: Task) -> tuple[Path, int, str, str]:
        try:
            return (
                self._note_path(task.metadata["path"]),
                int(task.metadata["line"]),
                task.metadata["raw"],
                task.metadata["digest"],
            )
        except KeyError as e:
            raise self._error(
                ErrorKind.NOT_FOUND, f"task {task.native_id} was not loaded from this vault"
            ) from e

    def _rewrite(
        self,
        path: Path,
        line_no: int,
        expected: str,
        digest: str,
        edit: Callable[[MarkdownTask], Optional[str]],
    ) -> tuple[Optional[MarkdownTask], str]:
        """Replace (or drop, when ``edit`` returns None) one task line."""
        text = path.read_text(encoding="utf-8")
        lines = text.splitlines(keepends=True)
        if (
            note_digest(text) != digest
            or line_no >= len(lines)
            or lines[line_no].rstrip("\r\n") != expected
        ):
            raise ProviderError(
                ErrorKind.CONFLICT,
                f"{self._relative(path)}:{line_no + 1} changed since it was loaded",
                provider_id=self.provider_id,
            )

        current = parse_line(lines[line_no], line_no)
        new_line = edit(current)
        if new_line is None:
            del lines[line_no]
        else:
            ending = lines[line_no][len(lines[line_no].rstrip("\r\n")):]
            lines[line_no] = new_line + ending
        text = "".join(lines)
        path.write_text(text, encoding="utf-8")
        parsed = parse_line(new_line, line_no) if new_line is not None else None
        return parsed, note_digest(text)

    async def _write(self, task: Task, edit: Callable[[MarkdownTask], Optional[str]]) -> Optional[Task]:
        path, line_no, expected, digest = self._locate(task)
        async with self._write_lock:
            parsed, new_digest = await self._io(
                self._rewrite, path, line_no, expected, digest, edit
            )
        if parsed is None:
            return None
        return self._finalize(self._to_task(self._relative(path), parsed, new_digest))

    def _reject_description(self, description: Optional[str]) -> None:
        if description:
            raise self._error(ErrorKind.UNSUPPORTED, "note tasks have no description")

    def _append(self, path: Path, line: str) -> tuple[int, str]:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = path.read_text(encoding="utf-8") if path.exists() else ""
        if content and not content.endswith("\n"):
            content += "\n"
        text = content + line + "\n"
        path.write_text(text, encoding="utf-8")
        return len(content.splitlines()), note_digest(text)

    async def create_task(self, draft: TaskDraft) -> Task:
        self._require(Capability.CREATE, "create")
        self._reject_description(draft.description)
        path = self._note_path(draft.project_id or self._inbox_file)
        if not self._root.is_dir():
            raise self._error(ErrorKind.NOT_FOUND, f"vault {self._root} not found")

        relative_path = self._relative(path)
        line = new_task_line(
            draft.title, draft.priority, draft.due.date() if draft.due else None
        )
        async with self._write_lock:
            line_no, digest = await self._io(self._append, path, line)
        logger.info(f"{self.provider_id}: added task to {relative_path}")
        return self._finalize(
            self._to_task(relative_path, parse_line(line, line_no), digest)
        )

    async def update_task(self, task: Task, changes: ChangeSet) -> Task:
        self._require(Capability.UPDATE, "update")
        self._reject_description(changes.description)

        def edit(current: MarkdownTask) -> str:
            if changes.title is not None:
                current.title = " ".join(changes.title.split())
            if changes.priority is not None:
                current.priority = changes.priority
            if changes.clear_due:
                current.due = None
            elif changes.due is not None:
                current.due = changes.due.date()
            return current.render()

        return await self._write(task, edit)

    async def change_status(self, task: Task, status: TaskStatus) -> Task:
        self._require_status(status)
        today: date = self._clock().date()
        return await self._write(task, lambda current: current.with_status(status, today).render())

    async def delete_task(self, task: Task) -> None:
        self._require(Capability.DELETE, "delete")
        await self._write(task, lambda current: None)
