"""Tests for ObsidianProvider against a temporary vault."""

import pytest
from datetime import timedelta

from taskweave.domain.errors import ErrorKind, ProviderError
from taskweave.domain.models import (
    ChangeSet,
    DueState,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from taskweave.providers.obsidian import ObsidianProvider, task_native_id


WORK_NOTE = (
    "# Work\n"
    "- [ ] Ship release 🔺 📅 2025-03-11\n"
    "- [/] Review PR #code\n"
    "not a task\n"
    "- [?] weird\n"
)


@pytest.fixture
def vault(tmp_path):
    """Create a small vault with a hidden folder."""
    root = tmp_path / "Vault"
    (root / "Projects").mkdir(parents=True)
    (root / ".obsidian").mkdir()
    (root / "Projects" / "Work.md").write_text(WORK_NOTE, encoding="utf-8")
    (root / "Home.md").write_text("- [x] Laundry ✅ 2025-03-10", encoding="utf-8")
    (root / ".obsidian" / "template.md").write_text("- [ ] Hidden\n", encoding="utf-8")
    return root


class TestObsidianProvider:
    """Tests for ObsidianProvider."""

    @pytest.fixture
    def provider(self, vault, clock) -> ObsidianProvider:
        return ObsidianProvider("vault", str(vault), clock=clock)

    async def titles(self, provider) -> dict:
        return {t.title: t for t in (await provider.list_tasks()).tasks}

    def test_is_local(self, provider):
        assert provider.is_remote is False

    @pytest.mark.asyncio
    async def test_list_tasks(self, provider):
        listing = await provider.list_tasks()

        tasks = {t.title: t for t in listing.tasks}
        assert set(tasks) == {"Ship release", "Review PR #code", "Laundry"}

        ship = tasks["Ship release"]
        assert ship.priority == TaskPriority.HIGHEST
        assert ship.due_state == DueState.OVERDUE
        assert ship.project.id == "Projects/Work.md"
        assert ship.project.name == "Work"
        assert ship.native_id == task_native_id("Projects/Work.md", 1)
        assert ship.url == "obsidian://open?vault=Vault&file=Projects/Work.md"

        assert tasks["Review PR #code"].status == TaskStatus.IN_PROGRESS
        assert tasks["Review PR #code"].labels == ["code"]
        assert tasks["Laundry"].status == TaskStatus.DONE
        assert tasks["Laundry"].completed_at is not None

        assert len(listing.item_errors) == 1
        assert listing.item_errors[0].native_id == task_native_id("Projects/Work.md", 4)

    @pytest.mark.asyncio
    async def test_missing_vault(self, tmp_path, clock):
        provider = ObsidianProvider("gone", str(tmp_path / "nope"), clock=clock)

        with pytest.raises(ProviderError) as exc_info:
            await provider.list_tasks()

        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_projects(self, provider):
        projects = await provider.list_projects()

        assert [p.id for p in projects] == ["Home.md", "Projects/Work.md"]

    @pytest.mark.asyncio
    async def test_complete_rewrites_line(self, provider, vault):
        ship = (await self.titles(provider))["Ship release"]

        done = await provider.change_status(ship, TaskStatus.DONE)

        assert done.status == TaskStatus.DONE
        assert done.id == ship.id
        lines = (vault / "Projects" / "Work.md").read_text(encoding="utf-8").splitlines()
        assert lines[1] == "- [x] Ship release 🔺 📅 2025-03-11 ✅ 2025-03-12"
        assert lines[3] == "not a task"

    @pytest.mark.asyncio
    async def test_update_keeps_other_text(self, provider, vault, now):
        review = (await self.titles(provider))["Review PR #code"]

        updated = await provider.update_task(
            review, ChangeSet(priority=TaskPriority.LOW, due=now + timedelta(days=2))
        )

        assert updated.priority == TaskPriority.LOW
        assert updated.due_state == DueState.SOON
        line = (vault / "Projects" / "Work.md").read_text(encoding="utf-8").splitlines()[2]
        assert line == "- [/] Review PR #code 🔽 📅 2025-03-14"

    @pytest.mark.asyncio
    async def test_clear_due(self, provider, vault):
        ship = (await self.titles(provider))["Ship release"]

        updated = await provider.update_task(ship, ChangeSet(clear_due=True))

        assert updated.due is None
        line = (vault / "Projects" / "Work.md").read_text(encoding="utf-8").splitlines()[1]
        assert line == "- [ ] Ship release 🔺"

    @pytest.mark.asyncio
    async def test_changed_line_is_conflict(self, provider, vault):
        ship = (await self.titles(provider))["Ship release"]
        note = vault / "Projects" / "Work.md"
        note.write_text(WORK_NOTE.replace("Ship release", "Ship hotfix"), encoding="utf-8")

        with pytest.raises(ProviderError) as exc_info:
            await provider.change_status(ship, TaskStatus.DONE)

        assert exc_info.value.kind == ErrorKind.CONFLICT
        assert "Ship hotfix" in note.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_delete_removes_line(self, provider, vault):
        review = (await self.titles(provider))["Review PR #code"]

        await provider.delete_task(review)

        content = (vault / "Projects" / "Work.md").read_text(encoding="utf-8")
        assert "Review PR" not in content
        assert content.startswith("# Work\n- [ ] Ship release")

    @pytest.mark.asyncio
    async def test_create_in_inbox(self, provider, vault, now):
        created = await provider.create_task(
            TaskDraft(title="Buy milk", priority=TaskPriority.HIGH, due=now)
        )

        assert created.native_id == task_native_id("Inbox.md", 0)
        assert created.project.id == "Inbox.md"
        assert (vault / "Inbox.md").read_text(encoding="utf-8") == (
            "- [ ] Buy milk ⏫ 📅 2025-03-12\n"
        )

    @pytest.mark.asyncio
    async def test_create_appends_to_note(self, provider, vault):
        created = await provider.create_task(TaskDraft(title="Fold", project_id="Home.md"))

        assert created.native_id == task_native_id("Home.md", 1)
        assert (vault / "Home.md").read_text(encoding="utf-8") == (
            "- [x] Laundry ✅ 2025-03-10\n- [ ] Fold\n"
        )

    @pytest.mark.asyncio
    async def test_description_unsupported(self, provider):
        with pytest.raises(ProviderError) as exc_info:
            await provider.create_task(TaskDraft(title="x", description="details"))

        assert exc_info.value.kind == ErrorKind.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_task_from_elsewhere(self, provider, sample_task):
        with pytest.raises(ProviderError) as exc_info:
            await provider.delete_task(sample_task)

        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_undecodable_note_is_item_error(self, provider, vault):
        (vault / "Bad.md").write_bytes(b"- [ ] caf\xe9\n")

        listing = await provider.list_tasks()

        assert "Ship release" in {t.title for t in listing.tasks}
        assert [e.native_id for e in listing.item_errors] == [
            "Bad.md",
            task_native_id("Projects/Work.md", 4),
        ]
        assert "UTF-8" in listing.item_errors[0].message

    @pytest.mark.asyncio
    async def test_only_good_notes_survive(self, tmp_path, clock):
        root = tmp_path / "Mixed"
        root.mkdir()
        (root / "Good.md").write_text("- [ ] good task\n", encoding="utf-8")
        (root / "Bad.md").write_bytes(b"- [ ] caf\xe9")
        provider = ObsidianProvider("mixed", str(root), clock=clock)

        listing = await provider.list_tasks()

        assert [t.title for t in listing.tasks] == ["good task"]
        assert len(listing.item_errors) == 1

    @pytest.mark.asyncio
    async def test_write_to_undecodable_note_is_malformed(self, provider, vault):
        ship = (await self.titles(provider))["Ship release"]
        (vault / "Projects" / "Work.md").write_bytes(b"- [ ] caf\xe9\n")

        with pytest.raises(ProviderError) as exc_info:
            await provider.change_status(ship, TaskStatus.DONE)

        assert exc_info.value.kind == ErrorKind.MALFORMED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("project_id", ["../escape.md", "Notes/../../escape.md", "Home.txt"])
    async def test_create_outside_vault_rejected(self, provider, vault, project_id):
        with pytest.raises(ProviderError) as exc_info:
            await provider.create_task(TaskDraft(title="x", project_id=project_id))

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert not (vault.parent / "escape.md").exists()
        assert not (vault / "Home.txt").exists()

    @pytest.mark.asyncio
    async def test_create_absolute_path_rejected(self, provider, tmp_path):
        outside = tmp_path / "outside.md"

        with pytest.raises(ProviderError) as exc_info:
            await provider.create_task(TaskDraft(title="x", project_id=str(outside)))

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert not outside.exists()

    @pytest.mark.asyncio
    async def test_stale_duplicate_line_is_conflict(self, provider, vault):
        note = vault / "Shopping.md"
        note.write_text("- [ ] buy milk\n- [ ] buy milk\n", encoding="utf-8")
        first = next(
            t for t in (await provider.list_tasks()).tasks
            if t.metadata["path"] == "Shopping.md" and t.metadata["line"] == 0
        )

        await provider.delete_task(first)
        with pytest.raises(ProviderError) as exc_info:
            await provider.delete_task(first)

        assert exc_info.value.kind == ErrorKind.CONFLICT
        assert note.read_text(encoding="utf-8") == "- [ ] buy milk\n"

    @pytest.mark.asyncio
    async def test_edited_task_can_be_edited_again(self, provider, vault):
        ship = (await self.titles(provider))["Ship release"]

        renamed = await provider.update_task(ship, ChangeSet(title="Ship 1.0"))
        done = await provider.change_status(renamed, TaskStatus.DONE)

        assert done.status == TaskStatus.DONE
        line = (vault / "Projects" / "Work.md").read_text(encoding="utf-8").splitlines()[1]
        assert line.startswith("- [x] Ship 1.0")
