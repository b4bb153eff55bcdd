"""CLI commands for the task aggregator."""

import asyncio
import json
import logging
import sys
from datetime import date, datetime
from typing import Optional

import click

from ..container import get_container
from ..domain.due import DuePreset, date_to_datetime, utc_now
from ..domain.errors import ProviderError
from ..domain.models import (
    ChangeSet,
    DueState,
    MergedSnapshot,
    Task,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskPriority,
    TaskStatus,
)


STATUS_ICONS = {
    TaskStatus.NOT_STARTED: "⬜",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.DONE: "✅",
    TaskStatus.CANCELLED: "🚫",
}

DUE_ICONS = {
    DueState.OVERDUE: "🔴",
    DueState.TODAY: "🟠",
    DueState.SOON: "🔵",
    DueState.NONE: "",
}

STATUS_CHOICES = [s.value for s in TaskStatus]
PRIORITY_CHOICES = [p.value for p in TaskPriority]
DUE_STATE_CHOICES = [d.value for d in DueState]


def setup_container():
    """Set up container with providers from settings."""
    from ..config.settings import get_settings
    from ..providers.factory import build_provider

    container = get_container()
    if container.is_configured:
        return

    settings = get_settings()
    soon_days = settings.engine.soon_days
    container.configure_providers(
        lambda: [
            build_provider(config, soon_days=soon_days)
            for config in settings.enabled_providers
        ]
    )


def run_async(coro):
    """Run async coroutine in sync context."""
    return asyncio.run(coro)


def parse_due(value: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a due option: a preset name or an ISO date."""
    key = value.strip().lower().replace("-", "_")
    try:
        return DuePreset(key).resolve(now or utc_now())
    except ValueError:
        pass
    try:
        return date_to_datetime(date.fromisoformat(value.strip()))
    except ValueError:
        presets = ", ".join(p.value for p in DuePreset)
        raise click.BadParameter(f"expected YYYY-MM-DD or one of: {presets}") from None


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def report_failures(snapshot: MergedSnapshot) -> None:
    """Print per-provider failures and skipped items as stderr banners."""
    for provider_id, error in snapshot.failures.items():
        click.echo(f"⚠️  {provider_id}: {error.kind.value}: {error.message}", err=True)
    for provider_id, errors in snapshot.item_errors.items():
        click.echo(f"⚠️  {provider_id}: skipped {len(errors)} unreadable item(s)", err=True)


def format_task(task: Task) -> str:
    parts = [STATUS_ICONS[task.status]]
    if DUE_ICONS[task.due_state]:
        parts.append(DUE_ICONS[task.due_state])
    parts.append(f"[{task.id}] {task.title}")
    if task.due is not None:
        parts.append(f"📅 {task.due.strftime('%Y-%m-%d')}")
    if task.priority is not None and task.priority.rank > TaskPriority.NORMAL.rank:
        parts.append(f"({task.priority.value})")
    if task.project is not None:
        parts.append(f"#{task.project.name}")
    return " ".join(parts)


def task_to_dict(task: Task) -> dict:
    return {
        "id": str(task.id),
        "provider": task.provider_id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value if task.priority else None,
        "due": task.due.isoformat() if task.due else None,
        "due_state": task.due_state.value,
        "project": task.project.name if task.project else None,
        "url": task.url,
        "labels": task.labels,
        "capabilities": task.capabilities.names(),
    }


def resolve_task(reference: str) -> Task:
    """Look up a task by ``provider:native_id`` with a fresh fetch of its provider."""
    container = get_container()
    try:
        task_id = TaskId.parse(reference)
        provider = container.provider(task_id.provider_id)
    except ValueError as e:
        _fail(str(e))
    except KeyError:
        _fail(f"Unknown provider: {reference.partition(':')[0]}")

    engine = container.engine
    snapshot = run_async(
        engine.refresh([provider], TaskFilter(statuses=list(TaskStatus)))
    )
    report_failures(snapshot)
    if snapshot.failures:
        sys.exit(1)

    task = engine.find_task(snapshot, task_id)
    if task is None:
        _fail(f"Task not found: {reference}")
    return task


@click.group()
@click.version_option(version="1.0.0")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool):
    """Aggregate tasks from every configured provider."""
    from ..config.settings import get_settings

    if debug or get_settings().debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    setup_container()


@cli.command("providers")
def list_providers():
    """List configured providers and their capabilities."""
    providers = get_container().providers
    if not providers:
        click.echo("No providers configured. Set TASKWEAVE_PROVIDERS.")
        return

    for provider in providers:
        statuses = ", ".join(sorted(s.value for s in provider.supported_statuses)) or "-"
        click.echo(f"{provider.provider_id} ({provider.type_name}): {provider.name}")
        click.echo(f"   Capabilities: {', '.join(provider.capabilities.names())}")
        click.echo(f"   Statuses: {statuses}")


@cli.command("projects")
@click.option("--provider", "-P", "provider_ids", multiple=True, help="Only these providers")
def list_projects(provider_ids: tuple[str, ...]):
    """List projects from every provider."""
    container = get_container()
    providers = [
        p for p in container.providers if not provider_ids or p.provider_id in provider_ids
    ]
    projects, failures = run_async(container.engine.list_projects(providers))

    for provider_id, error in failures.items():
        click.echo(f"⚠️  {provider_id}: {error.kind.value}: {error.message}", err=True)
    if not projects:
        click.echo("No projects found.")
        return
    for project in projects:
        click.echo(f"{project.provider_id}: {project.name} [{project.id}]")


@cli.command("list")
@click.option("--status", "-s", "statuses", multiple=True, type=click.Choice(STATUS_CHOICES), help="Filter by status")
@click.option("--due", "-d", "due_states", multiple=True, type=click.Choice(DUE_STATE_CHOICES), help="Filter by due state")
@click.option("--provider", "-P", "provider_ids", multiple=True, help="Filter by provider id")
@click.option("--project", "-p", "project_ids", multiple=True, help="Filter by project id")
@click.option("--search", "-q", help="Search title, description and labels")
@click.option("--limit", "-l", default=50, help="Maximum number of tasks to show")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def list_tasks(
    statuses: tuple[str, ...],
    due_states: tuple[str, ...],
    provider_ids: tuple[str, ...],
    project_ids: tuple[str, ...],
    search: Optional[str],
    limit: int,
    output_json: bool,
):
    """List tasks from every provider, merged and sorted."""
    container = get_container()
    task_filter = TaskFilter(
        statuses=[TaskStatus(s) for s in statuses] or [TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS],
        provider_ids=list(provider_ids) or None,
        project_ids=list(project_ids) or None,
        due_states=[DueState(d) for d in due_states] or None,
        text=search,
    )
    providers = [
        p for p in container.providers if not provider_ids or p.provider_id in provider_ids
    ]

    snapshot = run_async(container.engine.refresh(providers, task_filter))
    report_failures(snapshot)
    matched = container.engine.apply_filter(snapshot, task_filter)
    tasks = matched[:limit]

    if output_json:
        output = {
            "tasks": [task_to_dict(t) for t in tasks],
            "total": len(matched),
            "failures": {
                pid: {"kind": e.kind.value, "message": e.message}
                for pid, e in snapshot.failures.items()
            },
        }
        click.echo(json.dumps(output, indent=2, ensure_ascii=False))
    elif not tasks:
        click.echo("No tasks found.")
    else:
        click.echo(f"Found {len(matched)} task(s):\n")
        for task in tasks:
            click.echo(format_task(task))

    if snapshot.all_failed:
        sys.exit(1)


@cli.command("add")
@click.argument("title")
@click.option("--provider", "-P", "provider_id", required=True, help="Provider to create the task in")
@click.option("--description", "-D", help="Task description")
@click.option("--project", "-p", "project_id", help="Project id")
@click.option("--priority", type=click.Choice(PRIORITY_CHOICES), help="Task priority")
@click.option("--due", "-d", help="Due date (YYYY-MM-DD, today, tomorrow, this_weekend, next_week)")
def add_task(
    title: str,
    provider_id: str,
    description: Optional[str],
    project_id: Optional[str],
    priority: Optional[str],
    due: Optional[str],
):
    """Create a task in one provider."""
    container = get_container()
    draft = TaskDraft(
        title=title,
        description=description,
        project_id=project_id,
        priority=TaskPriority(priority) if priority else None,
        due=parse_due(due) if due else None,
    )

    try:
        task = run_async(container.engine.create_task(container.providers, provider_id, draft))
    except (ProviderError, ValueError) as e:
        _fail(str(e))
    click.echo(f"✅ Task created: [{task.id}] {task.title}")


@cli.command("edit")
@click.argument("task_ref")
@click.option("--title", "-t", help="New title")
@click.option("--description", "-D", help="New description")
@click.option("--priority", type=click.Choice(PRIORITY_CHOICES), help="New priority")
@click.option("--due", "-d", help="New due date (YYYY-MM-DD or a preset)")
@click.option("--clear-due", is_flag=True, help="Remove the due date")
def edit_task(
    task_ref: str,
    title: Optional[str],
    description: Optional[str],
    priority: Optional[str],
    due: Optional[str],
    clear_due: bool,
):
    """Edit a task given as PROVIDER:ID."""
    due_value = parse_due(due) if due else None
    changes = ChangeSet(
        title=title,
        description=description,
        priority=TaskPriority(priority) if priority else None,
        due=due_value,
        clear_due=clear_due or (due is not None and due_value is None),
    )
    if changes.is_empty():
        click.echo("Nothing to change.")
        return

    container = get_container()
    task = resolve_task(task_ref)
    try:
        updated = run_async(container.engine.mutate_task(container.providers, task, changes))
    except ProviderError as e:
        _fail(str(e))
    click.echo(f"✏️  Task updated: [{updated.id}] {updated.title}")


def _set_status(task_ref: str, status: TaskStatus) -> None:
    container = get_container()
    task = resolve_task(task_ref)
    try:
        updated = run_async(container.engine.change_status(container.providers, task, status))
    except ProviderError as e:
        _fail(str(e))
    click.echo(f"{STATUS_ICONS[updated.status]} {updated.title}: {updated.status.value}")


@cli.command("status")
@click.argument("task_ref")
@click.argument("status", type=click.Choice(STATUS_CHOICES))
def change_status(task_ref: str, status: str):
    """Set the status of a task given as PROVIDER:ID."""
    _set_status(task_ref, TaskStatus(status))


@cli.command("done")
@click.argument("task_ref")
def complete_task(task_ref: str):
    """Mark a task as done."""
    _set_status(task_ref, TaskStatus.DONE)


@cli.command("delete")
@click.argument("task_ref")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def delete_task(task_ref: str, yes: bool):
    """Delete a task given as PROVIDER:ID."""
    container = get_container()
    task = resolve_task(task_ref)
    if not yes and not click.confirm(f"Delete '{task.title}'?"):
        click.echo("Aborted.")
        return

    try:
        run_async(container.engine.delete_task(container.providers, task))
    except ProviderError as e:
        _fail(str(e))
    click.echo(f"🗑️  Task deleted: {task.title}")


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
