"""Aggregation engine: concurrent fetch and merge, plus mutation routing."""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar
import logging

from ..domain.due import utc_now
from ..domain.errors import ErrorKind, ProviderError
from ..domain.models import (
    Capability,
    ChangeSet,
    FetchResult,
    ItemError,
    MergedSnapshot,
    Project,
    Task,
    TaskCollection,
    TaskDraft,
    TaskFilter,
    TaskId,
    TaskStatus,
    unsupported,
)
from ..domain.ordering import sort_tasks
from ..domain.protocols import TaskProvider


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NETWORK_TIMEOUT = 30.0
DEFAULT_LOCAL_TIMEOUT = 5.0


class AggregationEngine:
    """Fans list calls out to every provider and routes mutations back.

    The engine holds no provider state of its own: every call receives the
    provider set explicitly, so the caller owns its lifecycle.
    """

    def __init__(
        self,
        *,
        network_timeout: float = DEFAULT_NETWORK_TIMEOUT,
        local_timeout: float = DEFAULT_LOCAL_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._network_timeout = network_timeout
        self._local_timeout = local_timeout
        self._clock = clock or utc_now

    @classmethod
    def from_settings(cls, settings: Any) -> "AggregationEngine":
        """Create an engine from ``EngineSettings``."""
        return cls(
            network_timeout=settings.network_timeout,
            local_timeout=settings.local_timeout,
        )

    def timeout_for(self, provider: TaskProvider) -> float:
        return self._network_timeout if provider.is_remote else self._local_timeout

    # Fan-out / fan-in

    @staticmethod
    def _index(providers: Sequence[TaskProvider]) -> tuple[TaskProvider, ...]:
        snapshot = tuple(providers)
        seen: set[str] = set()
        for provider in snapshot:
            if provider.provider_id in seen:
                raise ValueError(f"Duplicate provider id: {provider.provider_id}")
            seen.add(provider.provider_id)
        return snapshot

    async def _guarded(
        self,
        provider: TaskProvider,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> tuple[Optional[T], Optional[ProviderError]]:
        """Run one bounded read call; failures are returned, never raised."""
        timeout = self.timeout_for(provider)
        try:
            return await asyncio.wait_for(call(), timeout), None
        except asyncio.TimeoutError:
            logger.warning(f"{provider.provider_id}: {operation} timed out after {timeout}s")
            return None, ProviderError(
                ErrorKind.NETWORK,
                f"{operation} timed out after {timeout}s",
                provider_id=provider.provider_id,
            )
        except ProviderError as e:
            logger.warning(f"{provider.provider_id}: {operation} failed: {e.kind.value}: {e.message}")
            return None, e.for_provider(provider.provider_id)
        except Exception as e:
            logger.exception(f"{provider.provider_id}: unexpected error during {operation}")
            return None, ProviderError(
                ErrorKind.MALFORMED,
                f"unexpected error: {e!r}",
                provider_id=provider.provider_id,
            )

    def _admit(self, provider: TaskProvider, tasks: Sequence[Task]) -> tuple[list[Task], list[ItemError]]:
        """Drop foreign or duplicate tasks and clamp capabilities."""
        admitted: list[Task] = []
        errors: list[ItemError] = []
        seen: set[str] = set()
        for task in tasks:
            if task.provider_id != provider.provider_id:
                errors.append(
                    ItemError(task.native_id, f"task claims provider {task.provider_id!r}")
                )
                continue
            if task.native_id in seen:
                errors.append(ItemError(task.native_id, "duplicate task id"))
                continue
            seen.add(task.native_id)
            admitted.append(self._clamp(provider, task))
        return admitted, errors

    @staticmethod
    def _clamp(provider: TaskProvider, task: Task) -> Task:
        allowed = task.capabilities & provider.capabilities
        if allowed == task.capabilities:
            return task
        return replace(task, capabilities=allowed)

    async def _fetch(
        self,
        provider: TaskProvider,
        hint: Optional[TaskFilter],
        results: list[Optional[FetchResult]],
        slot: int,
    ) -> None:
        listing, error = await self._guarded(
            provider, "list", lambda: provider.list_tasks(hint)
        )
        if error is not None:
            results[slot] = FetchResult(provider.provider_id, provider.name, error=error)
            return

        tasks, rejected = self._admit(provider, listing.tasks)
        results[slot] = FetchResult(
            provider.provider_id,
            provider.name,
            tasks=tuple(tasks),
            item_errors=tuple(listing.item_errors) + tuple(rejected),
        )

    async def refresh(
        self,
        providers: Sequence[TaskProvider],
        hint: Optional[TaskFilter] = None,
    ) -> MergedSnapshot:
        """Fetch every provider concurrently and merge the results.

        Args:
            providers: The provider set; ids must be unique
            hint: Optional filter passed to adapters so they can fetch what
                it asks for (closed items, for instance). The merged list is
                not narrowed by it; use apply_filter for the filtered view.

        Returns:
            A sorted MergedSnapshot with one FetchResult per provider, in
            provider order
        """
        snapshot = self._index(providers)
        results: list[Optional[FetchResult]] = [None] * len(snapshot)

        await asyncio.gather(
            *(
                self._fetch(provider, hint, results, slot)
                for slot, provider in enumerate(snapshot)
            )
        )

        merged = [task for result in results for task in result.tasks]
        merged_snapshot = MergedSnapshot(
            tasks=tuple(sort_tasks(merged)),
            results=tuple(results),
            fetched_at=self._clock(),
        )
        for provider_id, error in merged_snapshot.failures.items():
            logger.info(f"refresh: {provider_id} failed with {error.kind.value}")
        if merged_snapshot.all_failed:
            logger.error("refresh: every provider failed")
        return merged_snapshot

    def apply_filter(self, tasks: TaskCollection, task_filter: Optional[TaskFilter]) -> list[Task]:
        """Filter a snapshot (or any task list) without contacting providers."""
        source = tasks.tasks if isinstance(tasks, MergedSnapshot) else tasks
        if task_filter is None:
            return list(source)
        return [task for task in source if task_filter.matches(task)]

    def find_task(self, tasks: TaskCollection, task_id: TaskId) -> Optional[Task]:
        source = tasks.tasks if isinstance(tasks, MergedSnapshot) else tasks
        for task in source:
            if task.id == task_id:
                return task
        return None

    async def list_projects(
        self, providers: Sequence[TaskProvider]
    ) -> tuple[list[Project], dict[str, ProviderError]]:
        """Collect projects from every provider; failures are returned per provider."""
        snapshot = self._index(providers)
        outcomes = await asyncio.gather(
            *(
                self._guarded(provider, "list_projects", provider.list_projects)
                for provider in snapshot
            )
        )

        projects: list[Project] = []
        failures: dict[str, ProviderError] = {}
        for provider, (found, error) in zip(snapshot, outcomes):
            if error is not None:
                failures[provider.provider_id] = error
            else:
                projects.extend(found)
        projects.sort(key=lambda p: (p.provider_id, p.name.casefold(), p.id))
        return projects, failures

    # Mutation routing

    @staticmethod
    def _lookup(providers: Sequence[TaskProvider], provider_id: str) -> TaskProvider:
        for provider in providers:
            if provider.provider_id == provider_id:
                return provider
        raise ProviderError(
            ErrorKind.NOT_FOUND,
            f"provider {provider_id!r} is not configured",
            provider_id=provider_id,
        )

    @staticmethod
    def _check(task: Task, provider: TaskProvider, capability: Capability, operation: str) -> None:
        if not (task.can(capability) and capability in provider.capabilities):
            raise unsupported(provider.provider_id, operation)

    async def _dispatch(
        self,
        provider: TaskProvider,
        operation: str,
        call: Awaitable[T],
    ) -> T:
        """Run a mutation that must not be lost once dispatched.

        The backend call runs as its own task. If the caller is cancelled
        while it is in flight, the engine keeps waiting until the provider
        timeout, counted from dispatch, runs out. It returns the backend's
        confirmation instead of dropping it; a failed or unanswered call
        re-raises the cancellation.
        """
        timeout = self.timeout_for(provider)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        inner = asyncio.ensure_future(call)
        try:
            return await asyncio.wait_for(asyncio.shield(inner), timeout)
        except asyncio.TimeoutError:
            inner.cancel()
            raise ProviderError(
                ErrorKind.NETWORK,
                f"{operation} timed out after {timeout}s",
                provider_id=provider.provider_id,
            ) from None
        except asyncio.CancelledError:
            logger.info(
                f"{provider.provider_id}: {operation} cancelled after dispatch, "
                "waiting for the backend answer"
            )
            try:
                result = await asyncio.wait_for(inner, max(deadline - loop.time(), 0))
            except (ProviderError, asyncio.TimeoutError):
                raise asyncio.CancelledError() from None
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            logger.info(f"{provider.provider_id}: {operation} confirmed after cancellation")
            return result

    def _returned(self, provider: TaskProvider, task: Task) -> Task:
        if task.provider_id != provider.provider_id:
            raise ProviderError(
                ErrorKind.MALFORMED,
                f"adapter returned a task owned by {task.provider_id!r}",
                provider_id=provider.provider_id,
            )
        return self._clamp(provider, task)

    async def create_task(
        self,
        providers: Sequence[TaskProvider],
        provider_id: str,
        draft: TaskDraft,
    ) -> Task:
        """Create a task in the given provider.

        Raises:
            ValueError: If the draft has no title
            ProviderError: NOT_FOUND for an unknown provider, UNSUPPORTED if
                the provider cannot create tasks, or the adapter's error
        """
        if not draft.title or not draft.title.strip():
            raise ValueError("Task title must not be empty")
        provider = self._lookup(providers, provider_id)
        if Capability.CREATE not in provider.capabilities:
            raise unsupported(provider.provider_id, "create")

        created = await self._dispatch(provider, "create", provider.create_task(draft))
        logger.info(f"{provider_id}: created task {created.native_id}")
        return self._returned(provider, created)

    async def mutate_task(
        self,
        providers: Sequence[TaskProvider],
        task: Task,
        changes: ChangeSet,
    ) -> Task:
        """Apply a change set to a task; an empty change set is a no-op."""
        provider = self._lookup(providers, task.provider_id)
        self._check(task, provider, Capability.UPDATE, "update")
        if changes.is_empty():
            return task

        updated = await self._dispatch(provider, "update", provider.update_task(task, changes))
        return self._returned(provider, updated)

    async def delete_task(self, providers: Sequence[TaskProvider], task: Task) -> Task:
        """Delete a task; returns the deleted task so callers can patch their view."""
        provider = self._lookup(providers, task.provider_id)
        self._check(task, provider, Capability.DELETE, "delete")

        await self._dispatch(provider, "delete", provider.delete_task(task))
        logger.info(f"{task.provider_id}: deleted task {task.native_id}")
        return task

    async def change_status(
        self,
        providers: Sequence[TaskProvider],
        task: Task,
        status: TaskStatus,
    ) -> Task:
        """Move a task to ``status``.

        Raises:
            ProviderError: UNSUPPORTED if the task cannot change status or the
                provider cannot represent ``status``; otherwise the adapter's error
        """
        provider = self._lookup(providers, task.provider_id)
        self._check(task, provider, Capability.CHANGE_STATUS, "change_status")
        if status not in provider.supported_statuses:
            raise ProviderError(
                ErrorKind.UNSUPPORTED,
                f"status {status.value} is not supported",
                provider_id=provider.provider_id,
            )

        updated = await self._dispatch(
            provider, "change_status", provider.change_status(task, status)
        )
        return self._returned(provider, updated)
