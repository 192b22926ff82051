# src/todo_sync/tasks/task_list.py

from __future__ import annotations

"""
Reconciling task list.

Owns the in-memory collection shown to one signed-in user:
- every mutation is applied locally first (optimistic), then sent to the store,
- every optimistic mutation yields a Compensation that undoes it on failure,
- change-feed events are merged idempotently, keyed by task id.

All methods run on the event loop thread; no locking is needed because the
collection is only touched between awaits.

Confirmation vs. change-feed ordering for the same create is not guaranteed.
Both paths check id membership, so either order ends with one entry.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timezone

from ..core.errors import NotAuthenticatedError, RemoteStoreError
from ..core.ports import RemoteStore, Subscription
from ..enrichment.pipeline import EnrichmentPipeline
from .task_models import (
    ALL_CATEGORIES,
    Category,
    DurationEstimate,
    RemoteEvent,
    SortOrder,
    Task,
    TaskDeleted,
    TaskDraft,
    TaskInserted,
    TaskPatch,
    TaskUpdated,
    apply_patch,
    new_placeholder_id,
)
from .task_view import filter_tasks, sort_tasks

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Compensation:
    """Inverse of one optimistic mutation. Calling `undo()` restores local state."""

    description: str
    undo: Callable[[], None]


class ReconcilingTaskList:
    def __init__(
        self,
        store: RemoteStore,
        *,
        enrichment: EnrichmentPipeline | None = None,
        sort_order: SortOrder = SortOrder.CREATED_DESC,
        default_category: Category = Category.OTHER,
        default_duration: DurationEstimate | None = DurationEstimate.MIN_30,
    ) -> None:
        self._store = store
        self.enrichment = enrichment
        self.sort_order = sort_order
        self.filter_category: Category | str = ALL_CATEGORIES
        self.default_category = default_category
        self.default_duration = default_duration

        self._tasks: list[Task] = []
        self.pending: set[str] = set()

        self._subscription: Subscription | None = None
        self._events: asyncio.Queue[RemoteEvent] | None = None
        self._pump: asyncio.Task[None] | None = None

    # ---- state access ----

    @property
    def tasks(self) -> list[Task]:
        """Collection in local (insertion) order. A copy."""
        return list(self._tasks)

    def get(self, task_id: str) -> Task | None:
        i = self._index_of(task_id)
        return self._tasks[i] if i is not None else None

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return isinstance(task_id, str) and self._index_of(task_id) is not None

    def _index_of(self, task_id: str) -> int | None:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        return None

    def _owner_id(self) -> str:
        user = self._store.current_user()
        if user is None:
            raise NotAuthenticatedError("Not signed in.")
        return user.id

    def _insert_new(self, task: Task) -> None:
        # Newest first when the list shows newest first; otherwise append.
        if self.sort_order == SortOrder.CREATED_DESC:
            self._tasks.insert(0, task)
        else:
            self._tasks.append(task)

    # ---- derived view ----

    def visible(self) -> list[Task]:
        return sort_tasks(filter_tasks(self._tasks, self.filter_category), self.sort_order)

    def set_filter(self, category: Category | str) -> None:
        if category != ALL_CATEGORIES:
            category = Category(category)
        self.filter_category = category

    async def set_sort_order(self, order: SortOrder) -> None:
        """Change ordering. The store orders the listing, so this reloads."""
        self.sort_order = SortOrder(order)
        await self.load()

    def stats(self, today: date | None = None) -> dict[str, int]:
        today = today or date.today()
        done = sum(1 for t in self._tasks if t.is_complete)
        return {
            "total": len(self._tasks),
            "completed": done,
            "open": len(self._tasks) - done,
            "overdue": sum(1 for t in self._tasks if t.is_overdue(today)),
        }

    # ---- load ----

    async def load(self) -> None:
        owner_id = self._owner_id()
        try:
            fresh = await self._store.list_tasks(owner_id, self.sort_order)
        except Exception as e:
            logger.warning("load failed owner=%s (%s)", owner_id, e.__class__.__name__)
            raise RemoteStoreError("Could not load tasks.") from e

        self._tasks = list(fresh)
        logger.info("Loaded %d tasks owner=%s order=%s", len(self._tasks), owner_id, self.sort_order.value)

    # ---- optimistic primitives (each returns its inverse) ----

    def _optimistic_insert(self, task: Task) -> Compensation:
        self._insert_new(task)

        def undo() -> None:
            i = self._index_of(task.id)
            if i is not None:
                del self._tasks[i]

        return Compensation(f"insert {task.id}", undo)

    def _optimistic_patch(self, task_id: str, patch: TaskPatch) -> Compensation | None:
        i = self._index_of(task_id)
        if i is None:
            return None
        before = self._tasks[i]
        self._tasks[i] = apply_patch(before, patch)
        touched = [f.name for f in fields(patch) if getattr(patch, f.name) is not None]

        def undo() -> None:
            j = self._index_of(task_id)
            if j is None:
                return
            # Only the fields we changed; concurrent remote edits to others survive.
            self._tasks[j] = replace(self._tasks[j], **{name: getattr(before, name) for name in touched})

        return Compensation(f"patch {task_id}", undo)

    def _optimistic_delete(self, task_id: str) -> Compensation | None:
        i = self._index_of(task_id)
        if i is None:
            return None
        removed = self._tasks.pop(i)

        def undo() -> None:
            if self._index_of(removed.id) is None:
                self._tasks.insert(min(i, len(self._tasks)), removed)

        return Compensation(f"delete {task_id}", undo)

    # ---- operations ----

    async def add(
        self,
        title: str,
        category: Category | None = None,
        duration_estimate: DurationEstimate | None = None,
        due_date: date | None = None,
        *,
        default_category: Category | None = None,
        default_duration: DurationEstimate | None = None,
    ) -> Task | None:
        """
        Create a task optimistically.

        Returns the confirmed task, or None for an empty title.
        Raises NotAuthenticatedError / RemoteStoreError (after rollback).
        """
        title = (title or "").strip()
        if not title:
            return None

        owner_id = self._owner_id()

        default_category = default_category or self.default_category
        default_duration = default_duration or self.default_duration
        if self.enrichment is not None:
            category, duration_estimate = await self.enrichment.resolve(
                title,
                category,
                duration_estimate,
                default_category=default_category,
                default_duration=default_duration,
            )
        else:
            category = category or default_category
            duration_estimate = duration_estimate or default_duration

        provisional = Task(
            id=new_placeholder_id(),
            owner_id=owner_id,
            title=title,
            created_at=datetime.now(timezone.utc),
            category=category,
            duration_estimate=duration_estimate,
            due_date=due_date,
        )
        compensation = self._optimistic_insert(provisional)
        self.pending.add(provisional.id)

        draft = TaskDraft(
            owner_id=owner_id,
            title=title,
            category=category,
            duration_estimate=duration_estimate,
            due_date=due_date,
        )
        try:
            confirmed = await self._store.create_task(draft)
        except Exception as e:
            compensation.undo()
            logger.warning("create failed; rolled back %s (%s)", provisional.id, e.__class__.__name__)
            raise RemoteStoreError("Could not add task.") from e
        finally:
            self.pending.discard(provisional.id)

        self._confirm(provisional.id, confirmed)
        logger.info("Task created id=%s category=%s", confirmed.id, confirmed.category.value)
        return confirmed

    def _confirm(self, placeholder_id: str, confirmed: Task) -> None:
        i = self._index_of(placeholder_id)
        j = self._index_of(confirmed.id)
        if j is not None:
            # The change feed delivered it first; keep its data at the placeholder slot.
            if i is not None:
                delivered = self._tasks.pop(j)
                self._tasks[i if i < j else i - 1] = delivered
            return
        if i is None:
            # Placeholder was removed meanwhile (e.g. a reload); still show the task.
            self._insert_new(confirmed)
            return
        self._tasks[i] = confirmed

    async def update(self, task_id: str, patch: TaskPatch) -> bool:
        """Apply `patch` optimistically. Returns False if nothing was done."""
        if patch.title is not None:
            title = patch.title.strip()
            if not title:
                logger.debug("update rejected: blank title id=%s", task_id)
                return False
            patch = replace(patch, title=title)
        if patch.is_empty() or task_id in self.pending:
            return False

        compensation = self._optimistic_patch(task_id, patch)
        if compensation is None:
            logger.debug("update ignored: unknown id=%s", task_id)
            return False

        self.pending.add(task_id)
        try:
            await self._store.update_task(task_id, patch)
        except Exception as e:
            compensation.undo()
            logger.warning("update failed; reverted %s (%s)", task_id, e.__class__.__name__)
            raise RemoteStoreError("Could not update task.") from e
        finally:
            self.pending.discard(task_id)
        return True

    async def toggle_complete(self, task_id: str) -> bool:
        task = self.get(task_id)
        if task is None:
            return False
        return await self.update(task_id, TaskPatch(is_complete=not task.is_complete))

    async def remove(self, task_id: str) -> bool:
        if task_id in self.pending:
            return False

        compensation = self._optimistic_delete(task_id)
        if compensation is None:
            return False

        self.pending.add(task_id)
        try:
            await self._store.delete_task(task_id)
        except Exception as e:
            compensation.undo()
            logger.warning("delete failed; restored %s (%s)", task_id, e.__class__.__name__)
            raise RemoteStoreError("Could not delete task.") from e
        finally:
            self.pending.discard(task_id)
        return True

    # ---- change feed ----

    def apply_remote_event(self, event: RemoteEvent) -> None:
        """Merge one change-feed event. Idempotent; never raises on diverged state."""
        if isinstance(event, TaskInserted):
            if self._index_of(event.task.id) is None:
                self._insert_new(event.task)
                logger.debug("remote insert id=%s", event.task.id)
            return

        if isinstance(event, TaskUpdated):
            i = self._index_of(event.task.id)
            if i is not None:
                self._tasks[i] = event.task
                logger.debug("remote update id=%s", event.task.id)
            return

        if isinstance(event, TaskDeleted):
            i = self._index_of(event.task_id)
            if i is not None:
                del self._tasks[i]
                logger.debug("remote delete id=%s", event.task_id)
            return

        logger.warning("Unknown remote event type: %s", type(event).__name__)

    def attach(self) -> None:
        """Subscribe to the owner's change feed and start applying events."""
        if self._subscription is not None:
            return
        owner_id = self._owner_id()

        queue: asyncio.Queue[RemoteEvent] = asyncio.Queue()
        self._events = queue
        self._pump = asyncio.create_task(self._pump_events(queue), name=f"task-feed-{owner_id}")
        self._subscription = self._store.subscribe(owner_id, queue.put_nowait)
        logger.info("Subscribed to task changes owner=%s", owner_id)

    async def _pump_events(self, queue: asyncio.Queue[RemoteEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                self.apply_remote_event(event)
            except Exception:
                logger.exception("Failed to apply remote event %r", event)
            finally:
                queue.task_done()

    async def flush_events(self) -> None:
        """Wait until every queued change-feed event has been applied."""
        if self._events is not None:
            await self._events.join()

    async def detach(self) -> None:
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception:
                logger.debug("unsubscribe failed", exc_info=True)
            self._subscription = None

        if self._pump is not None:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
            self._pump = None
        self._events = None
        logger.debug("Task feed detached.")

