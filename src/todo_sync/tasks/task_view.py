# src/todo_sync/tasks/task_view.py

from __future__ import annotations

from collections.abc import Iterable

from .task_models import ALL_CATEGORIES, Category, SortOrder, Task


def filter_tasks(tasks: Iterable[Task], category: Category | str = ALL_CATEGORIES) -> list[Task]:
    if category == ALL_CATEGORIES:
        return list(tasks)
    return [t for t in tasks if t.category == category]


def sort_tasks(tasks: Iterable[Task], order: SortOrder) -> list[Task]:
    """
    Pure ordering helper.

    Tasks without a due date go last for due_asc and first for due_desc;
    ties are broken by creation time (newest first), then id.
    """
    items = list(tasks)

    if order == SortOrder.CREATED_ASC:
        return sorted(items, key=lambda t: (t.created_at, t.id))
    if order == SortOrder.CREATED_DESC:
        return sorted(items, key=lambda t: (t.created_at, t.id), reverse=True)

    # Stable sorts: tie-break first, then the primary key.
    items.sort(key=lambda t: t.id)
    items.sort(key=lambda t: t.created_at, reverse=True)

    dated = [t for t in items if t.due_date is not None]
    undated = [t for t in items if t.due_date is None]

    if order == SortOrder.DUE_ASC:
        dated.sort(key=lambda t: t.due_date)  # type: ignore[arg-type, return-value]
        return dated + undated

    dated.sort(key=lambda t: t.due_date, reverse=True)  # type: ignore[arg-type, return-value]
    return undated + dated
