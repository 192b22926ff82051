# src/todo_sync/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import StrEnum
from typing import Union

PLACEHOLDER_PREFIX = "local-"


class Category(StrEnum):
    PERSONAL = "personal"
    WORK = "work"
    SHOPPING = "shopping"
    HEALTH = "health"
    OTHER = "other"

    @classmethod
    def from_db(cls, raw: str | None) -> Category:
        if not raw:
            return cls.OTHER
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


class DurationEstimate(StrEnum):
    """
    Ordered duration buckets.

    Declaration order is the bucket order; `minutes` gives the comparable value
    (a day counts as 24h, a week as 7 days).
    """

    MIN_5 = "5min"
    MIN_10 = "10min"
    MIN_15 = "15min"
    MIN_20 = "20min"
    MIN_30 = "30min"
    MIN_45 = "45min"
    HR_1 = "1hr"
    HR_1_5 = "1.5hrs"
    HR_2 = "2hrs"
    HR_2_5 = "2.5hrs"
    HR_3 = "3hrs"
    HR_4 = "4hrs"
    HR_5 = "5hrs"
    HR_6 = "6hrs"
    HR_8 = "8hrs"
    DAY_1 = "1day"
    DAY_2 = "2days"
    DAY_3 = "3days"
    WEEK_1 = "1week"

    @property
    def minutes(self) -> float:
        return _BUCKET_MINUTES[self]

    @classmethod
    def from_db(cls, raw: str | None) -> DurationEstimate | None:
        if not raw:
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


_BUCKET_MINUTES: dict[DurationEstimate, float] = {
    DurationEstimate.MIN_5: 5,
    DurationEstimate.MIN_10: 10,
    DurationEstimate.MIN_15: 15,
    DurationEstimate.MIN_20: 20,
    DurationEstimate.MIN_30: 30,
    DurationEstimate.MIN_45: 45,
    DurationEstimate.HR_1: 60,
    DurationEstimate.HR_1_5: 90,
    DurationEstimate.HR_2: 120,
    DurationEstimate.HR_2_5: 150,
    DurationEstimate.HR_3: 180,
    DurationEstimate.HR_4: 240,
    DurationEstimate.HR_5: 300,
    DurationEstimate.HR_6: 360,
    DurationEstimate.HR_8: 480,
    DurationEstimate.DAY_1: 1440,
    DurationEstimate.DAY_2: 2880,
    DurationEstimate.DAY_3: 4320,
    DurationEstimate.WEEK_1: 10080,
}


class SortOrder(StrEnum):
    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    DUE_ASC = "due_asc"
    DUE_DESC = "due_desc"


ALL_CATEGORIES = "all"


@dataclass(slots=True, frozen=True)
class User:
    id: str


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    owner_id: str
    title: str
    created_at: datetime
    is_complete: bool = False
    category: Category = Category.OTHER
    duration_estimate: DurationEstimate | None = None
    due_date: date | None = None
    updated_at: datetime | None = None

    @property
    def is_provisional(self) -> bool:
        return is_placeholder_id(self.id)

    def is_overdue(self, today: date) -> bool:
        return self.due_date is not None and self.due_date < today and not self.is_complete


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """Attributes the client supplies on create; the store assigns id and timestamps."""

    owner_id: str
    title: str
    category: Category = Category.OTHER
    duration_estimate: DurationEstimate | None = None
    due_date: date | None = None


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """Partial update. None means "leave unchanged"."""

    is_complete: bool | None = None
    title: str | None = None
    category: Category | None = None
    duration_estimate: DurationEstimate | None = None
    due_date: date | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.is_complete, self.title, self.category, self.duration_estimate, self.due_date)
        )


def apply_patch(task: Task, patch: TaskPatch, *, updated_at: datetime | None = None) -> Task:
    return replace(
        task,
        is_complete=task.is_complete if patch.is_complete is None else patch.is_complete,
        title=task.title if patch.title is None else patch.title,
        category=task.category if patch.category is None else patch.category,
        duration_estimate=(
            task.duration_estimate if patch.duration_estimate is None else patch.duration_estimate
        ),
        due_date=task.due_date if patch.due_date is None else patch.due_date,
        updated_at=task.updated_at if updated_at is None else updated_at,
    )


def new_placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex}"


def is_placeholder_id(task_id: str) -> bool:
    return task_id.startswith(PLACEHOLDER_PREFIX)


# ---- change feed events ----


@dataclass(slots=True, frozen=True)
class TaskInserted:
    task: Task


@dataclass(slots=True, frozen=True)
class TaskUpdated:
    task: Task


@dataclass(slots=True, frozen=True)
class TaskDeleted:
    task_id: str


RemoteEvent = Union[TaskInserted, TaskUpdated, TaskDeleted]
