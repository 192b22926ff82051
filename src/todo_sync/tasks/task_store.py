# src/todo_sync/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from ..core.errors import NotAuthenticatedError, TaskNotFoundError
from ..core.ports import EventHandler
from .task_models import (
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
    User,
)

logger = logging.getLogger(__name__)

_ORDER_SQL: dict[SortOrder, str] = {
    SortOrder.CREATED_DESC: "created_at DESC, id DESC",
    SortOrder.CREATED_ASC: "created_at ASC, id ASC",
    SortOrder.DUE_ASC: "(due_date IS NULL) ASC, due_date ASC, created_at DESC, id ASC",
    SortOrder.DUE_DESC: "(due_date IS NULL) DESC, due_date DESC, created_at DESC, id ASC",
}


@dataclass(slots=True)
class _Subscriber:
    owner_id: str
    handler: EventHandler
    active: bool = True


class _StoreSubscription:
    def __init__(self, store: TaskStore, sub: _Subscriber) -> None:
        self._store = store
        self._sub = sub

    def unsubscribe(self) -> None:
        self._store._remove_subscriber(self._sub)


class TaskStore:
    """
    SQLite task store with an in-process change feed.

    Implements the RemoteStore port locally:
    - one `tasks` table, created if missing, columns added when an older DB lacks them
    - every read/write is scoped to the signed-in principal (row-level authorization)
    - after each committed mutation, subscribers of that owner get an event on the
      event loop (never synchronously inside the mutating call)

    Thread-safety:
    - each method opens its own SQLite connection
    - blocking work runs via asyncio.to_thread
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        self._user: User | None = None
        self._subscribers: list[_Subscriber] = []
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- auth ----

    def sign_in(self, user_id: str) -> User:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValueError("user_id is required")
        self._user = User(id=user_id)
        logger.info("Signed in user=%s", user_id)
        return self._user

    def sign_out(self) -> None:
        if self._user is not None:
            logger.info("Signed out user=%s", self._user.id)
        self._user = None

    def current_user(self) -> User | None:
        return self._user

    def _require_user(self) -> User:
        if self._user is None:
            raise NotAuthenticatedError("Not signed in.")
        return self._user

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    is_complete INTEGER NOT NULL DEFAULT 0,
                    category TEXT NOT NULL DEFAULT 'other',
                    duration_estimate TEXT,
                    due_date TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("category", "TEXT NOT NULL DEFAULT 'other'")
            add_col("duration_estimate", "TEXT")
            add_col("due_date", "TEXT")
            add_col("updated_at", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_created ON tasks(owner_id, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_due ON tasks(owner_id, due_date)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _ts_to_dt(ts: float | None) -> datetime | None:
        if ts is None:
            return None
        return datetime.fromtimestamp(float(ts), tz=timezone.utc)

    @staticmethod
    def _str_to_date(s: str | None) -> date | None:
        if not s:
            return None
        try:
            return date.fromisoformat(s)
        except ValueError:
            logger.warning("Bad due_date in DB: %r", s)
            return None

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"] or ""),
            created_at=self._ts_to_dt(row["created_at"] or 0.0),  # type: ignore[arg-type]
            is_complete=bool(row["is_complete"]),
            category=Category.from_db(row["category"]),
            duration_estimate=DurationEstimate.from_db(row["duration_estimate"]),
            due_date=self._str_to_date(row["due_date"]),
            updated_at=self._ts_to_dt(row["updated_at"]),
        )

    # ---- blocking implementation ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def _list_sync(self, owner_id: str, order: SortOrder) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT * FROM tasks WHERE owner_id = ? ORDER BY {_ORDER_SQL[SortOrder(order)]}",
                (owner_id,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _get_sync(self, owner_id: str, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ? AND owner_id = ?", (task_id, owner_id))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def _insert_sync(self, draft: TaskDraft) -> Task:
        title = (draft.title or "").strip()
        if not title:
            raise ValueError("title is required")

        task_id = str(uuid.uuid4())
        now = time.time()

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, owner_id, title, is_complete,
                    category, duration_estimate, due_date,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, 0, ?, ?, ?, ?, NULL)
                """,
                (
                    task_id,
                    draft.owner_id,
                    title,
                    Category(draft.category).value,
                    draft.duration_estimate.value if draft.duration_estimate else None,
                    draft.due_date.isoformat() if draft.due_date else None,
                    now,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Task inserted id=%s owner=%s", task_id, draft.owner_id)
        task = self._get_sync(draft.owner_id, task_id)
        if task is None:
            raise RuntimeError(f"Inserted task not readable: {task_id}")
        return task

    def _update_sync(self, owner_id: str, task_id: str, patch: TaskPatch) -> Task:
        fields: list[str] = []
        params: list[Any] = []

        if patch.is_complete is not None:
            fields.append("is_complete = ?")
            params.append(1 if patch.is_complete else 0)

        if patch.title is not None:
            title = patch.title.strip()
            if not title:
                raise ValueError("title must not be empty")
            fields.append("title = ?")
            params.append(title)

        if patch.category is not None:
            fields.append("category = ?")
            params.append(Category(patch.category).value)

        if patch.duration_estimate is not None:
            fields.append("duration_estimate = ?")
            params.append(DurationEstimate(patch.duration_estimate).value)

        if patch.due_date is not None:
            fields.append("due_date = ?")
            params.append(patch.due_date.isoformat())

        fields.append("updated_at = ?")
        params.append(time.time())
        params.extend([task_id, owner_id])

        sql = f"UPDATE tasks SET {', '.join(fields)} WHERE id = ? AND owner_id = ?"

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            if cur.rowcount != 1:
                raise TaskNotFoundError(f"Task not found: {task_id}")
        finally:
            conn.close()

        task = self._get_sync(owner_id, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def _delete_sync(self, owner_id: str, task_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ? AND owner_id = ?", (task_id, owner_id))
            conn.commit()
            if cur.rowcount != 1:
                raise TaskNotFoundError(f"Task not found: {task_id}")
        finally:
            conn.close()

    # ---- RemoteStore API ----

    async def list_tasks(self, owner_id: str, order: SortOrder = SortOrder.CREATED_DESC) -> list[Task]:
        user = self._require_user()
        if owner_id != user.id:
            # Other owners' rows are invisible, not an error.
            return []
        return await asyncio.to_thread(self._list_sync, user.id, order)

    async def create_task(self, draft: TaskDraft) -> Task:
        user = self._require_user()
        if draft.owner_id != user.id:
            raise PermissionError("Cannot create tasks for another user.")
        task = await asyncio.to_thread(self._insert_sync, draft)
        self._publish(user.id, TaskInserted(task))
        return task

    async def update_task(self, task_id: str, patch: TaskPatch) -> None:
        user = self._require_user()
        task = await asyncio.to_thread(self._update_sync, user.id, task_id, patch)
        self._publish(user.id, TaskUpdated(task))

    async def delete_task(self, task_id: str) -> None:
        user = self._require_user()
        await asyncio.to_thread(self._delete_sync, user.id, task_id)
        self._publish(user.id, TaskDeleted(task_id))

    # ---- change feed ----

    def subscribe(self, owner_id: str, on_event: EventHandler) -> _StoreSubscription:
        sub = _Subscriber(owner_id=owner_id, handler=on_event)
        self._subscribers.append(sub)
        logger.debug("Subscriber added owner=%s total=%d", owner_id, len(self._subscribers))
        return _StoreSubscription(self, sub)

    def _remove_subscriber(self, sub: _Subscriber) -> None:
        sub.active = False
        with contextlib.suppress(ValueError):
            self._subscribers.remove(sub)

    def _publish(self, owner_id: str, event: RemoteEvent) -> None:
        targets = [s for s in self._subscribers if s.owner_id == owner_id]
        if not targets:
            return
        loop = asyncio.get_running_loop()
        for sub in targets:
            loop.call_soon(self._deliver, sub, event)

    @staticmethod
    def _deliver(sub: _Subscriber, event: RemoteEvent) -> None:
        if not sub.active:
            return
        try:
            sub.handler(event)
        except Exception:
            logger.exception("Task subscriber failed on %s", type(event).__name__)
