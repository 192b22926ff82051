# src/todo_sync/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import cast

from ..core.errors import TodoSyncError
from ..core.state import AppState
from ..tasks.task_models import ALL_CATEGORIES, Category, DurationEstimate, SortOrder, Task, TaskPatch
from .bootstrap import sign_in, sign_out

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Handlers may be plain functions or coroutines. Task-list errors
        (network failure, not signed in) become a one-line reply.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                result = cast(CommandHandler3, handler)(state, args, emit)
            else:
                result = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(result):
                result = await result
        except TodoSyncError as e:
            logger.info("/%s failed: %s", name, e)
            return f"Error: {e}"
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting / parsing helpers ----


def format_task(n: int, task: Task, today: date | None = None) -> str:
    today = today or date.today()
    mark = "x" if task.is_complete else " "
    parts = [f"{n:>2}. [{mark}] {task.title}", f"#{task.category.value}"]
    if task.duration_estimate is not None:
        parts.append(f"~{task.duration_estimate.value}")
    if task.due_date is not None:
        prefix = "past due " if task.is_overdue(today) else "due "
        parts.append(f"({prefix}{task.due_date.isoformat()})")
    if task.is_provisional:
        parts.append("(saving...)")
    return " ".join(parts)


def _resolve_task(state: AppState, ref: str) -> Task | None:
    """`ref` is a 1-based index into the visible list, or an id prefix."""
    session = state.require_session()
    visible = session.tasks.visible()
    if ref.isdigit():
        i = int(ref) - 1
        return visible[i] if 0 <= i < len(visible) else None
    matches = [t for t in session.tasks.tasks if t.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _parse_fields(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split `#cat`, `~est`, `due:YYYY-MM-DD` tokens from free text."""
    words: list[str] = []
    fields: dict[str, str] = {}
    for a in args:
        if a.startswith("#") and len(a) > 1:
            fields["category"] = a[1:].lower()
        elif a.startswith("~") and len(a) > 1:
            fields["duration"] = a[1:].lower()
        elif a.lower().startswith("due:"):
            fields["due"] = a[4:]
        else:
            words.append(a)
    return words, fields


def _typed_fields(fields: dict[str, str]) -> tuple[Category | None, DurationEstimate | None, date | None]:
    try:
        category = Category(fields["category"]) if "category" in fields else None
    except ValueError:
        raise ValueError(f"Unknown category: {fields['category']} (one of {', '.join(Category)})") from None
    try:
        duration = DurationEstimate(fields["duration"]) if "duration" in fields else None
    except ValueError:
        raise ValueError(f"Unknown estimate: {fields['duration']}") from None
    try:
        due = date.fromisoformat(fields["due"]) if "due" in fields else None
    except ValueError:
        raise ValueError(f"Bad due date: {fields['due']} (use YYYY-MM-DD)") from None
    return category, duration, due


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    models = ", ".join(list(getattr(state.llm, "models", []) or [])) or "offline"
    session = state.session
    lines = [
        "Status:",
        f"  User: {session.user_id if session else '(signed out)'}",
        f"  Models (priority -> fallback): {models}",
    ]
    if session is not None:
        lines.append(f"  Auto-suggest: {'ON' if session.pipeline.enabled else 'OFF'}")
        lines.append(f"  Sort: {session.tasks.sort_order.value}  Filter: {session.tasks.filter_category}")
    return "\n".join(lines)


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /login <user_id>"
    if emit:
        emit(f"Signing in as {args[0]}...")
    session = await sign_in(state, args[0])
    return f"Signed in as {session.user_id}. {len(session.tasks)} task(s)."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.session is None:
        return "Not signed in."
    await sign_out(state)
    return "Signed out."


def cmd_list(state: AppState, args: list[str]) -> str:
    session = state.require_session()
    visible = session.tasks.visible()
    if not visible:
        return "No tasks yet. Add one with /add <title>."
    today = date.today()
    return "\n".join(format_task(i, t, today) for i, t in enumerate(visible, start=1))


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add Buy milk #shopping ~10min due:2026-01-31
    Category / estimate are auto-suggested when omitted.
    """
    session = state.require_session()
    words, fields = _parse_fields(args)
    try:
        category, duration, due = _typed_fields(fields)
    except ValueError as e:
        return str(e)

    title = " ".join(words)
    if not title.strip():
        return "Usage: /add <title> [#category] [~estimate] [due:YYYY-MM-DD]"

    task = await session.tasks.add(title, category, duration, due)
    if task is None:
        return "Nothing to add."
    est = task.duration_estimate.value if task.duration_estimate else "-"
    return f"Added: {task.title} [#{task.category.value} ~{est}]"


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    session = state.require_session()
    changed = await session.tasks.toggle_complete(task.id)
    if not changed:
        return "Task is busy, try again."
    now = session.tasks.get(task.id)
    return f"{'Completed' if now and now.is_complete else 'Reopened'}: {task.title}"


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <n>"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    session = state.require_session()
    removed = await session.tasks.remove(task.id)
    return f"Deleted: {task.title}" if removed else "Task is busy, try again."


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <n> [new title words] [#category] [~estimate] [due:YYYY-MM-DD]"""
    if len(args) < 2:
        return "Usage: /edit <n> [title] [#category] [~estimate] [due:YYYY-MM-DD]"
    task = _resolve_task(state, args[0])
    if task is None:
        return f"No such task: {args[0]}"

    words, fields = _parse_fields(args[1:])
    try:
        category, duration, due = _typed_fields(fields)
    except ValueError as e:
        return str(e)

    patch = TaskPatch(
        title=" ".join(words) or None,
        category=category,
        duration_estimate=duration,
        due_date=due,
    )
    session = state.require_session()
    changed = await session.tasks.update(task.id, patch)
    return f"Updated: {task.title}" if changed else "Nothing changed."


async def cmd_sort(state: AppState, args: list[str]) -> str:
    session = state.require_session()
    if not args:
        return f"Sort: {session.tasks.sort_order.value}. Options: {', '.join(SortOrder)}"
    try:
        order = SortOrder(args[0].lower())
    except ValueError:
        return f"Unknown sort order. Options: {', '.join(SortOrder)}"
    await session.tasks.set_sort_order(order)
    return f"Sorted by {order.value}."


def cmd_filter(state: AppState, args: list[str]) -> str:
    session = state.require_session()
    if not args:
        return f"Filter: {session.tasks.filter_category}. Options: all, {', '.join(Category)}"
    value = args[0].lower()
    if value != ALL_CATEGORIES and value not in set(Category):
        return f"Unknown category. Options: all, {', '.join(Category)}"
    session.tasks.set_filter(value)
    return f"Filter: {value}."


async def cmd_suggest(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """Preview what auto-suggest would pick for a title (runs the debounced path)."""
    session = state.require_session()
    text = " ".join(args)
    pipeline = session.pipeline
    pipeline.on_text_changed(text)
    if not text.strip():
        return "Usage: /suggest <title>"
    if not pipeline.enabled:
        return "Auto-suggest is OFF. Use /autosuggest on."
    if emit:
        emit("Thinking...")
    await pipeline.drain()
    p = pipeline.preview()
    cat = p["category"].value if p["category"] else ("unavailable" if p["category_unavailable"] else "-")
    dur = p["duration"].value if p["duration"] else ("unavailable" if p["duration_unavailable"] else "-")
    return f"Suggestion for '{p['text']}': #{cat} ~{dur}"


def cmd_autosuggest(state: AppState, args: list[str]) -> str:
    session = state.require_session()
    if not args:
        return f"Auto-suggest is {'ON' if session.pipeline.enabled else 'OFF'}. Use /autosuggest on|off."
    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        session.pipeline.set_enabled(True)
    elif arg in ("off", "0", "false", "no"):
        session.pipeline.set_enabled(False)
    else:
        return "Usage: /autosuggest on|off"
    return f"Auto-suggest {'ON' if session.pipeline.enabled else 'OFF'}."


def cmd_stats(state: AppState, args: list[str]) -> str:
    s = state.require_session().tasks.stats()
    return f"Tasks: {s['total']} total, {s['open']} open, {s['completed']} done, {s['overdue']} overdue."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, models and list settings.")
registry.register("login", cmd_login, help_text="Sign in: /login <user_id>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("list", cmd_list, help_text="Show tasks (sorted and filtered).", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [#category] [~estimate] [due:YYYY-MM-DD].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <n>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <n>.", aliases=["del"])
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <n> [title] [#category] [~estimate] [due:...].")
registry.register("sort", cmd_sort, help_text="Sort: /sort created_desc|created_asc|due_asc|due_desc.")
registry.register("filter", cmd_filter, help_text="Filter by category: /filter all|personal|work|...")
registry.register("suggest", cmd_suggest, help_text="Preview auto-suggested category/estimate for a title.")
registry.register("autosuggest", cmd_autosuggest, help_text="Enable/disable auto-suggest: /autosuggest on|off.")
registry.register("stats", cmd_stats, help_text="Task counts (open / done / overdue).")
