# src/todo_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The task list and enrichment pipeline depend on Protocols instead of concrete
implementations. This keeps the remote store and LLM provider swappable and
makes testing easier.
"""

from collections.abc import Callable
from typing import Protocol

from ..tasks.task_models import RemoteEvent, SortOrder, Task, TaskDraft, TaskPatch, User

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.

EventHandler = Callable[[RemoteEvent], None]


class LLMClient(Protocol):
    """Chat completion client (OpenAI/OpenRouter-compatible). Blocking."""

    def complete(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 10,
    ) -> str: ...


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class RemoteStore(Protocol):
    """
    Owner-scoped task collection with a change feed.

    Authorization is the store's job: every call only sees the current
    principal's rows, and events are only delivered to that owner's subscribers.
    """

    def current_user(self) -> User | None: ...

    async def list_tasks(self, owner_id: str, order: SortOrder) -> list[Task]: ...

    async def create_task(self, draft: TaskDraft) -> Task: ...

    async def update_task(self, task_id: str, patch: TaskPatch) -> None: ...

    async def delete_task(self, task_id: str) -> None: ...

    def subscribe(self, owner_id: str, on_event: EventHandler) -> Subscription: ...


class EnrichmentService(Protocol):
    """
    Best-effort title classification. Returns raw model output; callers normalize.

    Both calls may raise; both are stateless and side-effect-free.
    """

    async def classify_category(self, text: str) -> str: ...

    async def estimate_duration(self, text: str, description: str | None = None) -> str: ...
