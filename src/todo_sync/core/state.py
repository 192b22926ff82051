# src/todo_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.task_store import TaskStore
from .errors import NotAuthenticatedError
from .ports import EnrichmentService, LLMClient
from .session import Session


@dataclass
class AppState:
    """Process-wide wiring. Per-user state lives in `session`."""

    # Store Settings on the state for easy access in other modules later.
    settings: object

    llm: LLMClient
    enrichment: EnrichmentService
    store: TaskStore

    session: Session | None = None

    def require_session(self) -> Session:
        if self.session is None or not self.session.started:
            raise NotAuthenticatedError("Not signed in. Use /login <user>.")
        return self.session
