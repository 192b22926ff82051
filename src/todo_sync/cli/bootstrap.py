# src/todo_sync/cli/bootstrap.py

"""
Composition root.

Wires the concrete LLM client, enrichment service and SQLite store into
AppState, and turns sign-in / sign-out into Session start / close.
Only this module knows which implementation sits behind each port.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LLMClient
from ..core.session import Session
from ..core.state import AppState
from ..enrichment.service import LLMEnrichmentService
from ..llm.client import OpenRouterLLMClient, friendly_llm_error_message
from ..llm.offline import OfflineLLMClient
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

# Short, near-deterministic answers: one category word or one bucket.
ENRICHMENT_TEMPERATURE = 0.3
ENRICHMENT_MAX_TOKENS = 10


def _build_llm(settings) -> LLMClient:
    try:
        client = OpenRouterLLMClient(settings)
    except RuntimeError as e:
        logger.info("Auto-suggest runs offline: %s", friendly_llm_error_message(e))
        return OfflineLLMClient()
    logger.info("Auto-suggest models: %s", ", ".join(client.models) or "(none)")
    return client


def create_initial_state(*, settings=None) -> AppState:
    """Build AppState; `settings` defaults to the process-wide Settings."""
    if settings is None:
        settings = get_settings()

    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)

    llm = _build_llm(settings)
    return AppState(
        settings=settings,
        llm=llm,
        enrichment=LLMEnrichmentService(
            llm, temperature=ENRICHMENT_TEMPERATURE, max_tokens=ENRICHMENT_MAX_TOKENS
        ),
        store=TaskStore(settings.tasks_db_path),
    )


async def sign_in(state: AppState, user_id: str) -> Session:
    """Replace any current session with a started one for `user_id`."""
    await sign_out(state)

    state.store.sign_in(user_id)
    session = Session(state.store, state.enrichment, state.settings)
    try:
        await session.start()
    except BaseException:
        state.store.sign_out()
        raise
    state.session = session
    return session


async def sign_out(state: AppState) -> None:
    session, state.session = state.session, None
    if session is not None:
        await session.close()
    state.store.sign_out()
