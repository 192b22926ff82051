# src/todo_sync/core/session.py

"""
One signed-in session.

Owns the task list, the enrichment pipeline and the change-feed subscription
for a single principal. Nothing here is global: sign-in creates a Session,
sign-out closes it.
"""

from __future__ import annotations

import logging
from types import TracebackType

from ..enrichment.pipeline import EnrichmentPipeline
from ..tasks.task_list import ReconcilingTaskList
from ..tasks.task_models import Category, DurationEstimate, SortOrder
from .errors import NotAuthenticatedError
from .ports import EnrichmentService, RemoteStore

logger = logging.getLogger(__name__)


def _parse_duration(raw: str) -> DurationEstimate | None:
    raw = (raw or "").strip().lower()
    if not raw or raw == "none":
        return None
    return DurationEstimate(raw)


class Session:
    def __init__(self, store: RemoteStore, enrichment: EnrichmentService | None, settings) -> None:
        self._store = store
        self.settings = settings

        self.pipeline = EnrichmentPipeline(
            enrichment,
            category_delay_s=int(getattr(settings, "category_debounce_ms", 800)) / 1000.0,
            duration_delay_s=int(getattr(settings, "duration_debounce_ms", 1000)) / 1000.0,
            timeout_s=float(getattr(settings, "enrichment_timeout_seconds", 8.0)),
            enabled=bool(getattr(settings, "auto_suggest", True)),
        )
        self.tasks = ReconcilingTaskList(
            store,
            enrichment=self.pipeline,
            sort_order=SortOrder(getattr(settings, "default_sort", SortOrder.CREATED_DESC.value)),
            default_category=Category(getattr(settings, "default_category", Category.OTHER.value)),
            default_duration=_parse_duration(getattr(settings, "default_duration", "30min")),
        )
        self._started = False

    @property
    def user_id(self) -> str | None:
        user = self._store.current_user()
        return user.id if user else None

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Subscribe first, then load, so no change between the two is missed."""
        if self._started:
            return
        if self._store.current_user() is None:
            raise NotAuthenticatedError("Sign in before starting a session.")

        self.tasks.attach()
        try:
            await self.tasks.load()
        except Exception:
            await self.tasks.detach()
            raise
        self._started = True
        logger.info("Session started user=%s tasks=%d", self.user_id, len(self.tasks))

    async def close(self) -> None:
        self.pipeline.close()
        await self.tasks.detach()
        if self._started:
            logger.info("Session closed user=%s", self.user_id)
        self._started = False

    async def __aenter__(self) -> Session:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
