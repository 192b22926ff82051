# src/todo_sync/enrichment/pipeline.py

from __future__ import annotations

"""
Enrichment pipeline.

Two responsibilities:
- speculative previews while the user is composing a title (debounced, one
  debouncer per suggestion kind),
- best-effort resolution of (category, duration) at submission time.

Each debouncer carries a generation counter. Scheduling a new preview bumps the
generation and cancels the previous timer task; a result is only stored if its
generation is still current when it arrives (last-issued-wins).

Enrichment never raises to the caller: failures and timeouts fall back to
defaults and set a soft "unavailable" flag on the preview.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.ports import EnrichmentService
from ..tasks.task_models import Category, DurationEstimate
from .normalize import normalize_category, normalize_duration

logger = logging.getLogger(__name__)


class SuggestionKind(StrEnum):
    CATEGORY = "category"
    DURATION = "duration"


@dataclass(slots=True, frozen=True)
class Suggestion:
    text: str
    value: Any


class _Debouncer:
    """One cancelable delayed call, plus the last accepted result."""

    def __init__(self, kind: SuggestionKind, delay_s: float, fetch: Callable[[str], Awaitable[Any]]) -> None:
        self.kind = kind
        self.delay_s = max(0.0, float(delay_s))
        self._fetch = fetch
        self._timer: asyncio.Task[None] | None = None
        self.generation = 0
        self.suggestion: Suggestion | None = None
        self.unavailable = False

    def clear(self) -> None:
        self.generation += 1
        self.cancel()
        self.suggestion = None
        self.unavailable = False

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def schedule(self, text: str) -> None:
        self.generation += 1
        self.cancel()
        self._timer = asyncio.create_task(
            self._run(self.generation, text), name=f"enrich-{self.kind.value}-{self.generation}"
        )

    async def _run(self, generation: int, text: str) -> None:
        await asyncio.sleep(self.delay_s)
        if generation != self.generation:
            return

        logger.debug("Enrichment preview: kind=%s gen=%s", self.kind.value, generation)
        try:
            value = await self._fetch(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation == self.generation:
                self.unavailable = True
            logger.info("Enrichment preview failed kind=%s (%s)", self.kind.value, e.__class__.__name__)
            return

        if generation != self.generation:
            logger.debug("Discarding stale %s suggestion gen=%s", self.kind.value, generation)
            return

        self.suggestion = Suggestion(text=text, value=value)
        self.unavailable = False

    def current_for(self, text: str) -> Any | None:
        s = self.suggestion
        if s is None or s.text != text:
            return None
        return s.value

    async def wait(self) -> None:
        timer = self._timer
        if timer is None:
            return
        try:
            # Shielded so cancelling the waiter leaves the preview running.
            await asyncio.shield(timer)
        except asyncio.CancelledError:
            # Swallow only a superseded timer, never the caller's own cancellation.
            current = asyncio.current_task()
            if not timer.cancelled() or (current is not None and current.cancelling()):
                raise


class EnrichmentPipeline:
    def __init__(
        self,
        service: EnrichmentService | None,
        *,
        category_delay_s: float = 0.8,
        duration_delay_s: float = 1.0,
        timeout_s: float = 8.0,
        enabled: bool = True,
    ) -> None:
        self._service = service
        self.timeout_s = max(0.1, float(timeout_s))
        self.enabled = bool(enabled) and service is not None
        self._text = ""

        self._category = _Debouncer(SuggestionKind.CATEGORY, category_delay_s, self._fetch_category)
        self._duration = _Debouncer(SuggestionKind.DURATION, duration_delay_s, self._fetch_duration)

    # ---- fetchers (raw -> normalized) ----

    async def _fetch_category(self, text: str) -> Category:
        assert self._service is not None
        raw = await self._service.classify_category(text)
        return normalize_category(raw)

    async def _fetch_duration(self, text: str, description: str | None = None) -> DurationEstimate:
        assert self._service is not None
        raw = await self._service.estimate_duration(text, description)
        return normalize_duration(raw)

    # ---- composing ----

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled) and self._service is not None
        if not self.enabled:
            self._category.clear()
            self._duration.clear()
        elif self._text:
            self.on_text_changed(self._text)

    def on_text_changed(self, text: str) -> None:
        """Restart both debounce timers for `text`. Must be called on the event loop."""
        self._text = (text or "").strip()

        if not self._text or not self.enabled:
            self._category.clear()
            self._duration.clear()
            return

        self._category.schedule(self._text)
        self._duration.schedule(self._text)

    def preview(self) -> dict[str, Any]:
        """Current suggestions for the text being composed (None if not ready)."""
        return {
            "text": self._text,
            "category": self._category.current_for(self._text),
            "duration": self._duration.current_for(self._text),
            "category_unavailable": self._category.unavailable,
            "duration_unavailable": self._duration.unavailable,
        }

    async def drain(self) -> None:
        """Wait for pending preview timers (and their calls) to finish."""
        await self._category.wait()
        await self._duration.wait()

    def close(self) -> None:
        self._category.clear()
        self._duration.clear()
        self._text = ""

    # ---- submission ----

    async def _bounded(self, kind: SuggestionKind, call: Awaitable[Any], default: Any) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.info("Enrichment %s timed out after %.1fs; using default %s", kind.value, self.timeout_s, default)
        except Exception as e:
            logger.info("Enrichment %s failed (%s); using default %s", kind.value, e.__class__.__name__, default)
        return default

    async def resolve(
        self,
        text: str,
        category: Category | None = None,
        duration: DurationEstimate | None = None,
        *,
        default_category: Category = Category.OTHER,
        default_duration: DurationEstimate | None = None,
        description: str | None = None,
    ) -> tuple[Category, DurationEstimate | None]:
        """
        Pick (category, duration) for a task about to be created.

        Order per field: explicit value -> fresh preview for this exact text ->
        one bounded call -> default.
        """
        text = (text or "").strip()

        async def pick_category() -> Category:
            if category is not None:
                return category
            cached = self._category.current_for(text)
            if cached is not None:
                return cached
            if not text or self._service is None:
                return default_category
            return await self._bounded(SuggestionKind.CATEGORY, self._fetch_category(text), default_category)

        async def pick_duration() -> DurationEstimate | None:
            if duration is not None:
                return duration
            if description is None:
                cached = self._duration.current_for(text)
                if cached is not None:
                    return cached
            if not text or self._service is None:
                return default_duration
            return await self._bounded(
                SuggestionKind.DURATION, self._fetch_duration(text, description), default_duration
            )

        cat, dur = await asyncio.gather(pick_category(), pick_duration())
        return cat, dur
