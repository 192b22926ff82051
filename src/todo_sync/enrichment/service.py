# src/todo_sync/enrichment/service.py

from __future__ import annotations

import asyncio
import logging

from ..core.ports import LLMClient
from ..tasks.task_models import Category

logger = logging.getLogger(__name__)

CATEGORY_SYSTEM_PROMPT = (
    "You are a task categorization assistant. Categorize tasks into exactly one of these "
    f"categories: {', '.join(c.value for c in Category)}. "
    "Respond with only the category name, lowercase, no explanation."
)

DURATION_SYSTEM_PROMPT = (
    "You are a task time estimation assistant. Estimate how long a task will take "
    "based on its description.\n\n"
    "You MUST choose ONLY ONE of these time ranges:\n"
    "- 5min, 10min, 15min, 20min, 30min, 45min (for short tasks)\n"
    "- 1hr, 1.5hrs, 2hrs, 2.5hrs, 3hrs, 4hrs, 5hrs (for medium tasks)\n"
    "- 6hrs, 8hrs, 1day, 2days, 3days, 1week (for long tasks)\n\n"
    "Respond with ONLY the time estimate, no explanation or additional text."
)


class LLMEnrichmentService:
    """
    EnrichmentService backed by a chat model.

    Returns the model's raw answer; normalization is the pipeline's job.
    The blocking LLM call runs on a worker thread.
    """

    def __init__(self, llm: LLMClient, *, temperature: float = 0.3, max_tokens: int = 10) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def _ask(self, system_prompt: str, user_content: str) -> str:
        return await asyncio.to_thread(
            self._llm.complete,
            [{"role": "user", "content": user_content}],
            system_prompt,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    async def classify_category(self, text: str) -> str:
        text = (text or "").strip()
        if not text:
            raise ValueError("Title is required")
        raw = await self._ask(CATEGORY_SYSTEM_PROMPT, f'Categorize this task: "{text}"')
        logger.debug("classify_category -> %r", raw)
        return raw

    async def estimate_duration(self, text: str, description: str | None = None) -> str:
        text = (text or "").strip()
        if not text:
            raise ValueError("Title is required")
        description = (description or "").strip()
        content = f"Title: {text}\nDescription: {description}" if description else f"Task: {text}"
        raw = await self._ask(DURATION_SYSTEM_PROMPT, f'Estimate how long this task will take: "{content}"')
        logger.debug("estimate_duration -> %r", raw)
        return raw
