# src/todo_sync/llm/offline.py

from __future__ import annotations

from ..core.ports import ChatMessage

_CATEGORY_HINTS: dict[str, tuple[str, ...]] = {
    "shopping": ("buy", "shop", "order", "groceries", "milk", "store"),
    "health": ("doctor", "dentist", "gym", "run", "workout", "pharmacy", "meds"),
    "work": ("meeting", "report", "email", "deploy", "review", "client", "slides"),
    "personal": ("call mom", "birthday", "laundry", "clean", "book", "family"),
}


class OfflineLLMClient:
    """
    Offline deterministic LLM client used when no external API is configured.

    Behavior:
    - Category prompts -> keyword guess, else "other"
    - Time estimate prompts -> "30min"
    """

    def complete(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 10,
    ) -> str:
        sp = (system_prompt or "").lower()
        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"].lower()
                break

        if "categorization" in sp:
            for category, words in _CATEGORY_HINTS.items():
                if any(w in user_text for w in words):
                    return category
            return "other"

        if "time estimation" in sp:
            return "30min"

        return ""
