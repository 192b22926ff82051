# src/todo_sync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .tasks.task_models import Category, DurationEstimate, SortOrder

ENV_PREFIX = "TODO"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_choice(name: str, default: str, allowed: Iterable[str]) -> str:
    """Lowercased value if it is one of `allowed`; otherwise `default`."""
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    return value if value in set(allowed) else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- LLM (OpenAI-compatible, OpenRouter by default) ----
    llm_api_key: str | None
    llm_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Session ----
    default_user: str

    # ---- Enrichment tuning ----
    auto_suggest: bool
    category_debounce_ms: int
    duration_debounce_ms: int
    enrichment_timeout_seconds: float

    # ---- Task defaults ----
    default_category: str
    default_duration: str
    default_sort: str

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "todo-sync")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        llm_api_key = _first_env(_k("LLM_API_KEY"), "OPENROUTER_API_KEY", "OPENAI_API_KEY", default=None)
        llm_base_url = _env(_k("LLM_BASE_URL"), "https://openrouter.ai/api/v1")
        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "openai/gpt-4o-mini",
                "openai/gpt-3.5-turbo",
                "qwen/qwen-2.5-72b-instruct:free",
            ],
        )

        extra_headers = {
            "HTTP-Referer": _env(_k("HTTP_REFERER"), "https://example.com"),
            "X-Title": _env(_k("APP_TITLE"), app_name),
        }

        llm_connect_timeout_seconds = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        llm_read_timeout_seconds = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 15.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/todo-sync"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        default_user = _env(_k("DEFAULT_USER"), "").strip()

        auto_suggest = _env_bool(_k("AUTO_SUGGEST"), True)
        category_debounce_ms = _env_int(_k("CATEGORY_DEBOUNCE_MS"), 800)
        duration_debounce_ms = _env_int(_k("DURATION_DEBOUNCE_MS"), 1000)
        enrichment_timeout_seconds = _env_float(_k("ENRICHMENT_TIMEOUT_SECONDS"), 8.0)

        # Unknown values fall back so a typo in .env cannot break sign-in.
        default_category = _env_choice(_k("DEFAULT_CATEGORY"), Category.OTHER.value, (c.value for c in Category))
        default_duration = _env_choice(
            _k("DEFAULT_DURATION"), DurationEstimate.MIN_30.value, ["none", *(d.value for d in DurationEstimate)]
        )
        default_sort = _env_choice(_k("DEFAULT_SORT"), SortOrder.CREATED_DESC.value, (s.value for s in SortOrder))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            llm_connect_timeout_seconds=llm_connect_timeout_seconds,
            llm_read_timeout_seconds=llm_read_timeout_seconds,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            default_user=default_user,
            auto_suggest=auto_suggest,
            category_debounce_ms=category_debounce_ms,
            duration_debounce_ms=duration_debounce_ms,
            enrichment_timeout_seconds=enrichment_timeout_seconds,
            default_category=default_category,
            default_duration=default_duration,
            default_sort=default_sort,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
