# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_sync.core.state import AppState
from todo_sync.tasks.task_store import TaskStore

from .fakes import FakeEnrichmentService, FakeLLMClient, FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState, Session and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        # Short debounce so tests stay fast.
        auto_suggest=True,
        category_debounce_ms=20,
        duration_debounce_ms=30,
        enrichment_timeout_seconds=1.0,
        default_category="other",
        default_duration="30min",
        default_sort="created_desc",
        llm_models=[],
    )


@pytest.fixture()
def fake_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def enrichment() -> FakeEnrichmentService:
    return FakeEnrichmentService(category="health", duration="15min")


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    """Real SQLite store, signed in as u1."""
    store = TaskStore(tmp_path / "tasks.sqlite3")
    store.sign_in("u1")
    return store


@pytest.fixture()
def state(settings: SimpleNamespace, enrichment: FakeEnrichmentService) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep the real SQLite TaskStore here because the CLI drives it
    end to end.
    """
    return AppState(
        settings=settings,
        llm=FakeLLMClient(),
        enrichment=enrichment,
        store=TaskStore(settings.tasks_db_path),
    )
