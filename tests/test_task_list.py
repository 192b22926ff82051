# tests/test_task_list.py

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date

import pytest

from todo_sync.core.errors import NotAuthenticatedError, RemoteStoreError
from todo_sync.enrichment.pipeline import EnrichmentPipeline
from todo_sync.tasks.task_list import ReconcilingTaskList
from todo_sync.tasks.task_models import (
    Category,
    DurationEstimate,
    SortOrder,
    TaskDeleted,
    TaskInserted,
    TaskPatch,
    TaskUpdated,
)

from .fakes import FakeEnrichmentService, FakeRemoteStore, make_task


def _ids(lst: ReconcilingTaskList) -> list[str]:
    return [t.id for t in lst.tasks]


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_load_replaces_state_wholesale(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a", minutes=1), make_task("b", minutes=2), make_task("x", owner_id="u2"))
    lst = ReconcilingTaskList(fake_store)
    lst.apply_remote_event(TaskInserted(make_task("stale")))

    await lst.load()

    assert _ids(lst) == ["b", "a"]


@pytest.mark.asyncio
async def test_load_failure_leaves_state_unchanged(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.apply_remote_event(TaskInserted(make_task("a")))
    fake_store.fail.add("list")

    with pytest.raises(RemoteStoreError):
        await lst.load()

    assert _ids(lst) == ["a"]
    assert fake_store.op_count("list") == 1


@pytest.mark.asyncio
async def test_add_confirms_in_place(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store, sort_order=SortOrder.CREATED_ASC)
    lst.apply_remote_event(TaskInserted(make_task("first")))
    lst.apply_remote_event(TaskInserted(make_task("last", minutes=5)))

    gate = asyncio.Event()
    fake_store.gate = gate
    running = asyncio.create_task(lst.add("Buy milk", Category.SHOPPING, DurationEstimate.MIN_10))
    await _settle()

    # Optimistic: visible before the store answers.
    assert len(lst) == 3
    provisional = lst.tasks[2]
    assert provisional.is_provisional
    assert provisional.title == "Buy milk"
    assert provisional.id in lst.pending

    gate.set()
    confirmed = await running

    assert confirmed is not None
    assert confirmed.id == "srv-1"
    assert _ids(lst) == ["first", "last", "srv-1"]
    assert not lst.pending


@pytest.mark.asyncio
async def test_add_failure_rolls_back_to_exact_prior_contents(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.apply_remote_event(TaskInserted(make_task("a")))
    before = lst.tasks
    fake_store.fail.add("create")

    with pytest.raises(RemoteStoreError):
        await lst.add("Buy milk", Category.SHOPPING, DurationEstimate.MIN_10)

    assert lst.tasks == before
    assert not any(t.is_provisional for t in lst.tasks)
    assert not lst.pending


@pytest.mark.asyncio
async def test_add_empty_title_is_noop(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)

    assert await lst.add("   ") is None

    assert len(lst) == 0
    assert fake_store.calls == []


@pytest.mark.asyncio
async def test_add_without_principal_aborts_before_mutation(fake_store: FakeRemoteStore) -> None:
    fake_store.user = None
    lst = ReconcilingTaskList(fake_store)

    with pytest.raises(NotAuthenticatedError):
        await lst.add("Buy milk")

    assert len(lst) == 0
    assert fake_store.calls == []


@pytest.mark.asyncio
async def test_feed_insert_before_confirmation_does_not_duplicate(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    gate = asyncio.Event()
    fake_store.gate = gate

    running = asyncio.create_task(lst.add("Call mom", Category.PERSONAL, DurationEstimate.MIN_15))
    await _settle()

    # The change feed wins the race.
    server_task = make_task("srv-1", "Call mom", category=Category.PERSONAL)
    lst.apply_remote_event(TaskInserted(server_task))
    assert len(lst) == 2

    gate.set()
    await running

    assert _ids(lst) == ["srv-1"]


@pytest.mark.asyncio
async def test_feed_insert_after_confirmation_does_not_duplicate(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)

    confirmed = await lst.add("Call mom", Category.PERSONAL, DurationEstimate.MIN_15)
    assert confirmed is not None

    lst.apply_remote_event(TaskInserted(confirmed))
    lst.apply_remote_event(TaskInserted(confirmed))

    assert _ids(lst) == [confirmed.id]


@pytest.mark.asyncio
async def test_concurrent_adds_get_independent_placeholders(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    gate = asyncio.Event()
    fake_store.gate = gate

    first = asyncio.create_task(lst.add("one", Category.WORK, DurationEstimate.HR_1))
    second = asyncio.create_task(lst.add("two", Category.WORK, DurationEstimate.HR_1))
    await _settle()

    placeholders = [t.id for t in lst.tasks]
    assert len(placeholders) == 2
    assert len(set(placeholders)) == 2
    assert all(t.is_provisional for t in lst.tasks)

    gate.set()
    await asyncio.gather(first, second)

    assert sorted(t.title for t in lst.tasks) == ["one", "two"]
    assert not any(t.is_provisional for t in lst.tasks)


@pytest.mark.asyncio
async def test_remove_failure_restores_task(fake_store: FakeRemoteStore) -> None:
    a, b = make_task("a"), make_task("b", "keep me", due_date=date(2026, 2, 1))
    fake_store.seed(a, b)
    lst = ReconcilingTaskList(fake_store)
    await lst.load()
    fake_store.fail.add("delete")

    with pytest.raises(RemoteStoreError):
        await lst.remove("b")

    assert lst.get("b") == b
    assert sorted(_ids(lst)) == ["a", "b"]


@pytest.mark.asyncio
async def test_remove_is_optimistic(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()
    gate = asyncio.Event()
    fake_store.gate = gate

    running = asyncio.create_task(lst.remove("a"))
    await _settle()
    assert "a" not in lst

    gate.set()
    assert await running is True
    assert len(lst) == 0


@pytest.mark.asyncio
async def test_toggle_unknown_id_is_noop(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    assert await lst.toggle_complete("missing") is False
    assert fake_store.calls == []


@pytest.mark.asyncio
async def test_add_then_toggle_then_failed_toggle_reverts(fake_store: FakeRemoteStore) -> None:
    enrichment = FakeEnrichmentService(category="health", duration="15min")
    pipeline = EnrichmentPipeline(enrichment, category_delay_s=0.01, duration_delay_s=0.01)
    lst = ReconcilingTaskList(fake_store, enrichment=pipeline)

    task = await lst.add("Call dentist")

    assert task is not None
    assert len(lst) == 1
    assert task.category == Category.HEALTH
    assert task.duration_estimate == DurationEstimate.MIN_15
    assert task.is_complete is False

    gate = asyncio.Event()
    fake_store.gate = gate
    fake_store.fail.add("update")

    running = asyncio.create_task(lst.toggle_complete(task.id))
    await _settle()
    assert lst.get(task.id).is_complete is True  # type: ignore[union-attr]

    gate.set()
    with pytest.raises(RemoteStoreError):
        await running

    assert lst.get(task.id).is_complete is False  # type: ignore[union-attr]
    assert not lst.pending


@pytest.mark.asyncio
async def test_toggle_success_persists(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()

    assert await lst.toggle_complete("a") is True

    assert lst.get("a").is_complete is True  # type: ignore[union-attr]
    assert fake_store.rows["a"].is_complete is True


@pytest.mark.asyncio
async def test_add_falls_back_to_defaults_when_enrichment_fails(fake_store: FakeRemoteStore) -> None:
    enrichment = FakeEnrichmentService(category=ConnectionError("down"), duration=ConnectionError("down"))
    pipeline = EnrichmentPipeline(enrichment, category_delay_s=0.01, duration_delay_s=0.01)
    lst = ReconcilingTaskList(fake_store, enrichment=pipeline)

    task = await lst.add("Something", default_category=Category.WORK, default_duration=DurationEstimate.HR_2)

    assert task is not None
    assert task.category == Category.WORK
    assert task.duration_estimate == DurationEstimate.HR_2


def test_remote_events_are_idempotent(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    a = make_task("a")

    lst.apply_remote_event(TaskInserted(a))
    once = lst.tasks
    lst.apply_remote_event(TaskInserted(a))
    assert lst.tasks == once

    updated = replace(a, title="renamed", is_complete=True)
    lst.apply_remote_event(TaskUpdated(updated))
    once = lst.tasks
    lst.apply_remote_event(TaskUpdated(updated))
    assert lst.tasks == once
    assert lst.get("a") == updated

    lst.apply_remote_event(TaskDeleted("a"))
    lst.apply_remote_event(TaskDeleted("a"))
    assert len(lst) == 0


def test_remote_events_for_absent_ids_are_ignored(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.apply_remote_event(TaskInserted(make_task("a")))

    lst.apply_remote_event(TaskUpdated(make_task("ghost")))
    lst.apply_remote_event(TaskDeleted("ghost"))

    assert _ids(lst) == ["a"]


@pytest.mark.asyncio
async def test_remote_update_replaces_in_place(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a", minutes=1), make_task("b", minutes=2), make_task("c", minutes=3))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()

    lst.apply_remote_event(TaskUpdated(make_task("b", "B!", minutes=2)))

    assert _ids(lst) == ["c", "b", "a"]
    assert lst.get("b").title == "B!"  # type: ignore[union-attr]


def test_visible_sorts_and_filters(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    for t in (
        make_task("nodue", minutes=3, category=Category.WORK),
        make_task("late", minutes=1, due_date=date(2026, 3, 1), category=Category.WORK),
        make_task("soon", minutes=2, due_date=date(2026, 2, 1), category=Category.HEALTH),
    ):
        lst.apply_remote_event(TaskInserted(t))

    lst.sort_order = SortOrder.DUE_ASC
    assert [t.id for t in lst.visible()] == ["soon", "late", "nodue"]

    lst.sort_order = SortOrder.DUE_DESC
    assert [t.id for t in lst.visible()] == ["nodue", "late", "soon"]

    lst.sort_order = SortOrder.CREATED_ASC
    lst.set_filter("work")
    assert [t.id for t in lst.visible()] == ["late", "nodue"]

    lst.set_filter("all")
    assert len(lst.visible()) == 3


@pytest.mark.asyncio
async def test_set_sort_order_reloads(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)

    await lst.set_sort_order(SortOrder.DUE_ASC)

    assert lst.sort_order == SortOrder.DUE_ASC
    assert fake_store.calls == [("list", SortOrder.DUE_ASC)]


def test_stats_counts_overdue(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.apply_remote_event(TaskInserted(make_task("a", due_date=date(2026, 1, 1))))
    lst.apply_remote_event(TaskInserted(make_task("b", due_date=date(2026, 1, 1), is_complete=True)))
    lst.apply_remote_event(TaskInserted(make_task("c")))

    assert lst.stats(today=date(2026, 1, 2)) == {"total": 3, "completed": 1, "open": 2, "overdue": 1}


@pytest.mark.asyncio
async def test_attach_pumps_feed_and_detach_stops_it(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.attach()

    fake_store.emit(TaskInserted(make_task("a")))
    await lst.flush_events()
    assert _ids(lst) == ["a"]

    await lst.detach()
    assert fake_store.handlers == []

    fake_store.emit(TaskInserted(make_task("b")))
    await _settle()
    assert _ids(lst) == ["a"]


@pytest.mark.asyncio
async def test_interleaved_operations_keep_one_entry_per_id(fake_store: FakeRemoteStore) -> None:
    lst = ReconcilingTaskList(fake_store)
    lst.attach()

    a = await lst.add("a", Category.WORK, DurationEstimate.MIN_5)
    b = await lst.add("b", Category.WORK, DurationEstimate.MIN_5)
    assert a is not None and b is not None

    fake_store.emit(TaskInserted(a))
    fake_store.emit(TaskInserted(b))
    await lst.toggle_complete(a.id)
    fake_store.emit(TaskUpdated(replace(a, is_complete=True)))
    await lst.remove(b.id)
    fake_store.emit(TaskInserted(b))  # late duplicate of an already-known insert
    fake_store.emit(TaskDeleted(b.id))
    await lst.flush_events()

    ids = _ids(lst)
    assert ids == [a.id]
    assert len(ids) == len(set(ids))
    assert lst.get(a.id).is_complete is True  # type: ignore[union-attr]

    await lst.detach()


@pytest.mark.asyncio
async def test_feed_insert_before_confirmation_keeps_placeholder_position(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("x", minutes=1), make_task("y", minutes=2))
    lst = ReconcilingTaskList(fake_store, sort_order=SortOrder.CREATED_ASC)
    await lst.load()
    gate = asyncio.Event()
    fake_store.gate = gate

    running = asyncio.create_task(lst.add("Water plants", Category.PERSONAL, DurationEstimate.MIN_5))
    await _settle()
    placeholder_id = _ids(lst)[2]

    lst.apply_remote_event(TaskInserted(make_task("z", minutes=3)))
    lst.apply_remote_event(TaskInserted(make_task("srv-1", "Water plants", minutes=4)))
    assert _ids(lst) == ["x", "y", placeholder_id, "z", "srv-1"]

    gate.set()
    await running

    assert _ids(lst) == ["x", "y", "srv-1", "z"]


@pytest.mark.asyncio
async def test_update_failure_reverts_only_touched_fields(fake_store: FakeRemoteStore) -> None:
    original = make_task("a", "Old title", category=Category.WORK)
    fake_store.seed(original)
    lst = ReconcilingTaskList(fake_store)
    await lst.load()
    gate = asyncio.Event()
    fake_store.gate = gate
    fake_store.fail.add("update")

    running = asyncio.create_task(lst.update("a", TaskPatch(title="New title")))
    await _settle()
    assert lst.get("a").title == "New title"  # type: ignore[union-attr]
    assert "a" in lst.pending

    # Another client recategorizes while our edit is in flight.
    lst.apply_remote_event(TaskUpdated(replace(original, category=Category.HEALTH)))

    gate.set()
    with pytest.raises(RemoteStoreError):
        await running

    task = lst.get("a")
    assert task is not None
    assert task.title == "Old title"
    assert task.category == Category.HEALTH
    assert not lst.pending


@pytest.mark.asyncio
async def test_update_success_trims_title_and_persists(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a", "Old title"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()

    changed = await lst.update("a", TaskPatch(title="  Tidy desk ", duration_estimate=DurationEstimate.MIN_20))

    assert changed is True
    assert lst.get("a").title == "Tidy desk"  # type: ignore[union-attr]
    assert fake_store.rows["a"].title == "Tidy desk"
    assert fake_store.rows["a"].duration_estimate == DurationEstimate.MIN_20


@pytest.mark.asyncio
async def test_update_on_pending_task_is_noop(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()
    gate = asyncio.Event()
    fake_store.gate = gate

    running = asyncio.create_task(lst.toggle_complete("a"))
    await _settle()

    assert await lst.update("a", TaskPatch(title="Renamed")) is False
    assert lst.get("a").title == "task"  # type: ignore[union-attr]

    gate.set()
    assert await running is True
    assert fake_store.op_count("update") == 1


@pytest.mark.asyncio
async def test_empty_patch_is_noop(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()

    assert await lst.update("a", TaskPatch()) is False
    assert fake_store.op_count("update") == 0


@pytest.mark.asyncio
async def test_blank_title_is_rejected_before_mutation(fake_store: FakeRemoteStore) -> None:
    fake_store.seed(make_task("a", "Keep me"))
    lst = ReconcilingTaskList(fake_store)
    await lst.load()

    assert await lst.update("a", TaskPatch(title="   ")) is False
    assert await lst.update("a", TaskPatch(title="", is_complete=True)) is False

    task = lst.get("a")
    assert task is not None
    assert task.title == "Keep me"
    assert task.is_complete is False
    assert fake_store.op_count("update") == 0
    assert fake_store.rows["a"].title == "Keep me"
