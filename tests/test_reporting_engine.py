from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import date
from decimal import Decimal

import pytest

from worklog.core.config import Settings
from worklog.core.errors import AggregationDefect, MutationFailure, ValidationFailure
from worklog.engine.aggregation import AggregationEngine
from worklog.engine.filtering import filter_signature
from worklog.engine.reporting import ReportingEngine
from worklog.engine.types import EntityType, FilterCriteria, MutationOperation, RollupName, SlotState, ViewStatus

from support import FakeStoreGateway

MARCH = FilterCriteria(start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))
APRIL = FilterCriteria(start_date=date(2024, 4, 1), end_date=date(2024, 4, 30))


def _totals(view) -> list[tuple[str, Decimal]]:
    return [(bucket.label, bucket.total_hours) for bucket in view.value.buckets]


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_delete_invalidates_then_recomputes_dependent_rollups(
    fake_gateway: FakeStoreGateway, settings: Settings
) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    project = await engine.load_rollup(RollupName.PROJECT, MARCH)
    await engine.load_rollup(RollupName.ASSIGNEE, MARCH)
    billable = await engine.load_rollup(RollupName.BILLABLE_SUMMARY, MARCH)

    assert _totals(project) == [("Acme - Alpha", Decimal("5")), ("Acme - Beta", Decimal("5"))]
    assert [bucket.total_hours for bucket in billable.value.buckets] == [Decimal("8"), Decimal("2")]
    assert billable.value.billable_efficiency == Decimal("80.00")

    fake_gateway.collections[EntityType.TIME_ENTRY] = [
        entry for entry in fake_gateway.collections[EntityType.TIME_ENTRY] if entry.project_id != "p-b"
    ]
    fake_gateway.fetch_gate = asyncio.Event()
    sequence = asyncio.create_task(engine.on_mutation_succeeded(EntityType.TIME_ENTRY))
    await _settle()

    signature = filter_signature(MARCH)
    for name in (RollupName.PROJECT, RollupName.ASSIGNEE, RollupName.BILLABLE_SUMMARY):
        assert engine.cache.state_of(name, signature) is SlotState.STALE

    fake_gateway.fetch_gate.set()
    affected = await sequence

    assert RollupName.PROJECT in affected
    for name in (RollupName.PROJECT, RollupName.ASSIGNEE, RollupName.BILLABLE_SUMMARY):
        assert engine.cache.state_of(name, signature) is SlotState.FRESH
    recomputed = engine.compute_rollup(RollupName.PROJECT, MARCH)
    assert recomputed.status is ViewStatus.READY
    assert _totals(recomputed) == [("Acme - Alpha", Decimal("5"))]


@pytest.mark.asyncio
async def test_compute_rollup_returns_loading_then_ready(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)

    first = engine.compute_rollup(RollupName.BILLABLE_SUMMARY, MARCH)
    assert first.status is ViewStatus.LOADING
    assert first.value is None

    refreshed = await engine.wait_for_refreshes()
    assert [view.status for view in refreshed] == [ViewStatus.READY]

    fetches = len(fake_gateway.fetch_calls)
    second = engine.compute_rollup(RollupName.BILLABLE_SUMMARY, MARCH)
    assert second.status is ViewStatus.READY
    assert second.value.total_hours == Decimal("10")
    assert len(fake_gateway.fetch_calls) == fetches


@pytest.mark.asyncio
async def test_resident_collections_compute_synchronously(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    await engine.load_rollup(RollupName.BILLABLE_SUMMARY, MARCH)

    view = engine.compute_rollup(RollupName.WEEKLY_TREND, MARCH)

    assert view.status is ViewStatus.READY
    assert view.value.total_hours == Decimal("10")


@pytest.mark.asyncio
async def test_superseded_refresh_is_discarded(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)

    engine.compute_rollup(RollupName.PROJECT, MARCH)
    engine.compute_rollup(RollupName.PROJECT, APRIL)
    results = await engine.wait_for_refreshes()

    assert sorted(view.status.value for view in results) == ["ready", "superseded"]
    assert engine.cache.state_of(RollupName.PROJECT, filter_signature(MARCH)) is SlotState.ABSENT
    assert engine.cache.state_of(RollupName.PROJECT, filter_signature(APRIL)) is SlotState.FRESH


@pytest.mark.asyncio
async def test_mutation_failure_leaves_cache_untouched(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    await engine.load_rollup(RollupName.PROJECT, MARCH)
    await engine.load_rollup(RollupName.ASSIGNEE, APRIL)
    engine.cache.invalidate([RollupName.ASSIGNEE])
    before = engine.cache.states()
    fetches = len(fake_gateway.fetch_calls)
    fake_gateway.reject_mutations = True

    with pytest.raises(MutationFailure):
        await engine.submit_mutation(EntityType.TIME_ENTRY, MutationOperation.DELETE, {"id": "e-3"})

    assert engine.cache.states() == before
    assert len(fake_gateway.fetch_calls) == fetches
    assert engine.is_resident(EntityType.TIME_ENTRY)


@pytest.mark.asyncio
async def test_invalid_payload_never_reaches_gateway(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    payload = {
        "date": "2024-03-05",
        "effort": "30",
        "user_id": "u-1",
        "project_id": "p-a",
        "task_type_id": "tt-dev",
        "division_id": "d-eng",
    }

    with pytest.raises(ValidationFailure):
        await engine.submit_mutation(EntityType.TIME_ENTRY, MutationOperation.CREATE, payload)

    assert fake_gateway.mutations == []


@pytest.mark.asyncio
async def test_submit_mutation_refreshes_views_before_returning(
    fake_gateway: FakeStoreGateway, settings: Settings
) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    await engine.load_rollup(RollupName.PROJECT, MARCH)

    entry_id = await engine.submit_mutation(
        EntityType.TIME_ENTRY,
        MutationOperation.CREATE,
        {
            "date": "2024-03-06",
            "effort": "1.5",
            "user_id": "u-2",
            "project_id": "p-b",
            "task_type_id": "tt-dev",
            "division_id": "d-eng",
            "is_billable": False,
        },
    )

    assert entry_id.startswith("time_entry-")
    view = engine.compute_rollup(RollupName.PROJECT, MARCH)
    assert view.status is ViewStatus.READY
    assert _totals(view) == [("Acme - Beta", Decimal("6.5")), ("Acme - Alpha", Decimal("5"))]


@pytest.mark.asyncio
async def test_refetch_failure_is_reported_per_view(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    await engine.load_rollup(RollupName.ASSIGNEE, MARCH)
    await engine.load_rollup(RollupName.BILLABLE_SUMMARY, MARCH)
    fake_gateway.failing_fetches.add(EntityType.USER)

    await engine.on_mutation_succeeded(EntityType.USER)

    failed = engine.compute_rollup(RollupName.ASSIGNEE, MARCH)
    assert failed.status is ViewStatus.FAILED
    assert "user unavailable" in failed.error
    assert engine.cache.state_of(RollupName.ASSIGNEE, filter_signature(MARCH)) is SlotState.STALE
    assert engine.compute_rollup(RollupName.BILLABLE_SUMMARY, MARCH).status is ViewStatus.READY

    fake_gateway.failing_fetches.clear()
    assert engine.compute_rollup(RollupName.ASSIGNEE, MARCH).status is ViewStatus.FAILED

    assert engine.retry(RollupName.ASSIGNEE, MARCH).status is ViewStatus.LOADING
    await engine.wait_for_refreshes()
    assert engine.compute_rollup(RollupName.ASSIGNEE, MARCH).status is ViewStatus.READY


@pytest.mark.asyncio
async def test_background_fetch_failure_yields_failed_view(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    fake_gateway.failing_fetches.add(EntityType.TIME_ENTRY)

    assert engine.compute_rollup(RollupName.PROJECT, MARCH).status is ViewStatus.LOADING
    [refreshed] = await engine.wait_for_refreshes()

    assert refreshed.status is ViewStatus.FAILED
    assert engine.compute_rollup(RollupName.PROJECT, MARCH).status is ViewStatus.FAILED


@pytest.mark.asyncio
async def test_fetch_spanning_an_invalidation_is_repeated(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    fake_gateway.fetch_gate = asyncio.Event()

    pending = asyncio.create_task(engine.collection(EntityType.TIME_ENTRY))
    await _settle()
    engine.invalidate(EntityType.TIME_ENTRY)
    fake_gateway.collections[EntityType.TIME_ENTRY] = fake_gateway.collections[EntityType.TIME_ENTRY][:1]
    fake_gateway.fetch_gate.set()
    records = await pending

    assert fake_gateway.fetch_calls.count(EntityType.TIME_ENTRY) == 2
    assert [record.id for record in records] == ["e-1"]
    assert engine.epoch(EntityType.TIME_ENTRY) == 1


@pytest.mark.asyncio
async def test_concurrent_collection_requests_share_one_fetch(
    fake_gateway: FakeStoreGateway, settings: Settings
) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    fake_gateway.fetch_gate = asyncio.Event()

    first = asyncio.create_task(engine.collection(EntityType.PROJECT))
    second = asyncio.create_task(engine.collection(EntityType.PROJECT))
    await _settle()
    fake_gateway.fetch_gate.set()

    assert await first == await second
    assert fake_gateway.fetch_calls == [EntityType.PROJECT]


@pytest.mark.asyncio
async def test_every_named_view_can_be_loaded(fake_gateway: FakeStoreGateway, settings: Settings) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)

    for name in RollupName:
        view = await engine.load_rollup(name, MARCH)
        assert view.status is ViewStatus.READY, name


@pytest.mark.asyncio
async def test_refresh_waits_for_collections_invalidated_while_loading(
    fake_gateway: FakeStoreGateway, settings: Settings
) -> None:
    engine = ReportingEngine(fake_gateway, settings=settings)
    await engine.collection(EntityType.USER)
    entries_gate = asyncio.Event()
    fake_gateway.fetch_gates[EntityType.TIME_ENTRY] = entries_gate

    assert engine.compute_rollup(RollupName.ASSIGNEE, MARCH).status is ViewStatus.LOADING
    await _settle()

    users_gate = asyncio.Event()
    fake_gateway.fetch_gates[EntityType.USER] = users_gate
    fake_gateway.collections[EntityType.USER] = [
        dataclasses.replace(user, name="Ana Renamed") if user.id == "u-1" else user
        for user in fake_gateway.collections[EntityType.USER]
    ]
    sequence = asyncio.create_task(engine.on_mutation_succeeded(EntityType.USER))
    await _settle()

    entries_gate.set()
    await _settle()
    assert engine.cache.state_of(RollupName.ASSIGNEE, filter_signature(MARCH)) is not SlotState.FRESH

    users_gate.set()
    await sequence
    await engine.wait_for_refreshes()

    assert engine.cache.state_of(RollupName.ASSIGNEE, filter_signature(MARCH)) is SlotState.FRESH
    view = engine.compute_rollup(RollupName.ASSIGNEE, MARCH)
    assert view.status is ViewStatus.READY
    assert "Ana Renamed" in [label for label, _ in _totals(view)]
    assert "Ana" not in [label for label, _ in _totals(view)]


class _ReconciliationBreaks(AggregationEngine):
    broken = False

    def aggregate(self, entries, dimension, **kwargs):
        if self.broken:
            raise AggregationDefect(RollupName.ASSIGNEE.value, "bucket totals do not add up")
        return super().aggregate(entries, dimension, **kwargs)


@pytest.mark.asyncio
async def test_recompute_defect_is_recorded_and_logged_once(
    fake_gateway: FakeStoreGateway, settings: Settings, caplog: pytest.LogCaptureFixture
) -> None:
    aggregation = _ReconciliationBreaks()
    engine = ReportingEngine(fake_gateway, settings=settings, aggregation=aggregation)
    await engine.load_rollup(RollupName.ASSIGNEE, MARCH)
    aggregation.broken = True

    with caplog.at_level(logging.WARNING, logger="worklog.engine.reporting"):
        await engine.on_mutation_succeeded(EntityType.TIME_ENTRY)

    failed = engine.compute_rollup(RollupName.ASSIGNEE, MARCH)
    assert failed.status is ViewStatus.FAILED
    assert failed.error == "bucket totals do not add up"
    reported = [record for record in caplog.records if record.name == "worklog.engine.reporting"]
    assert [record.levelno for record in reported] == [logging.ERROR]
