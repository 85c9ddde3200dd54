"""Coordinates snapshots, view computation and invalidation after writes."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from worklog.core.config import Settings, get_settings
from worklog.core.errors import AggregationDefect, FetchFailure, WorklogError
from worklog.engine.aggregation import (
    AggregationEngine,
    assignee_dimension,
    division_dimension,
    project_dimension,
    project_task_dimension,
    task_type_dimension,
)
from worklog.engine.filtering import EntryFilterEngine, filter_signature
from worklog.engine.invalidation import ROLLUP_READS, InvalidationGraph
from worklog.engine.types import (
    EntityType,
    FilterCriteria,
    MutationOperation,
    Record,
    RollupName,
    SlotState,
    View,
    ViewStatus,
)
from worklog.engine.view_cache import ViewCache
from worklog.gateway.base import RemoteStoreGateway
from worklog.gateway.schemas import validate_mutation

logger = logging.getLogger(__name__)

SlotKey = tuple[RollupName, str]


@dataclass(frozen=True, slots=True)
class RollupView:
    name: RollupName
    signature: str
    status: ViewStatus
    value: View | None = None
    error: str | None = None


class ReportingEngine:
    """Single consumer of the fetched snapshot.

    Views are computed synchronously from resident collections. A successful
    write runs write -> invalidate -> refetch -> recompute before returning,
    and aggregates are always rebuilt from fetched data, never patched.
    """

    def __init__(
        self,
        gateway: RemoteStoreGateway,
        *,
        settings: Settings | None = None,
        filter_engine: EntryFilterEngine | None = None,
        aggregation: AggregationEngine | None = None,
        graph: InvalidationGraph | None = None,
        cache: ViewCache | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.gateway = gateway
        self.filter_engine = filter_engine or EntryFilterEngine()
        self.aggregation = aggregation or AggregationEngine(
            unknown_label=self.settings.unknown_label,
            filter_engine=self.filter_engine,
        )
        self.graph = graph or InvalidationGraph()
        self.cache = cache or ViewCache(max_slots=self.settings.view_cache_max_slots)

        self._snapshot: dict[EntityType, list[Record]] = {}
        self._stale_collections: set[EntityType] = set()
        self._epochs: dict[EntityType, int] = defaultdict(int)
        self._inflight: dict[EntityType, asyncio.Future[list[Record]]] = {}
        self._generations: dict[RollupName, int] = defaultdict(int)
        self._failures: dict[SlotKey, WorklogError] = {}
        self._refreshes: set[asyncio.Task[RollupView]] = set()

    # ---------- Snapshot ----------
    def is_resident(self, entity_type: EntityType) -> bool:
        return entity_type in self._snapshot and entity_type not in self._stale_collections

    def epoch(self, entity_type: EntityType) -> int:
        return self._epochs[EntityType(entity_type)]

    async def collection(self, entity_type: EntityType) -> list[Record]:
        """Return the resident collection, fetching it when absent or stale.

        Concurrent callers share one in-flight fetch.
        """

        entity_type = EntityType(entity_type)
        if self.is_resident(entity_type):
            return self._snapshot[entity_type]

        future = self._inflight.get(entity_type)
        if future is None:
            future = asyncio.ensure_future(self._fetch(entity_type))
            self._inflight[entity_type] = future

            def _forget(done: asyncio.Future[list[Record]], key: EntityType = entity_type) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            future.add_done_callback(_forget)
        return await asyncio.shield(future)

    async def _fetch(self, entity_type: EntityType) -> list[Record]:
        while True:
            epoch = self._epochs[entity_type]
            records = await self.gateway.fetch_entries(entity_type)
            if self._epochs[entity_type] == epoch:
                break
            # invalidated while in flight; the result may predate the write
            logger.debug("Discarding %s fetch from epoch %s", entity_type.value, epoch)

        self._snapshot[entity_type] = list(records)
        self._stale_collections.discard(entity_type)
        logger.debug("Loaded %s %s records", len(records), entity_type.value)
        return self._snapshot[entity_type]

    async def _ensure_resident(self, entity_types: Iterable[EntityType]) -> None:
        pending = [entity_type for entity_type in entity_types if not self.is_resident(entity_type)]
        if pending:
            await asyncio.gather(*(self.collection(entity_type) for entity_type in pending))

    async def _settle_reads(self, name: RollupName) -> None:
        """Wait until every collection ``name`` reads is resident and unchanged since the wait began."""

        reads = ROLLUP_READS[name]
        while True:
            epochs = {entity_type: self._epochs[entity_type] for entity_type in reads}
            await self._ensure_resident(reads)
            if all(
                self.is_resident(entity_type) and self._epochs[entity_type] == epochs[entity_type]
                for entity_type in reads
            ):
                return
            logger.debug("Collections read by %s changed while loading; fetching again", name.value)

    def _records(self, entity_type: EntityType) -> list[Any]:
        return self._snapshot.get(entity_type, [])

    # ---------- View computation ----------
    def _build_view(self, name: RollupName, criteria: FilterCriteria) -> View:
        entries = self._records(EntityType.TIME_ENTRY)
        projects = self._records(EntityType.PROJECT)
        filtered = self.filter_engine.filter(entries, criteria, projects)
        agg = self.aggregation

        builders: dict[RollupName, Callable[[], View]] = {
            RollupName.ENTRY_LIST: lambda: agg.entry_listing(
                filtered,
                users=self._records(EntityType.USER),
                projects=projects,
                customers=self._records(EntityType.CUSTOMER),
                task_types=self._records(EntityType.TASK_TYPE),
                divisions=self._records(EntityType.DIVISION),
            ),
            RollupName.PROJECT: lambda: agg.aggregate(
                filtered, project_dimension(projects, self._records(EntityType.CUSTOMER))
            ),
            RollupName.ASSIGNEE: lambda: agg.aggregate(filtered, assignee_dimension(self._records(EntityType.USER))),
            RollupName.DIVISION: lambda: agg.aggregate(
                filtered, division_dimension(self._records(EntityType.DIVISION))
            ),
            RollupName.TASK_TYPE: lambda: agg.aggregate(
                filtered, task_type_dimension(self._records(EntityType.TASK_TYPE))
            ),
            RollupName.TASK_TYPE_AVERAGE: lambda: agg.average_by(
                filtered, task_type_dimension(self._records(EntityType.TASK_TYPE))
            ),
            RollupName.PROJECT_TASK: lambda: agg.aggregate(
                filtered, project_task_dimension(self._records(EntityType.PROJECT_TASK))
            ),
            RollupName.BILLABLE_SUMMARY: lambda: agg.billable_split(filtered),
            RollupName.PERIOD_COMPARISON: lambda: agg.period_comparison(entries, criteria, projects),
            RollupName.WEEKLY_TREND: lambda: agg.weekly_trend(filtered, criteria),
            RollupName.TEAM_SUMMARY: lambda: agg.team_summary(filtered, self._records(EntityType.USER)),
        }
        return builders[name]()

    def _compute_and_store(self, name: RollupName, criteria: FilterCriteria, signature: str) -> RollupView:
        try:
            view = self._build_view(name, criteria)
        except AggregationDefect:
            logger.exception("Rollup %s failed its reconciliation check", name.value)
            raise
        self.cache.put(name, signature, criteria, view)
        self._failures.pop((name, signature), None)
        return RollupView(name=name, signature=signature, status=ViewStatus.READY, value=view)

    def _issue(self, name: RollupName) -> int:
        self._generations[name] += 1
        return self._generations[name]

    def _failed(self, name: RollupName, signature: str, error: WorklogError) -> RollupView:
        self._failures[(name, signature)] = error
        return RollupView(name=name, signature=signature, status=ViewStatus.FAILED, error=error.message)

    def compute_rollup(self, name: RollupName, criteria: FilterCriteria) -> RollupView:
        """Return the view for ``criteria`` without waiting on the network.

        Must run on the event loop thread. When a collection the view reads
        is not resident, a background refresh is scheduled and a ``loading``
        view is returned; the refresh is dropped if a newer request for the
        same view is issued before it lands.
        """

        name = RollupName(name)
        signature = filter_signature(criteria)
        generation = self._issue(name)

        failure = self._failures.get((name, signature))
        if failure is not None:
            return RollupView(name=name, signature=signature, status=ViewStatus.FAILED, error=failure.message)

        lookup = self.cache.get(name, signature)
        if lookup.state is SlotState.FRESH:
            return RollupView(name=name, signature=signature, status=ViewStatus.READY, value=lookup.value)

        if all(self.is_resident(entity_type) for entity_type in ROLLUP_READS[name]):
            return self._compute_and_store(name, criteria, signature)

        task = asyncio.get_running_loop().create_task(self._refresh(name, criteria, signature, generation))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        return RollupView(name=name, signature=signature, status=ViewStatus.LOADING)

    async def _refresh(
        self,
        name: RollupName,
        criteria: FilterCriteria,
        signature: str,
        generation: int,
    ) -> RollupView:
        superseded = RollupView(name=name, signature=signature, status=ViewStatus.SUPERSEDED)
        try:
            await self._settle_reads(name)
        except FetchFailure as exc:
            if generation != self._generations[name]:
                return superseded
            logger.warning("Refresh of %s failed: %s", name.value, exc.message)
            return self._failed(name, signature, exc)

        if generation != self._generations[name]:
            logger.debug("Discarding superseded refresh of %s (generation %s)", name.value, generation)
            return superseded
        try:
            return self._compute_and_store(name, criteria, signature)
        except AggregationDefect as exc:
            return self._failed(name, signature, exc)

    async def wait_for_refreshes(self) -> list[RollupView]:
        if not self._refreshes:
            return []
        return list(await asyncio.gather(*list(self._refreshes)))

    async def load_rollup(self, name: RollupName, criteria: FilterCriteria) -> RollupView:
        """Awaited variant of ``compute_rollup``; each call is a manual retry."""

        name = RollupName(name)
        signature = filter_signature(criteria)
        self._issue(name)
        self._failures.pop((name, signature), None)

        lookup = self.cache.get(name, signature)
        if lookup.state is SlotState.FRESH:
            return RollupView(name=name, signature=signature, status=ViewStatus.READY, value=lookup.value)
        try:
            await self._settle_reads(name)
        except FetchFailure as exc:
            logger.warning("Loading %s failed: %s", name.value, exc.message)
            return self._failed(name, signature, exc)
        return self._compute_and_store(name, criteria, signature)

    def retry(self, name: RollupName, criteria: FilterCriteria) -> RollupView:
        name = RollupName(name)
        self._failures.pop((name, filter_signature(criteria)), None)
        return self.compute_rollup(name, criteria)

    # ---------- Invalidation ----------
    def invalidate(self, entity_type: EntityType) -> tuple[RollupName, ...]:
        entity_type = EntityType(entity_type)
        affected = self.graph.affected_rollups(entity_type)
        marked = self.cache.invalidate(affected)
        self._stale_collections.add(entity_type)
        self._epochs[entity_type] += 1
        for key in [key for key in self._failures if key[0] in affected]:
            del self._failures[key]
        logger.info(
            "Invalidated %s: %s slots stale across %s",
            entity_type.value,
            marked,
            ", ".join(name.value for name in affected) or "no views",
        )
        return affected

    async def on_mutation_succeeded(self, entity_type: EntityType) -> tuple[RollupName, ...]:
        """Invalidate, refetch and recompute everything a write to ``entity_type`` touches.

        A refetch failure leaves the affected slots stale and records the
        failure against each of them; it is not raised.
        """

        entity_type = EntityType(entity_type)
        affected = self.invalidate(entity_type)
        stale = self.cache.stale_slots(affected)
        try:
            await self.collection(entity_type)
        except FetchFailure as exc:
            logger.warning("Refetch of %s after write failed: %s", entity_type.value, exc.message)
            for name, criteria in stale:
                self._failures[(name, filter_signature(criteria))] = exc
            return affected

        for name, criteria in stale:
            signature = filter_signature(criteria)
            try:
                await self._settle_reads(name)
                self._compute_and_store(name, criteria, signature)
            except FetchFailure as exc:
                logger.warning("Recompute of %s after write failed: %s", name.value, exc.message)
                self._failures[(name, signature)] = exc
            except AggregationDefect as exc:
                self._failures[(name, signature)] = exc
        return affected

    async def submit_mutation(
        self,
        entity_type: EntityType,
        operation: MutationOperation,
        payload: Mapping[str, Any],
    ) -> str:
        """Validate and send a write, then run the invalidation sequence.

        ``ValidationFailure`` and ``MutationFailure`` propagate without
        touching the cache.
        """

        entity_type = EntityType(entity_type)
        operation = MutationOperation(operation)
        clean = validate_mutation(entity_type, operation, payload, settings=self.settings)
        entity_id = await self.gateway.mutate(entity_type, operation, clean)
        logger.info("Applied %s %s %s", operation.value, entity_type.value, entity_id)
        await self.on_mutation_succeeded(entity_type)
        return entity_id
