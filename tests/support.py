"""Shared test doubles and record builders."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from hypothesis import strategies as st

from worklog.core.errors import FetchFailure, MutationFailure
from worklog.engine.types import (
    Customer,
    Division,
    EntityType,
    FilterCriteria,
    MutationOperation,
    Project,
    Record,
    TaskType,
    TimeEntry,
    User,
)
from worklog.gateway.schemas import RECORD_SCHEMAS


class FakeStoreGateway:
    """In-memory store with switches for failure injection."""

    def __init__(self) -> None:
        self.collections: dict[EntityType, list[Record]] = {entity_type: [] for entity_type in EntityType}
        self.fetch_calls: list[EntityType] = []
        self.mutations: list[tuple[EntityType, MutationOperation, dict[str, Any]]] = []
        self.failing_fetches: set[EntityType] = set()
        self.reject_mutations = False
        self.fetch_gate: asyncio.Event | None = None
        self.fetch_gates: dict[EntityType, asyncio.Event] = {}
        self._next_id = 0

    async def fetch_entries(
        self,
        entity_type: EntityType,
        filter_hints: Mapping[str, Any] | None = None,
    ) -> list[Record]:
        self.fetch_calls.append(entity_type)
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        gate = self.fetch_gates.get(entity_type)
        if gate is not None:
            await gate.wait()
        if entity_type in self.failing_fetches:
            raise FetchFailure(entity_type.value, f"{entity_type.value} unavailable")
        return list(self.collections[entity_type])

    async def mutate(
        self,
        entity_type: EntityType,
        operation: MutationOperation,
        payload: Mapping[str, Any],
    ) -> str:
        values = dict(payload)
        self.mutations.append((entity_type, operation, values))
        if self.reject_mutations:
            raise MutationFailure(entity_type.value, operation.value, "rejected")

        records = self.collections[entity_type]
        if operation is MutationOperation.CREATE:
            self._next_id += 1
            record_id = f"{entity_type.value}-{self._next_id}"
            records.append(RECORD_SCHEMAS[entity_type].model_validate({"id": record_id, **values}).to_record())
            return record_id

        record_id = values.pop("id")
        for index, record in enumerate(records):
            if record.id == record_id:
                if operation is MutationOperation.UPDATE:
                    records[index] = dataclasses.replace(record, **values)
                else:
                    del records[index]
                return record_id
        raise MutationFailure(entity_type.value, operation.value, f"{record_id} not found")


def make_entry(
    entry_id: str,
    *,
    hours: str,
    project_id: str = "p-a",
    user_id: str = "u-1",
    billable: bool = True,
    day: date | None = date(2024, 3, 4),
    task_type_id: str = "tt-dev",
    division_id: str = "d-eng",
    task_id: str | None = None,
) -> TimeEntry:
    return TimeEntry(
        id=entry_id,
        date=day,
        effort=Decimal(hours),
        is_billable=billable,
        user_id=user_id,
        project_id=project_id,
        task_type_id=task_type_id,
        division_id=division_id,
        task_id=task_id,
    )


def seed_scenario(gateway: FakeStoreGateway) -> None:
    """Three entries over two projects of one customer, two users."""

    gateway.collections[EntityType.CUSTOMER] = [Customer(id="c-1", name="Acme")]
    gateway.collections[EntityType.PROJECT] = [
        Project(id="p-a", name="Alpha", customer_id="c-1"),
        Project(id="p-b", name="Beta", customer_id="c-1"),
    ]
    gateway.collections[EntityType.USER] = [User(id="u-1", name="Ana"), User(id="u-2", name="Ben")]
    gateway.collections[EntityType.DIVISION] = [Division(id="d-eng", name="Engineering")]
    gateway.collections[EntityType.TASK_TYPE] = [TaskType(id="tt-dev", name="Development")]
    gateway.collections[EntityType.TIME_ENTRY] = [
        make_entry("e-1", hours="3", project_id="p-a", user_id="u-1", billable=True),
        make_entry("e-2", hours="2", project_id="p-a", user_id="u-2", billable=False),
        make_entry("e-3", hours="5", project_id="p-b", user_id="u-1", billable=True),
    ]


# ---------- Hypothesis strategies ----------
PROJECT_IDS = ("p-a", "p-b", "p-c", "p-gone")
USER_IDS = ("u-1", "u-2", "u-3")
DIVISION_IDS = ("d-eng", "d-ops")
BASE_DAY = date(2024, 1, 1)

hours = st.decimals(min_value=Decimal("0"), max_value=Decimal("24"), places=2, allow_nan=False, allow_infinity=False)
days = st.one_of(st.none(), st.integers(min_value=0, max_value=120).map(lambda offset: BASE_DAY + timedelta(days=offset)))


@st.composite
def time_entries(draw: st.DrawFn, max_size: int = 30) -> list[TimeEntry]:
    count = draw(st.integers(min_value=0, max_value=max_size))
    return [
        TimeEntry(
            id=f"e-{index}",
            date=draw(days),
            effort=draw(hours),
            is_billable=draw(st.booleans()),
            user_id=draw(st.sampled_from(USER_IDS)),
            project_id=draw(st.sampled_from(PROJECT_IDS)),
            task_type_id=draw(st.sampled_from(("tt-dev", "tt-qa", "tt-missing"))),
            division_id=draw(st.sampled_from(DIVISION_IDS)),
        )
        for index in range(count)
    ]


@st.composite
def filter_criteria(draw: st.DrawFn) -> FilterCriteria:
    start = BASE_DAY + timedelta(days=draw(st.integers(min_value=0, max_value=120)))
    end = start + timedelta(days=draw(st.integers(min_value=0, max_value=60)))
    return FilterCriteria(
        start_date=start,
        end_date=end,
        assignee_id=draw(st.one_of(st.none(), st.sampled_from(USER_IDS))),
        customer_id=draw(st.one_of(st.none(), st.sampled_from(("c-1", "c-2", "c-none")))),
        project_id=draw(st.one_of(st.none(), st.sampled_from(PROJECT_IDS))),
        division_id=draw(st.one_of(st.none(), st.sampled_from(DIVISION_IDS))),
    )


SAMPLE_PROJECTS = [
    Project(id="p-a", name="Alpha", customer_id="c-1"),
    Project(id="p-b", name="Beta", customer_id="c-1"),
    Project(id="p-c", name="Gamma", customer_id="c-2"),
]
